"""
Shared building blocks: agent entity, LLM and tool capabilities, schemas,
errors, settings and logging.
"""
