"""
Orchestrator - Central coordination for Project Conductor

Resolves which registered agent(s) handle a request (explicit selection,
LLM routing, leader fallback) and runs each through the agent chain and the
bounded ReAct executor.
"""

from .orchestration import Orchestrator, Resolution
from .react_loop import ReActExecutor, ReActOutcome, ReActState
from .registry import AgentRegistry
from .request_handler import OrchestrationRequestHandler
from .router import LLMRouter

__all__ = [
    "AgentRegistry",
    "LLMRouter",
    "Orchestrator",
    "Resolution",
    "ReActExecutor",
    "ReActOutcome",
    "ReActState",
    "OrchestrationRequestHandler",
]
