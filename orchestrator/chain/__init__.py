"""
Agent Chain

The fixed step pipeline that turns a resolved agent plus a conversation into
a final answer: intent analysis, direct answer or ReAct execution, response
enhancement.
"""

from .agent_chain import AgentChain
from .context import ChainContext, ChainOptions
from .steps import (
    ChainStep,
    DirectLLMStep,
    IntentAnalysisStep,
    ReActExecutionStep,
    ResponseEnhancementStep,
)

__all__ = [
    "AgentChain",
    "ChainContext",
    "ChainOptions",
    "ChainStep",
    "DirectLLMStep",
    "IntentAnalysisStep",
    "ReActExecutionStep",
    "ResponseEnhancementStep",
]
