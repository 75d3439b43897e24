"""
Project Conductor - Error Taxonomy

Every failure the routing and execution core can raise. Errors raised inside
the router or a single ReAct iteration are expected and absorbed by the next
layer up; only AgentNotFoundError, NoAgentAvailableError and
ChainAbortedError reach the caller.
"""

from typing import Any, Dict, Optional


class ConductorError(Exception):
    """Base class for all Project Conductor errors"""


# ============================================
# Registry Errors
# ============================================

class DuplicateAgentError(ConductorError):
    """An agent name or alias collides with an existing registration"""

    def __init__(self, identifier: str, existing: str):
        self.identifier = identifier
        self.existing = existing
        super().__init__(
            f"Agent identifier '{identifier}' collides with registered agent '{existing}'"
        )


class RegistryFrozenError(ConductorError):
    """Registration attempted after the registry was bootstrapped"""


class AgentNotFoundError(ConductorError):
    """An explicitly requested agent is not registered"""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Agent '{identifier}' not found in registry")


class NoAgentAvailableError(ConductorError):
    """No agent could be resolved, not even the leader"""


# ============================================
# Routing Errors
# ============================================

class AmbiguousSelectionError(ConductorError):
    """The classifier answer could not be mapped to a candidate agent"""

    def __init__(self, reason: str, raw: Optional[str] = None):
        self.reason = reason
        self.raw = raw
        super().__init__(f"Ambiguous agent selection: {reason}")


# ============================================
# LLM Errors
# ============================================

class LLMError(ConductorError):
    """Base class for LLM capability failures"""


class LLMUnavailableError(LLMError):
    """The LLM provider could not produce a completion"""


class LLMTimeoutError(LLMError):
    """The LLM call exceeded its time budget"""


class ResponseParseError(ConductorError):
    """A model response does not follow the expected grammar"""

    def __init__(self, message: str, raw: Optional[str] = None):
        self.raw = raw
        super().__init__(message)


# ============================================
# Tool Errors
# ============================================

class ToolError(ConductorError):
    """Base class for tool invocation failures"""

    kind = "tool_error"

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        self.message = message
        super().__init__(f"Tool '{tool_name}': {message}")

    def to_observation(self) -> Dict[str, Any]:
        """Structured form fed back into the reasoning loop"""
        return {
            "error": {
                "type": self.kind,
                "tool": self.tool_name,
                "message": self.message,
            }
        }


class ToolNotFoundError(ToolError):
    kind = "tool_not_found"

    def __init__(self, tool_name: str):
        super().__init__(tool_name, "no such tool is available")


class InvalidToolParametersError(ToolError):
    kind = "invalid_parameters"


class ToolExecutionError(ToolError):
    kind = "execution_failed"


# ============================================
# Chain Errors
# ============================================

class ReActFailedError(ConductorError):
    """The ReAct executor ended in the FAILED state"""


class ChainAbortedError(ConductorError):
    """An agent chain could not produce a final answer"""

    def __init__(self, agent_name: str, step: Optional[str], reason: str):
        self.agent_name = agent_name
        self.step = step
        self.reason = reason
        where = f" at step '{step}'" if step else ""
        super().__init__(f"Agent '{agent_name}' chain aborted{where}: {reason}")
