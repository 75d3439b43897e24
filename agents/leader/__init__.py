"""Leader agent - default handler and fallback of last resort"""

from .agent import LEADER_AGENT_NAME, build_leader_agent, build_leader_tools

__all__ = ["LEADER_AGENT_NAME", "build_leader_agent", "build_leader_tools"]
