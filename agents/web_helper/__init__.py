"""Web helper agent - fetch and summarize web pages"""

from .agent import WEB_HELPER_AGENT_NAME, WebTools, build_web_helper_agent

__all__ = ["WEB_HELPER_AGENT_NAME", "WebTools", "build_web_helper_agent"]
