"""
Project Conductor - Settings

Process configuration read from the environment (and a .env file when
present). Built once at startup and passed explicitly to the runtime.
"""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


class Settings(BaseModel):
    """Runtime settings for the orchestrator and its agents"""

    # LLM provider (OpenAI-compatible)
    llm_api_key: Optional[str] = None
    llm_base_url: str = "https://api.deepseek.com"
    llm_model: str = "deepseek-chat"
    llm_max_retries: int = 3
    llm_timeout: float = 60.0
    llm_temperature: float = 0.7

    # Routing
    router_timeout: float = 20.0
    router_threshold: float = 0.5
    multi_agent_threshold: float = 0.3
    max_agents: int = 3

    # ReAct loop
    react_max_steps: int = 8
    react_max_tool_errors: int = 3
    react_max_parse_retries: int = 2
    tool_timeout: float = 30.0

    # Logging
    log_level: str = "INFO"
    log_dir: str = "output/logs"

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            env_file: Optional path to a .env file (defaults to ./.env)

        Returns:
            Settings instance
        """
        load_dotenv(env_file)

        return cls(
            llm_api_key=os.getenv("LLM_API_KEY") or os.getenv("DEEPSEEK_API_KEY"),
            llm_base_url=os.getenv("LLM_BASE_URL") or os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com"),
            llm_model=os.getenv("LLM_MODEL") or os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
            llm_max_retries=_env_int("LLM_MAX_RETRIES", 3),
            llm_timeout=_env_float("LLM_TIMEOUT", 60.0),
            llm_temperature=_env_float("LLM_TEMPERATURE", 0.7),
            router_timeout=_env_float("ROUTER_TIMEOUT", 20.0),
            router_threshold=_env_float("ROUTER_THRESHOLD", 0.5),
            multi_agent_threshold=_env_float("MULTI_AGENT_THRESHOLD", 0.3),
            max_agents=_env_int("MAX_AGENTS", 3),
            react_max_steps=_env_int("REACT_MAX_STEPS", 8),
            react_max_tool_errors=_env_int("REACT_MAX_TOOL_ERRORS", 3),
            react_max_parse_retries=_env_int("REACT_MAX_PARSE_RETRIES", 2),
            tool_timeout=_env_float("TOOL_TIMEOUT", 30.0),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=os.getenv("LOG_DIR", "output/logs"),
        )
