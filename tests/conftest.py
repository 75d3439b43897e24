"""
Project Conductor - Test Fixtures

Shared fixtures for the test suite: a scripted LLM capability that replays
canned responses, agent and registry factories, and a real LLM client for
the tests marked ``integration`` (skipped without an API key).
"""

import os
import re
import sys
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import pytest
from dotenv import load_dotenv

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Load .env file for tests
load_dotenv(project_root / ".env")

from agents.shared.base_agent import Agent
from agents.shared.errors import LLMUnavailableError
from agents.shared.llm_client import LLMClient
from agents.shared.tools import Tool, ToolRegistry
from orchestrator.registry import AgentRegistry


class ScriptedLLM:
    """
    LLM capability replaying scripted responses in order.

    An exception instance in the script is raised instead of returned. When
    the script runs out, ``default`` is returned (or LLMUnavailableError is
    raised when there is no default). Every call's messages are recorded.
    """

    def __init__(self, responses: Iterable = (), default: Optional[str] = None):
        self.responses = list(responses)
        self.default = default
        self.calls: List[list] = []
        self.timeouts: List[Optional[float]] = []

    async def complete(self, messages, *, temperature=None, timeout=None):
        self.calls.append(list(messages))
        self.timeouts.append(timeout)
        if self.responses:
            item = self.responses.pop(0)
        elif self.default is not None:
            item = self.default
        else:
            raise LLMUnavailableError("script exhausted")
        if isinstance(item, BaseException):
            raise item
        return item

    async def stream(self, messages, *, temperature=None, timeout=None):
        text = await self.complete(messages, temperature=temperature, timeout=timeout)
        for piece in re.findall(r"\S+\s*", text):
            yield piece

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def scripted_llm() -> Callable[..., ScriptedLLM]:
    """Factory for ScriptedLLM instances"""
    return ScriptedLLM


@pytest.fixture
def echo_tool() -> Tool:
    """Tool returning its input text"""
    return Tool(
        name="echo",
        description="Echo the given text back.",
        handler=lambda text: f"echo: {text}",
        input_schema={
            "type": "object",
            "properties": {"text": {"type": "string"}},
            "required": ["text"],
        }
    )


@pytest.fixture
def make_agent() -> Callable[..., Agent]:
    """
    Factory for agents backed by a ScriptedLLM.

    Usage:
        agent = make_agent("math-agent", responses=["42"], keywords=["math"])
        agent.llm.calls  # recorded prompts
    """
    def factory(
        name: str,
        responses: Iterable = (),
        default: Optional[str] = None,
        tools: Optional[List[Tool]] = None,
        keywords: Iterable[str] = (),
        aliases: Iterable[str] = (),
        description: str = "",
        starter=None,
        llm=None
    ) -> Agent:
        return Agent(
            name=name,
            llm=llm or ScriptedLLM(responses, default=default),
            description=description or f"{name} test agent",
            keywords=keywords,
            aliases=aliases,
            tools=ToolRegistry(tools) if tools else None,
            starter=starter
        )

    return factory


@pytest.fixture
def make_registry(make_agent) -> Callable[..., AgentRegistry]:
    """
    Factory for registries with a leader and specialist agents.

    Leader and specialists are given as Agent instances; the leader is
    optional so tests can exercise the no-leader path.
    """
    def factory(*agents: Agent, leader: Optional[Agent] = None) -> AgentRegistry:
        registry = AgentRegistry()
        if leader is not None:
            registry.register_leader(leader)
        for agent in agents:
            registry.register(agent)
        return registry

    return factory


@pytest.fixture
def llm_client():
    """
    Create an LLM client for testing.
    Uses real API if LLM_API_KEY (or DEEPSEEK_API_KEY) is set.
    """
    api_key = os.getenv("LLM_API_KEY") or os.getenv("DEEPSEEK_API_KEY")

    if not api_key:
        pytest.skip("LLM_API_KEY not set - skipping LLM test")

    return LLMClient(
        api_key=api_key,
        base_url=os.getenv("LLM_BASE_URL") or os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com"),
        model=os.getenv("LLM_MODEL") or os.getenv("DEEPSEEK_MODEL", "deepseek-chat")
    )
