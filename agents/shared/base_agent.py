"""
Project Conductor - Agent

An agent is a named, described capability unit: an LLM capability, a system
prompt, a tool registry, lexical matching metadata and an optional async
starter that spawns sub-resources at bootstrap.
"""

import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from .llm_client import LanguageModel
from .schemas import AgentCapabilities, AgentMeta
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

AgentStarter = Callable[[], Awaitable[List[Any]]]

BASE_SYSTEM_PROMPT = (
    "You are a helpful AI assistant.\n"
    "Format replies in Markdown."
)


class Agent:
    """
    Registered agent.

    Identity and matching metadata are fixed at construction; the registry
    owns the instance for the life of the process.
    """

    def __init__(
        self,
        name: str,
        llm: LanguageModel,
        description: str = "",
        keywords: Iterable[str] = (),
        aliases: Iterable[str] = (),
        tools: Optional[ToolRegistry] = None,
        system_prompt: Optional[str] = None,
        starter: Optional[AgentStarter] = None
    ):
        """
        Initialize agent.

        Args:
            name: Unique agent identifier
            llm: LLM capability used by every chain step of this agent
            description: Free text shown to the router
            keywords: Words used for lexical matching
            aliases: Alternate identifiers
            tools: Tools available to the ReAct loop
            system_prompt: System prompt prepended to every LLM call
            starter: Async initializer returning spawned sub-resource handles
        """
        if not name or not name.strip():
            raise ValueError("Agent name must be a non-empty string")
        if llm is None:
            raise ValueError(f"Agent '{name}' requires an LLM capability")

        self._name = name.strip()
        self._description = description
        self._meta = AgentMeta(
            keywords=frozenset(k.strip().casefold() for k in keywords if k.strip()),
            aliases=frozenset(a.strip() for a in aliases if a.strip())
        )
        self.llm = llm
        self.tools = tools or ToolRegistry()
        self.system_prompt = system_prompt or BASE_SYSTEM_PROMPT
        self._starter = starter

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return self._description

    @property
    def meta(self) -> AgentMeta:
        return self._meta

    @property
    def has_tools(self) -> bool:
        return len(self.tools) > 0

    def get_capabilities(self) -> AgentCapabilities:
        """Catalog entry shown to classifiers"""
        return AgentCapabilities(
            name=self._name,
            description=self._description,
            keywords=sorted(self._meta.keywords),
            aliases=sorted(self._meta.aliases),
            tools=self.tools.catalog()
        )

    async def start(self) -> List[Any]:
        """
        Run the starter, if any.

        Returns:
            Spawned sub-resource handles (empty when there is no starter)
        """
        if self._starter is None:
            return []
        logger.info(f"Starting agent '{self._name}'...")
        handles = await self._starter()
        logger.info(f"Agent '{self._name}' started ({len(handles or [])} sub-resources)")
        return list(handles or [])

    def __repr__(self) -> str:
        return f"Agent(name={self._name!r}, tools={self.tools.names()!r})"
