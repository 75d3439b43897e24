"""
Agent Registry - In-memory agent registration and lookup

Holds the agents known to the orchestrator, their aliases and keywords, and
the distinguished leader agent. Registration happens during a single-threaded
startup phase; bootstrap() runs every starter once and freezes the registry,
after which it is read-only and safe to share between concurrent requests.
"""

import inspect
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from agents.shared.base_agent import Agent
from agents.shared.errors import DuplicateAgentError, RegistryFrozenError

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(r"[\w-]+")


class AgentRegistry:
    """
    In-memory registry of agents.

    Stores, per agent:
    - Name (unique identifier, case-insensitive)
    - Aliases (alternate identifiers, unique across names and aliases)
    - Keywords (lexical matching)
    - Spawned sub-resources returned by its starter
    """

    def __init__(self):
        """Initialize empty registry"""
        self._agents: Dict[str, Agent] = {}  # Insertion order is registration order
        self._identifiers: Dict[str, str] = {}  # casefolded name/alias -> agent name
        self._leader_name: Optional[str] = None
        self._resources: Dict[str, List[Any]] = {}
        self._bootstrapped = False
        self._frozen = False

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, agent: Agent) -> None:
        """
        Register an agent.

        Args:
            agent: Agent to register

        Raises:
            DuplicateAgentError: If the name or an alias is already taken
            RegistryFrozenError: If the registry has been bootstrapped
        """
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register '{agent.name}': registry is frozen")

        identifiers = [agent.name, *sorted(agent.meta.aliases)]
        seen = set()
        for identifier in identifiers:
            key = identifier.casefold()
            if key in self._identifiers:
                raise DuplicateAgentError(identifier, self._identifiers[key])
            if key in seen:
                raise DuplicateAgentError(identifier, agent.name)
            seen.add(key)

        for key in seen:
            self._identifiers[key] = agent.name
        self._agents[agent.name] = agent

        logger.info(f"Agent registered: {agent.name} (aliases: {sorted(agent.meta.aliases)})")

    def register_leader(self, agent: Agent) -> None:
        """
        Register the leader agent (the fallback of last resort).

        Raises:
            DuplicateAgentError: If a leader is already registered
        """
        if self._leader_name is not None:
            raise DuplicateAgentError(agent.name, self._leader_name)
        self.register(agent)
        self._leader_name = agent.name
        logger.info(f"Leader registered: {agent.name}")

    def freeze(self) -> None:
        self._frozen = True

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, identifier: str) -> Optional[Agent]:
        """
        Resolve an agent by exact name, then case-insensitive name or alias.

        Args:
            identifier: Name or alias

        Returns:
            Agent, or None if not found
        """
        if not identifier:
            return None
        agent = self._agents.get(identifier)
        if agent is not None:
            return agent
        name = self._identifiers.get(identifier.strip().casefold())
        return self._agents.get(name) if name else None

    def __contains__(self, identifier: str) -> bool:
        return self.get(identifier) is not None

    def __len__(self) -> int:
        return len(self._agents)

    def list_all(self) -> List[Agent]:
        """
        List all agents.

        Returns:
            Agents in registration order
        """
        return list(self._agents.values())

    def list_names(self) -> List[str]:
        return list(self._agents.keys())

    @property
    def leader(self) -> Optional[Agent]:
        if self._leader_name is None:
            return None
        return self._agents.get(self._leader_name)

    @property
    def leader_name(self) -> Optional[str]:
        return self._leader_name

    def keyword_match(self, text: str) -> List[Agent]:
        """
        Find agents whose keywords appear in the text.

        Args:
            text: Free text (usually the last user message)

        Returns:
            Matching agents, most keyword hits first, ties in registration order
        """
        tokens = set(_TOKEN_PATTERN.findall(text.casefold())) if text else set()
        if not tokens:
            return []

        scored: List[Tuple[int, int, Agent]] = []
        for position, agent in enumerate(self._agents.values()):
            hits = len(agent.meta.keywords & tokens)
            if hits:
                scored.append((-hits, position, agent))

        scored.sort(key=lambda entry: (entry[0], entry[1]))
        return [agent for _, _, agent in scored]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def bootstrap(self) -> None:
        """
        Run every agent's starter exactly once and freeze the registry.

        A failing starter is fatal to startup: the error propagates.
        """
        if self._bootstrapped:
            logger.debug("Registry already bootstrapped")
            return

        self._frozen = True
        for agent in self._agents.values():
            self._resources[agent.name] = await agent.start()
        self._bootstrapped = True

        logger.info(f"Registry bootstrapped with {len(self._agents)} agents")

    def resources(self, agent_name: str) -> List[Any]:
        """Sub-resources spawned by an agent's starter"""
        return list(self._resources.get(agent_name, []))

    async def shutdown(self) -> None:
        """Close spawned sub-resources in reverse registration order"""
        for name in reversed(list(self._resources.keys())):
            for handle in self._resources[name]:
                await _close_handle(handle)
            logger.info(f"Closed sub-resources of agent '{name}'")
        self._resources.clear()

    def health_check(self) -> Dict[str, Any]:
        """
        Summarize registry state.

        Returns:
            Dict with health summary
        """
        return {
            "total_agents": len(self._agents),
            "leader": self._leader_name,
            "bootstrapped": self._bootstrapped,
            "sub_resources": sum(len(handles) for handles in self._resources.values()),
        }


async def _close_handle(handle: Any) -> None:
    closer = getattr(handle, "aclose", None) or getattr(handle, "close", None)
    if closer is None:
        return
    try:
        result = closer()
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.warning(f"Failed to close sub-resource {handle!r}: {e}")
