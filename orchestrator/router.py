"""
LLM Router - Map a request onto one or more candidate agents

The router is a pure "classify or fail" unit: it asks the classifier model
to pick agent identifiers, validates the answer against the candidate set,
and raises AmbiguousSelectionError when the answer cannot be mapped. It never
falls back; fallback belongs to the orchestrator.
"""

import json
import logging
from typing import Dict, List, Optional, Sequence

from agents.shared.base_agent import Agent
from agents.shared.errors import AmbiguousSelectionError, ResponseParseError
from agents.shared.llm_client import LanguageModel, complete_within
from agents.shared.schemas import ChatMessage, RouteResult, last_user_text, system_message, user_message

from .parsing import normalize_identifier, parse_route_choice, parse_route_choices
from .prompts import render_prompt
from .registry import AgentRegistry

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.5
DEFAULT_MULTI_THRESHOLD = 0.3
DEFAULT_MAX_AGENTS = 3


class LLMRouter:
    """
    LLM-based agent classifier.

    Candidates are described to the model by name, description, keywords and
    aliases; the model's answer must name candidates exactly or after
    normalization (case, whitespace, quotes).
    """

    def __init__(
        self,
        llm: LanguageModel,
        registry: Optional[AgentRegistry] = None,
        threshold: float = DEFAULT_THRESHOLD,
        multi_threshold: float = DEFAULT_MULTI_THRESHOLD,
        max_agents: int = DEFAULT_MAX_AGENTS,
        timeout: Optional[float] = None
    ):
        """
        Initialize router.

        Args:
            llm: Classifier model
            registry: Registry used to rank keyword hits in the catalog
            threshold: Minimum confidence for single-agent selection
            multi_threshold: Minimum confidence for each multi-agent selection
            max_agents: Default upper bound K for multi-agent selection
            timeout: Deadline in seconds for each classifier call
        """
        self.llm = llm
        self.registry = registry
        self.threshold = threshold
        self.multi_threshold = multi_threshold
        self.max_agents = max_agents
        self.timeout = timeout

    async def select_agent_by_llm(
        self,
        messages: List[ChatMessage],
        candidates: Sequence[Agent]
    ) -> RouteResult:
        """
        Select exactly one agent.

        Args:
            messages: Conversation (the last user message is classified)
            candidates: Agents to choose from

        Returns:
            RouteResult naming a candidate

        Raises:
            AmbiguousSelectionError: Unparseable, unknown, empty or low-confidence answer
            LLMUnavailableError, LLMTimeoutError: Classifier failure
        """
        if not candidates:
            raise AmbiguousSelectionError("no candidates")

        user_request = last_user_text(messages)
        prompt = [
            system_message(render_prompt("router_single")),
            user_message(render_prompt(
                "router_single_request",
                user_request=json.dumps(user_request, ensure_ascii=False),
                candidates=self.build_catalog(candidates, user_request)
            ))
        ]

        raw = await complete_within(self.llm, prompt, temperature=0.0, timeout=self.timeout)
        logger.debug(f"Router raw answer: {raw!r}")

        try:
            choice = parse_route_choice(raw)
        except ResponseParseError as e:
            raise AmbiguousSelectionError(f"parse_error: {e}", raw=raw) from e

        if not choice.target.strip():
            raise AmbiguousSelectionError("empty_target", raw=raw)

        name = self._match(choice.target, candidates)
        if name is None:
            raise AmbiguousSelectionError(f"target_not_found: {choice.target!r}", raw=raw)

        if choice.confidence < self.threshold:
            raise AmbiguousSelectionError(
                f"low_confidence: {choice.confidence:.2f} < {self.threshold:.2f}", raw=raw
            )

        result = RouteResult(
            name=name,
            reason=choice.reason or "llm",
            confidence=choice.confidence,
            task=choice.task
        )
        logger.info(f"Router selected '{name}' (confidence {choice.confidence:.2f}): {result.reason}")
        return result

    async def select_multiple_agents_by_llm(
        self,
        messages: List[ChatMessage],
        candidates: Sequence[Agent],
        max_agents: Optional[int] = None
    ) -> List[RouteResult]:
        """
        Select an ordered set of 1..K agents.

        Entries naming unknown agents, repeating an earlier agent or falling
        below the multi-agent threshold are dropped. The rest are ranked by
        confidence, highest first, and cut to K.

        Args:
            messages: Conversation
            candidates: Agents to choose from
            max_agents: Upper bound K (defaults to the router setting)

        Returns:
            Deduplicated RouteResults, most confident first

        Raises:
            AmbiguousSelectionError: If no valid entry remains
            LLMUnavailableError, LLMTimeoutError: Classifier failure
        """
        if not candidates:
            raise AmbiguousSelectionError("no candidates")

        limit = max_agents if max_agents is not None else self.max_agents
        if limit < 1:
            raise AmbiguousSelectionError(f"invalid max_agents: {limit}")

        user_request = last_user_text(messages)
        prompt = [
            system_message(render_prompt("router_multi", max_agents=str(limit))),
            user_message(render_prompt(
                "router_multi_request",
                user_request=json.dumps(user_request, ensure_ascii=False),
                candidates=self.build_catalog(candidates, user_request)
            ))
        ]

        raw = await complete_within(self.llm, prompt, temperature=0.0, timeout=self.timeout)
        logger.debug(f"Multi-router raw answer: {raw!r}")

        try:
            choices = parse_route_choices(raw)
        except ResponseParseError as e:
            raise AmbiguousSelectionError(f"parse_error: {e}", raw=raw) from e

        selected: List[RouteResult] = []
        seen = set()
        for choice in choices:
            name = self._match(choice.target, candidates)
            if name is None:
                logger.warning(f"Multi-router named unknown agent {choice.target!r}, dropping it")
                continue
            if name in seen:
                continue
            if choice.confidence < self.multi_threshold:
                logger.info(f"Dropping '{name}': confidence {choice.confidence:.2f} below threshold")
                continue
            seen.add(name)
            selected.append(RouteResult(
                name=name,
                reason=choice.reason or "llm",
                confidence=choice.confidence,
                task=choice.task
            ))

        if not selected:
            raise AmbiguousSelectionError("no_valid_targets", raw=raw)

        # Stable sort: equal confidences keep the model's order
        selected.sort(key=lambda route: -route.confidence)
        selected = selected[:limit]

        logger.info(f"Multi-router selected: {' -> '.join(r.name for r in selected)}")
        return selected

    def build_catalog(self, candidates: Sequence[Agent], user_request: str = "") -> str:
        """
        Describe candidates for the classifier prompt.

        Keyword hits from the registry are included as a hint; candidate order
        stays the registration order given by the caller.
        """
        hits: Dict[str, int] = {}
        if self.registry is not None and user_request:
            for rank, agent in enumerate(self.registry.keyword_match(user_request)):
                hits[agent.name] = rank + 1

        catalog = []
        for agent in candidates:
            capabilities = agent.get_capabilities()
            entry = capabilities.model_dump(exclude={"tools"})
            entry["tools"] = [tool.name for tool in capabilities.tools]
            if agent.name in hits:
                entry["keyword_match_rank"] = hits[agent.name]
            catalog.append(entry)
        return json.dumps(catalog, ensure_ascii=False, indent=2)

    @staticmethod
    def _match(target: str, candidates: Sequence[Agent]) -> Optional[str]:
        """Exact name/alias match first, then normalized match"""
        for agent in candidates:
            if target == agent.name or target in agent.meta.aliases:
                return agent.name

        normalized = normalize_identifier(target)
        if not normalized:
            return None
        for agent in candidates:
            identifiers = [agent.name, *agent.meta.aliases]
            if any(normalize_identifier(identifier) == normalized for identifier in identifiers):
                return agent.name
        return None
