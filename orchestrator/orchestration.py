"""
Orchestrator - Resolve agents for a request and run their chains

Resolution is an ordered list of strategies; each returns a Resolution or
None (a miss) and the first hit wins:

1. Explicit selection  - caller named an agent (a miss is AgentNotFoundError)
2. Multi-agent routing - caller asked for fan-out
3. LLM routing         - classifier picks one agent
4. Leader fallback     - the leader agent (NoAgentAvailableError without one)

Classifier failures never reach the caller: they are misses that fall
through to the next strategy.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import AsyncIterator, List, Optional, Sequence, Tuple

from agents.shared.base_agent import Agent
from agents.shared.errors import (
    AgentNotFoundError,
    AmbiguousSelectionError,
    LLMError,
    NoAgentAvailableError,
)
from agents.shared.schemas import (
    AgentOutcome,
    ChatMessage,
    OrchestrationRequest,
    OrchestrationResult,
    RouteResult,
    system_message,
)

from .chain import AgentChain, ChainContext, ChainOptions
from .progress_publisher import ProgressPublisher
from .registry import AgentRegistry
from .router import LLMRouter

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    """Agents chosen for a request, in execution order"""
    agents: List[Agent]
    routes: List[RouteResult]
    strategy: str
    reason: str
    fan_out: bool = False

    @property
    def agent_names(self) -> List[str]:
        return [agent.name for agent in self.agents]


# ============================================
# Resolution Strategies
# ============================================

class ResolutionStrategy(ABC):
    """One layer of the resolution pipeline"""

    name: str = "strategy"

    @abstractmethod
    async def resolve(self, request: OrchestrationRequest, multi: bool) -> Optional[Resolution]:
        """
        Try to resolve agents for a request.

        Args:
            request: Orchestration request
            multi: Whether the multi-agent layer is enabled for this call

        Returns:
            Resolution on a hit, None on a miss
        """


class ExplicitSelection(ResolutionStrategy):
    name = "explicit"

    def __init__(self, registry: AgentRegistry):
        self.registry = registry

    async def resolve(self, request: OrchestrationRequest, multi: bool) -> Optional[Resolution]:
        if not request.agent_name:
            return None
        agent = self.registry.get(request.agent_name)
        if agent is None:
            raise AgentNotFoundError(request.agent_name)
        return Resolution(
            agents=[agent],
            routes=[RouteResult(name=agent.name, reason="explicit")],
            strategy=self.name,
            reason=f"caller selected '{request.agent_name}'"
        )


class MultiAgentSelection(ResolutionStrategy):
    name = "multi_agent"

    def __init__(self, registry: AgentRegistry, router: LLMRouter):
        self.registry = registry
        self.router = router

    async def resolve(self, request: OrchestrationRequest, multi: bool) -> Optional[Resolution]:
        if not multi:
            return None
        try:
            routes = await self.router.select_multiple_agents_by_llm(
                request.messages,
                self.registry.list_all(),
                max_agents=request.max_agents
            )
        except (AmbiguousSelectionError, LLMError, asyncio.TimeoutError) as e:
            logger.warning(f"Multi-agent routing missed: {e}")
            return None
        return Resolution(
            agents=[self.registry.get(route.name) for route in routes],
            routes=routes,
            strategy=self.name,
            reason="; ".join(f"{route.name}: {route.reason}" for route in routes),
            fan_out=True
        )


class LLMRouting(ResolutionStrategy):
    name = "llm"

    def __init__(self, registry: AgentRegistry, router: LLMRouter):
        self.registry = registry
        self.router = router

    async def resolve(self, request: OrchestrationRequest, multi: bool) -> Optional[Resolution]:
        try:
            route = await self.router.select_agent_by_llm(request.messages, self.registry.list_all())
        except (AmbiguousSelectionError, LLMError, asyncio.TimeoutError) as e:
            logger.warning(f"LLM routing missed, falling back: {e}")
            return None
        return Resolution(
            agents=[self.registry.get(route.name)],
            routes=[route],
            strategy=self.name,
            reason=route.reason
        )


class LeaderFallback(ResolutionStrategy):
    name = "leader"

    def __init__(self, registry: AgentRegistry):
        self.registry = registry

    async def resolve(self, request: OrchestrationRequest, multi: bool) -> Optional[Resolution]:
        leader = self.registry.leader
        if leader is None:
            raise NoAgentAvailableError("No agent could handle this request: no leader agent is registered")
        return Resolution(
            agents=[leader],
            routes=[RouteResult(name=leader.name, reason="leader fallback")],
            strategy=self.name,
            reason="leader fallback"
        )


# ============================================
# Orchestrator
# ============================================

class Orchestrator:
    """
    Entry point of the routing and execution core.

    Stateless between requests apart from the frozen registry; safe to share
    between concurrent callers.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        router: LLMRouter,
        progress_publisher: Optional[ProgressPublisher] = None,
        chain: Optional[AgentChain] = None,
        defaults: Optional[ChainOptions] = None,
        strategies: Optional[Sequence[ResolutionStrategy]] = None
    ):
        """
        Initialize orchestrator.

        Args:
            registry: Agent registry (bootstrapped)
            router: LLM router
            progress_publisher: Optional publisher for progress events
            chain: Step pipeline (defaults to the standard four steps)
            defaults: Chain options applied when a request does not override them
            strategies: Resolution pipeline (defaults to explicit, multi, llm, leader)
        """
        self.registry = registry
        self.router = router
        self.progress_publisher = progress_publisher
        self.chain = chain or AgentChain()
        self.defaults = defaults or ChainOptions()
        self.strategies = list(strategies) if strategies is not None else [
            ExplicitSelection(registry),
            MultiAgentSelection(registry, router),
            LLMRouting(registry, router),
            LeaderFallback(registry),
        ]

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, request: OrchestrationRequest, multi: Optional[bool] = None) -> Resolution:
        """
        Run the resolution pipeline.

        Args:
            request: Orchestration request
            multi: Enable the multi-agent layer (defaults to request.multi_agent)

        Returns:
            First hit of the strategy list

        Raises:
            AgentNotFoundError: Explicit selection names an unknown agent
            NoAgentAvailableError: Every strategy missed and there is no leader
        """
        enable_multi = request.multi_agent if multi is None else multi

        for strategy in self.strategies:
            resolution = await strategy.resolve(request, enable_multi)
            if resolution is not None:
                logger.info(
                    f"[{request.correlation_id}] Resolved {resolution.agent_names} "
                    f"via {resolution.strategy}: {resolution.reason}"
                )
                if self.progress_publisher:
                    await self.progress_publisher.publish_routed(
                        correlation_id=request.correlation_id,
                        agents=resolution.agent_names,
                        strategy=resolution.strategy,
                        reason=resolution.reason
                    )
                return resolution

        raise NoAgentAvailableError("No agent could handle this request")

    async def select_agent_by_llm(
        self,
        messages: List[ChatMessage],
        candidates: Optional[Sequence[Agent]] = None
    ) -> RouteResult:
        """Router passthrough (candidates default to every registered agent)"""
        return await self.router.select_agent_by_llm(messages, candidates or self.registry.list_all())

    async def select_multiple_agents_by_llm(
        self,
        messages: List[ChatMessage],
        candidates: Optional[Sequence[Agent]] = None,
        max_agents: Optional[int] = None
    ) -> List[RouteResult]:
        """Router passthrough (candidates default to every registered agent)"""
        return await self.router.select_multiple_agents_by_llm(
            messages, candidates or self.registry.list_all(), max_agents=max_agents
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run_with_leader(self, request: OrchestrationRequest) -> str:
        """
        Single-agent policy: explicit, then LLM routing, then the leader.

        Returns:
            Non-empty final answer

        Raises:
            AgentNotFoundError, NoAgentAvailableError, ChainAbortedError
        """
        _, context = await self._run_single(request)
        return context.final_answer

    async def stream_with_leader(self, request: OrchestrationRequest) -> AsyncIterator[str]:
        """
        Single-agent policy, yielding answer chunks as they are produced.

        Resolution happens when iteration starts; agent_completed is
        published once the stream is exhausted.
        """
        resolution = await self.resolve(request, multi=False)
        context = self._build_context(request, resolution.agents[0], resolution.routes[0], stream=True)
        async for chunk in self.chain.stream(context):
            yield chunk
        await self._publish_completed(request, context)

    async def run_with_multiple_agents(self, request: OrchestrationRequest) -> List[AgentOutcome]:
        """
        Multi-agent policy: fan out to every resolved agent concurrently.

        A failing agent yields an outcome with an error; the others are not
        affected. When the multi-agent layer misses, the single agent resolved
        by the next strategies yields a one-element list.

        Returns:
            Outcomes in resolution order
        """
        _, outcomes = await self._run_fan_out(request)
        return outcomes

    async def run(self, request: OrchestrationRequest) -> OrchestrationResult:
        """
        Run a request under the policy it asks for.

        Returns:
            OrchestrationResult (failed only when every fanned-out agent failed)

        Raises:
            AgentNotFoundError, NoAgentAvailableError, ChainAbortedError
        """
        start = time.monotonic()

        if request.multi_agent:
            resolution, outcomes = await self._run_fan_out(request)
            succeeded = [outcome for outcome in outcomes if outcome.ok]
            failed = not succeeded
            return OrchestrationResult(
                message_type="orchestration_result",
                correlation_id=request.correlation_id,
                status="failed" if failed else "completed",
                answer=outcomes[0].final_answer if len(outcomes) == 1 else None,
                outcomes=outcomes,
                agents_involved=resolution.agent_names,
                resolution=resolution.strategy,
                error="; ".join(o.error for o in outcomes if o.error) if failed else None,
                error_kind="agent_failed" if failed else None,
                total_duration_ms=(time.monotonic() - start) * 1000
            )

        resolution, context = await self._run_single(request)
        return OrchestrationResult(
            message_type="orchestration_result",
            correlation_id=request.correlation_id,
            status="completed",
            answer=context.final_answer,
            outcomes=[AgentOutcome(
                agent_name=context.agent_name,
                final_answer=context.final_answer,
                reason=resolution.reason
            )],
            agents_involved=resolution.agent_names,
            resolution=resolution.strategy,
            total_duration_ms=(time.monotonic() - start) * 1000
        )

    async def _run_single(self, request: OrchestrationRequest) -> Tuple[Resolution, ChainContext]:
        resolution = await self.resolve(request, multi=False)
        context = self._build_context(request, resolution.agents[0], resolution.routes[0])
        await self.chain.run(context)
        await self._publish_completed(request, context)
        return resolution, context

    async def _publish_completed(self, request: OrchestrationRequest, context: ChainContext) -> None:
        if self.progress_publisher:
            await self.progress_publisher.publish_agent_completed(
                correlation_id=request.correlation_id,
                agent_name=context.agent_name,
                status="success",
                answer=context.final_answer
            )

    async def _run_fan_out(self, request: OrchestrationRequest) -> Tuple[Resolution, List[AgentOutcome]]:
        resolution = await self.resolve(request, multi=True)
        contexts = [
            self._build_context(request, agent, route)
            for agent, route in zip(resolution.agents, resolution.routes)
        ]
        outcomes = await asyncio.gather(*(
            self._run_isolated(context, route)
            for context, route in zip(contexts, resolution.routes)
        ))
        return resolution, list(outcomes)

    async def _run_isolated(self, context: ChainContext, route: RouteResult) -> AgentOutcome:
        """Run one fanned-out chain; failures are captured, never raised"""
        try:
            answer = await self.chain.run(context)
            outcome = AgentOutcome(agent_name=context.agent_name, final_answer=answer, reason=route.reason)
        except Exception as e:
            logger.error(f"[{context.correlation_id}] Agent '{context.agent_name}' failed: {e}")
            outcome = AgentOutcome(agent_name=context.agent_name, error=str(e), reason=route.reason)

        if self.progress_publisher:
            await self.progress_publisher.publish_agent_completed(
                correlation_id=context.correlation_id,
                agent_name=context.agent_name,
                status="success" if outcome.ok else "error",
                answer=outcome.final_answer,
                error=outcome.error
            )
        return outcome

    def _build_context(
        self,
        request: OrchestrationRequest,
        agent: Agent,
        route: RouteResult,
        stream: bool = False
    ) -> ChainContext:
        messages = list(request.messages)
        if route.task:
            messages.insert(0, system_message(f"Your assigned task: {route.task}"))

        return ChainContext(
            messages=messages,
            agent=agent,
            options=self._build_options(request, stream),
            correlation_id=request.correlation_id,
            progress_publisher=self.progress_publisher
        )

    def _build_options(self, request: OrchestrationRequest, stream: bool) -> ChainOptions:
        overrides = {
            "stream": stream,
            "react_verbose": request.react_verbose or self.defaults.react_verbose,
            "initial_steps": list(request.initial_steps),
        }
        if request.max_steps is not None:
            overrides["max_steps"] = request.max_steps
        if request.temperature is not None:
            overrides["temperature"] = request.temperature
        return replace(self.defaults, **overrides)
