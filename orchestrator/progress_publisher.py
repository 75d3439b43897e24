"""
Progress Update Publisher

Publishes progress updates during orchestration execution.
Updates are kept in memory per correlation ID and forwarded to an optional
async sink (a transport adapter, a CLI printer, a test recorder).
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from agents.shared.schemas import ProgressUpdate

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressUpdate], Awaitable[None]]


class ProgressPublisher:
    """
    Publishes progress updates during orchestration.

    Event types: started, routed, transition, agent_completed, error, completed
    """

    def __init__(self, sink: Optional[ProgressSink] = None, max_events: int = 1000):
        """
        Initialize progress publisher.

        Args:
            sink: Optional coroutine called with every update
            max_events: Number of updates retained in memory
        """
        self.sink = sink
        self.max_events = max_events
        self.events: List[ProgressUpdate] = []

    async def _publish_update(
        self,
        correlation_id: str,
        event_type: str,
        message: str,
        data: Dict[str, Any]
    ) -> ProgressUpdate:
        """
        Record a progress update and forward it to the sink.

        Args:
            correlation_id: Correlation ID for tracking
            event_type: Type of event (started, routed, etc.)
            message: Human-readable message
            data: Additional event data

        Returns:
            The published update
        """
        progress_update = ProgressUpdate(
            message_type="progress_update",
            correlation_id=correlation_id,
            event_type=event_type,
            message=message,
            data=data
        )

        self.events.append(progress_update)
        if len(self.events) > self.max_events:
            del self.events[:len(self.events) - self.max_events]

        logger.debug(f"[PROGRESS] {event_type}: {message}")

        if self.sink is not None:
            try:
                await self.sink(progress_update)
            except Exception as e:
                # Progress delivery never affects the run itself
                logger.warning(f"Progress sink failed for {event_type}: {e}")

        return progress_update

    def events_for(self, correlation_id: str) -> List[ProgressUpdate]:
        """Updates recorded for one request, in publication order"""
        return [event for event in self.events if event.correlation_id == correlation_id]

    def clear(self) -> None:
        self.events.clear()

    async def publish_started(
        self,
        correlation_id: str,
        user_request: str
    ) -> None:
        """
        Publish orchestration started event.

        Args:
            correlation_id: Correlation ID
            user_request: The user's latest message
        """
        preview = user_request if len(user_request) <= 50 else f"{user_request[:50]}..."
        await self._publish_update(
            correlation_id=correlation_id,
            event_type="started",
            message=f"Orchestration started: {preview}",
            data={
                "user_request": user_request
            }
        )

    async def publish_routed(
        self,
        correlation_id: str,
        agents: List[str],
        strategy: str,
        reason: str
    ) -> None:
        """
        Publish agent resolution event.

        Args:
            correlation_id: Correlation ID
            agents: Resolved agent names, in execution order
            strategy: Resolution strategy that produced the hit
            reason: Why these agents were chosen
        """
        await self._publish_update(
            correlation_id=correlation_id,
            event_type="routed",
            message=f"Routed to {', '.join(agents)} via {strategy}",
            data={
                "agents": agents,
                "strategy": strategy,
                "reason": reason
            }
        )

    async def publish_transition(
        self,
        correlation_id: str,
        agent_name: str,
        from_state: str,
        to_state: str,
        iteration: int,
        detail: str = ""
    ) -> None:
        """
        Publish ReAct state transition event.

        Args:
            correlation_id: Correlation ID
            agent_name: Agent running the loop
            from_state: State left
            to_state: State entered
            iteration: Current THINKING round
            detail: Short description of what happened
        """
        await self._publish_update(
            correlation_id=correlation_id,
            event_type="transition",
            message=f"{agent_name}: {from_state} -> {to_state} (iteration {iteration})",
            data={
                "agent": agent_name,
                "from_state": from_state,
                "to_state": to_state,
                "iteration": iteration,
                "detail": detail
            }
        )

    async def publish_agent_completed(
        self,
        correlation_id: str,
        agent_name: str,
        status: str,
        answer: Optional[str] = None,
        error: Optional[str] = None
    ) -> None:
        """
        Publish agent completed event.

        Args:
            correlation_id: Correlation ID
            agent_name: Name of agent that completed
            status: Result status (success, error)
            answer: Final answer, when successful
            error: Error message, when failed
        """
        await self._publish_update(
            correlation_id=correlation_id,
            event_type="agent_completed",
            message=f"{agent_name} completed with {status}",
            data={
                "agent": agent_name,
                "status": status,
                "answer": answer,
                "error": error
            }
        )

    async def publish_completed(
        self,
        correlation_id: str,
        status: str,
        summary: str,
        duration_ms: Optional[float] = None
    ) -> None:
        """
        Publish orchestration completed event.

        Args:
            correlation_id: Correlation ID
            status: Final status (completed, failed)
            summary: Summary of orchestration
            duration_ms: Wall-clock duration of the run
        """
        await self._publish_update(
            correlation_id=correlation_id,
            event_type="completed",
            message=f"Orchestration {status}: {summary}",
            data={
                "status": status,
                "summary": summary,
                "duration_ms": duration_ms
            }
        )

    async def publish_error(
        self,
        correlation_id: str,
        error: str,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Publish error event.

        Args:
            correlation_id: Correlation ID
            error: Error message
            details: Additional error details
        """
        await self._publish_update(
            correlation_id=correlation_id,
            event_type="error",
            message=f"Error: {error}",
            data={
                "error": error,
                "details": details or {}
            }
        )
