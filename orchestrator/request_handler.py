"""
Orchestration Request Handler

Accepts orchestration requests (as models or JSON), runs them through the
orchestrator and turns every outcome, including surfaced errors, into a
single terminal OrchestrationResult.
"""

import logging
import time
from typing import Optional

from agents.shared.errors import AgentNotFoundError, ChainAbortedError, NoAgentAvailableError
from agents.shared.schemas import OrchestrationRequest, OrchestrationResult, last_user_text

from .orchestration import Orchestrator
from .progress_publisher import ProgressPublisher

logger = logging.getLogger(__name__)


class OrchestrationRequestHandler:
    """
    Handles orchestration requests from callers (CLI, transports, tests).

    No agent could be resolved -> status "failed", error_kind "no_agent".
    The agent failed while handling the request -> error_kind "agent_failed".
    """

    def __init__(self, orchestrator: Orchestrator, progress_publisher: Optional[ProgressPublisher] = None):
        """
        Initialize request handler.

        Args:
            orchestrator: Orchestrator instance
            progress_publisher: Optional publisher for started/completed/error events
        """
        self.orchestrator = orchestrator
        self.progress_publisher = progress_publisher

    async def handle_request(self, request: OrchestrationRequest) -> OrchestrationResult:
        """
        Handle a single orchestration request.

        Args:
            request: OrchestrationRequest message

        Returns:
            OrchestrationResult message
        """
        start = time.monotonic()
        logger.info(f"[REQUEST] Handling orchestration request: {request.correlation_id}")

        if self.progress_publisher:
            await self.progress_publisher.publish_started(
                correlation_id=request.correlation_id,
                user_request=last_user_text(request.messages)
            )

        try:
            result = await self.orchestrator.run(request)
        except (AgentNotFoundError, NoAgentAvailableError) as e:
            result = await self._failure(request, start, str(e), "no_agent")
        except ChainAbortedError as e:
            result = await self._failure(request, start, str(e), "agent_failed", agent_name=e.agent_name)
        except Exception as e:
            logger.error(f"[REQUEST] Unexpected error during orchestration: {e}", exc_info=True)
            if self.progress_publisher:
                await self.progress_publisher.publish_error(
                    correlation_id=request.correlation_id,
                    error=str(e),
                    details={"type": type(e).__name__}
                )
            raise

        logger.info(f"[REQUEST] Orchestration {result.status}: {request.correlation_id}")

        if self.progress_publisher:
            await self.progress_publisher.publish_completed(
                correlation_id=request.correlation_id,
                status=result.status,
                summary=result.error or f"answered by {', '.join(result.agents_involved)}",
                duration_ms=result.total_duration_ms
            )

        return result

    async def handle_json(self, body: str) -> str:
        """
        Handle a JSON-encoded request.

        Args:
            body: OrchestrationRequest JSON

        Returns:
            OrchestrationResult JSON
        """
        request = OrchestrationRequest.from_json(body)
        result = await self.handle_request(request)
        return result.to_json()

    async def _failure(
        self,
        request: OrchestrationRequest,
        start: float,
        error: str,
        error_kind: str,
        agent_name: Optional[str] = None
    ) -> OrchestrationResult:
        logger.warning(f"[REQUEST] {request.correlation_id} failed ({error_kind}): {error}")

        if self.progress_publisher:
            await self.progress_publisher.publish_error(
                correlation_id=request.correlation_id,
                error=error,
                details={"error_kind": error_kind, "agent": agent_name}
            )

        return OrchestrationResult(
            message_type="orchestration_result",
            correlation_id=request.correlation_id,
            status="failed",
            agents_involved=[agent_name] if agent_name else [],
            error=error,
            error_kind=error_kind,
            total_duration_ms=(time.monotonic() - start) * 1000
        )
