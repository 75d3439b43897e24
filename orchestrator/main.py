"""
Orchestrator Runtime

Builds the orchestrator and its collaborators in a fixed order:
1. Settings
2. Logging
3. LLM client
4. Agents (leader, web helper)
5. Agent registry
6. Bootstrap (agent starters spawn their sub-resources)
7. Router
8. Orchestrator
9. Request handler

Nothing is global: callers hold the Runtime and shut it down when done.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from agents.leader import build_leader_agent
from agents.shared.base_agent import Agent
from agents.shared.config import Settings
from agents.shared.file_logger import setup_service_logging
from agents.shared.llm_client import LanguageModel, LLMClient
from agents.web_helper import build_web_helper_agent

from .chain import ChainOptions
from .orchestration import Orchestrator
from .progress_publisher import ProgressPublisher, ProgressSink
from .registry import AgentRegistry
from .request_handler import OrchestrationRequestHandler
from .router import LLMRouter

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    """Everything a caller needs to serve requests"""
    settings: Settings
    llm: LanguageModel
    registry: AgentRegistry
    router: LLMRouter
    progress_publisher: ProgressPublisher
    orchestrator: Orchestrator
    request_handler: OrchestrationRequestHandler

    async def shutdown(self) -> None:
        """Close agent sub-resources and the LLM client"""
        logger.info("Shutting down...")
        await self.registry.shutdown()
        close = getattr(self.llm, "close", None)
        if close is not None:
            await close()
        logger.info("Shutdown complete")


def build_agents(llm: LanguageModel, settings: Settings) -> Iterable[Agent]:
    """Specialist agents registered next to the leader, in registration order"""
    return [
        build_web_helper_agent(llm, tool_timeout=settings.tool_timeout),
    ]


async def build_runtime(
    settings: Optional[Settings] = None,
    llm: Optional[LanguageModel] = None,
    agents: Optional[Iterable[Agent]] = None,
    leader: Optional[Agent] = None,
    progress_sink: Optional[ProgressSink] = None,
    configure_logging: bool = True,
    console_logging: bool = True
) -> Runtime:
    """
    Build and bootstrap a runtime.

    Args:
        settings: Settings (read from the environment when omitted)
        llm: LLM capability (an LLMClient from settings when omitted)
        agents: Specialist agents (the bundled ones when omitted)
        leader: Leader agent (the bundled leader when omitted)
        progress_sink: Optional coroutine receiving every progress update
        configure_logging: Install file and console handlers on the service loggers
        console_logging: Also log to the console

    Returns:
        Bootstrapped Runtime

    Raises:
        DuplicateAgentError: Two agents share a name or alias
        Exception: Whatever a failing agent starter raises
    """
    settings = settings or Settings.from_env()

    if configure_logging:
        setup_service_logging(
            log_level=settings.log_level,
            output_dir=settings.log_dir,
            console_output=console_logging
        )

    logger.info("Initializing...")

    llm = llm or LLMClient.from_settings(settings)

    leader = leader or build_leader_agent(llm, tool_timeout=settings.tool_timeout)
    specialists = list(agents) if agents is not None else build_agents(llm, settings)

    registry = AgentRegistry()
    registry.register_leader(leader)
    for agent in specialists:
        registry.register(agent)

    await registry.bootstrap()

    router = LLMRouter(
        llm,
        registry=registry,
        threshold=settings.router_threshold,
        multi_threshold=settings.multi_agent_threshold,
        max_agents=settings.max_agents,
        timeout=settings.router_timeout
    )

    progress_publisher = ProgressPublisher(sink=progress_sink)

    orchestrator = Orchestrator(
        registry,
        router,
        progress_publisher=progress_publisher,
        defaults=ChainOptions(
            max_steps=settings.react_max_steps,
            max_tool_errors=settings.react_max_tool_errors,
            max_parse_retries=settings.react_max_parse_retries,
            llm_timeout=settings.llm_timeout,
            tool_timeout=settings.tool_timeout
        )
    )

    request_handler = OrchestrationRequestHandler(orchestrator, progress_publisher=progress_publisher)

    logger.info(f"Orchestrator is READY with agents: {', '.join(registry.list_names())}")

    return Runtime(
        settings=settings,
        llm=llm,
        registry=registry,
        router=router,
        progress_publisher=progress_publisher,
        orchestrator=orchestrator,
        request_handler=request_handler
    )
