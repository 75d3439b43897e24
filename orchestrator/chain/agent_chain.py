"""
Agent Chain - Run the step pipeline for one agent

Steps run sequentially in a fixed order. Any exception escaping a step
aborts the chain with ChainAbortedError naming the step; a chain that ends
without a final answer is aborted too. Either way ``context.error`` is set,
so every context leaving the chain carries an answer or an error.
"""

import logging
from typing import AsyncIterator, List, Optional

from agents.shared.errors import ChainAbortedError

from .context import ChainContext
from .steps import ChainStep, default_steps

logger = logging.getLogger(__name__)


class AgentChain:
    """Fixed pipeline of chain steps"""

    def __init__(self, steps: Optional[List[ChainStep]] = None):
        self.steps = steps if steps is not None else default_steps()

    async def stream(self, context: ChainContext) -> AsyncIterator[str]:
        """
        Run every applicable step, yielding text chunks as they are produced.

        Args:
            context: Chain context for this agent

        Yields:
            Text chunks (only when context.options.stream is set)

        Raises:
            ChainAbortedError: A step failed or no final answer was produced
        """
        agent_name = context.agent_name

        for step in self.steps:
            if not step.should_run(context):
                logger.debug(f"[CHAIN] {agent_name}: skipping {step.name}")
                continue

            logger.debug(f"[CHAIN] {agent_name}: running {step.name}")
            try:
                chunks = await step.execute(context)
                if chunks is not None:
                    async for chunk in chunks:
                        yield chunk
            except Exception as e:
                context.error = f"{step.name}: {e}"
                logger.error(f"[CHAIN] {agent_name}: step {step.name} failed: {e}")
                raise ChainAbortedError(agent_name, step.name, str(e)) from e

        if not (context.final_answer or "").strip():
            context.error = "no final answer produced"
            raise ChainAbortedError(agent_name, None, context.error)

    async def run(self, context: ChainContext) -> str:
        """
        Run the chain to completion.

        Returns:
            Non-empty final answer

        Raises:
            ChainAbortedError: A step failed or no final answer was produced
        """
        async for _ in self.stream(context):
            pass
        return context.final_answer
