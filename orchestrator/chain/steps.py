"""
Chain steps

Each step declares when it runs (``should_run``) and what it does
(``execute``). ``execute`` either completes its update and returns None, or
returns an async iterator of text chunks that the chain forwards to the
caller; the step finishes its update once the iterator is exhausted.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional

from agents.shared.errors import LLMError, ReActFailedError, ResponseParseError
from agents.shared.llm_client import complete_within, stream_within
from agents.shared.schemas import ChatMessage, IntentResult, last_user_text, system_message, user_message

from ..parsing import parse_intent
from ..prompts import render_prompt
from ..react_loop import ReActExecutor, ReActState, format_conversation
from .context import ChainContext

logger = logging.getLogger(__name__)

EVIDENCE_HEADER = "**Tools used**"
EVIDENCE_PREVIEW_CHARS = 200


class ChainStep(ABC):
    """A single stage of the agent chain"""

    name: str = "step"

    def should_run(self, context: ChainContext) -> bool:
        return True

    @abstractmethod
    async def execute(self, context: ChainContext) -> Optional[AsyncIterator[str]]:
        """
        Run the step against the context.

        Returns:
            None when the update is complete, or an async iterator of chunks
        """


class IntentAnalysisStep(ChainStep):
    """
    Decide between a direct answer and the ReAct loop.

    Agents without tools answer directly without consulting the model. When
    the classifier fails or answers outside the grammar, the chain answers
    directly.
    """

    name = "intent_analysis"

    async def execute(self, context: ChainContext) -> None:
        agent = context.agent

        if not agent.has_tools:
            context.set_intent(IntentResult(mode="direct", reason="agent has no tools"))
            return None

        if context.options.initial_steps:
            context.set_intent(IntentResult(mode="react", reason="resuming earlier reasoning steps"))
            return None

        prompt = [
            system_message(render_prompt("intent_analysis", system_prompt=agent.system_prompt)),
            user_message(render_prompt(
                "intent_analysis_request",
                conversation=format_conversation(context.messages),
                tools=agent.tools.describe()
            ))
        ]

        try:
            raw = await complete_within(agent.llm, prompt, temperature=0.0, timeout=context.options.llm_timeout)
            decision = parse_intent(raw)
        except (LLMError, ResponseParseError, asyncio.TimeoutError) as e:
            logger.warning(f"Intent analysis failed for '{agent.name}', answering directly: {e}")
            context.set_intent(IntentResult(mode="direct", reason=f"intent analysis failed: {e}"))
            return None

        mode = "react" if decision.use_tools else "direct"
        context.set_intent(IntentResult(mode=mode, reason=decision.reason or mode))
        logger.info(f"Intent for '{agent.name}': {mode} ({context.intent.reason})")
        return None


class DirectLLMStep(ChainStep):
    """Answer with a single LLM call (streamed when the options ask for it)"""

    name = "direct_llm"

    def should_run(self, context: ChainContext) -> bool:
        return context.intent is not None and context.intent.mode == "direct"

    async def execute(self, context: ChainContext) -> Optional[AsyncIterator[str]]:
        prompt = self.build_prompt(context)
        if context.options.stream:
            return self._stream(context, prompt)

        context.final_answer = await complete_within(
            context.agent.llm,
            prompt,
            temperature=context.options.temperature,
            timeout=context.options.llm_timeout
        )
        return None

    async def _stream(self, context: ChainContext, prompt: List[ChatMessage]) -> AsyncIterator[str]:
        parts = []
        async for chunk in stream_within(
            context.agent.llm,
            prompt,
            temperature=context.options.temperature,
            timeout=context.options.llm_timeout
        ):
            if not chunk:
                continue
            parts.append(chunk)
            context.answer_streamed = True
            yield chunk
        context.final_answer = "".join(parts)

    @staticmethod
    def build_prompt(context: ChainContext) -> List[ChatMessage]:
        system = system_message(render_prompt("direct_answer", system_prompt=context.agent.system_prompt))
        return [system, *context.messages]


class ReActExecutionStep(ChainStep):
    """Run the bounded ReAct executor with the agent's tools"""

    name = "react_execution"

    def should_run(self, context: ChainContext) -> bool:
        return context.intent is not None and context.intent.mode == "react"

    async def execute(self, context: ChainContext) -> None:
        options = context.options
        executor = ReActExecutor(
            llm=context.agent.llm,
            tools=context.agent.tools,
            system_prompt=context.agent.system_prompt,
            max_steps=options.max_steps,
            max_tool_errors=options.max_tool_errors,
            max_parse_retries=options.max_parse_retries,
            temperature=options.temperature,
            llm_timeout=options.llm_timeout,
            tool_timeout=options.tool_timeout,
            verbose=options.react_verbose,
            progress_publisher=context.progress_publisher,
            correlation_id=context.correlation_id,
            agent_name=context.agent_name
        )

        outcome = await executor.run(context.messages, initial_steps=options.initial_steps)
        context.react_results.extend(outcome.steps)

        if outcome.state == ReActState.FAILED:
            raise ReActFailedError(outcome.error or "ReAct loop failed")

        context.final_answer = outcome.answer
        context.react_exhausted = outcome.exhausted
        return None


class ResponseEnhancementStep(ChainStep):
    """
    Finalize the answer.

    Trims it, optionally has the model polish it, and appends the evidence of
    successful tool calls. In streaming mode it emits whatever part of the
    final answer the caller has not seen yet.
    """

    name = "response_enhancement"

    async def execute(self, context: ChainContext) -> Optional[AsyncIterator[str]]:
        answer = (context.final_answer or "").strip()
        if not answer:
            context.final_answer = answer
            return None

        if context.options.enhance_with_llm and not context.answer_streamed:
            answer = await self._polish(context, answer)

        evidence = self.build_evidence(context) if context.options.include_tool_evidence else ""
        context.final_answer = f"{answer}{evidence}"

        if not context.options.stream:
            return None
        pending = evidence if context.answer_streamed else context.final_answer
        return self._emit(pending) if pending else None

    async def _polish(self, context: ChainContext, answer: str) -> str:
        agent = context.agent
        prompt = [
            system_message(render_prompt(
                "response_enhancement",
                system_prompt=agent.system_prompt,
                user_request=last_user_text(context.messages),
                answer=answer
            ))
        ]
        try:
            polished = await complete_within(
                agent.llm,
                prompt,
                temperature=context.options.temperature,
                timeout=context.options.llm_timeout
            )
        except (LLMError, asyncio.TimeoutError) as e:
            logger.warning(f"Response enhancement failed for '{agent.name}', keeping draft: {e}")
            return answer
        return (polished or "").strip() or answer

    @staticmethod
    def build_evidence(context: ChainContext) -> str:
        steps = context.successful_tool_steps()
        if not steps:
            return ""
        lines = ["", "", "---", EVIDENCE_HEADER]
        for step in steps:
            observation = " ".join((step.observation or "").split())
            if len(observation) > EVIDENCE_PREVIEW_CHARS:
                observation = f"{observation[:EVIDENCE_PREVIEW_CHARS]}..."
            lines.append(f"- `{step.tool_name}`: {observation}")
        return "\n".join(lines)

    @staticmethod
    async def _emit(text: str) -> AsyncIterator[str]:
        yield text


def default_steps() -> List[ChainStep]:
    return [IntentAnalysisStep(), DirectLLMStep(), ReActExecutionStep(), ResponseEnhancementStep()]
