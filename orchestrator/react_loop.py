"""
ReAct Loop - Reasoning and Acting loop for one agent

Implements the ReAct pattern as an explicit state machine:
1. THINKING  - LLM decides what to do next (call a tool or answer)
2. ACTING    - Invoke the chosen tool
3. OBSERVING - Flatten the tool result into an observation
4. Repeat until DONE or FAILED

A single checkpoint at the top of the loop bounds the number of THINKING
rounds; reaching it ends the loop in DONE with a best-effort answer.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from agents.shared.errors import LLMError, ResponseParseError, ToolError
from agents.shared.llm_client import LanguageModel, complete_within
from agents.shared.schemas import (
    ChatMessage,
    ReActStep,
    ReActTransition,
    ToolResult,
    system_message,
    user_message,
)
from agents.shared.tools import ToolRegistry

from .parsing import ReActDecision, parse_react_decision
from .progress_publisher import ProgressPublisher
from .prompts import render_prompt

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 8
DEFAULT_MAX_TOOL_ERRORS = 3
DEFAULT_MAX_PARSE_RETRIES = 2

EMPTY_TOOL_RESULT = "(tool returned no content)"
EXHAUSTED_NOTICE = "I could not reach a final answer within the allowed number of reasoning steps."


class ReActState(str, Enum):
    THINKING = "thinking"
    ACTING = "acting"
    OBSERVING = "observing"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({ReActState.DONE, ReActState.FAILED})


def extract_displayable_text(result: ToolResult) -> str:
    """
    Flatten a tool result into observation text.

    Text parts are joined in order; every other part is replaced by a
    placeholder so no part is silently dropped.

    Args:
        result: Tool result

    Returns:
        Observation text (never empty)
    """
    pieces = []
    for part in result.content:
        if part.type == "text":
            pieces.append(part.text)
        elif part.type == "image":
            pieces.append(f"[image: {part.mime_type}]")
        elif part.type == "audio":
            pieces.append(f"[audio: {part.mime_type}]")
        elif part.type == "resource":
            pieces.append(f"[resource: {part.uri}]")
        else:
            pieces.append(f"[blob: {part.mime_type}]")

    text = "\n".join(pieces)
    if not text.strip():
        if result.structured_content:
            return json.dumps(result.structured_content, ensure_ascii=False, default=str)
        return EMPTY_TOOL_RESULT
    return text


@dataclass
class ReActRun:
    """Mutable state of one executor run"""
    messages: List[ChatMessage]
    steps: List[ReActStep] = field(default_factory=list)
    transitions: List[ReActTransition] = field(default_factory=list)
    iteration: int = 0
    tool_errors: int = 0
    parse_failures: int = 0
    pending: Optional[ReActDecision] = None
    observation: Optional[str] = None
    observation_is_error: bool = False
    answer: Optional[str] = None
    error: Optional[str] = None
    exhausted: bool = False

    def last_observation(self) -> Optional[str]:
        for step in reversed(self.steps):
            if step.observation:
                return step.observation
        return None


@dataclass
class ReActOutcome:
    """Result of an executor run"""
    state: ReActState
    answer: Optional[str]
    steps: List[ReActStep]
    transitions: List[ReActTransition] = field(default_factory=list)
    error: Optional[str] = None
    exhausted: bool = False
    iterations: int = 0

    @property
    def succeeded(self) -> bool:
        return self.state == ReActState.DONE and bool(self.answer)


class ReActExecutor:
    """
    Bounded ReAct executor for one agent.

    Tool failures are fed back to the model as structured observations;
    malformed model output is retried. Both have separate budgets.
    """

    def __init__(
        self,
        llm: LanguageModel,
        tools: ToolRegistry,
        system_prompt: str = "",
        max_steps: int = DEFAULT_MAX_STEPS,
        max_tool_errors: int = DEFAULT_MAX_TOOL_ERRORS,
        max_parse_retries: int = DEFAULT_MAX_PARSE_RETRIES,
        temperature: Optional[float] = None,
        llm_timeout: Optional[float] = None,
        tool_timeout: Optional[float] = None,
        verbose: bool = False,
        progress_publisher: Optional[ProgressPublisher] = None,
        correlation_id: str = "",
        agent_name: str = ""
    ):
        """
        Initialize ReAct executor.

        Args:
            llm: LLM capability for reasoning
            tools: Tools available to the loop
            system_prompt: Agent system prompt
            max_steps: Maximum THINKING rounds
            max_tool_errors: Tool failures tolerated before FAILED
            max_parse_retries: Consecutive malformed decisions tolerated before FAILED
            temperature: Sampling temperature
            llm_timeout: Deadline for each LLM call
            tool_timeout: Deadline for each tool call
            verbose: Record and publish every state transition
            progress_publisher: Optional publisher for transition events
            correlation_id: Correlation ID used for published events
            agent_name: Agent name used in logs and events
        """
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.llm = llm
        self.tools = tools
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.max_tool_errors = max_tool_errors
        self.max_parse_retries = max_parse_retries
        self.temperature = temperature
        self.llm_timeout = llm_timeout
        self.tool_timeout = tool_timeout
        self.verbose = verbose
        self.progress_publisher = progress_publisher
        self.correlation_id = correlation_id
        self.agent_name = agent_name

    async def run(
        self,
        messages: List[ChatMessage],
        initial_steps: Optional[List[ReActStep]] = None
    ) -> ReActOutcome:
        """
        Execute the loop until DONE or FAILED.

        Args:
            messages: Conversation
            initial_steps: Steps of an earlier run to resume from (not counted
                against max_steps)

        Returns:
            ReActOutcome with the full step trail
        """
        run = ReActRun(messages=list(messages), steps=list(initial_steps or []))
        state = ReActState.THINKING

        logger.info(f"[REACT] {self.agent_name}: starting (max {self.max_steps} steps)")

        while state not in TERMINAL_STATES:
            if state == ReActState.THINKING and run.iteration >= self.max_steps:
                next_state = self._exhaust(run)
            else:
                next_state = await self._transition(state, run)
            await self._record(state, next_state, run)
            state = next_state

        if state == ReActState.DONE:
            logger.info(f"[REACT] {self.agent_name}: done after {run.iteration} iterations")
        else:
            logger.warning(f"[REACT] {self.agent_name}: failed after {run.iteration} iterations: {run.error}")

        return ReActOutcome(
            state=state,
            answer=run.answer,
            steps=run.steps,
            transitions=run.transitions,
            error=run.error,
            exhausted=run.exhausted,
            iterations=run.iteration
        )

    async def _transition(self, state: ReActState, run: ReActRun) -> ReActState:
        """Perform the work of one state and return the next state"""
        if state == ReActState.THINKING:
            return await self._think(run)
        if state == ReActState.ACTING:
            return await self._act(run)
        if state == ReActState.OBSERVING:
            return self._observe(run)
        raise ValueError(f"No transition out of terminal state {state.value}")

    def _exhaust(self, run: ReActRun) -> ReActState:
        run.exhausted = True
        run.answer = run.last_observation() or EXHAUSTED_NOTICE
        logger.warning(f"[REACT] {self.agent_name}: step bound {self.max_steps} reached, using best-effort answer")
        return ReActState.DONE

    async def _think(self, run: ReActRun) -> ReActState:
        run.iteration += 1
        logger.debug(f"[REACT] === Iteration {run.iteration}/{self.max_steps} ===")

        try:
            raw = await complete_within(
                self.llm,
                self.build_prompt(run),
                temperature=self.temperature,
                timeout=self.llm_timeout
            )
            decision = parse_react_decision(raw)
        except (LLMError, ResponseParseError, asyncio.TimeoutError) as e:
            run.parse_failures += 1
            logger.warning(
                f"[REACT] Unusable decision ({run.parse_failures}/{self.max_parse_retries + 1}): {e}"
            )
            if run.parse_failures > self.max_parse_retries:
                run.error = f"no valid decision after {run.parse_failures} attempts: {e}"
                return ReActState.FAILED
            return ReActState.THINKING

        run.parse_failures = 0

        if decision.action == "final_answer":
            run.answer = decision.answer.strip()
            run.steps.append(ReActStep(
                thought=decision.thought,
                action="final_answer",
                answer=run.answer
            ))
            return ReActState.DONE

        run.pending = decision
        return ReActState.ACTING

    async def _act(self, run: ReActRun) -> ReActState:
        decision = run.pending
        tool_name = decision.action_input.tool_name.strip()
        parameters = decision.action_input.parameters

        logger.info(f"[REACT] Action: {tool_name}({json.dumps(parameters, ensure_ascii=False, default=str)})")

        try:
            result = await self.tools.invoke(tool_name, parameters, timeout=self.tool_timeout)
        except ToolError as e:
            logger.warning(f"[REACT] {e}")
            run.observation = json.dumps(e.to_observation(), ensure_ascii=False)
            run.observation_is_error = True
        else:
            if result.is_error:
                run.observation = json.dumps({
                    "error": {
                        "type": "tool_reported_error",
                        "tool": tool_name,
                        "message": extract_displayable_text(result),
                    }
                }, ensure_ascii=False)
                run.observation_is_error = True
            else:
                run.observation = extract_displayable_text(result)
                run.observation_is_error = False

        if run.observation_is_error:
            run.tool_errors += 1
            if run.tool_errors > self.max_tool_errors:
                self._append_observed_step(run)
                run.error = f"tool error budget exhausted ({run.tool_errors} errors)"
                return ReActState.FAILED

        return ReActState.OBSERVING

    def _observe(self, run: ReActRun) -> ReActState:
        self._append_observed_step(run)
        return ReActState.THINKING

    def _append_observed_step(self, run: ReActRun) -> None:
        decision = run.pending
        run.steps.append(ReActStep(
            thought=decision.thought,
            action="tool_call",
            tool_name=decision.action_input.tool_name.strip(),
            parameters=decision.action_input.parameters,
            observation=run.observation,
            is_error=run.observation_is_error
        ))
        run.pending = None
        run.observation = None
        run.observation_is_error = False

    async def _record(self, from_state: ReActState, to_state: ReActState, run: ReActRun) -> None:
        detail = self._describe(to_state, run)
        logger.debug(f"[REACT] {from_state.value} -> {to_state.value}: {detail}")
        if not self.verbose:
            return

        run.transitions.append(ReActTransition(
            from_state=from_state.value,
            to_state=to_state.value,
            iteration=run.iteration,
            detail=detail
        ))
        if self.progress_publisher is not None:
            await self.progress_publisher.publish_transition(
                correlation_id=self.correlation_id,
                agent_name=self.agent_name,
                from_state=from_state.value,
                to_state=to_state.value,
                iteration=run.iteration,
                detail=detail
            )

    @staticmethod
    def _describe(to_state: ReActState, run: ReActRun) -> str:
        if to_state == ReActState.ACTING and run.pending is not None:
            return f"call {run.pending.action_input.tool_name}"
        if to_state == ReActState.OBSERVING:
            return "tool error" if run.observation_is_error else "tool result"
        if to_state == ReActState.DONE:
            return "best effort" if run.exhausted else "final answer"
        if to_state == ReActState.FAILED:
            return run.error or ""
        return ""

    def build_prompt(self, run: ReActRun) -> List[ChatMessage]:
        """
        Build the THINKING transcript.

        Args:
            run: Current run state

        Returns:
            Messages for the LLM
        """
        return [
            system_message(render_prompt("react_system", system_prompt=self.system_prompt)),
            user_message(render_prompt(
                "react_request",
                conversation=format_conversation(run.messages),
                tools=self.tools.describe(),
                steps=format_steps(run.steps)
            ))
        ]


def format_conversation(messages: List[ChatMessage]) -> str:
    """Render messages as role-prefixed lines"""
    if not messages:
        return "(empty)"
    return "\n".join(f"{message.role}: {message.content}" for message in messages)


def format_steps(steps: List[ReActStep]) -> str:
    """
    Render the step trail for the model.

    Returns:
        Formatted string describing executed steps
    """
    if not steps:
        return "No steps executed yet."

    history = []
    for number, step in enumerate(steps, start=1):
        entry: Dict[str, Any] = {"step": number, "thought": step.thought, "action": step.action}
        if step.action == "tool_call":
            entry["tool_name"] = step.tool_name
            entry["parameters"] = step.parameters
            entry["observation"] = step.observation
        else:
            entry["answer"] = step.answer
        history.append(json.dumps(entry, ensure_ascii=False, default=str))
    return "\n".join(history)
