"""
Error Handling & Reliability Tests

Tests the error taxonomy and graceful degradation: slow tools and slow
models are absorbed by the layer above them, and only resolution and chain
failures reach the caller.
"""

import asyncio
import json
import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from agents.shared.errors import (
    AgentNotFoundError,
    AmbiguousSelectionError,
    ChainAbortedError,
    ConductorError,
    DuplicateAgentError,
    InvalidToolParametersError,
    LLMTimeoutError,
    LLMUnavailableError,
    NoAgentAvailableError,
    ToolNotFoundError,
)
from agents.shared.schemas import OrchestrationRequest, ReActStep, user_message
from agents.shared.tools import Tool, ToolRegistry
from orchestrator.chain import AgentChain, ChainContext, ChainOptions
from orchestrator.orchestration import Orchestrator
from orchestrator.react_loop import ReActExecutor, ReActState
from orchestrator.router import LLMRouter


async def sleepy(seconds: float = 1.0):
    await asyncio.sleep(seconds)
    return "woke up"


class TestErrorTaxonomy:
    """Test error classes and their messages"""

    def test_every_error_is_a_conductor_error(self):
        for error in (
            DuplicateAgentError("a", "b"),
            AgentNotFoundError("a"),
            NoAgentAvailableError("none"),
            AmbiguousSelectionError("empty_target"),
            LLMTimeoutError("slow"),
            ToolNotFoundError("x"),
            ChainAbortedError("a", "direct_llm", "boom"),
        ):
            assert isinstance(error, ConductorError)

    def test_llm_errors_share_a_base(self):
        from agents.shared.errors import LLMError

        assert issubclass(LLMTimeoutError, LLMError)
        assert issubclass(LLMUnavailableError, LLMError)

    def test_messages_carry_identifiers(self):
        assert "weather-agent" in str(AgentNotFoundError("weather-agent"))
        assert "empty_target" in str(AmbiguousSelectionError("empty_target"))
        assert str(ChainAbortedError("a-agent", None, "no final answer produced")) == (
            "Agent 'a-agent' chain aborted: no final answer produced"
        )

    def test_tool_error_observation(self):
        error = InvalidToolParametersError("two_sum", "missing required parameter 'num2'")

        assert error.to_observation() == {
            "error": {
                "type": "invalid_parameters",
                "tool": "two_sum",
                "message": "missing required parameter 'num2'",
            }
        }


@pytest.mark.asyncio
class TestGracefulDegradation:
    """Test that failures are absorbed by the layer above"""

    async def test_tool_timeout_is_fed_back_to_the_model(self, scripted_llm):
        tools = ToolRegistry([
            Tool(
                name="sleepy",
                description="Sleeps",
                handler=sleepy,
                input_schema={"type": "object", "properties": {"seconds": {"type": "number"}}}
            )
        ])
        llm = scripted_llm([
            json.dumps({
                "thought": "try it",
                "action": "tool_call",
                "action_input": {"tool_name": "sleepy", "parameters": {"seconds": 5}},
            }),
            json.dumps({"thought": "give up", "action": "final_answer", "answer": "The tool was too slow."}),
        ])

        outcome = await ReActExecutor(llm, tools, tool_timeout=0.01).run([user_message("sleep")])

        assert outcome.state == ReActState.DONE
        observation = json.loads(outcome.steps[0].observation)
        assert observation["error"]["type"] == "execution_failed"
        assert "timed out" in observation["error"]["message"]

    async def test_slow_intent_classifier_degrades_to_direct(self, make_agent, echo_tool):
        agent = make_agent(
            "echo-agent", tools=[echo_tool],
            responses=[LLMTimeoutError("intent classifier timed out"), "Direct reply"]
        )
        context = ChainContext(messages=[user_message("hi")], agent=agent, options=ChainOptions())

        assert await AgentChain().run(context) == "Direct reply"

    async def test_unavailable_llm_during_answer_aborts_chain(self, make_agent):
        agent = make_agent("plain-agent", responses=[LLMUnavailableError("provider down")])
        context = ChainContext(messages=[user_message("hi")], agent=agent, options=ChainOptions())

        with pytest.raises(ChainAbortedError) as exc_info:
            await AgentChain().run(context)

        assert exc_info.value.step == "direct_llm"
        assert "provider down" in exc_info.value.reason

    async def test_router_outage_reaches_leader(self, make_registry, make_agent, scripted_llm):
        leader = make_agent("leader-agent", responses=["leader reply"])
        registry = make_registry(make_agent("math-agent"), leader=leader)
        orchestrator = Orchestrator(registry, LLMRouter(scripted_llm([LLMUnavailableError("down")])))

        answer = await orchestrator.run_with_leader(
            OrchestrationRequest(message_type="orchestration_request", request="hello")
        )

        assert answer == "leader reply"


class HangingLLM:
    """LLM capability that never answers and ignores the timeout it is given"""

    def __init__(self):
        self.calls = 0

    async def complete(self, messages, *, temperature=None, timeout=None):
        self.calls += 1
        await asyncio.sleep(3600)

    async def stream(self, messages, *, temperature=None, timeout=None):
        yield "Partial "
        await asyncio.sleep(3600)
        yield "never"


@pytest.mark.asyncio
class TestCallerEnforcedDeadlines:
    """Test that LLM deadlines hold even when the capability ignores them"""

    async def test_hanging_router_reaches_leader(self, make_registry, make_agent):
        leader = make_agent("leader-agent", responses=["leader reply"])
        registry = make_registry(make_agent("math-agent"), leader=leader)
        orchestrator = Orchestrator(registry, LLMRouter(HangingLLM(), timeout=0.05))

        answer = await asyncio.wait_for(
            orchestrator.run_with_leader(
                OrchestrationRequest(message_type="orchestration_request", request="hello")
            ),
            timeout=2
        )

        assert answer == "leader reply"

    async def test_hanging_react_step_fails_the_loop(self, echo_tool):
        llm = HangingLLM()
        executor = ReActExecutor(llm, ToolRegistry([echo_tool]), max_parse_retries=1, llm_timeout=0.05)

        outcome = await asyncio.wait_for(executor.run([user_message("echo hi")]), timeout=2)

        assert outcome.state == ReActState.FAILED
        assert llm.calls == 2
        assert "exceeded 0.05s" in outcome.error

    async def test_hanging_react_step_aborts_chain(self, make_agent, echo_tool):
        agent = make_agent("echo-agent", tools=[echo_tool], llm=HangingLLM())
        earlier = [ReActStep(
            thought="echo first", action="tool_call", tool_name="echo",
            parameters={"text": "hi"}, observation="echo: hi"
        )]
        context = ChainContext(
            messages=[user_message("echo hi")],
            agent=agent,
            options=ChainOptions(llm_timeout=0.05, max_parse_retries=0, initial_steps=earlier)
        )

        with pytest.raises(ChainAbortedError) as exc_info:
            await asyncio.wait_for(AgentChain().run(context), timeout=2)

        assert exc_info.value.step == "react_execution"
        assert context.intent.mode == "react"

    async def test_hanging_intent_and_direct_calls_abort_chain(self, make_agent, echo_tool):
        agent = make_agent("echo-agent", tools=[echo_tool], llm=HangingLLM())
        context = ChainContext(
            messages=[user_message("echo hi")],
            agent=agent,
            options=ChainOptions(llm_timeout=0.05)
        )

        with pytest.raises(ChainAbortedError) as exc_info:
            await asyncio.wait_for(AgentChain().run(context), timeout=2)

        assert context.intent.mode == "direct"
        assert exc_info.value.step == "direct_llm"

    async def test_stalled_stream_aborts_chain(self, make_agent):
        agent = make_agent("plain-agent", llm=HangingLLM())
        context = ChainContext(
            messages=[user_message("hi")],
            agent=agent,
            options=ChainOptions(llm_timeout=0.05, stream=True)
        )
        chunks = []

        with pytest.raises(ChainAbortedError) as exc_info:
            async for chunk in AgentChain().stream(context):
                chunks.append(chunk)

        assert chunks == ["Partial "]
        assert exc_info.value.step == "direct_llm"
