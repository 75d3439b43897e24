"""
Concurrency & Cancellation Tests

Fan-out agents run concurrently, requests in flight do not share chain
state, and cancellation propagates instead of being reported as a chain
failure.
"""

import asyncio
import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from agents.shared.errors import ChainAbortedError
from agents.shared.schemas import OrchestrationRequest, user_message
from orchestrator.chain import AgentChain, ChainContext, ChainOptions
from orchestrator.orchestration import Orchestrator
from orchestrator.progress_publisher import ProgressPublisher
from orchestrator.router import LLMRouter


class RendezvousLLM:
    """
    Answers only once every expected caller is inside ``complete``.

    Run one after the other, the first caller never sees the others arrive
    and gives up after ``patience`` seconds.
    """

    def __init__(self, arrivals: list, ready: asyncio.Event, expected: int, answer: str, patience: float = 1.0):
        self.arrivals = arrivals
        self.ready = ready
        self.expected = expected
        self.answer = answer
        self.patience = patience

    async def complete(self, messages, *, temperature=None, timeout=None):
        self.arrivals.append(self.answer)
        if len(self.arrivals) >= self.expected:
            self.ready.set()
        await asyncio.wait_for(self.ready.wait(), timeout=self.patience)
        return self.answer

    async def stream(self, messages, *, temperature=None, timeout=None):
        yield await self.complete(messages, temperature=temperature, timeout=timeout)


class BlockingLLM:
    """Signals when it is called, then blocks until cancelled"""

    def __init__(self):
        self.entered = asyncio.Event()

    async def complete(self, messages, *, temperature=None, timeout=None):
        self.entered.set()
        await asyncio.sleep(3600)

    async def stream(self, messages, *, temperature=None, timeout=None):
        self.entered.set()
        await asyncio.sleep(3600)
        yield ""


def make_request(text, **kwargs):
    return OrchestrationRequest(message_type="orchestration_request", request=text, **kwargs)


@pytest.mark.asyncio
class TestFanOutConcurrency:
    """Test that fanned-out agents run at the same time"""

    async def test_agents_run_concurrently(self, make_agent, make_registry, scripted_llm):
        arrivals = []
        ready = asyncio.Event()
        a = make_agent("a-agent", llm=RendezvousLLM(arrivals, ready, 2, "answer A"))
        b = make_agent("b-agent", llm=RendezvousLLM(arrivals, ready, 2, "answer B"))
        orchestrator = Orchestrator(
            make_registry(a, b),
            LLMRouter(scripted_llm(['["a-agent", "b-agent"]']))
        )

        outcomes = await asyncio.wait_for(
            orchestrator.run_with_multiple_agents(make_request("both please", multi_agent=True)),
            timeout=5
        )

        assert [o.final_answer for o in outcomes] == ["answer A", "answer B"]
        assert all(o.ok for o in outcomes)
        assert sorted(arrivals) == ["answer A", "answer B"]


@pytest.mark.asyncio
class TestCancellation:
    """Test cancellation of in-flight requests"""

    async def test_cancelling_one_request_leaves_another_untouched(self, make_agent, make_registry, scripted_llm):
        blocking = BlockingLLM()
        slow = make_agent("slow-agent", llm=blocking)
        fast = make_agent("fast-agent", responses=["fast answer"])
        publisher = ProgressPublisher()
        orchestrator = Orchestrator(
            make_registry(slow, fast),
            LLMRouter(scripted_llm()),
            progress_publisher=publisher
        )
        slow_request = make_request("wait", agent_name="slow-agent")
        fast_request = make_request("go", agent_name="fast-agent")

        slow_task = asyncio.create_task(orchestrator.run_with_leader(slow_request))
        await asyncio.wait_for(blocking.entered.wait(), timeout=2)
        fast_task = asyncio.create_task(orchestrator.run_with_leader(fast_request))
        slow_task.cancel()

        assert await asyncio.wait_for(fast_task, timeout=2) == "fast answer"
        with pytest.raises(asyncio.CancelledError):
            await slow_task

        assert [e.event_type for e in publisher.events_for(fast_request.correlation_id)] == [
            "routed", "agent_completed"
        ]
        assert [e.event_type for e in publisher.events_for(slow_request.correlation_id)] == ["routed"]

    async def test_cancellation_escapes_chain_stream(self, make_agent):
        blocking = BlockingLLM()
        context = ChainContext(
            messages=[user_message("hi")],
            agent=make_agent("plain-agent", llm=blocking),
            options=ChainOptions(stream=True)
        )

        async def consume():
            return [chunk async for chunk in AgentChain().stream(context)]

        task = asyncio.create_task(consume())
        await asyncio.wait_for(blocking.entered.wait(), timeout=2)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert context.error is None
        assert context.final_answer is None

    async def test_cancelled_error_is_not_wrapped(self, make_agent):
        agent = make_agent("plain-agent", responses=[asyncio.CancelledError()])
        context = ChainContext(messages=[user_message("hi")], agent=agent, options=ChainOptions())

        try:
            await AgentChain().run(context)
        except ChainAbortedError:
            pytest.fail("cancellation was reported as a chain failure")
        except asyncio.CancelledError:
            pass
        else:
            pytest.fail("cancellation was swallowed")

        assert context.error is None
