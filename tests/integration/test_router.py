"""
Tests for the LLM Router

The router either maps the classifier answer onto a candidate or raises
AmbiguousSelectionError; it never falls back on its own.
"""

import asyncio
import json
import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from agents.shared.errors import AmbiguousSelectionError, LLMTimeoutError, LLMUnavailableError
from agents.shared.schemas import user_message
from orchestrator.router import LLMRouter


@pytest.fixture
def candidates(make_agent):
    return [
        make_agent("leader-agent", keywords=["leader", "default"]),
        make_agent("web-helper-agent", aliases=["web-helper"], keywords=["web", "url"]),
        make_agent("math-agent", keywords=["math"]),
    ]


@pytest.fixture
def messages():
    return [user_message("Summarize https://example.com for me")]


@pytest.mark.asyncio
class TestSingleSelection:
    """Test select_agent_by_llm"""

    async def test_json_answer(self, scripted_llm, candidates, messages):
        llm = scripted_llm(['{"target": "web-helper-agent", "reason": "URL given", "confidence": 0.92}'])
        router = LLMRouter(llm)

        result = await router.select_agent_by_llm(messages, candidates)

        assert result.name == "web-helper-agent"
        assert result.reason == "URL given"
        assert result.confidence == pytest.approx(0.92)

    async def test_bare_identifier_answer(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(["math-agent"]))

        result = await router.select_agent_by_llm(messages, candidates)

        assert result.name == "math-agent"
        assert result.confidence == 1.0

    async def test_alias_and_case_are_normalized(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(['"Web-Helper".']))

        result = await router.select_agent_by_llm(messages, candidates)

        assert result.name == "web-helper-agent"

    async def test_unknown_target_is_ambiguous(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(['{"target": "weather-agent", "confidence": 0.9}']))

        with pytest.raises(AmbiguousSelectionError, match="target_not_found"):
            await router.select_agent_by_llm(messages, candidates)

    async def test_empty_target_is_ambiguous(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(['{"target": "", "reason": "nothing fits"}']))

        with pytest.raises(AmbiguousSelectionError, match="empty_target"):
            await router.select_agent_by_llm(messages, candidates)

    async def test_low_confidence_is_ambiguous(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(['{"target": "math-agent", "confidence": 0.2}']), threshold=0.5)

        with pytest.raises(AmbiguousSelectionError, match="low_confidence"):
            await router.select_agent_by_llm(messages, candidates)

    async def test_missing_confidence_is_low_confidence(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(['{"target": "math-agent", "reason": "x"}']), threshold=0.5)

        with pytest.raises(AmbiguousSelectionError, match="low_confidence"):
            await router.select_agent_by_llm(messages, candidates)

    async def test_prose_answer_is_ambiguous(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(["I would pick the web helper.\nIt reads pages."]))

        with pytest.raises(AmbiguousSelectionError):
            await router.select_agent_by_llm(messages, candidates)

    async def test_llm_failure_propagates(self, scripted_llm, candidates, messages):
        """Test that the router does not swallow classifier failures"""
        router = LLMRouter(scripted_llm([LLMTimeoutError("slow")]))

        with pytest.raises(LLMTimeoutError):
            await router.select_agent_by_llm(messages, candidates)

    async def test_no_candidates_skips_llm(self, scripted_llm, messages):
        llm = scripted_llm(["math-agent"])
        router = LLMRouter(llm)

        with pytest.raises(AmbiguousSelectionError):
            await router.select_agent_by_llm(messages, [])

        assert llm.call_count == 0

    async def test_prompt_lists_candidates_and_passes_timeout(self, scripted_llm, candidates, messages):
        llm = scripted_llm(["math-agent"])
        router = LLMRouter(llm, timeout=7.5)

        await router.select_agent_by_llm(messages, candidates)

        prompt_text = "\n".join(m.content for m in llm.calls[0])
        for agent in candidates:
            assert agent.name in prompt_text
        assert "example.com" in prompt_text
        assert llm.timeouts == [7.5]


@pytest.mark.asyncio
class TestMultiSelection:
    """Test select_multiple_agents_by_llm"""

    async def test_ordered_results_with_tasks(self, scripted_llm, candidates, messages):
        answer = json.dumps([
            {"target": "math-agent", "task": "add numbers", "confidence": 0.8},
            {"target": "web-helper-agent", "task": "read the page", "confidence": 0.7},
        ])
        router = LLMRouter(scripted_llm([answer]))

        results = await router.select_multiple_agents_by_llm(messages, candidates)

        assert [r.name for r in results] == ["math-agent", "web-helper-agent"]
        assert results[0].task == "add numbers"

    async def test_drops_duplicates_unknown_and_low_confidence(self, scripted_llm, candidates, messages):
        answer = json.dumps([
            {"target": "math-agent", "confidence": 0.9},
            {"target": "MATH-AGENT", "confidence": 0.9},
            {"target": "weather-agent", "confidence": 0.9},
            {"target": "leader-agent", "confidence": 0.1},
            {"target": "web-helper", "confidence": 0.5},
        ])
        router = LLMRouter(scripted_llm([answer]), multi_threshold=0.3)

        results = await router.select_multiple_agents_by_llm(messages, candidates)

        names = [r.name for r in results]
        assert names == ["math-agent", "web-helper-agent"]
        assert len(set(names)) == len(names)
        assert set(names) <= {a.name for a in candidates}

    async def test_truncates_to_max_agents(self, scripted_llm, candidates, messages):
        """Test that equally confident entries keep the model's order when cut to K"""
        router = LLMRouter(scripted_llm(['["leader-agent", "web-helper-agent", "math-agent"]']))

        results = await router.select_multiple_agents_by_llm(messages, candidates, max_agents=2)

        assert [r.name for r in results] == ["leader-agent", "web-helper-agent"]

    async def test_ranks_by_confidence_before_truncating(self, scripted_llm, candidates, messages):
        answer = json.dumps([
            {"target": "leader-agent", "confidence": 0.35},
            {"target": "web-helper-agent", "confidence": 0.5},
            {"target": "math-agent", "confidence": 0.95},
        ])
        router = LLMRouter(scripted_llm([answer]))

        results = await router.select_multiple_agents_by_llm(messages, candidates, max_agents=2)

        assert [(r.name, r.confidence) for r in results] == [("math-agent", 0.95), ("web-helper-agent", 0.5)]

    async def test_entries_without_confidence_are_dropped(self, scripted_llm, candidates, messages):
        answer = json.dumps([
            {"target": "math-agent", "reason": "numbers"},
            {"target": "web-helper-agent", "confidence": 0.6},
        ])
        router = LLMRouter(scripted_llm([answer]))

        results = await router.select_multiple_agents_by_llm(messages, candidates)

        assert [r.name for r in results] == ["web-helper-agent"]

    async def test_plain_identifier_list(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(["math-agent, web-helper-agent"]))

        results = await router.select_multiple_agents_by_llm(messages, candidates)

        assert [r.name for r in results] == ["math-agent", "web-helper-agent"]

    async def test_nothing_valid_is_ambiguous(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm(['["weather-agent", "news-agent"]']))

        with pytest.raises(AmbiguousSelectionError, match="no_valid_targets"):
            await router.select_multiple_agents_by_llm(messages, candidates)

    async def test_llm_failure_propagates(self, scripted_llm, candidates, messages):
        router = LLMRouter(scripted_llm([LLMUnavailableError("down")]))

        with pytest.raises(LLMUnavailableError):
            await router.select_multiple_agents_by_llm(messages, candidates)


class HangingLLM:
    """Classifier that never answers and ignores the timeout it is given"""

    async def complete(self, messages, *, temperature=None, timeout=None):
        await asyncio.sleep(3600)

    async def stream(self, messages, *, temperature=None, timeout=None):
        await asyncio.sleep(3600)
        yield ""


@pytest.mark.asyncio
class TestClassifierDeadline:
    """Test that the router enforces its own timeout"""

    async def test_single_selection_times_out(self, candidates, messages):
        router = LLMRouter(HangingLLM(), timeout=0.05)

        with pytest.raises(LLMTimeoutError):
            await asyncio.wait_for(router.select_agent_by_llm(messages, candidates), timeout=2)

    async def test_multi_selection_times_out(self, candidates, messages):
        router = LLMRouter(HangingLLM(), timeout=0.05)

        with pytest.raises(LLMTimeoutError):
            await asyncio.wait_for(router.select_multiple_agents_by_llm(messages, candidates), timeout=2)


class TestCatalog:
    """Test the candidate catalog shown to the classifier"""

    def test_catalog_renders_capabilities(self, scripted_llm, make_agent, echo_tool):
        agent = make_agent("echo-agent", tools=[echo_tool], keywords=["Echo"], aliases=["echo"])

        catalog = json.loads(LLMRouter(scripted_llm()).build_catalog([agent]))

        assert catalog == [{
            "name": "echo-agent",
            "description": "echo-agent test agent",
            "keywords": ["echo"],
            "aliases": ["echo"],
            "tools": ["echo"],
        }]
