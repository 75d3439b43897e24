"""
Tests for the LLM client

The retry and error-mapping tests run against a mocked AsyncOpenAI client.
The tests marked ``integration`` make REAL API calls and are skipped when
LLM_API_KEY (or DEEPSEEK_API_KEY) is not set.
"""

import asyncio
import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import httpx
from openai import APIConnectionError, APITimeoutError, RateLimitError

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from agents.shared.errors import LLMTimeoutError, LLMUnavailableError
from agents.shared.llm_client import LLMClient, to_openai_messages
from agents.shared.schemas import system_message, user_message

REQUEST = httpx.Request("POST", "https://api.deepseek.com/chat/completions")


def completion(content):
    return Mock(choices=[Mock(message=Mock(content=content))])


def chunk(content):
    return Mock(choices=[Mock(delta=Mock(content=content))])


def make_client(create):
    openai_client = Mock()
    openai_client.chat.completions.create = create
    openai_client.close = AsyncMock()
    return LLMClient(client=openai_client, max_retries=3)


@pytest.fixture
def no_backoff():
    with patch("agents.shared.llm_client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestLLMClientBasics:
    """Test construction and payload conversion"""

    def test_api_key_required(self):
        with pytest.raises(ValueError):
            LLMClient(api_key=None)

    def test_messages_converted_to_provider_payload(self):
        payload = to_openai_messages([
            system_message("Be concise."),
            {"role": "user", "content": "hi"},
        ])

        assert payload == [
            {"role": "system", "content": "Be concise."},
            {"role": "user", "content": "hi"},
        ]


@pytest.mark.asyncio
class TestLLMClientCompletion:
    """Test completion, retries and error mapping"""

    async def test_complete_returns_text(self):
        create = AsyncMock(return_value=completion("4"))
        client = make_client(create)

        answer = await client.complete([user_message("2+2?")], temperature=0.0)

        assert answer == "4"
        kwargs = create.await_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"] == [{"role": "user", "content": "2+2?"}]

    async def test_transient_errors_are_retried(self, no_backoff):
        create = AsyncMock(side_effect=[
            APIConnectionError(request=REQUEST),
            completion("recovered"),
        ])
        client = make_client(create)

        assert await client.complete([user_message("hi")]) == "recovered"
        assert create.await_count == 2

    async def test_rate_limit_exhaustion_is_unavailable(self, no_backoff):
        response = httpx.Response(429, request=REQUEST)
        create = AsyncMock(side_effect=RateLimitError("rate limited", response=response, body=None))
        client = make_client(create)

        with pytest.raises(LLMUnavailableError):
            await client.complete([user_message("hi")])

        assert create.await_count == 3

    async def test_provider_timeouts_map_to_timeout_error(self, no_backoff):
        create = AsyncMock(side_effect=APITimeoutError(request=REQUEST))
        client = make_client(create)

        with pytest.raises(LLMTimeoutError):
            await client.complete([user_message("hi")])

    async def test_deadline_covers_all_attempts(self):
        async def hang(**kwargs):
            await asyncio.sleep(5)

        client = make_client(AsyncMock(side_effect=hang))

        with pytest.raises(LLMTimeoutError):
            await client.complete([user_message("hi")], timeout=0.05)

    async def test_stream_yields_chunks(self):
        async def chunks():
            yield chunk("Hel")
            yield Mock(choices=[])
            yield chunk(None)
            yield chunk("lo")

        create = AsyncMock(return_value=chunks())
        client = make_client(create)

        pieces = [piece async for piece in client.stream([user_message("hi")])]

        assert pieces == ["Hel", "lo"]
        assert create.await_args.kwargs["stream"] is True

    async def test_close(self):
        client = make_client(AsyncMock())

        await client.close()

        client.client.close.assert_awaited_once()


@pytest.mark.integration
@pytest.mark.slow
@pytest.mark.asyncio
class TestLLMClientRealAPI:
    """REAL API calls"""

    async def test_simple_completion(self, llm_client):
        response = await llm_client.complete([
            system_message("You are a helpful assistant. Be concise."),
            user_message("What is 2+2? Answer with just the number."),
        ])

        assert isinstance(response, str)
        assert "4" in response

    async def test_stream_completion(self, llm_client):
        pieces = [piece async for piece in llm_client.stream([
            user_message("What is the capital of France? Answer with one word."),
        ])]

        assert "Paris" in "".join(pieces)
