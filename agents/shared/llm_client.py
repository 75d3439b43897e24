"""
Project Conductor - LLM Client Wrapper

Async OpenAI-compatible client for DeepSeek (and other providers).
Includes retry logic and maps provider failures onto the LLM capability
errors the orchestrator understands.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Union

from openai import AsyncOpenAI, APIConnectionError, APIError, APITimeoutError, RateLimitError

from .errors import LLMTimeoutError, LLMUnavailableError
from .schemas import ChatMessage

logger = logging.getLogger(__name__)

MessageLike = Union[ChatMessage, Dict[str, Any]]


class LanguageModel(Protocol):
    """Capability consumed by the router, the chain steps and the ReAct loop"""

    async def complete(
        self,
        messages: List[MessageLike],
        *,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> str:
        ...

    def stream(
        self,
        messages: List[MessageLike],
        *,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[str]:
        ...


def to_openai_messages(messages: List[MessageLike]) -> List[Dict[str, Any]]:
    """Convert ChatMessage models (or plain dicts) into provider payloads"""
    converted = []
    for message in messages:
        if isinstance(message, ChatMessage):
            converted.append(message.to_openai())
        else:
            converted.append(dict(message))
    return converted


async def complete_within(
    llm: LanguageModel,
    messages: List[MessageLike],
    *,
    temperature: Optional[float] = None,
    timeout: Optional[float] = None
) -> str:
    """
    Call ``llm.complete`` under a deadline enforced by the caller.

    The timeout is forwarded to the capability and also applied with
    ``asyncio.wait_for``, so a capability that ignores it still cannot
    suspend the caller past the deadline.

    Raises:
        LLMTimeoutError: If the call does not finish within ``timeout`` seconds
    """
    call = llm.complete(messages, temperature=temperature, timeout=timeout)
    if timeout is None:
        return await call
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise LLMTimeoutError(f"LLM call exceeded {timeout}s") from e


async def stream_within(
    llm: LanguageModel,
    messages: List[MessageLike],
    *,
    temperature: Optional[float] = None,
    timeout: Optional[float] = None
) -> AsyncIterator[str]:
    """
    Iterate ``llm.stream`` with the deadline applied to every chunk.

    Raises:
        LLMTimeoutError: If the next chunk does not arrive within ``timeout`` seconds
    """
    chunks = llm.stream(messages, temperature=temperature, timeout=timeout).__aiter__()
    while True:
        try:
            if timeout is None:
                chunk = await chunks.__anext__()
            else:
                chunk = await asyncio.wait_for(chunks.__anext__(), timeout=timeout)
        except StopAsyncIteration:
            return
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"LLM stream produced nothing for {timeout}s") from e
        yield chunk


class LLMClient:
    """
    Wrapper for LLM API calls with retry logic and error handling.
    Compatible with OpenAI and DeepSeek APIs.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.deepseek.com",
        model: str = "deepseek-chat",
        max_retries: int = 3,
        timeout: float = 60.0,
        temperature: float = 0.7,
        client: Optional[AsyncOpenAI] = None
    ):
        """
        Initialize LLM client.

        Args:
            api_key: Provider API key
            base_url: Provider base URL
            model: Model name
            max_retries: Maximum retry attempts for failed calls
            timeout: Default timeout in seconds for a whole completion
            temperature: Default sampling temperature
            client: Pre-built AsyncOpenAI client (tests)
        """
        if not api_key and client is None:
            raise ValueError("API key is required. Set LLM_API_KEY environment variable.")

        self.model = model
        self.base_url = base_url
        self.max_retries = max_retries
        self.timeout = timeout
        self.temperature = temperature

        # Retries are handled here, not by the SDK
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0
        )

        logger.info(f"LLM Client initialized: model={self.model}, base_url={self.base_url}")

    @classmethod
    def from_settings(cls, settings) -> "LLMClient":
        return cls(
            api_key=settings.llm_api_key,
            base_url=settings.llm_base_url,
            model=settings.llm_model,
            max_retries=settings.llm_max_retries,
            timeout=settings.llm_timeout,
            temperature=settings.llm_temperature,
        )

    async def complete(
        self,
        messages: List[MessageLike],
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> str:
        """
        Make a chat completion request and return the text content.

        Args:
            messages: Conversation messages
            temperature: Sampling temperature (defaults to client setting)
            max_tokens: Maximum tokens to generate
            timeout: Deadline in seconds for all attempts together

        Returns:
            Generated text content

        Raises:
            LLMTimeoutError: If the deadline is exceeded
            LLMUnavailableError: If all retries fail
        """
        deadline = timeout if timeout is not None else self.timeout

        try:
            return await asyncio.wait_for(
                self._complete_with_retry(messages, temperature, max_tokens),
                timeout=deadline
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"LLM completion exceeded {deadline}s deadline")
            raise LLMTimeoutError(f"LLM call timed out after {deadline}s") from e

    async def _complete_with_retry(
        self,
        messages: List[MessageLike],
        temperature: Optional[float],
        max_tokens: Optional[int]
    ) -> str:
        last_error: Optional[Exception] = None
        timed_out = False

        for attempt in range(self.max_retries):
            try:
                logger.debug(f"LLM API call attempt {attempt + 1}/{self.max_retries}")

                kwargs = {
                    "model": self.model,
                    "messages": to_openai_messages(messages),
                    "temperature": self.temperature if temperature is None else temperature
                }

                if max_tokens:
                    kwargs["max_tokens"] = max_tokens

                response = await self.client.chat.completions.create(**kwargs)

                logger.debug(f"LLM API call successful on attempt {attempt + 1}")

                if not response.choices:
                    raise LLMUnavailableError("LLM returned no choices")
                return response.choices[0].message.content or ""

            except RateLimitError as e:
                last_error = e
                wait_time = 2 ** attempt  # Exponential backoff
                logger.warning(f"Rate limit hit, waiting {wait_time}s before retry {attempt + 1}/{self.max_retries}")
                await asyncio.sleep(wait_time)

            except APITimeoutError as e:
                last_error = e
                timed_out = True
                logger.warning(f"API timeout on attempt {attempt + 1}/{self.max_retries}: {e}")
                await asyncio.sleep(1)

            except APIConnectionError as e:
                last_error = e
                logger.warning(f"API connection error on attempt {attempt + 1}/{self.max_retries}: {e}")
                await asyncio.sleep(1)

            except APIError as e:
                last_error = e
                logger.error(f"API error on attempt {attempt + 1}/{self.max_retries}: {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(2 ** attempt)

        # All retries failed
        error_msg = f"LLM API call failed after {self.max_retries} attempts: {last_error}"
        logger.error(error_msg)
        if timed_out:
            raise LLMTimeoutError(error_msg) from last_error
        raise LLMUnavailableError(error_msg) from last_error

    async def stream(
        self,
        messages: List[MessageLike],
        *,
        temperature: Optional[float] = None,
        timeout: Optional[float] = None
    ) -> AsyncIterator[str]:
        """
        Stream a chat completion as text chunks.

        Streaming is not retried: once chunks have been yielded a retry
        would duplicate output.

        Raises:
            LLMTimeoutError: If opening the stream exceeds the deadline
            LLMUnavailableError: On provider errors
        """
        deadline = timeout if timeout is not None else self.timeout

        try:
            stream = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=to_openai_messages(messages),
                    temperature=self.temperature if temperature is None else temperature,
                    stream=True
                ),
                timeout=deadline
            )
        except asyncio.TimeoutError as e:
            raise LLMTimeoutError(f"LLM stream did not open within {deadline}s") from e
        except APITimeoutError as e:
            raise LLMTimeoutError(f"LLM stream timed out: {e}") from e
        except APIError as e:
            raise LLMUnavailableError(f"LLM stream failed: {e}") from e

        try:
            async for chunk in stream:
                if not chunk.choices:
                    continue
                piece = chunk.choices[0].delta.content
                if piece:
                    yield piece
        except APITimeoutError as e:
            raise LLMTimeoutError(f"LLM stream timed out: {e}") from e
        except APIError as e:
            raise LLMUnavailableError(f"LLM stream interrupted: {e}") from e

    async def close(self) -> None:
        """Close the underlying HTTP connections"""
        await self.client.close()
