"""
OpenAI reasoning client.

Stage requests that ask for a JSON object are sent in JSON mode.
"""

from __future__ import annotations

import time
from typing import Any

from openai import APIError, AsyncOpenAI, RateLimitError as OpenAIRateLimitError

from cg.llm.base import (
    LLMRequest,
    LLMResponse,
    RateLimitError,
    provider_error,
    retry_after_seconds,
    retry_rate_limits,
)
from cg.logging import get_logger

logger = get_logger(__name__)


class OpenAIClient:
    """GPT models through AsyncOpenAI chat completions."""

    provider = "openai"

    def __init__(self, api_key: str | None = None) -> None:
        self._client = AsyncOpenAI(api_key=api_key)

    @retry_rate_limits
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Run one stage prompt against a chat model.

        Raises:
            RateLimitError: After the retry policy gives up.
            AuthenticationError: If the key is rejected.
            LLMError: For any other provider failure.
        """
        params: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            "temperature": request.temperature,
        }
        if request.max_tokens:
            params["max_tokens"] = request.max_tokens
        if request.stop:
            params["stop"] = request.stop
        if request.response_format:
            params["response_format"] = request.response_format

        started = time.monotonic()
        try:
            response = await self._client.chat.completions.create(**params)
        except OpenAIRateLimitError as e:
            retry_after = retry_after_seconds(e)
            logger.warning("OpenAI rate limit hit", model=request.model, retry_after=retry_after)
            raise RateLimitError(str(e), retry_after=retry_after) from e
        except APIError as e:
            raise provider_error(self.provider, e) from e

        choice = response.choices[0]
        usage = response.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            provider=self.provider,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            finish_reason=choice.finish_reason or "stop",
            latency_ms=int((time.monotonic() - started) * 1000),
        )

    async def close(self) -> None:
        await self._client.close()
