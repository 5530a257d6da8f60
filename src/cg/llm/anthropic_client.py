"""
Anthropic reasoning client.

Claude has no JSON response mode, so a JSON request is turned into a
system instruction; stage replies are parsed by `parse_json_object` either way.
"""

from __future__ import annotations

import time
from typing import Any

from anthropic import APIError, AsyncAnthropic, RateLimitError as AnthropicRateLimitError

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

JSON_INSTRUCTION = "Reply with a single JSON object and nothing else."
DEFAULT_MAX_TOKENS = 4096


def split_system(messages: list[dict[str, Any]]) -> tuple[str | None, list[dict[str, Any]]]:
    """Pull system messages out of a chat transcript.

    Anthropic takes the system prompt as a separate parameter and only
    accepts user and assistant turns in `messages`.
    """
    system_parts: list[str] = []
    turns: list[dict[str, Any]] = []
    for msg in messages:
        role = msg.get("role", "user")
        content = msg.get("content", "")
        if role == "system":
            system_parts.append(content)
        else:
            turns.append({"role": "assistant" if role == "assistant" else "user", "content": content})
    return ("\n\n".join(system_parts) or None), turns


class AnthropicClient:
    """Claude models through AsyncAnthropic."""

    provider = "anthropic"

    def __init__(self, api_key: str | None = None) -> None:
        self._client = AsyncAnthropic(api_key=api_key)

    def _params(self, request: LLMRequest) -> dict[str, Any]:
        system, turns = split_system(request.messages)
        if request.response_format and request.response_format.get("type") == "json_object":
            system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION

        params: dict[str, Any] = {
            "model": request.model,
            "messages": turns,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system:
            params["system"] = system
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if request.stop:
            params["stop_sequences"] = request.stop
        return params

    @retry_rate_limits
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Run one stage prompt against a Claude model.

        Raises:
            RateLimitError: After the retry policy gives up.
            AuthenticationError: If the key is rejected.
            LLMError: For any other provider failure.
        """
        started = time.monotonic()
        try:
            response = await self._client.messages.create(**self._params(request))
        except AnthropicRateLimitError as e:
            retry_after = retry_after_seconds(e)
            logger.warning("Anthropic rate limit hit", model=request.model, retry_after=retry_after)
            raise RateLimitError(str(e), retry_after=retry_after) from e
        except APIError as e:
            raise provider_error(self.provider, e) from e

        text = "".join(block.text for block in response.content if block.type == "text")
        return LLMResponse(
            content=text,
            model=response.model,
            provider=self.provider,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            finish_reason=response.stop_reason or "stop",
            latency_ms=int((time.monotonic() - started) * 1000),
        )

    async def close(self) -> None:
        await self._client.close()
