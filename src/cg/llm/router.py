"""
LLM Router with role-based model selection.

Routes reasoning requests for each pipeline role to a configured model.
Supports dry run mode for running the whole pipeline without API calls.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from cg.budget import BudgetTracker
from cg.config import Settings
from cg.exceptions import ConfigurationError
from cg.llm.anthropic_client import AnthropicClient
from cg.llm.base import (
    DRY_RUN_RESPONSES,
    BudgetExceededError,
    LLMClient,
    LLMRequest,
    LLMResponse,
)
from cg.llm.openai_client import OpenAIClient
from cg.logging import get_logger

logger = get_logger(__name__)


class ReasoningRole(Enum):
    """Reasoning roles for model selection."""

    COMPANY_PROFILE = "company_profile"
    PERSONAS = "personas"
    RANKING = "ranking"
    FILTERS = "filters"
    CONTENT = "content"


DEFAULT_PROVIDER_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-5-20250929",
    "openai": "gpt-4o",
}


class LLMRouter:
    """Routes LLM requests to appropriate providers/models.

    Features:
    - Per-role model selection from settings
    - Fallback to whichever provider has a key
    - Budget enforcement
    - Dry run mode for testing
    - Provider forcing via context manager
    """

    def __init__(
        self,
        settings: Settings,
        budget_tracker: BudgetTracker | None = None,
        dry_run: bool | None = None,
    ) -> None:
        """Initialize the router.

        Args:
            settings: Application settings.
            budget_tracker: Budget tracker for cost management.
            dry_run: Force dry run mode. If None, uses settings.DRY_RUN.
        """
        self._settings = settings
        self._budget_tracker = budget_tracker
        self._forced_provider: str | None = settings.preferred_provider
        self._dry_run = settings.DRY_RUN if dry_run is None else dry_run

        self._openai_client: OpenAIClient | None = None
        self._anthropic_client: AnthropicClient | None = None

        self._model_map = self._build_model_map()

    @property
    def dry_run(self) -> bool:
        """Whether canned responses are returned instead of calling providers."""
        return self._dry_run

    @property
    def budget_tracker(self) -> BudgetTracker | None:
        """Budget tracker receiving usage records, if any."""
        return self._budget_tracker

    def _build_model_map(self) -> dict[ReasoningRole, str]:
        """Build role -> model mapping from settings."""
        s = self._settings
        model_map = {role: s.MODEL_STAGES for role in ReasoningRole}
        model_map[ReasoningRole.CONTENT] = s.MODEL_CONTENT
        return model_map

    def _infer_provider(self, model: str) -> str:
        """Infer provider from model name."""
        if model.startswith("claude-"):
            return "anthropic"
        return "openai"

    def _has_key(self, provider: str) -> bool:
        if provider == "openai":
            return bool(self._settings.openai_api_key)
        return bool(self._settings.anthropic_api_key)

    def _get_client(self, provider: str) -> LLMClient:
        """Get or create client for provider."""
        if provider in ("openai", "anthropic") and not self._has_key(provider):
            raise ConfigurationError(
                f"No API key configured for {provider}", context={"provider": provider}
            )
        if provider == "openai":
            if self._openai_client is None:
                self._openai_client = OpenAIClient(api_key=self._settings.openai_api_key)
            return self._openai_client
        elif provider == "anthropic":
            if self._anthropic_client is None:
                self._anthropic_client = AnthropicClient(api_key=self._settings.anthropic_api_key)
            return self._anthropic_client
        else:
            raise ConfigurationError(f"Unknown provider: {provider}")

    def resolve(self, role: ReasoningRole) -> tuple[str, str]:
        """Resolve (model, provider) for a role.

        A forced provider wins; otherwise the configured model is used if its
        provider has a key, falling back to the first provider that does.
        """
        model = self._model_map[role]
        provider = self._infer_provider(model)

        if self._forced_provider and self._forced_provider != provider:
            provider = self._forced_provider
            model = DEFAULT_PROVIDER_MODELS[provider]
        elif not self._dry_run and not self._has_key(provider):
            for candidate in self._settings.available_providers:
                provider = candidate
                model = DEFAULT_PROVIDER_MODELS[candidate]
                break

        return model, provider

    async def complete(
        self,
        role: ReasoningRole,
        messages: list[dict[str, Any]],
        stage: str | None = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Send a completion request with role-based routing.

        Args:
            role: Reasoning role for model selection.
            messages: Chat messages.
            stage: Pipeline stage name (for cost tracking).
            **kwargs: Additional request parameters.

        Returns:
            LLM response.

        Raises:
            BudgetExceededError: If budget is exceeded.
        """
        if self._budget_tracker and self._budget_tracker.is_exceeded():
            raise BudgetExceededError("Budget limit exceeded")

        model, provider = self.resolve(role)

        if self._dry_run:
            return self._get_dry_run_response(role, model, provider, stage)

        client = self._get_client(provider)
        request = LLMRequest(
            messages=messages,
            model=model,
            temperature=kwargs.get("temperature", 0.7),
            max_tokens=kwargs.get("max_tokens"),
            response_format=kwargs.get("response_format") if provider == "openai" else None,
            stop=kwargs.get("stop"),
        )

        start_time = time.monotonic()
        response = await client.complete(request)

        logger.info(
            "LLM call completed",
            role=role.value,
            model=response.model,
            provider=response.provider,
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
            latency_ms=response.latency_ms or int((time.monotonic() - start_time) * 1000),
        )

        if self._budget_tracker:
            cost = self._budget_tracker.record_usage(
                provider=response.provider,
                model=response.model,
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
                stage=stage or role.value,
            )
            logger.debug("Recorded cost", cost_usd=cost)

        return response

    def _get_dry_run_response(
        self,
        role: ReasoningRole,
        model: str,
        provider: str,
        stage: str | None,
    ) -> LLMResponse:
        """Get a canned response for a role."""
        dry_config = DRY_RUN_RESPONSES.get(role.value, DRY_RUN_RESPONSES["default"])

        if self._budget_tracker:
            self._budget_tracker.record_usage(
                provider=provider,
                model=model,
                input_tokens=dry_config.input_tokens,
                output_tokens=dry_config.output_tokens,
                stage=stage or role.value,
            )

        return LLMResponse(
            content=dry_config.content,
            model=model,
            provider=provider,
            input_tokens=dry_config.input_tokens,
            output_tokens=dry_config.output_tokens,
            finish_reason="stop",
            latency_ms=50,
        )

    async def close(self) -> None:
        """Close all clients."""
        if self._openai_client:
            await self._openai_client.close()
            self._openai_client = None
        if self._anthropic_client:
            await self._anthropic_client.close()
            self._anthropic_client = None
