"""
Configuration management using pydantic-settings.

Loads configuration from environment variables and .env files.
Validates required fields and provides typed access to settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Required:
        At least one of: OPENAI_API_KEY, ANTHROPIC_API_KEY (unless DRY_RUN)

    Optional:
        FIRECRAWL_API_KEY: Website scraping API key (falls back to plain HTTP)
        LEAD_SOURCE: Which people-search provider to use (ark|sales_navigator)
        AI_ARK_TOKEN: Token for the synchronous people-search API
        APIFY_API_TOKEN: Token for the Sales Navigator scraper job
        ICYPEAS_API_KEY: Contact enrichment API key
        LEADS_TARGET: Number of enriched leads per campaign
        PROGRESS_TTL_SECONDS: How long progress records are kept
        OUTPUT_DIR: Directory for output files
        LOG_LEVEL: Logging level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Reasoning providers - at least one required
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")
    ANTHROPIC_API_KEY: str | None = Field(default=None, description="Anthropic API key")

    PREFERRED_PROVIDER: str | None = Field(
        default=None,
        description="Preferred LLM provider (openai|anthropic) to force all roles",
    )
    MODEL_STAGES: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Model for the four analysis stages",
    )
    MODEL_CONTENT: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Model for per-lead email drafting",
    )
    MAX_BUDGET_USD: float = Field(
        default=5.0, ge=0.0, description="Maximum reasoning spend per run in USD"
    )

    # Website content
    FIRECRAWL_API_KEY: str | None = Field(default=None, description="Firecrawl API key")
    FIRECRAWL_API_URL: str = Field(
        default="https://api.firecrawl.dev/v2/scrape",
        description="Firecrawl scrape endpoint",
    )

    # Lead source
    LEAD_SOURCE: Literal["ark", "sales_navigator"] = Field(
        default="sales_navigator",
        description="People-search provider: ark (paginated) or sales_navigator (job)",
    )
    AI_ARK_TOKEN: str | None = Field(default=None, description="AI Ark API token")
    AI_ARK_API_URL: str = Field(
        default="https://api.ai-ark.com/api/developer-portal/v1/people",
        description="AI Ark people search endpoint",
    )
    APIFY_API_TOKEN: str | None = Field(default=None, description="Apify API token")
    APIFY_ACTOR_ID: str = Field(
        default="freshdata~linkedin-sales-navigator-scraper",
        description="Apify actor running the Sales Navigator scrape",
    )

    # Contact enrichment
    ICYPEAS_API_KEY: str | None = Field(default=None, description="Icypeas API key")
    ICYPEAS_API_URL: str = Field(
        default="https://app.icypeas.com/api",
        description="Icypeas API base URL",
    )

    # Job polling
    SEARCH_POLL_MAX_ATTEMPTS: int = Field(
        default=15, ge=1, le=100, description="Status checks before a search job times out"
    )
    SEARCH_POLL_INTERVAL_SECONDS: float = Field(
        default=30.0, ge=0.0, description="Seconds between search job status checks"
    )
    ENRICH_POLL_MAX_ATTEMPTS: int = Field(
        default=10, ge=1, le=100, description="Status checks per enrichment lookup"
    )
    ENRICH_POLL_INTERVAL_SECONDS: float = Field(
        default=1.0, ge=0.0, description="Seconds between enrichment status checks"
    )

    # Enrichment loop limits
    ENRICH_MAX_PAGES: int = Field(default=10, ge=1, le=100, description="Page cap per run")
    ENRICH_MAX_CANDIDATES: int = Field(
        default=200, ge=1, description="Absolute ceiling on candidates fetched per run"
    )
    ENRICH_CANDIDATE_MULTIPLIER: int = Field(
        default=10, ge=1, description="Candidates fetched per requested lead"
    )
    ENRICH_ZERO_YIELD_LIMIT: int = Field(
        default=3, ge=1, description="Consecutive zero-yield pages before giving up"
    )
    ENRICH_CONCURRENCY: int = Field(
        default=10, ge=1, le=50, description="Concurrent enrichment lookups"
    )
    ENRICH_MIN_BATCH: int = Field(default=10, ge=1, description="Smallest page request")

    # Campaign
    LEADS_TARGET: int = Field(default=5, ge=1, le=100, description="Enriched leads per run")
    LEADS_COUNT_OVERRIDE: int | None = Field(
        default=None, ge=1, description="Testing override for the lead target"
    )
    CONTENT_MAX_LEADS: int = Field(
        default=5, ge=1, le=50, description="Leads that receive drafted emails"
    )
    CONTENT_LEAD_TIMEOUT_SECONDS: float = Field(
        default=90.0, gt=0.0, description="Upper bound on one email draft"
    )
    SENDER_NAME: str = Field(default="Bella", description="Signature used in drafts")

    # Progress
    PROGRESS_TTL_SECONDS: float = Field(
        default=3600.0, gt=0.0, description="Seconds a progress record is kept"
    )

    # Runtime
    DRY_RUN: bool = Field(default=False, description="Return canned reasoning responses")
    CAPTURE_TRACE: bool = Field(
        default=False, description="Keep prompt/response text on stage results"
    )
    OUTPUT_DIR: Path = Field(default=Path("output"), description="Output directory")

    # Logging
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )

    @property
    def openai_api_key(self) -> str | None:
        """Get OpenAI API key (lowercase alias)."""
        return self.OPENAI_API_KEY

    @property
    def anthropic_api_key(self) -> str | None:
        """Get Anthropic API key (lowercase alias)."""
        return self.ANTHROPIC_API_KEY

    @property
    def preferred_provider(self) -> str | None:
        """Get preferred provider (normalized)."""
        if not self.PREFERRED_PROVIDER:
            return None
        value = self.PREFERRED_PROVIDER.strip().lower()
        if value == "openai" and not self.openai_api_key:
            return None
        if value == "anthropic" and not self.anthropic_api_key:
            return None
        return value or None

    @property
    def leads_target(self) -> int:
        """Effective lead target, honouring the testing override."""
        return self.LEADS_COUNT_OVERRIDE or self.LEADS_TARGET

    @property
    def lead_source_configured(self) -> bool:
        """Whether the selected people-search provider has credentials."""
        if self.LEAD_SOURCE == "ark":
            return bool(self.AI_ARK_TOKEN)
        return bool(self.APIFY_API_TOKEN)

    @property
    def enrichment_configured(self) -> bool:
        """Whether contact enrichment has credentials."""
        return bool(self.ICYPEAS_API_KEY)

    @field_validator("LEAD_SOURCE", mode="before")
    @classmethod
    def normalize_lead_source(cls, v: object) -> object:
        """Accept the legacy numeric switch (1 = ark, 0 = sales_navigator)."""
        if isinstance(v, str):
            value = v.strip().lower()
            return {"1": "ark", "0": "sales_navigator", "": "sales_navigator"}.get(value, value)
        return v

    @field_validator("PREFERRED_PROVIDER")
    @classmethod
    def validate_preferred_provider(cls, v: str | None) -> str | None:
        """Reject unknown provider names early."""
        if v and v.strip().lower() not in ("openai", "anthropic"):
            raise ValueError("PREFERRED_PROVIDER must be 'openai' or 'anthropic'")
        return v

    @model_validator(mode="after")
    def validate_at_least_one_llm_provider(self) -> Settings:
        """Ensure at least one LLM provider API key is configured."""
        if self.DRY_RUN:
            return self
        if not any([self.OPENAI_API_KEY, self.ANTHROPIC_API_KEY]):
            raise ValueError(
                "At least one LLM provider API key must be configured: "
                "OPENAI_API_KEY or ANTHROPIC_API_KEY (or set DRY_RUN=true)"
            )
        return self

    @property
    def available_providers(self) -> list[str]:
        """Return list of configured LLM providers."""
        providers: list[str] = []
        if self.OPENAI_API_KEY:
            providers.append("openai")
        if self.ANTHROPIC_API_KEY:
            providers.append("anthropic")
        return providers

    def ensure_directories(self) -> None:
        """Create the output directory if it doesn't exist."""
        self.OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

    def redacted_display(self) -> dict[str, str | int | float | bool | None]:
        """Return settings with API keys redacted for display."""
        def redact(key: str, value: str | None) -> str | None:
            if value is None:
                return None
            if "KEY" in key or "TOKEN" in key:
                return f"{value[:8]}...{value[-4:]}" if len(value) > 12 else "***"
            return value

        secrets = (
            "OPENAI_API_KEY",
            "ANTHROPIC_API_KEY",
            "FIRECRAWL_API_KEY",
            "AI_ARK_TOKEN",
            "APIFY_API_TOKEN",
            "ICYPEAS_API_KEY",
        )
        display: dict[str, str | int | float | bool | None] = {
            key: redact(key, getattr(self, key)) for key in secrets
        }
        display.update({
            "LEAD_SOURCE": self.LEAD_SOURCE,
            "MODEL_STAGES": self.MODEL_STAGES,
            "MODEL_CONTENT": self.MODEL_CONTENT,
            "MAX_BUDGET_USD": self.MAX_BUDGET_USD,
            "LEADS_TARGET": self.leads_target,
            "ENRICH_MAX_PAGES": self.ENRICH_MAX_PAGES,
            "ENRICH_MAX_CANDIDATES": self.ENRICH_MAX_CANDIDATES,
            "PROGRESS_TTL_SECONDS": self.PROGRESS_TTL_SECONDS,
            "DRY_RUN": self.DRY_RUN,
            "OUTPUT_DIR": str(self.OUTPUT_DIR),
            "LOG_LEVEL": self.LOG_LEVEL,
            "PREFERRED_PROVIDER": self.PREFERRED_PROVIDER,
        })
        return display


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If required settings are missing or invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
