"""
Base classes and interfaces for LLM clients.

This module defines:
- LLMRequest: Standardized request format
- LLMResponse: Standardized response format
- LLMClient: Protocol for all LLM providers
- Dry-run responses for each reasoning role
- Provider error translation and the shared rate-limit retry policy
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential


@dataclass
class LLMRequest:
    """Standardized LLM request format.

    All providers convert from this format to their native format.
    """

    messages: list[dict[str, Any]]  # [{"role": "system"|"user"|"assistant", "content": "..."}]
    model: str
    temperature: float = 0.7
    max_tokens: int | None = None
    response_format: dict[str, Any] | None = None  # JSON mode where supported
    stop: list[str] | None = None


@dataclass
class LLMResponse:
    """Standardized LLM response format.

    All providers convert to this format from their native format.
    """

    content: str
    model: str
    provider: str
    input_tokens: int
    output_tokens: int
    finish_reason: str = "stop"
    latency_ms: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens used."""
        return self.input_tokens + self.output_tokens


@dataclass
class DryRunResponse:
    """Configuration for dry run mode responses."""

    content: str = "This is a dry run response."
    input_tokens: int = 100
    output_tokens: int = 50


# Default dry run responses by role
DRY_RUN_RESPONSES: dict[str, DryRunResponse] = {
    "company_profile": DryRunResponse(
        content=(
            '{"name": "Acme Analytics", "tagline": "Dashboards your ops team will actually use", '
            '"product_or_service": "Operational analytics platform", '
            '"problem_they_solve": "Ops teams lack real-time visibility into fulfilment", '
            '"how_they_solve_it": "Connects to order systems and alerts on anomalies", '
            '"target_market": "Mid-market e-commerce and logistics companies", '
            '"existing_customer_types": ["E-commerce brands", "3PL providers"], '
            '"case_studies": ["Cut late shipments 40% for a DTC brand"], '
            '"geography": {"primary_markets": ["United States"], "office_locations": ["Austin, TX"], '
            '"evidence_signals": ["USD pricing"], "confidence": "high", "reasoning": "US pricing and office"}, '
            '"industry": "Software", "competitive_advantage": "Setup in under a day", '
            '"pricing_model": "SMB subscription", "company_maturity": "growth", "sales_motion": "hybrid"}'
        ),
        input_tokens=3000,
        output_tokens=600,
    ),
    "personas": DryRunResponse(
        content=(
            '{"personas": ['
            '{"id": "p1", "name": "Operations Leader", "titles": ["VP of Operations", "Head of Operations"], '
            '"seniority": "vp", "department": "Operations", "description": "Owns fulfilment performance", '
            '"pain_points": ["Late shipments"], "buying_triggers": ["Peak season"], '
            '"company_size": "51-200", "industries": ["Retail"]}, '
            '{"id": "p2", "name": "Founder", "titles": ["Founder", "CEO"], "seniority": "owner", '
            '"department": "Executive", "description": "Runs a growing brand", '
            '"pain_points": ["No time for reporting"], "buying_triggers": ["Fundraise"], '
            '"company_size": "11-50", "industries": ["Retail"]}, '
            '{"id": "p3", "name": "Data Analyst", "titles": ["Data Analyst"], "seniority": "senior", '
            '"department": "Analytics", "description": "Builds internal reports", '
            '"pain_points": ["Manual spreadsheets"], "buying_triggers": ["New data stack"], '
            '"company_size": "201-500", "industries": ["Software Development"]}]}'
        ),
        input_tokens=1500,
        output_tokens=700,
    ),
    "ranking": DryRunResponse(
        content=(
            '{"evaluations": ['
            '{"persona_id": "p1", "persona_name": "Operations Leader", "overall_score": 8.5, '
            '"inbox_accessibility": 8, "pain_urgency": 9, "decision_authority": 8, "reachability": 8, '
            '"response_likelihood": 8, "strengths": ["Feels the pain daily"], "weaknesses": [], '
            '"recommendation": "Primary target"}, '
            '{"persona_id": "p2", "persona_name": "Founder", "overall_score": 7.0, '
            '"strengths": ["Decision maker"], "weaknesses": ["Busy inbox"], "recommendation": "Secondary"}, '
            '{"persona_id": "p3", "persona_name": "Data Analyst", "overall_score": 5.0, '
            '"strengths": ["Reachable"], "weaknesses": ["No budget"], "recommendation": "Skip"}], '
            '"selected_persona_id": "p1", '
            '"selection_reasoning": "Operations leaders own the problem and read vendor email."}'
        ),
        input_tokens=2000,
        output_tokens=500,
    ),
    "filters": DryRunResponse(
        content=(
            '{"titles": ["VP of Operations", "Head of Operations", "Director of Operations"], '
            '"company_size": "51-200", '
            '"industries": [{"id": "27", "text": "Retail"}], '
            '"locations": [{"id": "103644278", "text": "United States"}]}'
        ),
        input_tokens=1200,
        output_tokens=200,
    ),
    "content": DryRunResponse(
        content=(
            '{"why_picked": "Runs operations at a growing retailer where late shipments hurt.", '
            '"email_subject": "late shipments", '
            '"email_body": "Hi there,\\n\\nSaw your team is scaling fulfilment. We help ops leads '
            'spot late orders before customers do.\\n\\nWorth a look?\\n\\nBella"}'
        ),
        input_tokens=900,
        output_tokens=200,
    ),
    "default": DryRunResponse(
        content='{"status": "ok", "message": "Dry run response"}',
        input_tokens=100,
        output_tokens=50,
    ),
}


@runtime_checkable
class LLMClient(Protocol):
    """Protocol for LLM clients.

    All providers must implement this interface.
    """

    @property
    def provider(self) -> str:
        """Name of this provider (e.g., 'openai', 'anthropic')."""
        ...

    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request.

        Args:
            request: The LLM request.

        Returns:
            LLM response.

        Raises:
            LLMError: If the request fails.
        """
        ...

    async def close(self) -> None:
        """Close any open connections."""
        ...


class LLMError(Exception):
    """Base exception for LLM errors."""

    pass


class RateLimitError(LLMError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class AuthenticationError(LLMError):
    """Authentication failed."""

    pass


class BudgetExceededError(LLMError):
    """Budget limit exceeded."""

    pass


def retry_after_seconds(error: Exception) -> float | None:
    """Read a provider's retry-after header from an SDK error, if present."""
    response = getattr(error, "response", None)
    if response is None:
        return None
    header = response.headers.get("retry-after")
    try:
        return float(header) if header else None
    except ValueError:
        return None


def provider_error(provider: str, error: Exception) -> LLMError:
    """Map a provider SDK error onto the LLMError hierarchy."""
    message = str(error)
    lowered = message.lower()
    if "authentication" in lowered or "api key" in lowered:
        return AuthenticationError(f"{provider} authentication failed: {message}")
    return LLMError(f"{provider} API error: {message}")


# Wraps each provider client's `complete`.
retry_rate_limits = retry(
    retry=retry_if_exception_type(RateLimitError),
    wait=wait_exponential(multiplier=1, min=1, max=60),
    stop=stop_after_attempt(5),
    reraise=True,
)
