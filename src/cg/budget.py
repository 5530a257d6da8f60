"""
Budget tracking for reasoning calls.

Tracks token usage and costs per provider, stage and model so a run can be
stopped once it exceeds its spend limit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from cg.logging import get_logger

logger = get_logger(__name__)


# Cost per million tokens: (input_cost_per_million, output_cost_per_million)
MODEL_COSTS: dict[str, tuple[float, float]] = {
    "claude-opus-4-5-20251101": (15.00, 75.00),
    "claude-sonnet-4-5-20250929": (3.00, 15.00),
    "claude-sonnet-4-20250514": (3.00, 15.00),
    "claude-opus-4-20250514": (15.00, 75.00),
    "claude-3-5-haiku-20241022": (0.80, 4.00),
    "gpt-4o": (2.50, 10.00),
    "gpt-4o-mini": (0.15, 0.60),
    "gpt-4.1": (2.00, 8.00),
    "gpt-4.1-mini": (0.40, 1.60),
}


def get_model_cost(model: str) -> tuple[float, float]:
    """Get cost per million tokens for a model.

    Args:
        model: Model name/ID.

    Returns:
        Tuple of (input_cost_per_million, output_cost_per_million).
    """
    if model in MODEL_COSTS:
        return MODEL_COSTS[model]

    for key, costs in MODEL_COSTS.items():
        if model.startswith(key) or key.startswith(model):
            return costs

    logger.warning("Unknown model cost, using default", model=model)
    return (2.00, 10.00)


def calculate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """Calculate cost in USD for token usage."""
    input_cost_per_m, output_cost_per_m = get_model_cost(model)
    return (input_tokens / 1_000_000) * input_cost_per_m + (
        output_tokens / 1_000_000
    ) * output_cost_per_m


@dataclass
class UsageRecord:
    """Record of a single reasoning call."""

    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    cost_usd: float
    stage: str


@dataclass
class BudgetTracker:
    """Tracks token usage and costs across a run."""

    budget_limit: float

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0

    by_provider: dict[str, float] = field(default_factory=dict)
    by_stage: dict[str, float] = field(default_factory=dict)
    by_model: dict[str, float] = field(default_factory=dict)

    records: list[UsageRecord] = field(default_factory=list)

    def record_usage(
        self,
        provider: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        stage: str,
    ) -> float:
        """Record token usage and return the cost of this call in USD."""
        cost = calculate_cost(model, input_tokens, output_tokens)

        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self.total_cost_usd += cost

        self.by_provider[provider] = self.by_provider.get(provider, 0.0) + cost
        self.by_stage[stage] = self.by_stage.get(stage, 0.0) + cost
        self.by_model[model] = self.by_model.get(model, 0.0) + cost

        self.records.append(
            UsageRecord(
                provider=provider,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_usd=cost,
                stage=stage,
            )
        )

        logger.debug(
            "Recorded usage",
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=f"${cost:.4f}",
            total=f"${self.total_cost_usd:.4f}",
        )
        return cost

    def get_remaining(self) -> float:
        """Get remaining budget in USD."""
        return self.budget_limit - self.total_cost_usd

    def is_exceeded(self) -> bool:
        """Check if budget is exceeded."""
        return self.total_cost_usd > self.budget_limit

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for JSON."""
        return {
            "budget_limit": self.budget_limit,
            "total_cost_usd": self.total_cost_usd,
            "remaining": self.get_remaining(),
            "exceeded": self.is_exceeded(),
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "by_provider": dict(self.by_provider),
            "by_stage": dict(self.by_stage),
            "by_model": dict(self.by_model),
            "calls": len(self.records),
        }
