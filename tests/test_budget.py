"""
Tests for the budget tracker.
"""

from __future__ import annotations

import pytest

from cg.budget import BudgetTracker, calculate_cost, get_model_cost


class TestCostCalculation:
    """Test cost calculation functions."""

    def test_get_model_cost_known_model(self) -> None:
        """Test getting cost for known models."""
        assert get_model_cost("claude-sonnet-4-5-20250929") == (3.00, 15.00)
        assert get_model_cost("gpt-4o-mini") == (0.15, 0.60)

    def test_get_model_cost_unknown_model(self) -> None:
        """Test getting cost for unknown model returns default."""
        assert get_model_cost("unknown-model-xyz") == (2.00, 10.00)

    def test_calculate_cost(self) -> None:
        """Test cost calculation."""
        # 1M tokens each at sonnet rates ($3 input, $15 output)
        cost = calculate_cost("claude-sonnet-4-5-20250929", 1_000_000, 1_000_000)
        assert cost == pytest.approx(18.0)

        cost = calculate_cost("claude-sonnet-4-5-20250929", 1000, 500)
        assert cost == pytest.approx(0.0105)


class TestBudgetTracker:
    """Test BudgetTracker class."""

    def test_record_usage(self) -> None:
        """Test recording usage."""
        tracker = BudgetTracker(budget_limit=5.0)

        cost = tracker.record_usage(
            provider="anthropic",
            model="claude-sonnet-4-5-20250929",
            input_tokens=100_000,
            output_tokens=10_000,
            stage="company_profile",
        )

        assert cost == pytest.approx(0.45)
        assert tracker.total_cost_usd == cost
        assert tracker.total_input_tokens == 100_000
        assert tracker.by_stage == {"company_profile": cost}
        assert len(tracker.records) == 1

    def test_usage_grouped_by_stage_and_provider(self) -> None:
        """Test per-stage and per-provider totals."""
        tracker = BudgetTracker(budget_limit=5.0)
        tracker.record_usage("openai", "gpt-4o", 1000, 100, stage="personas")
        tracker.record_usage("openai", "gpt-4o", 1000, 100, stage="content")
        tracker.record_usage("anthropic", "claude-sonnet-4-5-20250929", 1000, 100, stage="content")

        assert set(tracker.by_stage) == {"personas", "content"}
        assert set(tracker.by_provider) == {"openai", "anthropic"}
        assert tracker.to_dict()["calls"] == 3

    def test_is_exceeded(self) -> None:
        """Test budget exceeded detection."""
        tracker = BudgetTracker(budget_limit=0.01)
        assert not tracker.is_exceeded()

        tracker.record_usage("openai", "gpt-4o", 100_000, 10_000, stage="ranking")

        assert tracker.is_exceeded()
        assert tracker.get_remaining() < 0
        assert tracker.to_dict()["exceeded"] is True
