"""
Tests for the bounded job poller.
"""

from __future__ import annotations

from typing import Any

import pytest

from cg.sources.poller import JobPoller, JobStatus, PollStatus


def scripted(*statuses: Any):
    """Status check returning the given answers in order (last one repeats)."""
    calls = {"n": 0}

    async def check() -> JobStatus[Any]:
        index = min(calls["n"], len(statuses) - 1)
        calls["n"] += 1
        status = statuses[index]
        if isinstance(status, Exception):
            raise status
        return status

    check.calls = calls  # type: ignore[attr-defined]
    return check


class TestJobPoller:
    """Tests for JobPoller.poll."""

    @pytest.mark.asyncio
    async def test_completes_after_pending_checks(self, fake_clock: Any) -> None:
        """Test payload is returned once the job completes."""
        poller = JobPoller(max_attempts=15, interval_seconds=30, sleep=fake_clock.sleep, clock=fake_clock)

        outcome = await poller.poll(
            scripted(JobStatus.pending(), JobStatus.pending(), JobStatus.complete({"rows": 3}))
        )

        assert outcome.status == PollStatus.COMPLETE
        assert outcome.completed
        assert outcome.payload == {"rows": 3}
        assert outcome.attempts == 3
        assert fake_clock.sleeps == [30, 30]
        assert outcome.elapsed_seconds == 60

    @pytest.mark.asyncio
    async def test_sleep_first_waits_before_first_check(self, fake_clock: Any) -> None:
        poller = JobPoller(
            max_attempts=3, interval_seconds=30, sleep_first=True, sleep=fake_clock.sleep, clock=fake_clock
        )

        outcome = await poller.poll(scripted(JobStatus.complete("done")))

        assert outcome.completed
        assert fake_clock.sleeps == [30]

    @pytest.mark.asyncio
    async def test_per_call_sleep_first_override(self, fake_clock: Any) -> None:
        """Test a later page can skip the initial wait."""
        poller = JobPoller(
            max_attempts=3, interval_seconds=30, sleep_first=True, sleep=fake_clock.sleep, clock=fake_clock
        )

        await poller.poll(scripted(JobStatus.complete("done")), sleep_first=False)

        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_times_out_within_budget(self, fake_clock: Any) -> None:
        """Test a job that never finishes stops after max_attempts checks."""
        poller = JobPoller(max_attempts=15, interval_seconds=30, sleep=fake_clock.sleep, clock=fake_clock)
        check = scripted(JobStatus.pending("Scraping page 1"))

        outcome = await poller.poll(check, label="search")

        assert outcome.status == PollStatus.TIMED_OUT
        assert outcome.timed_out
        assert outcome.attempts == 15
        assert check.calls["n"] == 15
        assert sum(fake_clock.sleeps) <= poller.budget_seconds == 450
        assert outcome.message == "Scraping page 1"

    @pytest.mark.asyncio
    async def test_error_is_not_retried(self, fake_clock: Any) -> None:
        poller = JobPoller(max_attempts=5, interval_seconds=1, sleep=fake_clock.sleep, clock=fake_clock)
        check = scripted(JobStatus.failed("LinkedIn blocked"), JobStatus.complete("late"))

        outcome = await poller.poll(check)

        assert outcome.status == PollStatus.ERROR
        assert outcome.message == "LinkedIn blocked"
        assert outcome.attempts == 1
        assert check.calls["n"] == 1

    @pytest.mark.asyncio
    async def test_raising_check_counts_as_pending(self, fake_clock: Any) -> None:
        """Test a transient status-check failure does not end polling."""
        poller = JobPoller(max_attempts=3, interval_seconds=1, sleep=fake_clock.sleep, clock=fake_clock)

        outcome = await poller.poll(scripted(RuntimeError("connection reset"), JobStatus.complete(7)))

        assert outcome.completed
        assert outcome.payload == 7
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_timeout_message_defaults_to_label(self, fake_clock: Any) -> None:
        poller = JobPoller(max_attempts=2, interval_seconds=0, sleep=fake_clock.sleep, clock=fake_clock)

        outcome = await poller.poll(scripted(JobStatus.pending()), label="icypeas:s1")

        assert outcome.timed_out
        assert "icypeas:s1" in outcome.message

    def test_rejects_invalid_limits(self) -> None:
        with pytest.raises(ValueError):
            JobPoller(max_attempts=0, interval_seconds=1)
        with pytest.raises(ValueError):
            JobPoller(max_attempts=1, interval_seconds=-1)
