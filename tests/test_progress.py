"""
Tests for the progress tracker, channel and run reporter.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from cg.coordinator.progress import ProgressChannel, ProgressTracker, RunReporter
from cg.types import PipelineRun, ProgressEvent, ProgressRecord, RunStatus, StageName


def event(
    key: str = "acme.com",
    status: RunStatus = RunStatus.ANALYZING_COMPANY,
    percentage: int = 15,
    message: str = "Analyzing",
) -> ProgressEvent:
    return ProgressEvent(
        subject_key=key, run_id="run_1", status=status, percentage=percentage, message=message
    )


def record(status: RunStatus = RunStatus.ANALYZING_COMPANY, percentage: int = 15) -> ProgressRecord:
    return ProgressRecord.from_event(event(status=status, percentage=percentage))


class TestProgressTracker:
    """Tests for the keyed progress store."""

    def test_update_replaces_record(self, fake_clock: Any) -> None:
        tracker = ProgressTracker(ttl_seconds=60, clock=fake_clock)

        tracker.update("acme.com", record(percentage=10))
        tracker.update("acme.com", record(percentage=30))

        current = tracker.read("acme.com")
        assert current is not None
        assert current.percentage == 30
        assert len(tracker) == 1

    def test_unknown_key(self, fake_clock: Any) -> None:
        assert ProgressTracker(clock=fake_clock).read("nobody.com") is None

    def test_records_expire_after_ttl(self, fake_clock: Any) -> None:
        tracker = ProgressTracker(ttl_seconds=60, clock=fake_clock)
        tracker.update("acme.com", record())

        fake_clock.now = 59.9
        assert tracker.read("acme.com") is not None

        fake_clock.now = 60.0
        assert tracker.read("acme.com") is None
        assert len(tracker) == 0

    def test_update_refreshes_ttl(self, fake_clock: Any) -> None:
        tracker = ProgressTracker(ttl_seconds=60, clock=fake_clock)
        tracker.update("acme.com", record())

        fake_clock.now = 50
        tracker.update("acme.com", record(percentage=40))
        fake_clock.now = 100

        assert tracker.read("acme.com") is not None

    def test_purge_expired(self, fake_clock: Any) -> None:
        tracker = ProgressTracker(ttl_seconds=60, clock=fake_clock)
        tracker.update("a.com", record())
        fake_clock.now = 30
        tracker.update("b.com", record())

        fake_clock.now = 70
        assert tracker.purge_expired() == 1
        assert tracker.read("b.com") is not None

    def test_terminal_record_evicted_on_read(self, fake_clock: Any) -> None:
        """Test a finished run is handed out once to a poller that evicts."""
        tracker = ProgressTracker(clock=fake_clock)
        tracker.update("acme.com", record(status=RunStatus.COMPLETE, percentage=100))

        first = tracker.read("acme.com", evict_terminal=True)
        assert first is not None
        assert first.status == RunStatus.COMPLETE
        assert tracker.read("acme.com") is None

    def test_running_record_survives_evicting_read(self, fake_clock: Any) -> None:
        tracker = ProgressTracker(clock=fake_clock)
        tracker.update("acme.com", record())

        assert tracker.read("acme.com", evict_terminal=True) is not None
        assert tracker.read("acme.com") is not None

    def test_evict(self, fake_clock: Any) -> None:
        tracker = ProgressTracker(clock=fake_clock)
        tracker.update("acme.com", record())

        assert tracker.evict("acme.com") is True
        assert tracker.evict("acme.com") is False

    def test_handle_stores_event(self, fake_clock: Any) -> None:
        tracker = ProgressTracker(clock=fake_clock)
        tracker.handle(event(message="Building personas"))

        current = tracker.read("acme.com")
        assert current is not None
        assert current.message == "Building personas"
        assert current.to_dict()["status"] == "analyzing_company"


class TestProgressChannel:
    """Tests for event fan-out."""

    def test_sinks_receive_events(self) -> None:
        tracker = ProgressTracker()
        channel = ProgressChannel([tracker])

        channel.publish(event())

        assert tracker.read("acme.com") is not None

    def test_failing_sink_does_not_block_others(self) -> None:
        class Broken:
            def handle(self, event: ProgressEvent) -> None:
                raise RuntimeError("sink down")

        tracker = ProgressTracker()
        channel = ProgressChannel([Broken(), tracker])

        channel.publish(event())

        assert tracker.read("acme.com") is not None

    @pytest.mark.asyncio
    async def test_keyed_subscription_ends_after_terminal_event(self) -> None:
        channel = ProgressChannel()
        subscription = channel.subscribe("acme.com")

        channel.publish(event(percentage=10))
        channel.publish(event(key="other.com"))
        channel.publish(event(status=RunStatus.COMPLETE, percentage=100))
        channel.publish(event(percentage=5))

        received = [e async for e in subscription]

        assert [e.percentage for e in received] == [10, 100]
        assert all(e.subject_key == "acme.com" for e in received)

    @pytest.mark.asyncio
    async def test_subscription_registered_before_iteration(self) -> None:
        """Test events published before the first await are not lost."""
        channel = ProgressChannel()
        subscription = channel.subscribe()
        channel.publish(event(percentage=1))
        channel.close()

        received = [e async for e in subscription]

        assert [e.percentage for e in received] == [1]

    @pytest.mark.asyncio
    async def test_close_ends_waiting_subscribers(self) -> None:
        channel = ProgressChannel()
        subscription = channel.subscribe()

        async def drain() -> list[ProgressEvent]:
            return [e async for e in subscription]

        task = asyncio.create_task(drain())
        await asyncio.sleep(0)
        channel.close()

        assert await asyncio.wait_for(task, timeout=1) == []

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self) -> None:
        channel = ProgressChannel()
        subscription = channel.subscribe()
        subscription.close()

        channel.publish(event())

        assert subscription.queue.empty()


class TestRunReporter:
    """Tests for per-run progress publishing."""

    def test_percentage_never_decreases(self) -> None:
        tracker = ProgressTracker()
        run = PipelineRun.create("acme.com")
        reporter = RunReporter(ProgressChannel([tracker]), run)

        reporter.emit(RunStatus.ANALYZING_COMPANY, 30, "Profiled")
        late = reporter.emit(RunStatus.FINDING_LEADS, 5, "Early lead search")

        assert late.percentage == 30
        current = tracker.read("acme.com")
        assert current is not None
        assert current.percentage == 30
        assert current.status == RunStatus.FINDING_LEADS

    def test_percentage_capped_at_100(self) -> None:
        reporter = RunReporter(None, PipelineRun.create("acme.com"))
        assert reporter.emit(RunStatus.COMPLETE, 140, "Done").percentage == 100

    def test_insights_accumulate(self) -> None:
        reporter = RunReporter(None, PipelineRun.create("acme.com"))

        reporter.emit(RunStatus.ANALYZING_COMPANY, 30, "a", insights={"company_profile": {"name": "Acme"}})
        latest = reporter.emit(RunStatus.ANALYZING_COMPANY, 40, "b", insights={"personas": []})

        assert set(latest.insights) == {"company_profile", "personas"}
        assert set(reporter.insights) == {"company_profile", "personas"}

    def test_updates_run_state(self) -> None:
        run = PipelineRun.create("acme.com", run_id="run_fixed")
        reporter = RunReporter(None, run)

        emitted = reporter.emit(
            RunStatus.ANALYZING_COMPANY, 15, "Profiling", stage=StageName.COMPANY_PROFILE
        )
        reporter.emit(RunStatus.ANALYZING_COMPANY, 30, "Profiled")

        assert emitted.run_id == "run_fixed"
        assert run.status == RunStatus.ANALYZING_COMPANY
        assert run.current_stage == StageName.COMPANY_PROFILE
