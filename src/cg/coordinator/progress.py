"""
Progress reporting for pipeline runs.

The pipeline never talks to the tracker directly. It publishes
ProgressEvents on a ProgressChannel; sinks (the ProgressTracker) and async
subscribers (the CLI progress display) read from the channel.

ProgressTracker is the only shared mutable state in the process: a keyed
map of the latest ProgressRecord per subject key. Every update is a single
replace of the whole record, last writer wins, and records expire after a
TTL. Terminal records are also dropped once read by a poller (see
`read(..., evict_terminal=True)`).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any, Protocol

from cg.logging import get_logger
from cg.types import (
    CampaignResult,
    PipelineRun,
    ProgressEvent,
    ProgressRecord,
    RunStatus,
    StageName,
)

logger = get_logger(__name__)


class ProgressSink(Protocol):
    """Synchronous consumer of progress events."""

    def handle(self, event: ProgressEvent) -> None:
        ...


class ProgressTracker:
    """Keyed store of the latest progress record per subject key."""

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            ttl_seconds: Lifetime of a record after its last update.
            clock: Monotonic clock, injectable for tests.
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock or time.monotonic
        self._records: dict[str, tuple[ProgressRecord, float]] = {}

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._records)

    def update(self, key: str, record: ProgressRecord) -> None:
        """Replace the record for a key."""
        self._records[key] = (record, self._clock() + self.ttl_seconds)

    def read(self, key: str, evict_terminal: bool = False) -> ProgressRecord | None:
        """Latest record for a key, or None if absent or expired.

        Args:
            key: Subject key.
            evict_terminal: Drop the record after returning it if the run
                has finished.
        """
        entry = self._records.get(key)
        if entry is None:
            return None

        record, expires_at = entry
        if self._clock() >= expires_at:
            self._records.pop(key, None)
            return None

        if evict_terminal and record.status.is_terminal:
            self._records.pop(key, None)
        return record

    def evict(self, key: str) -> bool:
        """Remove a key; returns whether it was present."""
        return self._records.pop(key, None) is not None

    def purge_expired(self) -> int:
        """Drop all expired records; returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, expires_at) in self._records.items() if now >= expires_at]
        for key in expired:
            del self._records[key]
        return len(expired)

    def handle(self, event: ProgressEvent) -> None:
        """Channel sink: store the event as the key's current record."""
        self.update(event.subject_key, ProgressRecord.from_event(event))


class ProgressChannel:
    """Fan-out of progress events to sinks and subscribers."""

    def __init__(self, sinks: list[ProgressSink] | None = None) -> None:
        self._sinks: list[ProgressSink] = list(sinks or [])
        self._subscribers: list[tuple[str | None, asyncio.Queue[ProgressEvent | None]]] = []

    def publish(self, event: ProgressEvent) -> None:
        """Deliver an event to every sink and matching subscriber."""
        for sink in self._sinks:
            try:
                sink.handle(event)
            except Exception as e:
                logger.error("Progress sink failed", sink=type(sink).__name__, error=str(e))

        for key, queue in list(self._subscribers):
            if key is None or key == event.subject_key:
                queue.put_nowait(event)

    def subscribe(self, subject_key: str | None = None) -> Subscription:
        """Start receiving events, optionally for one subject key.

        The subscription is registered immediately, so no event published
        after this call is missed.
        """
        subscription = Subscription(self, subject_key)
        self._subscribers.append((subject_key, subscription.queue))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        entry = (subscription.subject_key, subscription.queue)
        if entry in self._subscribers:
            self._subscribers.remove(entry)

    def close(self) -> None:
        """End every open subscription."""
        for _, queue in self._subscribers:
            queue.put_nowait(None)


class Subscription:
    """Async iterator over a channel's events.

    For a specific key the iteration ends after that key's terminal event.
    """

    def __init__(self, channel: ProgressChannel, subject_key: str | None = None) -> None:
        self.channel = channel
        self.subject_key = subject_key
        self.queue: asyncio.Queue[ProgressEvent | None] = asyncio.Queue()
        self._finished = False

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ProgressEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self.queue.get()
        if event is None:
            self.close()
            raise StopAsyncIteration
        if self.subject_key is not None and event.status.is_terminal:
            self.close()
        return event

    def close(self) -> None:
        """Stop receiving events."""
        self._finished = True
        self.channel.unsubscribe(self)


class RunReporter:
    """Publishes progress for one run.

    Keeps the percentage non-decreasing and accumulates insights so every
    record carries the partial results produced so far.
    """

    def __init__(self, channel: ProgressChannel | None, run: PipelineRun) -> None:
        self._channel = channel
        self._run = run
        self._percentage = 0
        self._insights: dict[str, Any] = {}

    @property
    def percentage(self) -> int:
        return self._percentage

    @property
    def insights(self) -> dict[str, Any]:
        return dict(self._insights)

    def emit(
        self,
        status: RunStatus,
        percentage: int,
        message: str,
        stage: StageName | None = None,
        insights: dict[str, Any] | None = None,
        result: CampaignResult | None = None,
        error: str | None = None,
    ) -> ProgressEvent:
        self._percentage = max(self._percentage, min(100, percentage))
        if insights:
            self._insights.update(insights)

        run = self._run
        run.status = status
        if stage is not None:
            run.current_stage = stage

        event = ProgressEvent(
            subject_key=run.subject_key,
            run_id=run.run_id,
            status=status,
            percentage=self._percentage,
            message=message,
            current_stage=run.current_stage,
            stage_results=tuple(run.stage_results),
            insights=dict(self._insights),
            result=result,
            error=error,
        )
        logger.debug("Progress", status=status.value, percentage=self._percentage, message=message)
        if self._channel is not None:
            self._channel.publish(event)
        return event
