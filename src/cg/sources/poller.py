"""
Bounded polling of external asynchronous jobs.

The poller asks a status callable on a fixed interval until the job
completes, fails, or the attempt budget runs out. It never raises: every
call ends in a tagged PollOutcome. A status check that raises is logged
and counted as a pending attempt. Error and timeout outcomes are not
retried here; that policy belongs to the caller.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from cg.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class JobState(str, Enum):
    """State reported by one status check."""

    PENDING = "pending"
    COMPLETE = "complete"
    ERROR = "error"


class PollStatus(str, Enum):
    """Final outcome of a polling run."""

    COMPLETE = "complete"
    ERROR = "error"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class JobStatus(Generic[T]):
    """Answer from one status check."""

    state: JobState
    payload: T | None = None
    message: str = ""

    @classmethod
    def pending(cls, message: str = "") -> JobStatus[Any]:
        return cls(state=JobState.PENDING, message=message)

    @classmethod
    def complete(cls, payload: T) -> JobStatus[T]:
        return cls(state=JobState.COMPLETE, payload=payload)

    @classmethod
    def failed(cls, message: str) -> JobStatus[Any]:
        return cls(state=JobState.ERROR, message=message)


@dataclass(frozen=True)
class PollOutcome(Generic[T]):
    """Tagged result of a polling run."""

    status: PollStatus
    payload: T | None = None
    message: str = ""
    attempts: int = 0
    elapsed_seconds: float = 0.0

    @property
    def completed(self) -> bool:
        return self.status == PollStatus.COMPLETE

    @property
    def timed_out(self) -> bool:
        return self.status == PollStatus.TIMED_OUT


class JobPoller:
    """Fixed-interval, bounded-attempt job poller.

    Total waiting time is bounded by ``max_attempts * interval_seconds``.

    Args:
        max_attempts: Status checks before giving up.
        interval_seconds: Delay between checks.
        sleep_first: Wait one interval before the first check (for jobs
            that are known not to finish immediately).
        sleep: Sleep coroutine, injectable for tests.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        max_attempts: int,
        interval_seconds: float,
        sleep_first: bool = False,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval_seconds < 0:
            raise ValueError("interval_seconds must not be negative")
        self.max_attempts = max_attempts
        self.interval_seconds = interval_seconds
        self.sleep_first = sleep_first
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic

    @property
    def budget_seconds(self) -> float:
        """Upper bound on time spent waiting between checks."""
        return self.max_attempts * self.interval_seconds

    async def poll(
        self,
        check: Callable[[], Awaitable[JobStatus[T]]],
        label: str = "job",
        sleep_first: bool | None = None,
    ) -> PollOutcome[T]:
        """Poll until the job completes, fails, or attempts run out.

        Args:
            check: Coroutine function returning the job's current status.
            label: Name used in log messages.
            sleep_first: Override the poller's sleep_first for this call.

        Returns:
            PollOutcome tagged complete, error or timed_out.
        """
        wait_before_first = self.sleep_first if sleep_first is None else sleep_first
        started = self._clock()
        last_message = ""

        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1 or wait_before_first:
                await self._sleep(self.interval_seconds)

            try:
                status = await check()
            except Exception as e:
                last_message = str(e)
                logger.warning(
                    "Status check failed, treating as pending",
                    job=label,
                    attempt=attempt,
                    error=last_message,
                )
                continue

            if status.state == JobState.COMPLETE:
                logger.debug("Job completed", job=label, attempt=attempt)
                return PollOutcome(
                    status=PollStatus.COMPLETE,
                    payload=status.payload,
                    attempts=attempt,
                    elapsed_seconds=self._clock() - started,
                )

            if status.state == JobState.ERROR:
                logger.warning("Job reported an error", job=label, attempt=attempt, error=status.message)
                return PollOutcome(
                    status=PollStatus.ERROR,
                    message=status.message,
                    attempts=attempt,
                    elapsed_seconds=self._clock() - started,
                )

            last_message = status.message or last_message

        elapsed = self._clock() - started
        logger.warning(
            "Job polling timed out",
            job=label,
            attempts=self.max_attempts,
            elapsed_seconds=round(elapsed, 1),
        )
        return PollOutcome(
            status=PollStatus.TIMED_OUT,
            message=last_message or f"{label} did not complete after {self.max_attempts} checks",
            attempts=self.max_attempts,
            elapsed_seconds=elapsed,
        )
