"""
Candidate source interface.

Both people-search variants (synchronous paginated and asynchronous job)
answer `search(filters, limit, page)` with a CandidatePage. Failures are
reported on the page rather than raised, so the enrichment loop can stop
cleanly and the pipeline can fall back.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol, runtime_checkable

from cg.types import Candidate, FilterSet


class SearchStatus(str, Enum):
    """Outcome of one candidate search call."""

    COMPLETE = "complete"
    TIMED_OUT = "timed_out"
    ERROR = "error"


@dataclass(frozen=True)
class CandidatePage:
    """One page of candidates from a people-search provider.

    Attributes:
        candidates: People on this page.
        total_available: Total matches reported by the provider.
        total_pages: Page count reported by the provider, if known.
        status: Whether the call completed, timed out or failed.
        message: Explanation for timed-out or failed calls.
    """

    candidates: tuple[Candidate, ...] = ()
    total_available: int = 0
    total_pages: int | None = None
    status: SearchStatus = SearchStatus.COMPLETE
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == SearchStatus.COMPLETE

    @classmethod
    def timed_out(cls, message: str) -> CandidatePage:
        return cls(status=SearchStatus.TIMED_OUT, message=message)

    @classmethod
    def error(cls, message: str) -> CandidatePage:
        return cls(status=SearchStatus.ERROR, message=message)


@runtime_checkable
class CandidateSource(Protocol):
    """People-search provider."""

    name: str
    max_page_size: int

    async def search(self, filters: FilterSet, limit: int, page: int = 0) -> CandidatePage:
        """Fetch one page of candidates matching the filters."""
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class ContactEnricher(Protocol):
    """Contact-detail provider."""

    name: str

    async def enrich(self, candidate: Candidate) -> str | None:
        """Return a verified address for the candidate, or None if not found."""
        ...

    async def close(self) -> None:
        ...
