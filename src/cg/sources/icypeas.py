"""
Icypeas contact enrichment.

An email search is submitted per person and then read back until it
settles. Requests are throttled client-side to stay under the provider's
10 requests/second limit, and HTTP 429 responses are retried after the
advertised Retry-After delay.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Any

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cg.exceptions import DataFetchError
from cg.logging import get_logger
from cg.normalize.domains import domain_for_company
from cg.sources.enrichment import enrich_candidates
from cg.sources.poller import JobPoller, JobStatus
from cg.types import Candidate, EnrichedLead

logger = get_logger(__name__)

MIN_REQUEST_INTERVAL = 0.1

FOUND_STATES = {"FOUND", "DEBITED"}
NOT_FOUND_STATES = {"NOT_FOUND", "DEBITED_NOT_FOUND"}
PENDING_STATES = {"NONE", "SCHEDULED", "IN_PROGRESS"}


class IcypeasRateLimited(Exception):
    """HTTP 429 from Icypeas."""

    def __init__(self, retry_after: float | None = None) -> None:
        super().__init__("Icypeas rate limit exceeded")
        self.retry_after = retry_after


_backoff = wait_exponential(multiplier=2, min=2, max=30)


def _wait_retry_after(retry_state: RetryCallState) -> float:
    """Honour Retry-After when the provider sends one."""
    delay = _backoff(retry_state)
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    if isinstance(exc, IcypeasRateLimited) and exc.retry_after:
        return max(delay, exc.retry_after)
    return delay


class Throttle:
    """Enforces a minimum interval between requests."""

    def __init__(self, min_interval: float) -> None:
        self.min_interval = min_interval
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            if self._last is not None:
                wait = self.min_interval - (loop.time() - self._last)
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last = loop.time()


def lookup_domain(candidate: Candidate) -> str | None:
    """Domain (or company name) to search an address at."""
    return candidate.company_domain or domain_for_company(candidate.company)


class IcypeasEnricher:
    """Finds verified email addresses for candidates."""

    name = "icypeas"

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://app.icypeas.com/api",
        poller: JobPoller | None = None,
        client: httpx.AsyncClient | None = None,
        min_request_interval: float = MIN_REQUEST_INTERVAL,
    ) -> None:
        """Initialize the enricher.

        Args:
            api_key: Icypeas API key.
            api_url: API base URL.
            poller: Poller for search results (10 checks, 1 second apart by default).
            client: Pre-built HTTP client (tests inject a mock transport).
            min_request_interval: Minimum seconds between requests.
        """
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._poller = poller or JobPoller(max_attempts=10, interval_seconds=1.0, sleep_first=True)
        self._client = client
        self._throttle = Throttle(min_request_interval)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type(IcypeasRateLimited),
        wait=_wait_retry_after,
        stop=stop_after_attempt(4),
        reraise=True,
    )
    async def _request(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        await self._throttle.acquire()
        client = await self._get_client()
        response = await client.post(
            f"{self._api_url}{endpoint}",
            json=body,
            headers={"Authorization": self._api_key, "Content-Type": "application/json"},
        )

        if response.status_code == 429:
            retry_after = response.headers.get("retry-after")
            logger.warning("Icypeas rate limited", retry_after=retry_after)
            raise IcypeasRateLimited(float(retry_after) if retry_after else None)
        if response.status_code >= 400:
            raise DataFetchError(
                f"Icypeas API error ({response.status_code})",
                context={"endpoint": endpoint, "body": response.text[:500]},
            )
        data = response.json()
        return data if isinstance(data, dict) else {}

    async def submit(self, first_name: str, last_name: str, domain_or_company: str) -> str | None:
        """Start an email search; returns the search id."""
        data = await self._request(
            "/email-search",
            {"firstname": first_name, "lastname": last_name, "domainOrCompany": domain_or_company},
        )
        search_id = (data.get("item") or {}).get("_id")
        return str(search_id) if search_id else None

    async def check(self, search_id: str) -> JobStatus[str | None]:
        """Read a search back and classify its state."""
        data = await self._request("/bulk-single-searchs/read", {"id": search_id})
        items = data.get("items") or []
        if not items:
            return JobStatus.pending("No item in poll response")

        item = items[0]
        status = str(item.get("status") or "")
        if status in FOUND_STATES:
            emails = (item.get("results") or {}).get("emails") or []
            email = emails[0].get("email") if emails and isinstance(emails[0], dict) else None
            return JobStatus.complete(email or None)
        if status in NOT_FOUND_STATES:
            return JobStatus.complete(None)
        if status in PENDING_STATES:
            return JobStatus.pending(status)
        return JobStatus.failed(f"Unknown status {status!r}")

    async def enrich(self, candidate: Candidate) -> str | None:
        """Find a verified address for one candidate.

        Returns None when no address is found, the lookup times out, or the
        provider errors.
        """
        domain = lookup_domain(candidate)
        if not domain or not (candidate.first_name or candidate.last_name):
            logger.debug("Skipping enrichment without name or domain", candidate=candidate.identity)
            return None

        try:
            search_id = await self.submit(candidate.first_name, candidate.last_name, domain)
        except (DataFetchError, IcypeasRateLimited, httpx.HTTPError, ValueError) as e:
            logger.warning("Email search failed", candidate=candidate.identity, error=str(e))
            return None

        if not search_id:
            logger.warning("No search id returned", candidate=candidate.identity, domain=domain)
            return None

        outcome = await self._poller.poll(lambda: self.check(search_id), label=f"icypeas:{search_id}")
        if not outcome.completed:
            logger.debug(
                "Email search unresolved",
                candidate=candidate.identity,
                status=outcome.status.value,
                message=outcome.message,
            )
            return None
        return outcome.payload

    async def enrich_batch(
        self, candidates: Sequence[Candidate], concurrency: int = 10
    ) -> list[EnrichedLead]:
        """Enrich candidates in concurrent sub-batches; keep only hits."""
        return await enrich_candidates(self, candidates, concurrency)
