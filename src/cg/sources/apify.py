"""
LinkedIn Sales Navigator search through an Apify scraper actor.

This is the asynchronous-job variant: submitting a search URL yields a
request id, and the results become available minutes later. Each status
check is a synchronous actor run, so checks are spaced far apart.
Later pages of the same search reuse the request id.
"""

from __future__ import annotations

import math
from typing import Any

import httpx

from cg.exceptions import SourceError
from cg.logging import get_logger
from cg.normalize.filters import build_sales_navigator_url
from cg.sources.base import CandidatePage
from cg.sources.poller import JobPoller, JobStatus
from cg.types import Candidate, FilterSet, as_list

logger = get_logger(__name__)

APIFY_API_BASE = "https://api.apify.com/v2"

_PENDING_STATES = {"processing", "pending", "queued", "running"}
_ERROR_STATES = {"error", "failed"}


def parse_lead(item: dict[str, Any]) -> Candidate:
    """Normalize one scraped Sales Navigator lead into a Candidate."""
    def text(key: str) -> str:
        value = item.get(key)
        return str(value).strip() if value else ""

    return Candidate(
        first_name=text("first_name"),
        last_name=text("last_name"),
        full_name=text("full_name"),
        title=text("job_title"),
        company=text("company"),
        company_id=text("company_id"),
        company_domain=text("company_domain"),
        location=text("location"),
        about=text("about"),
        headline=text("headline"),
        profile_url=text("linkedin_url"),
        profile_id=text("profile_id"),
        current_company=text("current_company"),
        current_title=text("current_title"),
    )


class SalesNavigatorJobSearch:
    """Sales Navigator people search run as a scraper job."""

    name = "sales_navigator"
    max_page_size = 100

    def __init__(
        self,
        token: str,
        poller: JobPoller,
        actor_id: str = "freshdata~linkedin-sales-navigator-scraper",
        api_base: str = APIFY_API_BASE,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the search.

        Args:
            token: Apify API token.
            poller: Poller bounding the wait for results.
            actor_id: Scraper actor, ``user~name`` form.
            api_base: Apify API base URL.
            client: Pre-built HTTP client (tests inject a mock transport).
        """
        self._token = token
        self._poller = poller
        self._actor_url = f"{api_base}/acts/{actor_id}/run-sync-get-dataset-items"
        self._client = client
        self._request_ids: dict[str, str] = {}
        self._page_sizes: dict[str, int] = {}
        self.last_search_url: str | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=120.0)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _run_actor(self, actor_input: dict[str, Any]) -> dict[str, Any]:
        """Run the actor synchronously and return its first dataset item."""
        client = await self._get_client()
        response = await client.post(
            self._actor_url,
            params={"token": self._token},
            json=actor_input,
        )
        if response.status_code >= 400:
            raise SourceError(
                f"Apify actor error: {response.status_code}",
                context={"status": response.status_code, "body": response.text[:500]},
            )
        items = response.json()
        if not isinstance(items, list) or not items or not isinstance(items[0], dict):
            raise SourceError("Apify actor returned no items")
        return items[0]

    async def submit(self, search_url: str, limit: int) -> str:
        """Start a scrape and return its request id.

        Raises:
            SourceError: If the actor fails or returns no request id.
        """
        item = await self._run_actor({"sales_url": search_url, "limit": limit})
        request_id = item.get("request_id")
        if not request_id:
            raise SourceError(
                "No request_id returned from search",
                context={"message": item.get("message")},
            )
        logger.info("Sales Navigator search submitted", request_id=request_id, limit=limit)
        return str(request_id)

    async def check(self, request_id: str, page: int = 1) -> JobStatus[dict[str, Any]]:
        """Fetch one page of a submitted search (1-based pages)."""
        item = await self._run_actor({"request_id": request_id, "page": page})
        status = str(item.get("status") or "").lower()

        if status in _ERROR_STATES:
            return JobStatus.failed(str(item.get("message") or "Search failed"))
        if status in _PENDING_STATES:
            return JobStatus.pending(str(item.get("message") or status))
        if item.get("data"):
            return JobStatus.complete(item)
        return JobStatus.pending("Waiting for results...")

    async def search(self, filters: FilterSet, limit: int, page: int = 0) -> CandidatePage:
        """Fetch one page of candidates, submitting the search on first use.

        Args:
            filters: Targeting criteria.
            limit: Results requested from the scraper.
            page: 0-based page index.

        Returns:
            CandidatePage; timed out or error status instead of raising.
        """
        key = filters.cache_key()
        request_id = self._request_ids.get(key)
        first_page = request_id is None

        if request_id is None:
            search_url = build_sales_navigator_url(filters)
            self.last_search_url = search_url
            try:
                request_id = await self.submit(search_url, limit)
            except (SourceError, httpx.HTTPError, ValueError) as e:
                logger.error("Sales Navigator search submission failed", error=str(e))
                return CandidatePage.error(str(e) or type(e).__name__)
            self._request_ids[key] = request_id

        outcome = await self._poller.poll(
            lambda: self.check(request_id, page + 1),
            label=f"sales_navigator:{request_id}",
            sleep_first=first_page,
        )

        if outcome.timed_out:
            minutes = self._poller.budget_seconds / 60
            return CandidatePage.timed_out(
                f"Search timed out after {minutes:.1f} minutes - "
                "LinkedIn may be slow or the search is too broad"
            )
        if not outcome.completed or outcome.payload is None:
            return CandidatePage.error(outcome.message or "Search failed")

        try:
            data = [d for d in as_list(outcome.payload.get("data")) if isinstance(d, dict)]
            candidates = tuple(parse_lead(d) for d in data)
            total = int(outcome.payload.get("total_count") or len(candidates))
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("Sales Navigator returned a malformed page", page=page, error=str(e))
            return CandidatePage.error(f"Sales Navigator returned a malformed page: {e}")

        page_size = self._page_sizes.setdefault(key, len(candidates) or 1)
        total_pages = max(1, math.ceil(total / page_size))

        logger.info(
            "Sales Navigator page received",
            page=page,
            candidates=len(candidates),
            total_available=total,
            total_pages=total_pages,
        )
        return CandidatePage(
            candidates=candidates,
            total_available=total,
            total_pages=total_pages,
        )
