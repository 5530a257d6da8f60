"""
AI Ark people search (synchronous, paginated).

One POST per page returns candidates immediately; no polling is needed.
Pages are 0-based and at most 100 people each.
"""

from __future__ import annotations

import re
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cg.exceptions import SourceError
from cg.logging import get_logger
from cg.normalize.filters import employee_size_ranges
from cg.sources.base import CandidatePage
from cg.types import Candidate, FilterSet, as_list

logger = get_logger(__name__)

ARK_MAX_PAGE_SIZE = 100

_PROFILE_ID = re.compile(r"linkedin\.com/in/([^/?#]+)")


class ArkRateLimited(Exception):
    """HTTP 429 from the search API."""


def build_search_body(filters: FilterSet, size: int, page: int) -> dict[str, Any]:
    """Translate a FilterSet into an AI Ark people-search request body."""
    body: dict[str, Any] = {"page": page, "size": min(size, ARK_MAX_PAGE_SIZE)}

    contact: dict[str, Any] = {}
    if filters.titles:
        contact["experience"] = {
            "current": {
                "title": {"any": {"include": {"mode": "SMART", "content": list(filters.titles)}}}
            }
        }
    if filters.locations:
        contact["location"] = {"any": {"include": filters.location_texts()}}
    if contact:
        body["contact"] = contact

    account: dict[str, Any] = {}
    if filters.industries:
        account["industry"] = {
            "any": {"include": [text.lower() for text in filters.industry_texts()]}
        }
    if filters.company_size:
        ranges = employee_size_ranges(filters.company_size)
        if ranges:
            account["employeeSize"] = {"type": "RANGE", "range": ranges}
    if account:
        body["account"] = account

    return body


def _text(value: Any) -> str:
    return str(value).strip() if value else ""


def parse_person(person: dict[str, Any]) -> Candidate:
    """Normalize one AI Ark person record into a Candidate."""
    profile = person.get("profile") or {}
    company = person.get("company") or {}
    summary = company.get("summary") or {}
    location = person.get("location") or {}
    groups = person.get("position_groups") or []

    current_group: dict[str, Any] = next(
        (g for g in groups if not (g.get("date") or {}).get("end")),
        groups[0] if groups else {},
    )
    positions = current_group.get("profile_positions") or []
    current_position: dict[str, Any] = positions[0] if positions else {}
    group_company = current_group.get("company") or {}

    linkedin_url = _text((person.get("link") or {}).get("linkedin"))
    match = _PROFILE_ID.search(linkedin_url)
    profile_id = match.group(1) if match else _text(person.get("identifier") or person.get("id"))

    first = _text(profile.get("first_name"))
    last = _text(profile.get("last_name"))
    company_name = _text(
        summary.get("name") or group_company.get("name") or current_position.get("company")
    )
    title = _text(
        profile.get("title") or current_position.get("title") or profile.get("headline")
    )
    place = _text(location.get("default") or location.get("short")) or ", ".join(
        p for p in (location.get("city"), location.get("state"), location.get("country")) if p
    )

    return Candidate(
        first_name=first,
        last_name=last,
        full_name=_text(profile.get("full_name")) or f"{first} {last}".strip(),
        title=title,
        company=company_name,
        company_id=_text(company.get("id") or group_company.get("id")),
        company_domain=_text((company.get("link") or {}).get("domain")),
        location=place,
        about=_text(profile.get("summary") or profile.get("headline")),
        headline=_text(profile.get("headline")),
        profile_url=linkedin_url,
        profile_id=profile_id,
        current_company=_text(summary.get("name") or group_company.get("name")),
        current_title=_text(profile.get("title") or current_position.get("title")),
    )


class ArkPeopleSearch:
    """AI Ark people-search client.

    Errors never escape `search`; they come back as an error page.
    """

    name = "ark"
    max_page_size = ARK_MAX_PAGE_SIZE

    def __init__(
        self,
        token: str,
        api_url: str,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: AI Ark API token.
            api_url: People search endpoint.
            client: Pre-built HTTP client (tests inject a mock transport).
        """
        self._token = token
        self._api_url = api_url
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json", "X-TOKEN": self._token},
                timeout=60.0,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type(ArkRateLimited),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    async def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        response = await client.post(self._api_url, json=body, headers={"X-TOKEN": self._token})
        if response.status_code == 429:
            logger.warning("AI Ark rate limited, backing off")
            raise ArkRateLimited()
        if response.status_code >= 400:
            raise SourceError(
                f"AI Ark API error: {response.status_code}",
                context={"status": response.status_code, "body": response.text[:500]},
            )
        data = response.json()
        if not isinstance(data, dict):
            raise SourceError("AI Ark returned an unexpected payload")
        return data

    async def search(self, filters: FilterSet, limit: int, page: int = 0) -> CandidatePage:
        """Fetch one page of people.

        Args:
            filters: Targeting criteria.
            limit: Page size (capped at 100).
            page: 0-based page index.

        Returns:
            CandidatePage with status complete or error.
        """
        body = build_search_body(filters, limit, page)
        logger.info("Searching AI Ark", page=page, size=body["size"])

        try:
            data = await self._post(body)
        except (SourceError, ArkRateLimited, httpx.HTTPError, ValueError) as e:
            message = str(e) or type(e).__name__
            logger.error("AI Ark search failed", page=page, error=message)
            return CandidatePage.error(message)

        if data.get("error") or data.get("status") == 404:
            return CandidatePage.error(str(data.get("error") or "Data not found"))

        try:
            content = as_list(data.get("content"))
            candidates = tuple(parse_person(p) for p in content if isinstance(p, dict))
            total = int(data.get("totalElements") or len(candidates))
            total_pages = data.get("totalPages")
            total_pages = int(total_pages) if total_pages is not None else None
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("AI Ark returned a malformed page", page=page, error=str(e))
            return CandidatePage.error(f"AI Ark returned a malformed page: {e}")

        logger.info(
            "AI Ark page received",
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
