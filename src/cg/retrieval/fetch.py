"""
Website content fetcher.

Uses the Firecrawl scrape API when a key is configured (clean markdown,
JavaScript rendered), otherwise a plain HTTP GET with BeautifulSoup text
extraction. Any failure raises DataFetchError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from bs4 import BeautifulSoup

from cg.exceptions import DataFetchError
from cg.logging import get_logger
from cg.normalize.domains import website_url

logger = get_logger(__name__)

# User agent for web requests
USER_AGENT = "CampaignGeneratorBot/1.0"

# Request timeout
REQUEST_TIMEOUT = 30.0

# Max extracted text kept per page
MAX_TEXT_CHARS = 50000


@dataclass(frozen=True)
class FetchedPage:
    """Readable content of a website."""

    url: str
    title: str
    description: str
    body_text: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "body_length": len(self.body_text),
        }


def extract_page(html: str, url: str) -> FetchedPage:
    """Extract title, meta description and readable text from HTML."""
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""

    description = ""
    for attrs in ({"name": "description"}, {"property": "og:description"}):
        meta = soup.find("meta", attrs=attrs)
        if meta and meta.get("content"):
            description = str(meta["content"]).strip()
            break

    for element in soup(["script", "style", "noscript", "svg"]):
        element.decompose()

    main = soup.find("main") or soup.find("body") or soup
    text = main.get_text(separator="\n", strip=True)
    lines = [line.strip() for line in text.split("\n") if line.strip()]
    text = "\n".join(lines)
    if len(text) > MAX_TEXT_CHARS:
        text = text[:MAX_TEXT_CHARS] + "\n...[truncated]"

    return FetchedPage(url=url, title=title, description=description, body_text=text)


class WebFetcher:
    """Fetches a company's website for profiling.

    Features:
    - Firecrawl scrape when FIRECRAWL_API_KEY is set
    - Direct HTTP fallback with BeautifulSoup extraction
    - Redirects followed, bounded timeout and retries
    """

    def __init__(
        self,
        firecrawl_api_key: str | None = None,
        firecrawl_api_url: str = "https://api.firecrawl.dev/v2/scrape",
        timeout: float = REQUEST_TIMEOUT,
        max_retries: int = 1,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            firecrawl_api_key: Firecrawl key; direct HTTP is used without one.
            firecrawl_api_url: Firecrawl scrape endpoint.
            timeout: Request timeout in seconds.
            max_retries: Retries for direct HTTP fetches.
            client: Pre-built HTTP client (tests inject a mock transport).
        """
        self.firecrawl_api_key = firecrawl_api_key
        self.firecrawl_api_url = firecrawl_api_url
        self.timeout = timeout
        self.max_retries = max_retries
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": USER_AGENT},
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FetchedPage:
        """Fetch a website.

        Args:
            url: Domain or URL.

        Returns:
            FetchedPage with title, description and body text.

        Raises:
            DataFetchError: If the page cannot be fetched or has no content.
        """
        full_url = website_url(url)
        if self.firecrawl_api_key:
            page = await self._fetch_firecrawl(full_url)
        else:
            page = await self._fetch_direct(full_url)

        if not page.body_text and not page.title:
            raise DataFetchError(f"No readable content at {full_url}", context={"url": full_url})

        logger.info(
            "Fetched website",
            url=full_url,
            title=page.title[:100],
            text_length=len(page.body_text),
        )
        return page

    async def _fetch_firecrawl(self, url: str) -> FetchedPage:
        client = await self._get_client()
        try:
            response = await client.post(
                self.firecrawl_api_url,
                json={"url": url, "formats": ["markdown"]},
                headers={"Authorization": f"Bearer {self.firecrawl_api_key}"},
            )
        except httpx.HTTPError as e:
            raise DataFetchError(f"Failed to scrape {url}", context={"error": str(e)}) from e

        if response.status_code >= 400:
            raise DataFetchError(
                f"Failed to scrape website: {response.status_code}",
                context={"url": url, "body": response.text[:500]},
            )

        result = response.json()
        if not isinstance(result, dict):
            raise DataFetchError("Unexpected scrape response", context={"url": url})
        data = result.get("data")
        if not result.get("success") or not isinstance(data, dict):
            raise DataFetchError(
                str(result.get("error") or "Failed to scrape website"), context={"url": url}
            )

        metadata = data.get("metadata") or {}
        return FetchedPage(
            url=url,
            title=str(metadata.get("title") or metadata.get("ogTitle") or ""),
            description=str(metadata.get("description") or metadata.get("ogDescription") or ""),
            body_text=str(data.get("markdown") or data.get("content") or "")[:MAX_TEXT_CHARS],
        )

    async def _fetch_direct(self, url: str) -> FetchedPage:
        client = await self._get_client()
        last_error = ""

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.get(url)
                response.raise_for_status()
                return extract_page(response.text, url=str(response.url))
            except httpx.HTTPError as e:
                last_error = str(e)
                if attempt < self.max_retries:
                    logger.warning(
                        "Fetch attempt failed, retrying",
                        url=url,
                        attempt=attempt + 1,
                        error=last_error,
                    )

        logger.error("All fetch attempts failed", url=url, error=last_error)
        raise DataFetchError(f"Failed to fetch {url}", context={"url": url, "error": last_error})
