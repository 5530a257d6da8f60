"""
FilterSet translation for people-search providers.

Two targets:
- AI Ark employee-size RANGE buckets
- LinkedIn Sales Navigator search URLs (people and company search)

Sales Navigator filters are identified by LinkedIn ids. Tags that already
carry an id are used as-is; plain strings are looked up in the small
dictionaries below and skipped when unknown.
"""

from __future__ import annotations

import base64
import re
import secrets
from typing import Literal
from urllib.parse import parse_qs, quote, urlparse

from cg.logging import get_logger
from cg.types import FilterSet, Tag

logger = get_logger(__name__)

SearchMode = Literal["people", "company"]

PEOPLE_SEARCH_URL = "https://www.linkedin.com/sales/search/people"
COMPANY_SEARCH_URL = "https://www.linkedin.com/sales/search/company"

SENIORITY_LEVELS: dict[str, Tag] = {
    "owner": Tag(id="1", text="Owner"),
    "partner": Tag(id="2", text="Partner"),
    "cxo": Tag(id="3", text="CXO"),
    "vp": Tag(id="4", text="VP"),
    "director": Tag(id="5", text="Director"),
    "manager": Tag(id="6", text="Manager"),
    "senior": Tag(id="7", text="Senior"),
    "entry": Tag(id="8", text="Entry"),
    "training": Tag(id="9", text="Training"),
}

COMPANY_SIZES: dict[str, Tag] = {
    "self-employed": Tag(id="A", text="Self-employed"),
    "1-10": Tag(id="B", text="1-10"),
    "11-50": Tag(id="C", text="11-50"),
    "51-200": Tag(id="D", text="51-200"),
    "201-500": Tag(id="E", text="201-500"),
    "501-1000": Tag(id="F", text="501-1000"),
    "1001-5000": Tag(id="G", text="1001-5000"),
    "5001-10000": Tag(id="H", text="5001-10000"),
    "10001+": Tag(id="I", text="10001+"),
}

INDUSTRIES: dict[str, Tag] = {
    "technology": Tag(id="6", text="Technology, Information and Media"),
    "software": Tag(id="4", text="Software Development"),
    "saas": Tag(id="4", text="Software Development"),
    "it services": Tag(id="96", text="IT Services and IT Consulting"),
    "marketing": Tag(id="80", text="Advertising Services"),
    "agency": Tag(id="80", text="Advertising Services"),
    "finance": Tag(id="43", text="Financial Services"),
    "healthcare": Tag(id="14", text="Hospitals and Health Care"),
    "e-commerce": Tag(id="27", text="Retail"),
    "real estate": Tag(id="44", text="Real Estate"),
    "manufacturing": Tag(id="112", text="Manufacturing"),
    "consulting": Tag(id="94", text="Business Consulting and Services"),
    "education": Tag(id="68", text="Education"),
    "professional services": Tag(id="94", text="Business Consulting and Services"),
}

REGIONS: dict[str, Tag] = {
    "north america": Tag(id="102221843", text="North America"),
    "europe": Tag(id="100506914", text="Europe"),
    "asia": Tag(id="102393603", text="Asia"),
    "united states": Tag(id="103644278", text="United States"),
    "usa": Tag(id="103644278", text="United States"),
    "us": Tag(id="103644278", text="United States"),
    "canada": Tag(id="101174742", text="Canada"),
    "united kingdom": Tag(id="101165590", text="United Kingdom"),
    "uk": Tag(id="101165590", text="United Kingdom"),
    "australia": Tag(id="101452733", text="Australia"),
    "germany": Tag(id="101282230", text="Germany"),
    "france": Tag(id="105015875", text="France"),
    "california": Tag(id="102095887", text="California, United States"),
    "new york": Tag(id="105080838", text="New York, United States"),
    "texas": Tag(id="102748797", text="Texas, United States"),
    "florida": Tag(id="101318387", text="Florida, United States"),
    "washington": Tag(id="103977389", text="Washington, United States"),
    "massachusetts": Tag(id="103994340", text="Massachusetts, United States"),
}

TITLE_TO_SENIORITY: dict[str, tuple[str, ...]] = {
    "ceo": ("cxo", "owner"),
    "cto": ("cxo",),
    "cfo": ("cxo",),
    "cmo": ("cxo",),
    "coo": ("cxo",),
    "founder": ("owner", "cxo"),
    "co-founder": ("owner", "cxo"),
    "president": ("cxo",),
    "vp": ("vp",),
    "vice president": ("vp",),
    "director": ("director",),
    "head of": ("director", "vp"),
    "manager": ("manager",),
    "owner": ("owner",),
    "partner": ("partner",),
}

# (start, end) employee counts; the open-ended bucket is capped at 100000.
EMPLOYEE_RANGES: tuple[tuple[int, int], ...] = (
    (1, 10),
    (11, 50),
    (51, 200),
    (201, 500),
    (501, 1000),
    (1001, 5000),
    (5001, 10000),
    (10001, 100000),
)

_NUMERIC_RANGE = re.compile(r"(\d+)\s*[-–]\s*(\d+)")


def _parse_range(text: str) -> tuple[int, int] | None:
    match = _NUMERIC_RANGE.search(text)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def employee_size_ranges(company_size: str) -> list[dict[str, int]]:
    """Map a free-text company size to AI Ark employee-size ranges.

    Keywords (``small``, ``mid``, ``enterprise`` ...) expand to neighbouring
    buckets. Otherwise a numeric ``min-max`` selects every standard bucket it
    overlaps, or is passed through when it overlaps none.
    """
    size = company_size.lower()
    ranges: list[tuple[int, int]] = []

    if "1-10" in size or "self-employed" in size:
        ranges.append((1, 10))
    if "11-50" in size or "small" in size:
        ranges.extend([(1, 10), (11, 50)])
    if "51-200" in size or "medium" in size or "mid" in size:
        ranges.extend([(51, 200), (201, 500)])
    if "501-1000" in size or "large" in size:
        ranges.extend([(501, 1000), (1001, 5000)])
    if "enterprise" in size or "10000" in size:
        ranges.extend([(5001, 10000), (10001, 100000)])

    if not ranges:
        parsed = _parse_range(size)
        if parsed:
            low, high = parsed
            ranges = [(s, e) for s, e in EMPLOYEE_RANGES if s <= high and e >= low]
            if not ranges:
                ranges = [parsed]

    unique = list(dict.fromkeys(ranges))
    return [{"start": start, "end": end} for start, end in unique]


def _headcount_tags(company_size: str) -> list[Tag]:
    size = company_size.lower()
    matched = [
        tag for key, tag in COMPANY_SIZES.items()
        if key in size or tag.text.lower() in size
    ]
    if matched:
        return matched

    parsed = _parse_range(size)
    if not parsed:
        return []
    low, high = parsed
    tags = []
    for key, tag in COMPANY_SIZES.items():
        if key == "self-employed":
            continue
        start, _, end = key.partition("-")
        bucket_low = int(start.rstrip("+"))
        bucket_high = int(end) if end else 999999
        if bucket_low <= high and bucket_high >= low:
            tags.append(tag)
    return tags


def _lookup_tags(tags: tuple[Tag, ...], table: dict[str, Tag], kind: str) -> list[Tag]:
    resolved: list[Tag] = []
    for tag in tags:
        match = tag if tag.id else table.get(tag.text.lower())
        if match is None or not match.id:
            logger.warning("Unknown Sales Navigator value skipped", kind=kind, value=tag.text)
            continue
        if all(existing.id != match.id for existing in resolved):
            resolved.append(match)
    return resolved


def _seniority_tags(titles: tuple[str, ...]) -> list[Tag]:
    keys: list[str] = []
    for title in titles:
        lower = title.lower()
        for keyword, levels in TITLE_TO_SENIORITY.items():
            if keyword in lower:
                keys.extend(level for level in levels if level not in keys)
    return [SENIORITY_LEVELS[key] for key in keys]


def _format_filter(filter_type: str, values: list[Tag]) -> str:
    if filter_type == "CURRENT_TITLE":
        parts = [f"(text:{v.text},selectionType:INCLUDED)" for v in values]
    else:
        parts = [f"(id:{v.id},text:{v.text},selectionType:INCLUDED)" for v in values]
    return f"(type:{filter_type},values:List({','.join(parts)}))"


def _session_id() -> str:
    return base64.b64encode(secrets.token_bytes(18)).decode("ascii")[:24]


def build_sales_navigator_url(
    filters: FilterSet,
    mode: SearchMode = "people",
    session_id: str | None = None,
) -> str:
    """Build a Sales Navigator search URL for a FilterSet.

    People search carries titles, derived seniority levels, headcount,
    industry, person region and company headquarters. Company search carries
    headcount, industry and region only.

    Args:
        filters: Targeting criteria.
        mode: ``people`` or ``company`` search.
        session_id: Fixed session id (random when omitted).

    Returns:
        Fully encoded search URL.
    """
    query_filters: list[tuple[str, list[Tag]]] = []

    if mode == "people" and filters.titles:
        query_filters.append(("CURRENT_TITLE", [Tag(text=t) for t in filters.titles]))
        seniority = _seniority_tags(filters.titles)
        if seniority:
            query_filters.append(("SENIORITY_LEVEL", seniority))

    if filters.company_size:
        headcount = _headcount_tags(filters.company_size)
        if headcount:
            query_filters.append(("COMPANY_HEADCOUNT", headcount))

    industries = _lookup_tags(filters.industries, INDUSTRIES, "industry")
    if industries:
        query_filters.append(("INDUSTRY", industries))

    regions = _lookup_tags(filters.locations, REGIONS, "location")
    if regions:
        query_filters.append(("REGION", regions))
        if mode == "people":
            query_filters.append(("COMPANY_HEADQUARTERS", regions))

    if query_filters:
        body = ",".join(_format_filter(t, values) for t, values in query_filters)
        query = f"(filters:List({body}))"
    else:
        query = "()"

    base_url = COMPANY_SEARCH_URL if mode == "company" else PEOPLE_SEARCH_URL
    session = quote(session_id or _session_id(), safe="")
    url = f"{base_url}?query={quote(query, safe='')}&sessionId={session}&viewAllFilters=true"
    logger.debug("Built Sales Navigator URL", mode=mode, query=query)
    return url


_TITLE_VALUE = re.compile(r"\(text:([^,)]+),selectionType:INCLUDED\)")
_TITLE_FILTER = re.compile(r"\(type:CURRENT_TITLE,values:List\(.*?\)\)\)")
_KEYWORDS = re.compile(r"keywords:([^,)]+)")


def parse_sales_navigator_url(url: str) -> list[str]:
    """Recover the title keywords from a Sales Navigator URL.

    Reads the CURRENT_TITLE filter, or a ``keywords:`` clause joined with
    ``OR`` in hand-built URLs. Malformed URLs yield an empty list.
    """
    query = parse_qs(urlparse(url).query).get("query", [""])[0]

    title_filter = _TITLE_FILTER.search(query)
    if title_filter:
        return [m.strip() for m in _TITLE_VALUE.findall(title_filter.group(0))]

    keywords = _KEYWORDS.search(query)
    if keywords:
        return [part.strip() for part in keywords.group(1).split(" OR ") if part.strip()]
    return []
