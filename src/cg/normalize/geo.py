"""Map region derivation from filter locations."""

from __future__ import annotations

import re

from cg.types import FilterSet, TargetGeo

US_STATES: dict[str, str] = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR", "california": "CA",
    "colorado": "CO", "connecticut": "CT", "delaware": "DE", "florida": "FL", "georgia": "GA",
    "hawaii": "HI", "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT", "vermont": "VT",
    "virginia": "VA", "washington": "WA", "west virginia": "WV", "wisconsin": "WI",
    "wyoming": "WY", "district of columbia": "DC",
}

US_KEYWORDS = ("united states", "usa", "us", "america")

_US_SUFFIX = re.compile(r",\s*United States$", re.IGNORECASE)

# Longest names first so "west virginia" wins over "virginia".
_STATE_PATTERNS = [
    (re.compile(rf"\b{re.escape(name)}\b"), abbr)
    for name, abbr in sorted(US_STATES.items(), key=lambda item: -len(item[0]))
]
_US_PATTERN = re.compile(r"\b(?:" + "|".join(re.escape(k) for k in US_KEYWORDS) + r")\b")
_ABBREVIATIONS = {abbr.lower(): abbr for abbr in US_STATES.values()}


def match_state(location: str) -> str | None:
    """Return the two-letter code of the US state a location names, if any."""
    lower = location.strip().lower()
    if lower in _ABBREVIATIONS:
        return _ABBREVIATIONS[lower]
    for pattern, abbr in _STATE_PATTERNS:
        if pattern.search(lower):
            return abbr
    return None


def is_us_location(location: str) -> bool:
    """Whether a location refers to the United States as a whole."""
    return bool(_US_PATTERN.search(location.lower()))


def build_target_geo(filters: FilterSet) -> TargetGeo:
    """Derive the map region to display for a campaign.

    No locations defaults to the US map. Any US state or US mention selects
    the US map with the states found; otherwise the world map with the
    countries named.
    """
    locations = filters.location_texts()
    if not locations:
        return TargetGeo(region="us")

    states: list[str] = []
    countries: list[str] = []
    has_us = False

    for text in locations:
        state = match_state(text)
        if state:
            has_us = True
            if state not in states:
                states.append(state)
            continue

        if is_us_location(text):
            has_us = True
            continue

        country = _US_SUFFIX.sub("", text).strip()
        if country and country not in countries:
            countries.append(country)

    if has_us:
        return TargetGeo(region="us", states=tuple(states))
    return TargetGeo(region="world", countries=tuple(countries))
