"""
Name normalization used when drafting email copy.

Lead sources sometimes return a side role (board seat, advisory gig)
instead of a person's primary job, and company names carry legal
suffixes nobody uses in conversation. A NameNormalizer turns raw lead
fields into what a human would write in an email. The regex strategy
below is the default; callers can supply their own.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from cg.types import Candidate

_LEGAL_SUFFIXES = [
    re.compile(r",?\s*(L\.?L\.?C\.?|LLC)\.?$", re.IGNORECASE),
    re.compile(r",?\s*(Inc\.?|Incorporated)$", re.IGNORECASE),
    re.compile(r",?\s*(Corp\.?|Corporation)$", re.IGNORECASE),
    re.compile(r",?\s*(Pty\.?\s*Ltd\.?)$", re.IGNORECASE),
    re.compile(r",?\s*(Ltd\.?|Limited)$", re.IGNORECASE),
    re.compile(r",?\s*(L\.?L\.?P\.?|LLP)\.?$", re.IGNORECASE),
    re.compile(r",?\s*(P\.?L\.?L\.?C\.?|PLLC)\.?$", re.IGNORECASE),
    re.compile(r",?\s*(P\.?C\.?|PC)\.?$", re.IGNORECASE),
    re.compile(r",?\s*(Co\.?)$", re.IGNORECASE),
    re.compile(r",?\s*(S\.?A\.?)$", re.IGNORECASE),
    re.compile(r",?\s*(GmbH)$", re.IGNORECASE),
    re.compile(r",?\s*(B\.?V\.?)$", re.IGNORECASE),
]

_COMPANY = r"([A-Z][A-Za-z0-9\s&.,'-]+?)"

_ABOUT_PATTERNS = [
    re.compile(
        r"\bAs (?:a |an |the )?(.+?)\s+(?:for|at|with)\s+" + _COMPANY
        + r"(?:,|\.|I\s|where|helping|serving|\n|$)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\bI (?:am|serve as|work as) (?:a |an |the )?(.+?)\s+(?:at|for|with)\s+" + _COMPANY
        + r"(?:,|\.|where|helping|\n|$)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\bCurrently(?:,)?\s+(?:a |an |the )?(.+?)\s+(?:at|for|with)\s+" + _COMPANY
        + r"(?:,|\.|where|\n|$)",
        re.IGNORECASE,
    ),
]

_HEADLINE_PATTERNS = [
    re.compile(r"^(.+?)\s+at\s+(.+?)(?:\s*[|•]|$)", re.IGNORECASE),
    re.compile(r"^(.+?)\s*@\s*(.+?)(?:\s*[|•]|$)", re.IGNORECASE),
    re.compile(r"^(.+?)\s*\|\s*(.+?)(?:\s*[|•]|$)", re.IGNORECASE),
]


@dataclass(frozen=True)
class Position:
    """A title held at a company."""

    title: str
    company: str


@runtime_checkable
class NameNormalizer(Protocol):
    """Strategy for turning raw lead fields into conversational names."""

    def company_name(self, name: str) -> str:
        ...

    def primary_position(self, candidate: Candidate) -> Position:
        ...


def normalize_company_name(name: str) -> str:
    """Strip legal suffixes: ``"TechStart LLC"`` becomes ``"TechStart"``."""
    if not name:
        return name
    normalized = name.strip()
    for suffix in _LEGAL_SUFFIXES:
        normalized = suffix.sub("", normalized)
    return normalized.strip()


def extract_primary_position(candidate: Candidate) -> Position:
    """Work out the candidate's primary title and company.

    Tries, in order: phrases in the about text that name a different
    company, the headline, the current position fields, then the matched
    title and company.
    """
    if candidate.about:
        for pattern in _ABOUT_PATTERNS:
            match = pattern.search(candidate.about)
            if not match:
                continue
            title, company = match.group(1).strip(), match.group(2).strip()
            if company.lower() != candidate.company.lower():
                return Position(title=title, company=company)

    if candidate.headline:
        for pattern in _HEADLINE_PATTERNS:
            match = pattern.search(candidate.headline)
            if match:
                return Position(title=match.group(1).strip(), company=match.group(2).strip())

    if candidate.current_company and candidate.current_title:
        return Position(title=candidate.current_title, company=candidate.current_company)

    return Position(title=candidate.title, company=candidate.company)


class RegexNameNormalizer:
    """Default normalizer built on suffix and phrase patterns."""

    def company_name(self, name: str) -> str:
        return normalize_company_name(name)

    def primary_position(self, candidate: Candidate) -> Position:
        return extract_primary_position(candidate)


class PassthroughNameNormalizer:
    """Leaves lead fields untouched."""

    def company_name(self, name: str) -> str:
        return name

    def primary_position(self, candidate: Candidate) -> Position:
        return Position(title=candidate.title, company=candidate.company)
