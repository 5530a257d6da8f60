"""Domain and subject-key helpers."""

from __future__ import annotations

import re
from urllib.parse import urlparse

_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_WWW = re.compile(r"^www\.", re.IGNORECASE)
_DOMAIN = re.compile(r"([a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z]{2,}")


def normalize_domain(value: str) -> str:
    """Normalize a domain or URL into the subject key used for progress.

    Lowercases, drops the scheme and a leading ``www.``, and keeps only the
    host part.

    >>> normalize_domain("https://www.Acme.com/pricing")
    'acme.com'
    """
    domain = _SCHEME.sub("", value.strip().lower())
    domain = _WWW.sub("", domain)
    for sep in ("/", "?", "#"):
        domain = domain.split(sep)[0]
    return domain


def website_url(value: str) -> str:
    """Return a fetchable URL for a domain or URL."""
    value = value.strip()
    return value if _SCHEME.match(value) else f"https://{value}"


def domain_to_slug(domain: str) -> str:
    """Convert a domain to a URL-friendly slug.

    Drops the TLD and joins any subdomain with a dash:
    ``acme.com`` becomes ``acme`` and ``app.stripe.com`` becomes ``app-stripe``.
    """
    parts = normalize_domain(domain).split(".")
    if len(parts) > 2:
        return "-".join(parts[:-1])
    return parts[0]


def extract_company_name(domain: str) -> str:
    """Guess a display name from a domain (first label, capitalized)."""
    name = normalize_domain(domain).split(".")[0] or "Company"
    return name[:1].upper() + name[1:]


def domain_for_company(company: str) -> str | None:
    """Best guess at a lookup domain for a company field.

    Returns an embedded domain if the text contains one, the host of a URL,
    or the company name itself. Empty input yields None.
    """
    if not company or not company.strip():
        return None

    match = _DOMAIN.search(company)
    if match:
        return match.group(0).lower()

    if _SCHEME.match(company):
        host = urlparse(company).hostname
        if host:
            return _WWW.sub("", host)

    return company.strip()
