"""Text, domain, geography and filter normalization helpers."""

from cg.normalize.domains import (
    domain_for_company,
    domain_to_slug,
    extract_company_name,
    normalize_domain,
    website_url,
)
from cg.normalize.filters import (
    build_sales_navigator_url,
    employee_size_ranges,
    parse_sales_navigator_url,
)
from cg.normalize.geo import build_target_geo
from cg.normalize.names import (
    NameNormalizer,
    PassthroughNameNormalizer,
    Position,
    RegexNameNormalizer,
)

__all__ = [
    "NameNormalizer",
    "PassthroughNameNormalizer",
    "Position",
    "RegexNameNormalizer",
    "build_sales_navigator_url",
    "build_target_geo",
    "domain_for_company",
    "domain_to_slug",
    "employee_size_ranges",
    "extract_company_name",
    "normalize_domain",
    "parse_sales_navigator_url",
    "website_url",
]
