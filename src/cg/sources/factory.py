"""Builds the configured lead source and enricher from settings."""

from __future__ import annotations

from cg.config import Settings
from cg.logging import get_logger
from cg.sources.apify import SalesNavigatorJobSearch
from cg.sources.ark import ArkPeopleSearch
from cg.sources.base import CandidateSource, ContactEnricher
from cg.sources.enrichment import EnrichmentLimits, EnrichmentLoop
from cg.sources.icypeas import IcypeasEnricher
from cg.sources.poller import JobPoller

logger = get_logger(__name__)


def build_candidate_source(settings: Settings) -> CandidateSource | None:
    """Return the people-search variant selected by LEAD_SOURCE.

    Returns None when the selected variant has no credentials.
    """
    if settings.LEAD_SOURCE == "ark":
        if not settings.AI_ARK_TOKEN:
            logger.warning("AI Ark selected but AI_ARK_TOKEN is not configured")
            return None
        return ArkPeopleSearch(token=settings.AI_ARK_TOKEN, api_url=settings.AI_ARK_API_URL)

    if not settings.APIFY_API_TOKEN:
        logger.warning("Sales Navigator selected but APIFY_API_TOKEN is not configured")
        return None
    poller = JobPoller(
        max_attempts=settings.SEARCH_POLL_MAX_ATTEMPTS,
        interval_seconds=settings.SEARCH_POLL_INTERVAL_SECONDS,
        sleep_first=True,
    )
    return SalesNavigatorJobSearch(
        token=settings.APIFY_API_TOKEN,
        poller=poller,
        actor_id=settings.APIFY_ACTOR_ID,
    )


def build_enricher(settings: Settings) -> ContactEnricher | None:
    """Return the contact enricher, or None without credentials."""
    if not settings.ICYPEAS_API_KEY:
        return None
    poller = JobPoller(
        max_attempts=settings.ENRICH_POLL_MAX_ATTEMPTS,
        interval_seconds=settings.ENRICH_POLL_INTERVAL_SECONDS,
        sleep_first=True,
    )
    return IcypeasEnricher(
        api_key=settings.ICYPEAS_API_KEY,
        api_url=settings.ICYPEAS_API_URL,
        poller=poller,
    )


def build_enrichment_loop(settings: Settings) -> EnrichmentLoop | None:
    """Wire source and enricher into a loop; None if either is missing."""
    source = build_candidate_source(settings)
    enricher = build_enricher(settings)
    if source is None or enricher is None:
        return None
    return EnrichmentLoop(source, enricher, EnrichmentLimits.from_settings(settings))
