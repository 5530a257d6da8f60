"""
Search-then-verify enrichment loop.

Alternates between fetching a page of candidates and looking up verified
contact addresses for them, until enough contactable leads are found or
a safety limit trips:

- target reached
- the source has no more pages (or returned an empty page)
- page cap
- candidate cap: min(absolute ceiling, target * multiplier)
- circuit breaker: N consecutive pages with zero enriched leads
- source timeout or error

Candidates beyond the remaining candidate budget are dropped before
enrichment, so the candidate cap is never exceeded. The loop never raises
for provider failures; the stop reason on the report says what happened.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from cg.config import Settings
from cg.exceptions import CGError, EnrichmentExhausted, SourceError, SourceTimeout
from cg.logging import get_logger
from cg.sources.base import CandidateSource, ContactEnricher, SearchStatus
from cg.types import (
    Candidate,
    EnrichedLead,
    EnrichmentReport,
    FilterSet,
    StopReason,
    utc_now,
)

logger = get_logger(__name__)

# Historical address-discovery rate is about 50%, so pages are oversampled 2x.
OVERSAMPLE_FACTOR = 2


@dataclass(frozen=True)
class EnrichmentLimits:
    """Cost and safety limits for one loop run."""

    max_pages: int = 10
    absolute_max_candidates: int = 200
    candidate_multiplier: int = 10
    zero_yield_limit: int = 3
    concurrency: int = 10
    min_batch: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> EnrichmentLimits:
        return cls(
            max_pages=settings.ENRICH_MAX_PAGES,
            absolute_max_candidates=settings.ENRICH_MAX_CANDIDATES,
            candidate_multiplier=settings.ENRICH_CANDIDATE_MULTIPLIER,
            zero_yield_limit=settings.ENRICH_ZERO_YIELD_LIMIT,
            concurrency=settings.ENRICH_CONCURRENCY,
            min_batch=settings.ENRICH_MIN_BATCH,
        )

    def batch_size(self, target: int, provider_max: int) -> int:
        """Page size: twice the target, clamped to [min_batch, provider_max]."""
        return max(min(target * OVERSAMPLE_FACTOR, provider_max), min(self.min_batch, provider_max))

    def max_candidates(self, target: int) -> int:
        return min(self.absolute_max_candidates, target * self.candidate_multiplier)


async def enrich_candidates(
    enricher: ContactEnricher,
    candidates: Sequence[Candidate],
    concurrency: int = 10,
) -> list[EnrichedLead]:
    """Look up addresses in sub-batches of bounded concurrency.

    Only candidates with a verified address come back, in input order.
    A lookup that raises counts as not found.
    """
    enriched: list[EnrichedLead] = []
    step = max(1, concurrency)

    for start in range(0, len(candidates), step):
        batch = candidates[start : start + step]
        results = await asyncio.gather(
            *(enricher.enrich(c) for c in batch), return_exceptions=True
        )
        for candidate, result in zip(batch, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Enrichment lookup raised",
                    candidate=candidate.identity,
                    error=str(result),
                )
                continue
            if result:
                enriched.append(
                    EnrichedLead(candidate=candidate, email=result, provider=enricher.name)
                )

    return enriched


class EnrichmentLoop:
    """Drives candidate search and contact enrichment toward a target count."""

    def __init__(
        self,
        source: CandidateSource,
        enricher: ContactEnricher,
        limits: EnrichmentLimits | None = None,
    ) -> None:
        self.source = source
        self.enricher = enricher
        self.limits = limits or EnrichmentLimits()

    async def run(self, filters: FilterSet, target: int) -> EnrichmentReport:
        """Accumulate up to `target` enriched leads.

        Args:
            filters: Targeting criteria for the candidate source.
            target: Number of enriched leads wanted.

        Returns:
            EnrichmentReport with at most `target` leads and the stop reason.
        """
        if target < 1:
            raise ValueError("target must be at least 1")

        started_at = utc_now()
        limits = self.limits
        batch_size = limits.batch_size(target, self.source.max_page_size)
        max_candidates = limits.max_candidates(target)

        leads: list[EnrichedLead] = []
        page = 0
        candidates_fetched = 0
        attempts = 0
        zero_yield_streak = 0
        stop_reason: StopReason | None = None
        message = ""

        logger.info(
            "Starting enrichment loop",
            source=self.source.name,
            target=target,
            batch_size=batch_size,
            max_candidates=max_candidates,
            max_pages=limits.max_pages,
        )

        while stop_reason is None:
            result = await self.source.search(filters, batch_size, page)

            if result.status == SearchStatus.TIMED_OUT:
                stop_reason, message = StopReason.SOURCE_TIMEOUT, result.message
                break
            if result.status == SearchStatus.ERROR:
                stop_reason, message = StopReason.SOURCE_ERROR, result.message
                break
            if not result.candidates:
                stop_reason, message = StopReason.SOURCE_EXHAUSTED, "Source returned an empty page"
                break

            page += 1
            remaining = max_candidates - candidates_fetched
            batch = list(result.candidates[:remaining])
            candidates_fetched += len(batch)
            attempts += len(batch)

            found = await enrich_candidates(self.enricher, batch, limits.concurrency)
            leads.extend(found)
            zero_yield_streak = 0 if found else zero_yield_streak + 1

            logger.info(
                "Enrichment page processed",
                page=page,
                candidates=len(batch),
                enriched=len(found),
                total_leads=len(leads),
            )

            if len(leads) >= target:
                stop_reason = StopReason.TARGET_REACHED
            elif result.total_pages is not None and page >= result.total_pages:
                stop_reason = StopReason.SOURCE_EXHAUSTED
            elif page >= limits.max_pages:
                stop_reason = StopReason.PAGE_LIMIT
            elif candidates_fetched >= max_candidates:
                stop_reason = StopReason.CANDIDATE_LIMIT
            elif zero_yield_streak >= limits.zero_yield_limit:
                stop_reason = StopReason.ZERO_YIELD
                message = f"{zero_yield_streak} consecutive pages yielded no enriched leads"

        final = tuple(leads[:target])
        if not message:
            message = f"Found {len(final)} leads with verified addresses (target: {target})"

        report = EnrichmentReport(
            target=target,
            leads=final,
            pages_fetched=page,
            candidates_fetched=candidates_fetched,
            enrichment_attempts=attempts,
            stop_reason=stop_reason,
            message=message,
            started_at=started_at,
            completed_at=utc_now(),
        )

        logger.info(
            "Enrichment loop finished",
            stop_reason=stop_reason.value,
            leads=len(final),
            pages=page,
            candidates=candidates_fetched,
        )
        return report


def stop_failure(report: EnrichmentReport) -> CGError | None:
    """Classify why a loop came back short of its target.

    Returns SourceTimeout or SourceError when the provider failed,
    EnrichmentExhausted when a safety limit tripped, and None when the
    target was reached or the source simply ran out of matches.
    """
    if report.reached_target:
        return None

    context = {
        "stop_reason": report.stop_reason.value,
        "leads": len(report.leads),
        "target": report.target,
    }
    message = report.message or report.stop_reason.value
    if report.stop_reason == StopReason.SOURCE_TIMEOUT:
        return SourceTimeout(message, context=context)
    if report.stop_reason == StopReason.SOURCE_ERROR:
        return SourceError(message, context=context)
    if report.stop_reason in (
        StopReason.PAGE_LIMIT,
        StopReason.CANDIDATE_LIMIT,
        StopReason.ZERO_YIELD,
    ):
        return EnrichmentExhausted(message, context=context)
    return None
