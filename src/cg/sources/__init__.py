"""
Lead sourcing package.

Provides:
- CandidateSource implementations (AI Ark paginated search, Sales Navigator job search)
- Contact enrichment (Icypeas)
- JobPoller for asynchronous external jobs
- EnrichmentLoop tying search and enrichment together
"""

from cg.sources.apify import SalesNavigatorJobSearch
from cg.sources.ark import ArkPeopleSearch
from cg.sources.base import CandidatePage, CandidateSource, ContactEnricher, SearchStatus
from cg.sources.enrichment import EnrichmentLimits, EnrichmentLoop, enrich_candidates
from cg.sources.factory import build_candidate_source, build_enricher, build_enrichment_loop
from cg.sources.icypeas import IcypeasEnricher
from cg.sources.poller import JobPoller, JobState, JobStatus, PollOutcome, PollStatus

__all__ = [
    "ArkPeopleSearch",
    "CandidatePage",
    "CandidateSource",
    "ContactEnricher",
    "EnrichmentLimits",
    "EnrichmentLoop",
    "IcypeasEnricher",
    "JobPoller",
    "JobState",
    "JobStatus",
    "PollOutcome",
    "PollStatus",
    "SalesNavigatorJobSearch",
    "SearchStatus",
    "build_candidate_source",
    "build_enricher",
    "build_enrichment_loop",
    "enrich_candidates",
]
