"""
Campaign Pipeline Coordinator.

Orchestrates one campaign for a domain:
0. Content fetch - Read the company's website
1. Company profile - What they sell and who buys it
2. Personas - Candidate buyer archetypes
3. Ranking - Score personas and select exactly one
4. Filters - Turn the persona into search criteria
Then the enrichment loop finds leads with verified addresses and the
content generator drafts one email per lead.

When the caller supplies filters, the enrichment loop starts as a task
before the content fetch and runs alongside stages 1-4.

Only StageFailure and PersistenceFailure end a run. Lead sourcing problems
fall back to synthetic leads, and a failed draft drops one lead; both are
recorded as degradations.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from cg.agents.base import StageContext, StageReply
from cg.agents.company_profiler import CompanyProfiler
from cg.agents.email_writer import CampaignContext, EmailWriter
from cg.agents.filter_builder import FilterBuilder
from cg.agents.persona_brainstormer import DEFAULT_PERSONA_COUNT, PersonaBrainstormer
from cg.agents.persona_ranker import PersonaRanker
from cg.budget import BudgetTracker
from cg.config import Settings, get_settings
from cg.coordinator.content import ContentGenerator
from cg.coordinator.progress import ProgressChannel, RunReporter
from cg.coordinator.synthetic import synthetic_leads
from cg.exceptions import (
    CGError,
    DataFetchError,
    EnrichmentExhausted,
    PersistenceFailure,
    SourceError,
    SourceTimeout,
    StageFailure,
)
from cg.llm.router import LLMRouter
from cg.logging import get_logger, log_context
from cg.normalize.domains import domain_to_slug, normalize_domain, website_url
from cg.normalize.filters import build_sales_navigator_url
from cg.normalize.geo import build_target_geo
from cg.normalize.names import NameNormalizer
from cg.retrieval.fetch import FetchedPage, WebFetcher
from cg.sources.enrichment import EnrichmentLoop, stop_failure
from cg.sources.factory import build_enrichment_loop
from cg.storage.store import CampaignStore
from cg.types import (
    CampaignResult,
    Candidate,
    CompanyProfile,
    EnrichedLead,
    EnrichmentReport,
    FilterSet,
    Persona,
    PersonaRanking,
    PipelineRun,
    QualifiedLead,
    RunStatus,
    StageName,
    StageResult,
    generate_id,
    utc_now,
)

logger = get_logger(__name__)


@dataclass
class PipelineConfig:
    """Configuration for a campaign run."""

    # Stage 2
    persona_count: int = DEFAULT_PERSONA_COUNT

    # Leads (None = settings.leads_target)
    lead_target: int | None = None

    # Keep prompt/response text on stage results (None = settings.CAPTURE_TRACE)
    capture_trace: bool | None = None


@dataclass
class LeadBatch:
    """Leads handed to content generation, with how they were obtained."""

    leads: list[Candidate | EnrichedLead]
    started_at: datetime
    completed_at: datetime
    report: EnrichmentReport | None = None
    synthetic: bool = False
    note: str = ""

    def summary(self) -> str:
        kind = "sample" if self.synthetic else "enriched"
        return f"{len(self.leads)} {kind} leads"

    def to_output(self) -> dict[str, Any]:
        return {
            "lead_count": len(self.leads),
            "synthetic": self.synthetic,
            "report": self.report.to_dict() if self.report else None,
        }


class CampaignPipeline:
    """Four-stage campaign pipeline with lead sourcing and content fan-out."""

    def __init__(
        self,
        settings: Settings | None = None,
        config: PipelineConfig | None = None,
        channel: ProgressChannel | None = None,
        store: CampaignStore | None = None,
        fetcher: WebFetcher | None = None,
        enrichment_loop: EnrichmentLoop | None = None,
        llm_router: LLMRouter | None = None,
        normalizer: NameNormalizer | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings (loads from env if None).
            config: Pipeline configuration.
            channel: Where progress events are published.
            store: Destination for finished campaigns (skipped if None).
            fetcher: Website fetcher (built from settings if None).
            enrichment_loop: Lead finder (built from settings if None; when
                no lead source is configured, sample leads are used).
            llm_router: Reasoning router (built from settings if None).
            normalizer: Name normalizer for email copy.
        """
        self.settings = settings or get_settings()
        self.config = config or PipelineConfig()
        self.channel = channel
        self.store = store

        self.fetcher = fetcher or WebFetcher(
            firecrawl_api_key=self.settings.FIRECRAWL_API_KEY,
            firecrawl_api_url=self.settings.FIRECRAWL_API_URL,
        )
        self.enrichment_loop = (
            enrichment_loop if enrichment_loop is not None else build_enrichment_loop(self.settings)
        )

        self.budget_tracker = BudgetTracker(budget_limit=self.settings.MAX_BUDGET_USD)
        self.llm_router = llm_router or LLMRouter(
            settings=self.settings, budget_tracker=self.budget_tracker
        )

        capture_trace = self.config.capture_trace
        if capture_trace is None:
            capture_trace = self.settings.CAPTURE_TRACE
        self.stage_context = StageContext(
            settings=self.settings,
            llm_router=self.llm_router,
            budget_tracker=self.budget_tracker,
            capture_trace=capture_trace,
        )

        self.profiler = CompanyProfiler(self.stage_context)
        self.brainstormer = PersonaBrainstormer(self.stage_context)
        self.ranker = PersonaRanker(self.stage_context)
        self.filter_builder = FilterBuilder(self.stage_context)
        self.content_generator = ContentGenerator(
            EmailWriter(self.stage_context, normalizer),
            max_leads=self.settings.CONTENT_MAX_LEADS,
            lead_timeout=self.settings.CONTENT_LEAD_TIMEOUT_SECONDS,
        )

    @property
    def lead_target(self) -> int:
        return self.config.lead_target or self.settings.leads_target

    async def run(
        self,
        subject_key: str,
        filters: FilterSet | None = None,
        run_id: str | None = None,
    ) -> CampaignResult:
        """Run the complete pipeline for a domain.

        Args:
            subject_key: Domain or URL of the company.
            filters: Pre-supplied search criteria. When given, lead search
                starts immediately and these filters take precedence over
                the ones built in stage 4.
            run_id: Identifier to use for the run (generated if None).

        Returns:
            CampaignResult with qualified leads and all stage outputs.

        Raises:
            StageFailure: If the fetch or any analysis stage fails.
            PersistenceFailure: If the finished campaign cannot be saved.
        """
        domain = normalize_domain(subject_key)
        if not domain:
            raise ValueError("subject_key must be a domain or URL")

        run = PipelineRun.create(domain, run_id)
        with log_context(run_id=run.run_id, subject=domain):
            return await self._run(run, domain, filters)

    async def _run(
        self, run: PipelineRun, domain: str, filters: FilterSet | None
    ) -> CampaignResult:
        reporter = RunReporter(self.channel, run)
        reporter.emit(RunStatus.QUEUED, 0, "Queued")
        logger.info("Starting campaign pipeline", domain=domain, run_id=run.run_id)

        caller_filters = filters if filters is not None and not filters.is_empty else None
        lead_task: asyncio.Task[LeadBatch] | None = None
        if caller_filters is not None:
            reporter.emit(
                RunStatus.FINDING_LEADS,
                5,
                "Searching for leads",
                stage=StageName.LEAD_SEARCH,
                insights={"final_filters": caller_filters.to_dict()},
            )
            lead_task = asyncio.create_task(self._find_leads(caller_filters))

        try:
            result = await self._execute(run, reporter, domain, caller_filters, lead_task)

        except (StageFailure, PersistenceFailure) as e:
            run.error = e.message
            run.completed_at = utc_now()
            logger.error(
                "Pipeline failed",
                domain=domain,
                run_id=run.run_id,
                error=str(e),
                stage=run.current_stage.value if run.current_stage else "unknown",
            )
            partial = e.result if isinstance(e, PersistenceFailure) else None
            reporter.emit(
                RunStatus.ERROR, reporter.percentage, e.message, result=partial, error=e.message
            )
            raise

        except Exception as e:
            run.error = str(e)
            run.completed_at = utc_now()
            logger.error("Pipeline crashed", domain=domain, run_id=run.run_id, error=str(e))
            reporter.emit(RunStatus.ERROR, reporter.percentage, "Unexpected error", error=str(e))
            raise

        finally:
            if lead_task is not None and not lead_task.done():
                lead_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await lead_task
            await self.close()

        run.result = result
        run.completed_at = utc_now()
        reporter.emit(RunStatus.COMPLETE, 100, "Campaign ready", result=result)
        logger.info(
            "Pipeline completed",
            domain=domain,
            run_id=run.run_id,
            leads=len(result.qualified_leads),
            degradations=len(result.degradations),
            total_cost_usd=self.budget_tracker.total_cost_usd,
        )
        return result

    async def _execute(
        self,
        run: PipelineRun,
        reporter: RunReporter,
        domain: str,
        caller_filters: FilterSet | None,
        lead_task: asyncio.Task[LeadBatch] | None,
    ) -> CampaignResult:
        # ============== Content fetch ==============
        reporter.emit(
            RunStatus.FETCHING_CONTENT, 10, f"Reading {domain}", stage=StageName.FETCH_CONTENT
        )
        page = await self._fetch_content(run, domain)

        # ============== STAGE 1: Company profile ==============
        reporter.emit(
            RunStatus.ANALYZING_COMPANY,
            15,
            "Analyzing company",
            stage=StageName.COMPANY_PROFILE,
        )
        profile = await self._run_profile(run, domain, page)
        reporter.emit(
            RunStatus.ANALYZING_COMPANY,
            30,
            f"Profiled {profile.name}",
            insights={"company_profile": profile.to_dict()},
        )

        # ============== STAGE 2: Personas ==============
        personas = await self._run_personas(run, profile)
        reporter.emit(
            RunStatus.ANALYZING_COMPANY,
            40,
            f"Found {len(personas)} personas",
            stage=StageName.PERSONAS,
            insights={"personas": [p.to_dict() for p in personas]},
        )

        # ============== STAGE 3: Ranking ==============
        ranking = await self._run_ranking(run, profile, personas)
        reporter.emit(
            RunStatus.ANALYZING_COMPANY,
            50,
            f"Selected persona: {ranking.selected_persona.name}",
            stage=StageName.RANKING,
            insights={
                "rankings": [e.to_dict() for e in ranking.evaluations],
                "selected_persona": ranking.selected_persona.to_dict(),
            },
        )

        # ============== STAGE 4: Filters ==============
        built_filters = await self._run_filters(run, ranking.selected_persona, profile)
        filters = caller_filters or built_filters
        sales_navigator_url = build_sales_navigator_url(filters)
        reporter.emit(
            RunStatus.ANALYZING_COMPANY,
            60,
            "Search filters ready",
            stage=StageName.FILTERS,
            insights={
                "final_filters": filters.to_dict(),
                "sales_navigator_url": sales_navigator_url,
            },
        )

        # ============== Leads ==============
        if lead_task is None:
            reporter.emit(
                RunStatus.FINDING_LEADS, 65, "Searching for leads", stage=StageName.LEAD_SEARCH
            )
            batch = await self._find_leads(filters)
        else:
            if not lead_task.done():
                reporter.emit(
                    RunStatus.WAITING_FOR_LEADS,
                    70,
                    "Waiting for lead search to finish",
                    stage=StageName.LEAD_SEARCH,
                )
            batch = await lead_task
        self._record_leads(run, batch)

        # ============== Content ==============
        reporter.emit(
            RunStatus.WRITING_CONTENT,
            80,
            f"Writing emails for {min(len(batch.leads), self.settings.CONTENT_MAX_LEADS)} leads",
            stage=StageName.CONTENT,
            insights={"leads_found": len(batch.leads), "synthetic_leads": batch.synthetic},
        )
        qualified = await self._run_content(run, profile, ranking, batch)

        result = self._build_result(
            run, profile, personas, ranking, filters, sales_navigator_url, batch, qualified
        )

        if self.store is not None:
            try:
                await self.store.save(result)
            except Exception as e:
                raise PersistenceFailure(
                    f"Failed to save campaign: {e}",
                    context={"campaign_id": result.campaign_id, "error_type": type(e).__name__},
                    result=result,
                ) from e

        return result

    async def _fetch_content(self, run: PipelineRun, domain: str) -> FetchedPage:
        """Pre-step: fetch website content."""
        started_at = utc_now()
        try:
            page = await self.fetcher.fetch(domain)
        except DataFetchError as e:
            raise StageFailure(
                f"fetch_content: {e.message}",
                context={"stage": StageName.FETCH_CONTENT.value, **e.context},
            ) from e

        run.record(
            StageResult(
                stage=StageName.FETCH_CONTENT,
                started_at=started_at,
                completed_at=utc_now(),
                output=page.to_dict(),
                summary=page.title or page.url,
            )
        )
        return page

    async def _run_profile(self, run: PipelineRun, domain: str, page: FetchedPage) -> CompanyProfile:
        """Stage 1: Build the company profile."""
        started_at = utc_now()
        profile, reply = await self.profiler.run(domain, page)
        self._record(run, StageName.COMPANY_PROFILE, started_at, profile.to_dict(), profile.name, reply)
        return profile

    async def _run_personas(self, run: PipelineRun, profile: CompanyProfile) -> list[Persona]:
        """Stage 2: Brainstorm personas."""
        started_at = utc_now()
        personas, reply = await self.brainstormer.run(profile, count=self.config.persona_count)
        self._record(
            run,
            StageName.PERSONAS,
            started_at,
            {"personas": [p.to_dict() for p in personas]},
            f"{len(personas)} personas",
            reply,
        )
        return personas

    async def _run_ranking(
        self,
        run: PipelineRun,
        profile: CompanyProfile,
        personas: list[Persona],
    ) -> PersonaRanking:
        """Stage 3: Rank personas and select one."""
        started_at = utc_now()
        ranking, reply = await self.ranker.run(profile, personas)
        self._record(
            run,
            StageName.RANKING,
            started_at,
            ranking.to_dict(),
            ranking.selected_persona.name,
            reply,
        )
        return ranking

    async def _run_filters(
        self,
        run: PipelineRun,
        persona: Persona,
        profile: CompanyProfile,
    ) -> FilterSet:
        """Stage 4: Build search filters for the selected persona."""
        started_at = utc_now()
        filters, reply = await self.filter_builder.run(persona, profile)
        self._record(
            run,
            StageName.FILTERS,
            started_at,
            filters.to_dict(),
            f"{len(filters.titles)} titles, {len(filters.locations)} locations",
            reply,
        )
        return filters

    async def _find_leads(self, filters: FilterSet) -> LeadBatch:
        """Run the enrichment loop, falling back to sample leads."""
        started_at = utc_now()

        if self.enrichment_loop is None:
            logger.info("Lead source not configured, using sample leads")
            return LeadBatch(
                leads=list(synthetic_leads(filters)),
                started_at=started_at,
                completed_at=utc_now(),
                synthetic=True,
                note="Lead source not configured; using sample leads",
            )

        try:
            report = await self.enrichment_loop.run(filters, self.lead_target)
        except Exception as e:
            message = e.message if isinstance(e, CGError) else str(e) or type(e).__name__
            logger.warning(
                "Lead search failed, using sample leads",
                error=message,
                error_type=type(e).__name__,
            )
            return LeadBatch(
                leads=list(synthetic_leads(filters)),
                started_at=started_at,
                completed_at=utc_now(),
                synthetic=True,
                note=f"Lead search failed: {message}",
            )

        note = ""
        failure = stop_failure(report)
        if isinstance(failure, (SourceTimeout, SourceError)):
            note = failure.message
        elif isinstance(failure, EnrichmentExhausted):
            logger.info("Lead search stopped at a safety limit", **failure.context)

        if not report.leads:
            logger.warning(
                "No enriched leads found, using sample leads",
                stop_reason=report.stop_reason.value,
            )
            return LeadBatch(
                leads=list(synthetic_leads(filters)),
                started_at=started_at,
                completed_at=utc_now(),
                report=report,
                synthetic=True,
                note=note or f"No leads found ({report.stop_reason.value}); using sample leads",
            )

        return LeadBatch(
            leads=list(report.leads),
            started_at=started_at,
            completed_at=utc_now(),
            report=report,
            note=note,
        )

    def _record_leads(self, run: PipelineRun, batch: LeadBatch) -> None:
        if batch.note:
            run.degradations.append(batch.note)
        run.record(
            StageResult(
                stage=StageName.LEAD_SEARCH,
                started_at=batch.started_at,
                completed_at=batch.completed_at,
                output=batch.to_output(),
                summary=batch.summary(),
                degraded=bool(batch.note),
                note=batch.note,
            )
        )

    async def _run_content(
        self,
        run: PipelineRun,
        profile: CompanyProfile,
        ranking: PersonaRanking,
        batch: LeadBatch,
    ) -> list[QualifiedLead]:
        """Draft one email per lead; failed drafts drop their lead."""
        started_at = utc_now()
        campaign = CampaignContext(
            profile=profile,
            persona=ranking.selected_persona,
            selection_reasoning=ranking.selection_reasoning,
            sender_name=self.settings.SENDER_NAME,
        )
        outcomes = await self.content_generator.generate(batch.leads, campaign)
        qualified = self.content_generator.qualify(outcomes, synthetic=batch.synthetic)

        failed = [o for o in outcomes if not o.ok]
        note = ""
        if failed:
            note = f"Content generation failed for {len(failed)} of {len(outcomes)} leads"
            run.degradations.append(note)

        run.record(
            StageResult(
                stage=StageName.CONTENT,
                started_at=started_at,
                completed_at=utc_now(),
                output={
                    "generated": len(qualified),
                    "errors": [o.error for o in failed],
                },
                summary=f"{len(qualified)} emails",
                degraded=bool(failed),
                note=note,
            )
        )
        return qualified

    def _record(
        self,
        run: PipelineRun,
        stage: StageName,
        started_at: datetime,
        output: dict[str, Any],
        summary: str,
        reply: StageReply,
    ) -> None:
        run.record(
            StageResult(
                stage=stage,
                started_at=started_at,
                completed_at=utc_now(),
                output=output,
                summary=summary,
                trace=reply.trace,
            )
        )

    def _build_result(
        self,
        run: PipelineRun,
        profile: CompanyProfile,
        personas: list[Persona],
        ranking: PersonaRanking,
        filters: FilterSet,
        sales_navigator_url: str,
        batch: LeadBatch,
        qualified: list[QualifiedLead],
    ) -> CampaignResult:
        locations = filters.location_texts()
        icp_attributes = [
            ", ".join(filters.titles),
            filters.company_size,
            ", ".join(filters.industry_texts()),
        ]
        return CampaignResult(
            campaign_id=generate_id("camp"),
            slug=domain_to_slug(run.subject_key),
            subject_key=run.subject_key,
            company_name=profile.name,
            website_url=website_url(run.subject_key),
            location=locations[0] if locations else "United States",
            helps_with=profile.problem_they_solve or profile.product_or_service,
            great_at=profile.competitive_advantage or profile.how_they_solve_it,
            icp_attributes=[a for a in icp_attributes if a],
            qualified_leads=qualified,
            target_geo=build_target_geo(filters),
            filters=filters,
            sales_navigator_url=sales_navigator_url,
            company_profile=profile,
            personas=personas,
            ranking=ranking,
            stage_results=list(run.stage_results),
            lead_report=batch.report,
            degradations=list(run.degradations),
            usage=self.budget_tracker.to_dict(),
        )

    async def close(self) -> None:
        """Close all clients."""
        await self.llm_router.close()
        await self.fetcher.close()
        if self.enrichment_loop is not None:
            await self.enrichment_loop.source.close()
            await self.enrichment_loop.enricher.close()


async def run_campaign(
    subject_key: str,
    filters: FilterSet | None = None,
    settings: Settings | None = None,
    config: PipelineConfig | None = None,
) -> CampaignResult:
    """Convenience function to run the full pipeline.

    Args:
        subject_key: Domain or URL of the company.
        filters: Optional pre-supplied search criteria.
        settings: Optional settings (loads from env if None).
        config: Optional pipeline configuration.

    Returns:
        CampaignResult with all outputs.
    """
    pipeline = CampaignPipeline(settings=settings, config=config)
    return await pipeline.run(subject_key, filters)
