"""
Campaign Generator HTTP API.

Routes:
    POST /generate  - Start a campaign (202) or run it to completion (wait=true)
    GET  /progress  - Latest progress record for a subject key
    GET  /health    - Liveness and configuration summary

Progress is held in a process-wide ProgressTracker fed by a ProgressChannel.
A terminal record is dropped once it has been read through /progress.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from cg import __version__
from cg.config import Settings, get_settings
from cg.coordinator.pipeline import CampaignPipeline, PipelineConfig
from cg.coordinator.progress import ProgressChannel, ProgressTracker
from cg.exceptions import CGError, PersistenceFailure, StageFailure
from cg.logging import get_logger, setup_logging
from cg.normalize.domains import normalize_domain
from cg.storage.store import CampaignStore, SqliteCampaignStore
from cg.types import FilterSet, ProgressEvent, RunStatus, generate_id

logger = get_logger(__name__)

PipelineFactory = Callable[
    [Settings, PipelineConfig, ProgressChannel, CampaignStore | None], CampaignPipeline
]


# ============== Types ==============


class GenerateRequest(BaseModel):
    subject_key: str | None = None
    domain: str | None = None
    filters: dict[str, Any] | None = None
    wait: bool = False
    debug: bool = False
    target_count: int | None = Field(default=None, ge=1, le=100)


def default_pipeline_factory(
    settings: Settings,
    config: PipelineConfig,
    channel: ProgressChannel,
    store: CampaignStore | None,
) -> CampaignPipeline:
    return CampaignPipeline(settings=settings, config=config, channel=channel, store=store)


async def _run_in_background(
    pipeline: CampaignPipeline,
    domain: str,
    filters: FilterSet | None,
    run_id: str,
) -> None:
    """Run a pipeline detached from the request; failures land in the tracker."""
    try:
        await pipeline.run(domain, filters, run_id=run_id)
    except CGError as e:
        logger.error("Background run failed", domain=domain, run_id=run_id, error=str(e))
    except Exception as e:
        logger.error(
            "Background run crashed",
            domain=domain,
            run_id=run_id,
            error=str(e),
            error_type=type(e).__name__,
        )


def create_app(
    settings: Settings | None = None,
    tracker: ProgressTracker | None = None,
    store: CampaignStore | None = None,
    pipeline_factory: PipelineFactory | None = None,
    persist: bool = True,
) -> FastAPI:
    """Build the API application.

    Args:
        settings: Application settings (loads from env if None).
        tracker: Progress tracker (one with the configured TTL if None).
        store: Campaign store. If None and `persist` is set, a
            SqliteCampaignStore under OUTPUT_DIR is opened at startup.
        pipeline_factory: Builds a pipeline per request.
        persist: Whether to open the default store.
    """
    settings = settings or get_settings()
    setup_logging(log_level=settings.LOG_LEVEL)
    tracker = tracker or ProgressTracker(ttl_seconds=settings.PROGRESS_TTL_SECONDS)
    channel = ProgressChannel(sinks=[tracker])
    factory = pipeline_factory or default_pipeline_factory
    background: set[asyncio.Task[None]] = set()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: SqliteCampaignStore | None = None
        if app.state.store is None and persist:
            owned = SqliteCampaignStore(settings.OUTPUT_DIR)
            await owned.init()
            app.state.store = owned
        try:
            yield
        finally:
            for task in list(background):
                task.cancel()
            if background:
                await asyncio.gather(*background, return_exceptions=True)
            channel.close()
            if owned is not None:
                await owned.close()
                app.state.store = None

    app = FastAPI(title="Campaign Generator API", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.tracker = tracker
    app.state.channel = channel
    app.state.store = store

    # ============== API Routes ==============

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "dry_run": settings.DRY_RUN,
            "lead_source": settings.LEAD_SOURCE,
            "lead_source_configured": settings.lead_source_configured,
            "enrichment_configured": settings.enrichment_configured,
            "active_runs": len(background),
        }

    @app.get("/progress")
    async def get_progress(key: str = Query(..., min_length=1)) -> dict[str, Any]:
        """Latest progress for a domain; terminal records are returned once."""
        record = tracker.read(normalize_domain(key), evict_terminal=True)
        if record is None:
            raise HTTPException(status_code=404, detail="No progress for this key")
        return record.to_dict()

    @app.post("/generate")
    async def generate(request: GenerateRequest, response: Response) -> dict[str, Any]:
        """Start a campaign for a domain."""
        domain = normalize_domain(request.subject_key or request.domain or "")
        if not domain:
            raise HTTPException(status_code=400, detail="subject_key or domain is required")

        filters = FilterSet.from_dict(request.filters) if request.filters else None
        config = PipelineConfig(
            lead_target=request.target_count,
            capture_trace=True if request.debug else None,
        )
        pipeline = factory(settings, config, channel, app.state.store)
        run_id = generate_id("run")

        if request.wait:
            try:
                result = await pipeline.run(domain, filters, run_id=run_id)
            except PersistenceFailure as e:
                raise HTTPException(
                    status_code=500,
                    detail={
                        "error": e.message,
                        "result": e.result.to_dict() if e.result is not None else None,
                    },
                ) from e
            except StageFailure as e:
                raise HTTPException(status_code=502, detail=e.message) from e
            return result.to_dict()

        channel.publish(
            ProgressEvent(
                subject_key=domain,
                run_id=run_id,
                status=RunStatus.QUEUED,
                percentage=0,
                message="Queued",
            )
        )
        task = asyncio.create_task(_run_in_background(pipeline, domain, filters, run_id))
        background.add(task)
        task.add_done_callback(background.discard)

        logger.info("Campaign started", domain=domain, run_id=run_id)
        response.status_code = 202
        return {
            "run_id": run_id,
            "subject_key": domain,
            "status": RunStatus.QUEUED.value,
            "progress_url": f"/progress?key={domain}",
        }

    return app
