"""
Tests for the HTTP API.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest
from fastapi.testclient import TestClient

from cg.api.server import create_app
from cg.config import Settings
from cg.coordinator.pipeline import CampaignPipeline, PipelineConfig
from cg.coordinator.progress import ProgressChannel, ProgressTracker
from cg.exceptions import DataFetchError
from cg.logging import setup_logging
from cg.retrieval.fetch import FetchedPage
from cg.storage.store import CampaignStore

PAGE = FetchedPage(
    url="https://acme.com",
    title="Acme Analytics",
    description="Shipment analytics",
    body_text="Acme helps retailers stop late shipments.",
)


class FakeFetcher:
    def __init__(self, error: Exception | None = None, block: bool = False) -> None:
        self.error = error
        self.block = block

    async def fetch(self, url: str) -> FetchedPage:
        if self.block:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        return PAGE

    async def close(self) -> None:
        pass


def factory_with(fetcher: FakeFetcher, configs: list[PipelineConfig] | None = None) -> Any:
    def factory(
        settings: Settings,
        config: PipelineConfig,
        channel: ProgressChannel,
        store: CampaignStore | None,
    ) -> CampaignPipeline:
        if configs is not None:
            configs.append(config)
        return CampaignPipeline(
            settings=settings,
            config=config,
            channel=channel,
            store=store,
            fetcher=fetcher,  # type: ignore[arg-type]
        )

    return factory


@pytest.fixture
def tracker() -> ProgressTracker:
    return ProgressTracker()


def client_for(settings: Settings, tracker: ProgressTracker, fetcher: FakeFetcher, **kwargs: Any) -> TestClient:
    app = create_app(
        settings=settings,
        tracker=tracker,
        pipeline_factory=factory_with(fetcher, **kwargs),
        persist=False,
    )
    return TestClient(app)


class TestHealth:
    def test_health(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        with client_for(dry_run_settings, tracker, FakeFetcher()) as client:
            response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["dry_run"] is True
        assert body["lead_source"] == "sales_navigator"
        assert body["lead_source_configured"] is False
        assert body["active_runs"] == 0

    def test_log_level_from_settings(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        settings = dry_run_settings.model_copy(update={"LOG_LEVEL": "WARNING"})
        try:
            client_for(settings, tracker, FakeFetcher())

            assert logging.getLogger("cg").level == logging.WARNING
        finally:
            setup_logging()


class TestGenerate:
    """Tests for POST /generate."""

    def test_wait_returns_campaign(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        with client_for(dry_run_settings, tracker, FakeFetcher()) as client:
            response = client.post("/generate", json={"domain": "https://www.acme.com", "wait": True})

        assert response.status_code == 200
        body = response.json()
        assert body["subject_key"] == "acme.com"
        assert body["company_name"] == "Acme Analytics"
        assert len(body["qualified_leads"]) == 5

    def test_background_run_reports_progress(
        self, dry_run_settings: Settings, tracker: ProgressTracker
    ) -> None:
        with client_for(dry_run_settings, tracker, FakeFetcher(block=True)) as client:
            response = client.post("/generate", json={"subject_key": "acme.com"})
            progress = client.get("/progress", params={"key": "acme.com"})

        assert response.status_code == 202
        assert response.json() == {
            "run_id": response.json()["run_id"],
            "subject_key": "acme.com",
            "status": "queued",
            "progress_url": "/progress?key=acme.com",
        }
        assert response.json()["run_id"].startswith("run_")
        assert progress.status_code == 200
        assert progress.json()["status"] in ("queued", "fetching_content")
        assert progress.json()["run_id"] == response.json()["run_id"]

    def test_options_reach_pipeline_config(
        self, dry_run_settings: Settings, tracker: ProgressTracker
    ) -> None:
        configs: list[PipelineConfig] = []
        with client_for(dry_run_settings, tracker, FakeFetcher(), configs=configs) as client:
            response = client.post(
                "/generate",
                json={"domain": "acme.com", "wait": True, "debug": True, "target_count": 3},
            )

        assert response.status_code == 200
        assert configs[0].lead_target == 3
        assert configs[0].capture_trace is True
        assert "trace" in response.json()["stage_results"][1]

    def test_caller_filters(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        filters = {"titles": ["COO"], "locations": ["California"]}
        with client_for(dry_run_settings, tracker, FakeFetcher()) as client:
            response = client.post(
                "/generate", json={"domain": "acme.com", "wait": True, "filters": filters}
            )

        body = response.json()
        assert body["filters"]["titles"] == ["COO"]
        assert body["target_geo"] == {"region": "us", "states": ["CA"]}

    def test_stage_failure_with_wait(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        fetcher = FakeFetcher(error=DataFetchError("Failed to fetch https://acme.com"))
        with client_for(dry_run_settings, tracker, fetcher) as client:
            response = client.post("/generate", json={"domain": "acme.com", "wait": True})

        assert response.status_code == 502
        assert response.json()["detail"] == "fetch_content: Failed to fetch https://acme.com"

    def test_missing_domain(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        with client_for(dry_run_settings, tracker, FakeFetcher()) as client:
            response = client.post("/generate", json={"wait": True})

        assert response.status_code == 400

    def test_target_count_validated(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        with client_for(dry_run_settings, tracker, FakeFetcher()) as client:
            response = client.post("/generate", json={"domain": "acme.com", "target_count": 0})

        assert response.status_code == 422


class TestProgress:
    """Tests for GET /progress."""

    def test_unknown_key(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        with client_for(dry_run_settings, tracker, FakeFetcher()) as client:
            response = client.get("/progress", params={"key": "nobody.com"})

        assert response.status_code == 404

    def test_key_required(self, dry_run_settings: Settings, tracker: ProgressTracker) -> None:
        with client_for(dry_run_settings, tracker, FakeFetcher()) as client:
            response = client.get("/progress")

        assert response.status_code == 422

    def test_terminal_record_returned_once(
        self, dry_run_settings: Settings, tracker: ProgressTracker
    ) -> None:
        with client_for(dry_run_settings, tracker, FakeFetcher()) as client:
            client.post("/generate", json={"domain": "acme.com", "wait": True})
            first = client.get("/progress", params={"key": "https://www.acme.com/"})
            second = client.get("/progress", params={"key": "acme.com"})

        assert first.status_code == 200
        assert first.json()["status"] == "complete"
        assert first.json()["percentage"] == 100
        assert first.json()["result"]["company_name"] == "Acme Analytics"
        assert second.status_code == 404
