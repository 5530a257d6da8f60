"""
Tests for the command-line interface.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import AsyncMock, patch

from typer.testing import CliRunner

from cg import __version__
from cg.cli.main import _load_filters, app
from cg.retrieval.fetch import FetchedPage, WebFetcher

runner = CliRunner()

PAGE = FetchedPage(
    url="https://acme.com",
    title="Acme Analytics",
    description="Shipment analytics",
    body_text="Acme helps retailers stop late shipments.",
)


class TestVersionAndConfig:
    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config_redacts_keys(self, mock_env_vars: dict[str, str]) -> None:
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "sk-test-" in result.output
        assert mock_env_vars["OPENAI_API_KEY"] not in result.output
        assert "Available LLM Providers" in result.output

    def test_config_invalid(self) -> None:
        env = {"OPENAI_API_KEY": "", "ANTHROPIC_API_KEY": "", "DRY_RUN": "false"}
        with patch.dict(os.environ, env):
            result = runner.invoke(app, ["config"])

        assert result.exit_code == 1


class TestGenerateCommand:
    """Tests for `cg generate`."""

    def test_dry_run(self, temp_dir: Path) -> None:
        out = temp_dir / "campaign.json"
        with (
            patch.object(WebFetcher, "fetch", AsyncMock(return_value=PAGE)),
            patch("cg.coordinator.pipeline.build_enrichment_loop", return_value=None),
        ):
            result = runner.invoke(
                app, ["generate", "acme.com", "--dry-run", "--no-save", "--json", str(out)]
            )

        assert result.exit_code == 0, result.output
        assert "Acme Analytics" in result.output
        assert "Qualified Leads" in result.output
        data = json.loads(out.read_text())
        assert data["subject_key"] == "acme.com"
        assert len(data["qualified_leads"]) == 5

    def test_fetch_failure_exits_nonzero(self) -> None:
        from cg.exceptions import DataFetchError

        failing = AsyncMock(side_effect=DataFetchError("Failed to fetch https://acme.com"))
        with (
            patch.object(WebFetcher, "fetch", failing),
            patch("cg.coordinator.pipeline.build_enrichment_loop", return_value=None),
        ):
            result = runner.invoke(app, ["generate", "acme.com", "--dry-run", "--no-save"])

        assert result.exit_code == 1

    def test_invalid_domain(self) -> None:
        result = runner.invoke(app, ["generate", "https://", "--dry-run", "--no-save"])

        assert result.exit_code == 1


class TestLoadFilters:
    """Tests for combining a filters file with flags."""

    def test_flags_only(self) -> None:
        filters = _load_filters(None, ["COO"], ["Texas"], [], "51-200")

        assert filters is not None
        assert filters.titles == ("COO",)
        assert filters.company_size == "51-200"
        assert filters.location_texts() == ["Texas"]

    def test_flags_override_file(self, temp_dir: Path) -> None:
        path = temp_dir / "filters.json"
        path.write_text(json.dumps({"titles": ["CFO"], "industries": ["Retail"]}))

        filters = _load_filters(path, ["COO"], [], [], None)

        assert filters is not None
        assert filters.titles == ("COO",)
        assert filters.industry_texts() == ["Retail"]

    def test_nothing_supplied(self) -> None:
        assert _load_filters(None, [], [], [], None) is None
