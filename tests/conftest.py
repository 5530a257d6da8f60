"""
Pytest configuration and fixtures for campaign generator tests.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest

from cg.config import Settings, clear_settings_cache
from cg.types import Candidate, FilterSet

# Provider credentials that must not leak into tests from a developer's shell.
_CREDENTIAL_VARS = (
    "FIRECRAWL_API_KEY",
    "AI_ARK_TOKEN",
    "APIFY_API_TOKEN",
    "ICYPEAS_API_KEY",
    "LEADS_COUNT_OVERRIDE",
    "DRY_RUN",
    "CAPTURE_TRACE",
)


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars() -> Generator[dict[str, str], None, None]:
    """Provide mock environment variables for testing.

    Sets up fake API keys and required configuration.
    """
    env_vars = {
        "OPENAI_API_KEY": "sk-test-fake-openai-key-1234567890",
        "ANTHROPIC_API_KEY": "sk-ant-REDACTED",
        "PREFERRED_PROVIDER": "",  # Avoid forcing provider in tests
        "MAX_BUDGET_USD": "5.0",
        "LEADS_TARGET": "5",
        "OUTPUT_DIR": "test_output",
        "LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        for key in _CREDENTIAL_VARS:
            os.environ.pop(key, None)
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str], temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide a Settings instance with mock configuration.

    Uses temp_dir for the output directory.
    """
    with patch.dict(os.environ, {"OUTPUT_DIR": str(temp_dir / "output")}):
        clear_settings_cache()
        from cg.config import get_settings

        settings = get_settings()
        settings.ensure_directories()
        yield settings
        clear_settings_cache()


@pytest.fixture
def dry_run_settings(temp_dir: Path) -> Settings:
    """Settings that return canned reasoning responses and have no lead source."""
    return Settings(
        _env_file=None,
        DRY_RUN=True,
        OPENAI_API_KEY=None,
        ANTHROPIC_API_KEY=None,
        FIRECRAWL_API_KEY=None,
        AI_ARK_TOKEN=None,
        APIFY_API_TOKEN=None,
        ICYPEAS_API_KEY=None,
        PREFERRED_PROVIDER=None,
        CAPTURE_TRACE=False,
        OUTPUT_DIR=temp_dir / "output",
    )


@pytest.fixture
def sample_filters() -> FilterSet:
    """Filters for a US operations persona."""
    return FilterSet.from_dict(
        {
            "titles": ["VP of Operations", "Head of Operations"],
            "company_size": "51-200",
            "industries": ["Retail"],
            "locations": ["Texas, United States"],
        }
    )


@pytest.fixture
def sample_candidate() -> Candidate:
    """A candidate as returned by a people-search provider."""
    return Candidate(
        first_name="Ada",
        last_name="Lovelace",
        full_name="Ada Lovelace",
        title="VP of Operations",
        company="Engines Inc.",
        company_domain="engines.io",
        location="Austin, Texas, United States",
        about="Running operations at Engines.",
        profile_url="https://linkedin.com/in/ada",
        profile_id="ada-1",
    )


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


class FakeClock:
    """Virtual time: sleeping advances the clock instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    """Clock and sleep pair for pollers and trackers that should not really wait."""
    return FakeClock()
