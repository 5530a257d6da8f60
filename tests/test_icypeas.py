"""
Tests for Icypeas contact enrichment.
"""

from __future__ import annotations

import json
from dataclasses import replace
from typing import Any

import httpx
import pytest

from cg.sources.icypeas import IcypeasEnricher, lookup_domain
from cg.sources.poller import JobPoller
from cg.types import Candidate


class FakeIcypeas:
    """Scripted Icypeas API keyed by the searched first name."""

    def __init__(self, results: dict[str, list[dict[str, Any]]], submit_status: int = 200) -> None:
        self.results = results
        self.submit_status = submit_status
        self.submitted: list[dict[str, Any]] = []
        self.reads: dict[str, int] = {}
        self.auth_headers: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.auth_headers.append(request.headers.get("Authorization", ""))

        if request.url.path.endswith("/email-search"):
            self.submitted.append(body)
            if self.submit_status != 200:
                return httpx.Response(self.submit_status, text="nope")
            return httpx.Response(200, json={"success": True, "item": {"_id": body["firstname"]}})

        search_id = body["id"]
        count = self.reads.get(search_id, 0)
        self.reads[search_id] = count + 1
        script = self.results[search_id]
        return httpx.Response(200, json={"items": [script[min(count, len(script) - 1)]]})


def found(email: str) -> dict[str, Any]:
    return {"status": "DEBITED", "results": {"emails": [{"email": email}]}}


def make_enricher(api: FakeIcypeas, fake_clock: Any, max_attempts: int = 10) -> IcypeasEnricher:
    poller = JobPoller(
        max_attempts=max_attempts,
        interval_seconds=1.0,
        sleep_first=True,
        sleep=fake_clock.sleep,
        clock=fake_clock,
    )
    return IcypeasEnricher(
        api_key="icy-key",
        api_url="https://icypeas.test/api/",
        poller=poller,
        client=httpx.AsyncClient(transport=httpx.MockTransport(api)),
        min_request_interval=0,
    )


class TestIcypeasEnricher:
    """Tests for IcypeasEnricher.enrich."""

    @pytest.mark.asyncio
    async def test_found_after_pending(self, sample_candidate: Candidate, fake_clock: Any) -> None:
        """Test submit, poll through pending, and return the verified address."""
        api = FakeIcypeas({"Ada": [{"status": "IN_PROGRESS"}, found("ada@engines.io")]})
        enricher = make_enricher(api, fake_clock)

        email = await enricher.enrich(sample_candidate)
        await enricher.close()

        assert email == "ada@engines.io"
        assert api.submitted == [
            {"firstname": "Ada", "lastname": "Lovelace", "domainOrCompany": "engines.io"}
        ]
        assert api.reads == {"Ada": 2}
        assert set(api.auth_headers) == {"icy-key"}
        assert fake_clock.sleeps == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_not_found(self, sample_candidate: Candidate, fake_clock: Any) -> None:
        api = FakeIcypeas({"Ada": [{"status": "DEBITED_NOT_FOUND"}]})
        enricher = make_enricher(api, fake_clock)

        assert await enricher.enrich(sample_candidate) is None

    @pytest.mark.asyncio
    async def test_poll_timeout_counts_as_not_found(
        self, sample_candidate: Candidate, fake_clock: Any
    ) -> None:
        api = FakeIcypeas({"Ada": [{"status": "SCHEDULED"}]})
        enricher = make_enricher(api, fake_clock, max_attempts=3)

        assert await enricher.enrich(sample_candidate) is None
        assert api.reads == {"Ada": 3}

    @pytest.mark.asyncio
    async def test_unknown_status_counts_as_not_found(
        self, sample_candidate: Candidate, fake_clock: Any
    ) -> None:
        api = FakeIcypeas({"Ada": [{"status": "EXPLODED"}]})
        enricher = make_enricher(api, fake_clock)

        assert await enricher.enrich(sample_candidate) is None
        assert api.reads == {"Ada": 1}

    @pytest.mark.asyncio
    async def test_api_error_counts_as_not_found(
        self, sample_candidate: Candidate, fake_clock: Any
    ) -> None:
        api = FakeIcypeas({}, submit_status=402)
        enricher = make_enricher(api, fake_clock)

        assert await enricher.enrich(sample_candidate) is None
        assert api.reads == {}

    @pytest.mark.asyncio
    async def test_missing_name_skips_lookup(self, sample_candidate: Candidate, fake_clock: Any) -> None:
        api = FakeIcypeas({})
        enricher = make_enricher(api, fake_clock)
        nameless = replace(sample_candidate, first_name="", last_name="")

        assert await enricher.enrich(nameless) is None
        assert api.submitted == []

    @pytest.mark.asyncio
    async def test_enrich_batch_keeps_hits_in_order(
        self, sample_candidate: Candidate, fake_clock: Any
    ) -> None:
        api = FakeIcypeas(
            {
                "Ada": [found("ada@engines.io")],
                "Charles": [{"status": "NOT_FOUND"}],
                "Grace": [found("grace@navy.mil")],
            }
        )
        enricher = make_enricher(api, fake_clock)
        candidates = [
            sample_candidate,
            replace(sample_candidate, first_name="Charles", profile_id="c"),
            replace(sample_candidate, first_name="Grace", profile_id="g"),
        ]

        leads = await enricher.enrich_batch(candidates, concurrency=2)

        assert [lead.email for lead in leads] == ["ada@engines.io", "grace@navy.mil"]
        assert all(lead.provider == "icypeas" for lead in leads)


class TestLookupDomain:
    """Tests for choosing what to search an address at."""

    def test_prefers_company_domain(self, sample_candidate: Candidate) -> None:
        assert lookup_domain(sample_candidate) == "engines.io"

    def test_falls_back_to_company_name(self, sample_candidate: Candidate) -> None:
        assert lookup_domain(replace(sample_candidate, company_domain="")) == "Engines Inc."

    def test_nothing_to_search(self, sample_candidate: Candidate) -> None:
        assert lookup_domain(replace(sample_candidate, company_domain="", company="")) is None
