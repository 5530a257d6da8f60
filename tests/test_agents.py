"""
Tests for the reasoning stages and the email writer.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from cg.agents.base import StageContext
from cg.agents.company_profiler import CompanyProfiler
from cg.agents.email_writer import CampaignContext, EmailWriter
from cg.agents.filter_builder import FilterBuilder
from cg.agents.persona_brainstormer import PersonaBrainstormer, dedupe_personas
from cg.agents.persona_ranker import PersonaRanker, select_persona
from cg.config import Settings
from cg.exceptions import GenerationFailure, StageFailure
from cg.llm.base import LLMResponse, RateLimitError
from cg.llm.router import LLMRouter
from cg.normalize.names import PassthroughNameNormalizer
from cg.retrieval.fetch import FetchedPage
from cg.types import Candidate, CompanyProfile, Persona, PersonaEvaluation

PAGE = FetchedPage(
    url="https://acme.com",
    title="Acme Analytics",
    description="Ops dashboards",
    body_text="Acme helps operations teams catch late shipments.",
)


def dry_context(settings: Settings, capture_trace: bool = False) -> StageContext:
    return StageContext(
        settings=settings,
        llm_router=LLMRouter(settings, dry_run=True),
        capture_trace=capture_trace,
    )


def scripted_context(settings: Settings, reply: Any = None, error: Exception | None = None) -> StageContext:
    """Context whose router returns one fixed reply (dicts are JSON-encoded) or raises."""
    router = MagicMock()
    if error is not None:
        router.complete = AsyncMock(side_effect=error)
    else:
        content = reply if isinstance(reply, str) else orjson.dumps(reply).decode("utf-8")
        router.complete = AsyncMock(
            return_value=LLMResponse(
                content=content, model="gpt-4o", provider="openai", input_tokens=10, output_tokens=5
            )
        )
    return StageContext(settings=settings, llm_router=router)


def persona(persona_id: str, name: str, **extra: Any) -> Persona:
    return Persona.from_dict({"id": persona_id, "name": name, **extra})


def evaluation(persona_id: str, score: float, name: str = "") -> PersonaEvaluation:
    return PersonaEvaluation(persona_id=persona_id, persona_name=name, overall_score=score)


@pytest.fixture
def profile() -> CompanyProfile:
    return CompanyProfile(
        name="Acme Analytics, Inc.",
        domain="acme.com",
        tagline="Dashboards your ops team will use",
        product_or_service="Operational analytics",
        problem_they_solve="No visibility into fulfilment",
        case_studies=("Cut late shipments 40%",),
    )


class TestCompanyProfiler:
    """Tests for Stage 1."""

    @pytest.mark.asyncio
    async def test_profiles_from_page(self, dry_run_settings: Settings) -> None:
        profiler = CompanyProfiler(dry_context(dry_run_settings))

        profile, reply = await profiler.run("acme.com", PAGE)

        assert profile.name == "Acme Analytics"
        assert profile.domain == "acme.com"
        assert profile.geography.primary_markets == ("United States",)
        assert profile.sales_motion == "hybrid"
        assert reply.trace is None

    @pytest.mark.asyncio
    async def test_missing_name_falls_back_to_domain(self, dry_run_settings: Settings) -> None:
        profiler = CompanyProfiler(scripted_context(dry_run_settings, {"tagline": "Fast"}))

        profile, _ = await profiler.run("acme.com", PAGE)

        assert profile.name == "Acme"
        assert profile.tagline == "Fast"

    @pytest.mark.asyncio
    async def test_unparseable_reply_is_stage_failure(self, dry_run_settings: Settings) -> None:
        profiler = CompanyProfiler(scripted_context(dry_run_settings, "I could not read the site."))

        with pytest.raises(StageFailure) as exc_info:
            await profiler.run("acme.com", PAGE)

        assert exc_info.value.context["stage"] == "company_profile"

    @pytest.mark.asyncio
    async def test_reasoning_error_is_stage_failure(self, dry_run_settings: Settings) -> None:
        profiler = CompanyProfiler(
            scripted_context(dry_run_settings, error=RateLimitError("slow down"))
        )

        with pytest.raises(StageFailure) as exc_info:
            await profiler.run("acme.com", PAGE)

        assert exc_info.value.context["error_type"] == "RateLimitError"

    @pytest.mark.asyncio
    async def test_string_geography_is_primary_market(self, dry_run_settings: Settings) -> None:
        reply = {"name": "Acme", "geography": "United States"}
        profiler = CompanyProfiler(scripted_context(dry_run_settings, reply))

        profile, _ = await profiler.run("acme.com", PAGE)

        assert profile.geography.primary_markets == ("United States",)
        assert profile.geography.confidence == "low"

    @pytest.mark.asyncio
    async def test_list_geography_is_ignored(self, dry_run_settings: Settings) -> None:
        reply = {"name": "Acme", "geography": ["US", "CA"]}
        profiler = CompanyProfiler(scripted_context(dry_run_settings, reply))

        profile, _ = await profiler.run("acme.com", PAGE)

        assert profile.geography.primary_markets == ()

    def test_malformed_payload_is_stage_failure(self, dry_run_settings: Settings) -> None:
        profiler = CompanyProfiler(dry_context(dry_run_settings))

        def parser(data: dict[str, Any]) -> Any:
            return data.get("geography").get("primary_markets")

        with pytest.raises(StageFailure) as exc_info:
            profiler.parse_reply(parser, {"geography": "United States"})

        assert exc_info.value.context == {"stage": "company_profile", "error_type": "AttributeError"}

    @pytest.mark.asyncio
    async def test_trace_captured_when_enabled(self, dry_run_settings: Settings) -> None:
        profiler = CompanyProfiler(dry_context(dry_run_settings, capture_trace=True))

        _, reply = await profiler.run("acme.com", PAGE)

        assert reply.trace is not None
        assert "DOMAIN: acme.com" in reply.trace.prompt
        assert "B2B market analyst" in reply.trace.prompt
        assert "Acme Analytics" in reply.trace.response


class TestPersonaBrainstormer:
    """Tests for Stage 2."""

    @pytest.mark.asyncio
    async def test_generates_personas(
        self, dry_run_settings: Settings, profile: CompanyProfile
    ) -> None:
        personas, _ = await PersonaBrainstormer(dry_context(dry_run_settings)).run(profile)

        assert [p.persona_id for p in personas] == ["p1", "p2", "p3"]
        assert personas[0].titles == ("VP of Operations", "Head of Operations")

    def test_dedupe_gives_unique_ids(self) -> None:
        personas = dedupe_personas(
            [persona("p1", "A"), persona("p1", "B"), persona("", ""), persona("", "D")]
        )

        assert [p.persona_id for p in personas] == ["p1", "p1-2", "p4"]
        assert [p.name for p in personas] == ["A", "B", "D"]

    @pytest.mark.asyncio
    async def test_reply_without_list_fails(
        self, dry_run_settings: Settings, profile: CompanyProfile
    ) -> None:
        stage = PersonaBrainstormer(scripted_context(dry_run_settings, {"personas": "none"}))

        with pytest.raises(StageFailure):
            await stage.run(profile)

    @pytest.mark.asyncio
    async def test_reply_with_only_nameless_personas_fails(
        self, dry_run_settings: Settings, profile: CompanyProfile
    ) -> None:
        stage = PersonaBrainstormer(scripted_context(dry_run_settings, {"personas": [{"id": "p1"}]}))

        with pytest.raises(StageFailure):
            await stage.run(profile)


class TestSelectPersona:
    """Tests for the selection rule."""

    def test_highest_score_wins(self) -> None:
        personas = [persona("p1", "A"), persona("p2", "B")]
        selected = select_persona([evaluation("p1", 6.0), evaluation("p2", 8.0)], personas, "p1")

        assert selected is not None
        assert selected.persona_id == "p2"

    def test_tie_goes_to_first_listed_persona(self) -> None:
        personas = [persona("p1", "A"), persona("p2", "B"), persona("p3", "C")]
        selected = select_persona(
            [evaluation("p3", 8.0), evaluation("p2", 8.0), evaluation("p1", 5.0)], personas, "p3"
        )

        assert selected is not None
        assert selected.persona_id == "p2"

    def test_matches_by_name_when_id_is_unknown(self) -> None:
        personas = [persona("p1", "Operations Leader"), persona("p2", "Founder")]
        selected = select_persona(
            [evaluation("x9", 9.0, name="founder "), evaluation("p1", 4.0)], personas
        )

        assert selected is not None
        assert selected.persona_id == "p2"

    def test_provider_pick_used_without_matching_evaluations(self) -> None:
        personas = [persona("p1", "A"), persona("p2", "B")]
        selected = select_persona([evaluation("zz", 9.0)], personas, "p2")

        assert selected is not None
        assert selected.persona_id == "p2"

    def test_nothing_selectable(self) -> None:
        personas = [persona("p1", "A")]
        assert select_persona([evaluation("zz", 9.0)], personas, "zz") is None


class TestPersonaRanker:
    """Tests for Stage 3."""

    @pytest.mark.asyncio
    async def test_selects_member_of_input_set(
        self, dry_run_settings: Settings, profile: CompanyProfile
    ) -> None:
        personas, _ = await PersonaBrainstormer(dry_context(dry_run_settings)).run(profile)

        ranking, _ = await PersonaRanker(dry_context(dry_run_settings)).run(profile, personas)

        assert ranking.selected_persona in personas
        assert ranking.selected_persona.persona_id == "p1"
        assert ranking.provider_selected_id == "p1"
        assert len(ranking.evaluations) == 3
        assert ranking.selection_reasoning

    @pytest.mark.asyncio
    async def test_unknown_selection_is_stage_failure(
        self, dry_run_settings: Settings, profile: CompanyProfile
    ) -> None:
        reply = {
            "evaluations": [{"persona_id": "ghost", "persona_name": "Ghost", "overall_score": 9}],
            "selected_persona_id": "ghost",
        }
        ranker = PersonaRanker(scripted_context(dry_run_settings, reply))

        with pytest.raises(StageFailure):
            await ranker.run(profile, [persona("p1", "A")])

    @pytest.mark.asyncio
    async def test_empty_persona_set(self, dry_run_settings: Settings, profile: CompanyProfile) -> None:
        with pytest.raises(StageFailure):
            await PersonaRanker(dry_context(dry_run_settings)).run(profile, [])


class TestFilterBuilder:
    """Tests for Stage 4."""

    @pytest.mark.asyncio
    async def test_builds_filters(self, dry_run_settings: Settings, profile: CompanyProfile) -> None:
        builder = FilterBuilder(dry_context(dry_run_settings))

        filters, _ = await builder.run(persona("p1", "Ops", titles=["VP of Operations"]), profile)

        assert filters.titles[0] == "VP of Operations"
        assert filters.company_size == "51-200"
        assert filters.industries[0].id == "27"
        assert filters.location_texts() == ["United States"]

    @pytest.mark.asyncio
    async def test_missing_titles_filled_from_persona(
        self, dry_run_settings: Settings, profile: CompanyProfile
    ) -> None:
        builder = FilterBuilder(scripted_context(dry_run_settings, {"company_size": "11-50"}))

        filters, _ = await builder.run(persona("p1", "Ops", titles=["COO"]), profile)

        assert filters.titles == ("COO",)
        assert filters.company_size == "11-50"

    @pytest.mark.asyncio
    async def test_empty_filters_fail(self, dry_run_settings: Settings) -> None:
        builder = FilterBuilder(scripted_context(dry_run_settings, {"titles": []}))

        with pytest.raises(StageFailure):
            await builder.run(persona("p1", "Ops"))

    @pytest.mark.asyncio
    async def test_plain_string_tags(self, dry_run_settings: Settings) -> None:
        reply = {"titles": "CFO", "industries": "Software", "locations": "Texas"}
        builder = FilterBuilder(scripted_context(dry_run_settings, reply))

        filters, _ = await builder.run(persona("p1", "Finance"))

        assert filters.titles == ("CFO",)
        assert filters.industry_texts() == ["Software"]
        assert filters.location_texts() == ["Texas"]


class TestEmailWriter:
    """Tests for per-lead drafting."""

    @pytest.fixture
    def campaign(self, profile: CompanyProfile) -> CampaignContext:
        return CampaignContext(
            profile=profile,
            persona=persona("p1", "Operations Leader", pain_points=["Late shipments"]),
            selection_reasoning="They own the problem.",
        )

    @pytest.mark.asyncio
    async def test_drafts_email(
        self, dry_run_settings: Settings, sample_candidate: Candidate, campaign: CampaignContext
    ) -> None:
        content = await EmailWriter(dry_context(dry_run_settings)).run(sample_candidate, campaign)

        assert content.subject == "late shipments"
        assert content.body.endswith("Bella")
        assert content.why_picked

    def test_prompt_uses_conversational_names(
        self, dry_run_settings: Settings, sample_candidate: Candidate, campaign: CampaignContext
    ) -> None:
        writer = EmailWriter(dry_context(dry_run_settings))
        prompt = writer.build_prompt(sample_candidate, campaign)

        assert "Company: Engines\n" in prompt
        assert "cold email for Acme Analytics." in prompt
        assert "{{first_name}}" in prompt
        assert "Sign off as Bella" in prompt
        assert "Cut late shipments 40%" in prompt

    def test_passthrough_normalizer_keeps_names(
        self, dry_run_settings: Settings, sample_candidate: Candidate
    ) -> None:
        writer = EmailWriter(dry_context(dry_run_settings), PassthroughNameNormalizer())
        assert writer.position(sample_candidate).company == "Engines Inc."

    @pytest.mark.asyncio
    async def test_missing_body_is_generation_failure(
        self, dry_run_settings: Settings, sample_candidate: Candidate, campaign: CampaignContext
    ) -> None:
        writer = EmailWriter(scripted_context(dry_run_settings, {"email_subject": "hi"}))

        with pytest.raises(GenerationFailure) as exc_info:
            await writer.run(sample_candidate, campaign)

        assert exc_info.value.context["lead"] == "ada-1"

    @pytest.mark.asyncio
    async def test_reasoning_error_is_generation_failure(
        self, dry_run_settings: Settings, sample_candidate: Candidate, campaign: CampaignContext
    ) -> None:
        writer = EmailWriter(scripted_context(dry_run_settings, error=RateLimitError("slow")))

        with pytest.raises(GenerationFailure):
            await writer.run(sample_candidate, campaign)
