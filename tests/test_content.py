"""
Tests for the best-effort content generator and synthetic leads.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from cg.agents.email_writer import CampaignContext
from cg.coordinator.content import ContentGenerator
from cg.coordinator.synthetic import DEFAULT_TITLES, synthetic_leads
from cg.exceptions import GenerationFailure
from cg.normalize.names import Position, RegexNameNormalizer
from cg.types import Candidate, CompanyProfile, EmailContent, EnrichedLead, FilterSet, Persona


class FakeWriter:
    """Email writer double: behaviour is chosen per profile id."""

    def __init__(
        self,
        fail: set[str] | None = None,
        crash: set[str] | None = None,
        hang: set[str] | None = None,
        cancel: set[str] | None = None,
    ) -> None:
        self.fail = fail or set()
        self.crash = crash or set()
        self.hang = hang or set()
        self.cancel = cancel or set()
        self.calls: list[str] = []
        self.normalizer = RegexNameNormalizer()

    def position(self, candidate: Candidate) -> Position:
        position = self.normalizer.primary_position(candidate)
        return Position(title=position.title, company=self.normalizer.company_name(position.company))

    async def run(self, candidate: Candidate, campaign: CampaignContext) -> EmailContent:
        self.calls.append(candidate.profile_id)
        if candidate.profile_id in self.hang:
            await asyncio.Event().wait()
        if candidate.profile_id in self.fail:
            raise GenerationFailure("content: reply is missing subject or body")
        if candidate.profile_id in self.crash:
            raise RuntimeError("boom")
        if candidate.profile_id in self.cancel:
            raise asyncio.CancelledError()
        return EmailContent(
            why_picked=f"{candidate.first_name} runs ops",
            subject="quick question",
            body=f"Hi {candidate.first_name}",
        )


@pytest.fixture
def campaign() -> CampaignContext:
    return CampaignContext(
        profile=CompanyProfile(name="Acme", domain="acme.com"),
        persona=Persona(persona_id="p1", name="Operations Leader"),
    )


def leads(count: int) -> list[Candidate]:
    return [
        Candidate(
            first_name=f"Lead{i}",
            last_name="Test",
            company="Widgets LLC",
            title="COO",
            profile_id=f"lead-{i}",
        )
        for i in range(count)
    ]


class TestContentGenerator:
    """Tests for ContentGenerator.generate and qualify."""

    @pytest.mark.asyncio
    async def test_one_failure_removes_one_lead(self, campaign: CampaignContext) -> None:
        """Test five leads with one failed draft yield four qualified leads."""
        generator = ContentGenerator(FakeWriter(fail={"lead-2"}))  # type: ignore[arg-type]

        outcomes = await generator.generate(leads(5), campaign)
        qualified = generator.qualify(outcomes)

        assert len(outcomes) == 5
        assert outcomes[2].error == "content: reply is missing subject or body"
        assert [q.lead_id for q in qualified] == ["lead-0", "lead-1", "lead-3", "lead-4"]

    @pytest.mark.asyncio
    async def test_timeout_is_contained(self, campaign: CampaignContext) -> None:
        generator = ContentGenerator(
            FakeWriter(hang={"lead-1"}), lead_timeout=0.05  # type: ignore[arg-type]
        )

        outcomes = await generator.generate(leads(3), campaign)

        assert [o.ok for o in outcomes] == [True, False, True]
        assert outcomes[1].error is not None
        assert outcomes[1].error.startswith("Timed out after")

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, campaign: CampaignContext) -> None:
        generator = ContentGenerator(FakeWriter(crash={"lead-0"}))  # type: ignore[arg-type]

        outcomes = await generator.generate(leads(2), campaign)

        assert outcomes[0].error == "RuntimeError: boom"
        assert outcomes[1].ok

    @pytest.mark.asyncio
    async def test_cancelled_draft_is_contained(self, campaign: CampaignContext) -> None:
        generator = ContentGenerator(FakeWriter(cancel={"lead-0"}))  # type: ignore[arg-type]

        outcomes = await generator.generate(leads(2), campaign)

        assert outcomes[0].error is not None
        assert outcomes[0].error.startswith("CancelledError")
        assert outcomes[1].ok
        assert [q.name for q in generator.qualify(outcomes)] == ["Lead1 Test"]

    @pytest.mark.asyncio
    async def test_only_first_leads_are_processed(self, campaign: CampaignContext) -> None:
        writer = FakeWriter()
        generator = ContentGenerator(writer, max_leads=5)  # type: ignore[arg-type]

        outcomes = await generator.generate(leads(8), campaign)

        assert len(outcomes) == 5
        assert sorted(writer.calls) == [f"lead-{i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_no_leads(self, campaign: CampaignContext) -> None:
        generator = ContentGenerator(FakeWriter())  # type: ignore[arg-type]
        assert await generator.generate([], campaign) == []

    @pytest.mark.asyncio
    async def test_qualify_carries_address_and_names(
        self, campaign: CampaignContext, sample_candidate: Candidate
    ) -> None:
        generator = ContentGenerator(FakeWriter())  # type: ignore[arg-type]
        enriched = EnrichedLead(candidate=sample_candidate, email="ada@engines.io")
        anonymous = replace(sample_candidate, profile_id="", first_name="Bob")

        outcomes = await generator.generate([enriched, anonymous], campaign)
        qualified = generator.qualify(outcomes)

        assert qualified[0].email == "ada@engines.io"
        assert qualified[0].company == "Engines"
        assert qualified[0].email_subject == "quick question"
        assert qualified[0].synthetic is False
        assert qualified[1].email is None
        assert qualified[1].lead_id == "lead-2"

    @pytest.mark.asyncio
    async def test_qualify_marks_synthetic(self, campaign: CampaignContext) -> None:
        generator = ContentGenerator(FakeWriter())  # type: ignore[arg-type]
        outcomes = await generator.generate(synthetic_leads(), campaign)

        qualified = generator.qualify(outcomes, synthetic=True)

        assert len(qualified) == 5
        assert all(q.synthetic and q.email is None for q in qualified)


class TestSyntheticLeads:
    """Tests for placeholder leads."""

    def test_defaults(self) -> None:
        candidates = synthetic_leads()

        assert len(candidates) == 5
        assert [c.title for c in candidates] == list(DEFAULT_TITLES)
        assert candidates[0].display_name == "James Smith"
        assert candidates[0].profile_url == "https://linkedin.com/in/jamessmith"
        assert all(c.location == "United States" for c in candidates)

    def test_shaped_by_filters(self, sample_filters: FilterSet) -> None:
        candidates = synthetic_leads(sample_filters)

        assert [c.title for c in candidates] == [
            "VP of Operations",
            "Head of Operations",
            "VP of Operations",
            "Head of Operations",
            "VP of Operations",
        ]
        assert all(c.location == "Texas, United States" for c in candidates)
        assert candidates[1].about == (
            "Experienced Head of Operations with a passion for growth and innovation."
        )

    def test_unique_ids(self) -> None:
        ids = [c.profile_id for c in synthetic_leads()]
        assert len(set(ids)) == 5
