"""
Best-effort content fan-out.

Drafts one email per lead for up to K leads. Every child is bounded by a
timeout and wrapped so that it returns a GenerationOutcome; all children
are joined at a single gather, so one failure removes exactly one lead.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence

from cg.agents.email_writer import CampaignContext, EmailWriter
from cg.exceptions import GenerationFailure
from cg.logging import get_logger
from cg.types import (
    Candidate,
    EnrichedLead,
    GenerationOutcome,
    QualifiedLead,
    as_candidate,
    lead_email,
)

logger = get_logger(__name__)


class ContentGenerator:
    """Runs the email writer over a batch of leads."""

    def __init__(
        self,
        writer: EmailWriter,
        max_leads: int = 5,
        lead_timeout: float = 90.0,
    ) -> None:
        """Initialize the generator.

        Args:
            writer: Per-lead email writer.
            max_leads: Leads beyond this count are ignored.
            lead_timeout: Seconds allowed for one draft.
        """
        self.writer = writer
        self.max_leads = max_leads
        self.lead_timeout = lead_timeout

    async def generate(
        self,
        leads: Sequence[Candidate | EnrichedLead],
        campaign: CampaignContext,
    ) -> list[GenerationOutcome]:
        """Draft emails for the first `max_leads` leads.

        Returns:
            One outcome per processed lead, in input order.
        """
        selected = list(leads[: self.max_leads])
        if not selected:
            return []

        logger.info("Generating content", leads=len(selected), timeout=self.lead_timeout)
        results = await asyncio.gather(
            *[self._generate_one(lead, campaign) for lead in selected],
            return_exceptions=True,
        )

        outcomes: list[GenerationOutcome] = []
        for lead, result in zip(selected, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Content generation crashed",
                    lead=as_candidate(lead).identity,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                outcomes.append(GenerationOutcome(lead=lead, error=f"{type(result).__name__}: {result}"))
            else:
                outcomes.append(result)

        succeeded = sum(1 for o in outcomes if o.ok)
        logger.info("Content generation finished", succeeded=succeeded, failed=len(outcomes) - succeeded)
        return outcomes

    async def _generate_one(
        self,
        lead: Candidate | EnrichedLead,
        campaign: CampaignContext,
    ) -> GenerationOutcome:
        candidate = as_candidate(lead)
        try:
            content = await asyncio.wait_for(
                self.writer.run(candidate, campaign), timeout=self.lead_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Content generation timed out", lead=candidate.identity)
            return GenerationOutcome(lead=lead, error=f"Timed out after {self.lead_timeout:.0f}s")
        except GenerationFailure as e:
            logger.warning("Content generation failed", lead=candidate.identity, error=str(e))
            return GenerationOutcome(lead=lead, error=str(e))
        return GenerationOutcome(lead=lead, content=content)

    def qualify(
        self,
        outcomes: Sequence[GenerationOutcome],
        synthetic: bool = False,
    ) -> list[QualifiedLead]:
        """Turn successful outcomes into output leads; failures are dropped."""
        qualified: list[QualifiedLead] = []
        for index, outcome in enumerate(outcomes):
            if not outcome.ok or outcome.content is None:
                continue
            candidate = as_candidate(outcome.lead)
            position = self.writer.position(candidate)
            qualified.append(
                QualifiedLead(
                    lead_id=candidate.profile_id or f"lead-{index + 1}",
                    name=candidate.display_name,
                    first_name=candidate.first_name,
                    last_name=candidate.last_name,
                    title=position.title,
                    company=position.company,
                    profile_url=candidate.profile_url,
                    location=candidate.location,
                    about=candidate.about,
                    email=lead_email(outcome.lead),
                    why_picked=outcome.content.why_picked,
                    email_subject=outcome.content.subject,
                    email_body=outcome.content.body,
                    synthetic=synthetic,
                )
            )
        return qualified
