"""
Email Writer (per-lead content).

Drafts one short cold email per lead from the company profile and the
selected persona. Names go through a NameNormalizer first so the copy
uses a person's primary role and conversational company names.
Failures raise GenerationFailure, which the content generator contains
to the one lead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from cg.agents.base import Stage, StageContext
from cg.exceptions import GenerationFailure
from cg.llm.router import ReasoningRole
from cg.normalize.names import NameNormalizer, Position, RegexNameNormalizer
from cg.types import Candidate, CompanyProfile, EmailContent, Persona

EMAIL_PROMPT = """You are writing a cold email for {sender_company}.

## Sender
Company: {sender_company}
Tagline: {tagline}
What they sell: {product}
Problem they solve: {problem}
How they solve it: {solution}
Competitive advantage: {advantage}
{proof}
## Target persona
Persona: {persona_name}
Pain points: {pain_points}
Buying triggers: {triggers}
{selection_reasoning}
## Recipient
Name: {lead_name}
Title: {lead_title}
Company: {lead_company}
Location: {lead_location}
About: {lead_about}
{headline}
## Requirements
- Body under 100 words, direct, no flattery or compliments
- Open with a pain point or question relevant to their role
- Soft call to action
- Subject line of 2 to 4 words, lowercase, like a colleague wrote it
- Company names written casually, without legal suffixes
- Use {{{{first_name}}}} and {{{{company}}}} as placeholders in the body
- Sign off as {sender_name}

Return JSON:
{{
  "why_picked": "One sentence on why this person is a good lead",
  "email_subject": "quick question",
  "email_body": "Hi {{{{first_name}}}},\\n\\n...\\n\\n{sender_name}"
}}"""


@dataclass(frozen=True)
class CampaignContext:
    """Shared inputs for every email in a campaign."""

    profile: CompanyProfile
    persona: Persona
    selection_reasoning: str = ""
    sender_name: str = "Bella"


class EmailWriter(Stage):
    """Drafts personalized outreach for a single lead."""

    failure_type = GenerationFailure

    def __init__(self, context: StageContext, normalizer: NameNormalizer | None = None) -> None:
        super().__init__(context)
        self.normalizer: NameNormalizer = normalizer or RegexNameNormalizer()

    @property
    def name(self) -> str:
        return "content"

    @property
    def role(self) -> ReasoningRole:
        return ReasoningRole.CONTENT

    def position(self, candidate: Candidate) -> Position:
        """Primary title and conversational company name for a lead."""
        position = self.normalizer.primary_position(candidate)
        return Position(title=position.title, company=self.normalizer.company_name(position.company))

    def build_prompt(self, candidate: Candidate, campaign: CampaignContext) -> str:
        profile = campaign.profile
        persona = campaign.persona
        position = self.position(candidate)

        proof = ""
        if profile.case_studies:
            proof = "Proof points:\n" + "\n".join(f"- {c}" for c in profile.case_studies) + "\n"
        headline = ""
        if candidate.headline and candidate.headline != f"{position.title} at {position.company}":
            headline = f"Headline: {candidate.headline}"
        reasoning = ""
        if campaign.selection_reasoning:
            reasoning = f"Why this persona: {campaign.selection_reasoning}"

        return EMAIL_PROMPT.format(
            sender_company=self.normalizer.company_name(profile.name),
            tagline=profile.tagline or "n/a",
            product=profile.product_or_service or "n/a",
            problem=profile.problem_they_solve or "n/a",
            solution=profile.how_they_solve_it or "n/a",
            advantage=profile.competitive_advantage or "n/a",
            proof=proof,
            persona_name=persona.name,
            pain_points=", ".join(persona.pain_points) or "n/a",
            triggers=", ".join(persona.buying_triggers) or "n/a",
            selection_reasoning=reasoning,
            lead_name=candidate.display_name,
            lead_title=position.title or "Unknown",
            lead_company=position.company or "Unknown",
            lead_location=candidate.location or "Unknown",
            lead_about=candidate.about or "Not available",
            headline=headline,
            sender_name=campaign.sender_name,
        )

    async def run(self, candidate: Candidate, campaign: CampaignContext, **kwargs: Any) -> EmailContent:
        """Draft an email for one lead.

        Raises:
            GenerationFailure: If the call fails or the reply lacks a subject or body.
        """
        reply = await self.ask_json(self.build_prompt(candidate, campaign), max_tokens=600, temperature=0.7)
        data = reply.data

        subject = str(data.get("email_subject") or data.get("subject") or "").strip()
        body = str(data.get("email_body") or data.get("body") or "").strip()
        if not subject or not body:
            raise GenerationFailure(
                "content: reply is missing subject or body",
                context={"lead": candidate.identity, "keys": list(data)},
            )

        return EmailContent(
            why_picked=str(data.get("why_picked") or "").strip(),
            subject=subject,
            body=body,
        )
