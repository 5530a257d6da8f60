"""
Company Profiler (Stage 1).

Reads the subject's website content and produces a structured
CompanyProfile: what they sell, the problem it solves, who buys it and
where they operate.
"""

from __future__ import annotations

from typing import Any

from cg.agents.base import Stage, StageReply
from cg.llm.router import ReasoningRole
from cg.normalize.domains import extract_company_name
from cg.retrieval.fetch import FetchedPage
from cg.types import CompanyProfile

MAX_CONTENT_CHARS = 15000

SYSTEM_PROMPT = """You are a B2B market analyst. You read a company's website and describe
the business precisely, using only what the content supports. Respond with a single JSON object."""

PROFILE_PROMPT = """Analyze this company's website.

DOMAIN: {domain}
PAGE TITLE: {title}
META DESCRIPTION: {description}

WEBSITE CONTENT:
{content}

Return JSON with this structure:
{{
  "name": "Company name as written on the site",
  "tagline": "Their one-line pitch",
  "product_or_service": "What they sell",
  "problem_they_solve": "The customer problem it addresses",
  "how_they_solve_it": "How the product addresses it",
  "target_market": "Who buys it",
  "existing_customer_types": ["Types of customers named or implied"],
  "case_studies": ["Testimonials, logos or results quoted on the site"],
  "geography": {{
    "primary_markets": ["Countries or regions they sell into"],
    "office_locations": ["Cities or countries with offices"],
    "evidence_signals": ["Currency, phone formats, addresses, language"],
    "confidence": "high|medium|low",
    "reasoning": "Why you believe this"
  }},
  "industry": "Their industry",
  "competitive_advantage": "What sets them apart",
  "pricing_model": "How they charge, if stated",
  "company_maturity": "startup|growth|established",
  "sales_motion": "self-serve|sales-led|hybrid|unknown"
}}"""


class CompanyProfiler(Stage):
    """Turns website content into a CompanyProfile."""

    @property
    def name(self) -> str:
        return "company_profile"

    @property
    def role(self) -> ReasoningRole:
        return ReasoningRole.COMPANY_PROFILE

    async def run(self, domain: str, page: FetchedPage, **kwargs: Any) -> tuple[CompanyProfile, StageReply]:
        """Profile the company behind a domain.

        Args:
            domain: Normalized subject domain.
            page: Fetched website content.

        Returns:
            The profile and the raw reply (for tracing).

        Raises:
            StageFailure: If the reasoning call fails or returns bad JSON.
        """
        prompt = PROFILE_PROMPT.format(
            domain=domain,
            title=page.title or "Unknown",
            description=page.description or "None",
            content=page.body_text[:MAX_CONTENT_CHARS] or "No readable content",
        )
        reply = await self.ask_json(prompt, system=SYSTEM_PROMPT)

        data = reply.data
        if not data.get("name"):
            data = {**data, "name": extract_company_name(domain)}
        profile = self.parse_reply(CompanyProfile.from_dict, data, domain=domain)

        self.log_info(
            "Company profiled",
            company=profile.name,
            industry=profile.industry,
            sales_motion=profile.sales_motion,
        )
        return profile, reply
