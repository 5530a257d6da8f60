"""
Filter Builder (Stage 4).

Turns the selected persona into people-search criteria. Industry and
location values should carry LinkedIn ids where the model knows them;
unknown plain strings are resolved or skipped by the URL builder.
"""

from __future__ import annotations

from typing import Any

import orjson

from cg.agents.base import Stage, StageReply
from cg.llm.router import ReasoningRole
from cg.types import CompanyProfile, FilterSet, Persona

FILTERS_PROMPT = """Build LinkedIn Sales Navigator search filters for this persona.

PERSONA:
{persona}

SELLER GEOGRAPHY:
{geography}

Rules:
- 3 to 6 job titles people in this persona actually hold
- one company headcount range such as 11-50, 51-200, 201-500
- industries and locations as LinkedIn entities with their numeric ids
- locations should match where the seller can actually sell

Return JSON:
{{
  "titles": ["..."],
  "company_size": "51-200",
  "industries": [{{"id": "4", "text": "Software Development"}}],
  "locations": [{{"id": "103644278", "text": "United States"}}]
}}"""


class FilterBuilder(Stage):
    """Produces a FilterSet for the selected persona."""

    @property
    def name(self) -> str:
        return "filters"

    @property
    def role(self) -> ReasoningRole:
        return ReasoningRole.FILTERS

    async def run(
        self,
        persona: Persona,
        profile: CompanyProfile | None = None,
        **kwargs: Any,
    ) -> tuple[FilterSet, StageReply]:
        """Build filters for a persona.

        Raises:
            StageFailure: If the call fails or yields no criteria.
        """
        geography = profile.geography.to_dict() if profile else {}
        prompt = FILTERS_PROMPT.format(
            persona=orjson.dumps(persona.to_dict(), option=orjson.OPT_INDENT_2).decode("utf-8"),
            geography=orjson.dumps(geography).decode("utf-8"),
        )
        reply = await self.ask_json(prompt, temperature=0.2)

        filters = self.parse_reply(FilterSet.from_dict, reply.data)
        if filters.is_empty:
            raise self.failure_type("filters: reply contains no search criteria")
        if not filters.titles and persona.titles:
            filters = FilterSet(
                titles=persona.titles,
                company_size=filters.company_size,
                industries=filters.industries,
                locations=filters.locations,
            )

        self.log_info(
            "Filters built",
            titles=len(filters.titles),
            company_size=filters.company_size,
            industries=filters.industry_texts(),
            locations=filters.location_texts(),
        )
        return filters, reply
