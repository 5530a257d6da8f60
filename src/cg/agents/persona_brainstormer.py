"""
Persona Brainstormer (Stage 2).

Proposes the buyer archetypes a company could target with cold email.
The result is an unordered set; ids are made unique so later stages can
reference personas unambiguously.
"""

from __future__ import annotations

from typing import Any

import orjson

from cg.agents.base import Stage, StageReply
from cg.llm.router import ReasoningRole
from cg.types import CompanyProfile, Persona

DEFAULT_PERSONA_COUNT = 5

PERSONAS_PROMPT = """You are planning outbound for the company below.

COMPANY PROFILE:
{profile}

Propose {count} distinct buyer personas this company could email cold. Each persona is a
job role at a customer company, not a company type.

Return JSON:
{{
  "personas": [
    {{
      "id": "p1",
      "name": "Short persona name",
      "titles": ["Job titles people in this persona hold"],
      "seniority": "owner|cxo|vp|director|manager|senior",
      "department": "Department",
      "description": "Who they are and what they own",
      "pain_points": ["Problems this company solves for them"],
      "buying_triggers": ["Events that make them look for a solution"],
      "company_size": "Employee range of their employer, e.g. 51-200",
      "industries": ["Industries their employer is in"]
    }}
  ]
}}"""


def dedupe_personas(personas: list[Persona]) -> list[Persona]:
    """Drop nameless personas and give every persona a unique id."""
    seen: set[str] = set()
    unique: list[Persona] = []
    for index, persona in enumerate(personas, start=1):
        if not persona.name:
            continue
        persona_id = persona.persona_id or f"p{index}"
        if persona_id in seen:
            persona_id = f"{persona_id}-{index}"
        seen.add(persona_id)
        if persona_id != persona.persona_id:
            persona = Persona.from_dict({**persona.to_dict(), "id": persona_id})
        unique.append(persona)
    return unique


class PersonaBrainstormer(Stage):
    """Generates candidate buyer personas from a CompanyProfile."""

    @property
    def name(self) -> str:
        return "personas"

    @property
    def role(self) -> ReasoningRole:
        return ReasoningRole.PERSONAS

    async def run(
        self,
        profile: CompanyProfile,
        count: int = DEFAULT_PERSONA_COUNT,
        **kwargs: Any,
    ) -> tuple[list[Persona], StageReply]:
        """Brainstorm personas.

        Raises:
            StageFailure: If the call fails or yields no usable persona.
        """
        prompt = PERSONAS_PROMPT.format(
            profile=orjson.dumps(profile.to_dict(), option=orjson.OPT_INDENT_2).decode("utf-8"),
            count=count,
        )
        reply = await self.ask_json(prompt, temperature=0.7)

        raw = reply.data.get("personas")
        if not isinstance(raw, list):
            raise self.failure_type(
                "personas: reply has no persona list", context={"keys": list(reply.data)}
            )

        personas = dedupe_personas(
            [self.parse_reply(Persona.from_dict, p) for p in raw if isinstance(p, dict)]
        )
        if not personas:
            raise self.failure_type("personas: no usable persona in reply")

        self.log_info("Personas generated", count=len(personas), names=[p.name for p in personas])
        return personas, reply
