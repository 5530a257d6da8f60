"""
Persona Ranker (Stage 3).

Scores each persona on how likely cold email is to reach and convert
them, then selects exactly one.

Selection rule: the highest overall_score among evaluations that refer to
a persona from Stage 2 wins; equal scores go to the persona listed first
in Stage 2. The model's own pick is recorded but only used when no
evaluation can be matched. The selected persona is always a member of
the Stage 2 set.
"""

from __future__ import annotations

from typing import Any

import orjson

from cg.agents.base import Stage, StageReply
from cg.llm.router import ReasoningRole
from cg.types import CompanyProfile, Persona, PersonaEvaluation, PersonaRanking, as_list

RANKING_PROMPT = """You are judging which buyer persona to target with cold email.

COMPANY PROFILE:
{profile}

PERSONAS:
{personas}

Score each persona from 0 to 10 on:
- inbox_accessibility: do they read unsolicited email
- pain_urgency: how acutely they feel the problem
- decision_authority: can they buy or champion a purchase
- reachability: can we find and contact them
- response_likelihood: will they reply

Return JSON:
{{
  "evaluations": [
    {{
      "persona_id": "id from the list above",
      "persona_name": "name",
      "overall_score": 0.0,
      "inbox_accessibility": 0,
      "pain_urgency": 0,
      "decision_authority": 0,
      "reachability": 0,
      "response_likelihood": 0,
      "strengths": ["..."],
      "weaknesses": ["..."],
      "recommendation": "One sentence"
    }}
  ],
  "selected_persona_id": "id of the best persona",
  "selection_reasoning": "Why this persona is the best cold email target"
}}"""


def _match_persona(evaluation: PersonaEvaluation, personas: list[Persona]) -> Persona | None:
    for persona in personas:
        if evaluation.persona_id and evaluation.persona_id == persona.persona_id:
            return persona
    name = evaluation.persona_name.strip().lower()
    if name:
        for persona in personas:
            if persona.name.strip().lower() == name:
                return persona
    return None


def select_persona(
    evaluations: list[PersonaEvaluation],
    personas: list[Persona],
    provider_selected_id: str | None = None,
) -> Persona | None:
    """Apply the selection rule; None if nothing can be selected."""
    order = {p.persona_id: i for i, p in enumerate(personas)}
    scored: list[tuple[float, int, Persona]] = []
    for evaluation in evaluations:
        persona = _match_persona(evaluation, personas)
        if persona is not None:
            scored.append((evaluation.overall_score, order[persona.persona_id], persona))

    if scored:
        scored.sort(key=lambda item: (-item[0], item[1]))
        return scored[0][2]

    if provider_selected_id:
        for persona in personas:
            if persona.persona_id == provider_selected_id:
                return persona
    return None


class PersonaRanker(Stage):
    """Evaluates personas and selects the cold email target."""

    @property
    def name(self) -> str:
        return "ranking"

    @property
    def role(self) -> ReasoningRole:
        return ReasoningRole.RANKING

    async def run(
        self,
        profile: CompanyProfile,
        personas: list[Persona],
        **kwargs: Any,
    ) -> tuple[PersonaRanking, StageReply]:
        """Rank personas and select one.

        Raises:
            StageFailure: If no persona from the input set can be selected.
        """
        if not personas:
            raise self.failure_type("ranking: no personas to rank")

        prompt = RANKING_PROMPT.format(
            profile=orjson.dumps(profile.to_dict()).decode("utf-8"),
            personas=orjson.dumps([p.to_dict() for p in personas], option=orjson.OPT_INDENT_2).decode(
                "utf-8"
            ),
        )
        reply = await self.ask_json(prompt, temperature=0.2)

        evaluations = [
            self.parse_reply(PersonaEvaluation.from_dict, e)
            for e in as_list(reply.data.get("evaluations"))
            if isinstance(e, dict)
        ]
        provider_pick = reply.data.get("selected_persona_id")
        provider_pick = str(provider_pick) if provider_pick else None

        selected = select_persona(evaluations, personas, provider_pick)
        if selected is None:
            raise self.failure_type(
                "ranking: selection does not reference a known persona",
                context={"selected_persona_id": provider_pick},
            )

        if provider_pick and provider_pick != selected.persona_id:
            self.log_warning(
                "Model pick differs from top score",
                model_pick=provider_pick,
                selected=selected.persona_id,
            )

        ranking = PersonaRanking(
            evaluations=tuple(evaluations),
            selected_persona=selected,
            selection_reasoning=str(reply.data.get("selection_reasoning") or ""),
            provider_selected_id=provider_pick,
        )
        self.log_info("Persona selected", persona=selected.name, evaluations=len(evaluations))
        return ranking, reply
