"""
Core types for the campaign generator.

This module defines the fundamental data structures used throughout the system:
- Enums for run status, stage names and enrichment stop reasons
- Frozen dataclasses for immutable records (Candidate, EnrichedLead, FilterSet, StageResult)
- Stage payloads (CompanyProfile, Persona, PersonaRanking, EmailContent)
- Mutable run state (PipelineRun) and output (CampaignResult)
- Progress records and events
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import orjson
from uuid6 import uuid7


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "run", "lead", "camp")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def as_list(value: Any) -> list[Any]:
    """Treat a scalar (a string, a mapping) as a one-element list."""
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value] if value else []


def _str_tuple(value: Any) -> tuple[str, ...]:
    return tuple(str(v) for v in as_list(value) if v is not None and str(v).strip())


class RunStatus(str, Enum):
    """Externally visible status of a pipeline run."""

    QUEUED = "queued"
    FETCHING_CONTENT = "fetching_content"
    ANALYZING_COMPANY = "analyzing_company"
    FINDING_LEADS = "finding_leads"
    WAITING_FOR_LEADS = "waiting_for_leads"
    WRITING_CONTENT = "writing_content"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Whether no further updates follow this status."""
        return self in (RunStatus.COMPLETE, RunStatus.ERROR)


class StageName(str, Enum):
    """Steps recorded on a run's stage history."""

    FETCH_CONTENT = "fetch_content"
    COMPANY_PROFILE = "company_profile"
    PERSONAS = "personas"
    RANKING = "ranking"
    FILTERS = "filters"
    LEAD_SEARCH = "lead_search"
    CONTENT = "content"


class StopReason(str, Enum):
    """Why the enrichment loop stopped fetching pages."""

    TARGET_REACHED = "target_reached"
    SOURCE_EXHAUSTED = "source_exhausted"
    PAGE_LIMIT = "page_limit"
    CANDIDATE_LIMIT = "candidate_limit"
    ZERO_YIELD = "zero_yield"
    SOURCE_TIMEOUT = "source_timeout"
    SOURCE_ERROR = "source_error"


# ============== Filters ==============


@dataclass(frozen=True)
class Tag:
    """A filter value with an optional provider identifier."""

    text: str
    id: str = ""

    @classmethod
    def from_value(cls, value: Any) -> Tag:
        """Build a tag from a plain string or an ``{id, text}`` mapping."""
        if isinstance(value, Tag):
            return value
        if isinstance(value, dict):
            return cls(text=str(value.get("text", "")).strip(), id=str(value.get("id") or ""))
        return cls(text=str(value).strip())

    def to_dict(self) -> dict[str, str]:
        """Serialize to dict."""
        return {"id": self.id, "text": self.text}


@dataclass(frozen=True)
class FilterSet:
    """Structured search criteria for the candidate source."""

    titles: tuple[str, ...] = ()
    company_size: str = ""
    industries: tuple[Tag, ...] = ()
    locations: tuple[Tag, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FilterSet:
        """Parse filters, accepting camelCase keys and plain-string tags."""
        size = data.get("company_size", data.get("companySize", "")) or ""
        return cls(
            titles=_str_tuple(data.get("titles")),
            company_size=str(size).strip(),
            industries=tuple(
                t for t in (Tag.from_value(v) for v in as_list(data.get("industries"))) if t.text
            ),
            locations=tuple(
                t for t in (Tag.from_value(v) for v in as_list(data.get("locations"))) if t.text
            ),
        )

    @property
    def is_empty(self) -> bool:
        """True when no criterion is set."""
        return not (self.titles or self.company_size or self.industries or self.locations)

    def industry_texts(self) -> list[str]:
        """Industry display names."""
        return [t.text for t in self.industries]

    def location_texts(self) -> list[str]:
        """Location display names."""
        return [t.text for t in self.locations]

    def cache_key(self) -> str:
        """Stable key identifying these criteria."""
        return orjson.dumps(self.to_dict(), option=orjson.OPT_SORT_KEYS).decode("utf-8")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        return {
            "titles": list(self.titles),
            "company_size": self.company_size,
            "industries": [t.to_dict() for t in self.industries],
            "locations": [t.to_dict() for t in self.locations],
        }


# ============== Leads ==============


@dataclass(frozen=True)
class Candidate:
    """A person returned by the candidate source. Carries no contact address."""

    first_name: str
    last_name: str
    full_name: str = ""
    title: str = ""
    company: str = ""
    company_id: str = ""
    company_domain: str = ""
    location: str = ""
    about: str = ""
    headline: str = ""
    profile_url: str = ""
    profile_id: str = ""
    current_company: str = ""
    current_title: str = ""

    @property
    def display_name(self) -> str:
        """Full name, assembled from parts when missing."""
        return self.full_name or f"{self.first_name} {self.last_name}".strip()

    @property
    def identity(self) -> str:
        """Identifier used for logging and de-duplication."""
        return self.profile_id or self.profile_url or f"{self.display_name}@{self.company}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Candidate:
        """Build from a dict, ignoring unknown keys."""
        known = cls.__dataclass_fields__.keys()
        return cls(**{k: str(v or "") for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, str]:
        """Serialize to dict."""
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


@dataclass(frozen=True)
class EnrichedLead:
    """A candidate with a verified contact address."""

    candidate: Candidate
    email: str
    provider: str = "icypeas"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        return {**self.candidate.to_dict(), "email": self.email, "provider": self.provider}


def as_candidate(lead: Candidate | EnrichedLead) -> Candidate:
    """Return the underlying candidate of a lead."""
    return lead.candidate if isinstance(lead, EnrichedLead) else lead


def lead_email(lead: Candidate | EnrichedLead) -> str | None:
    """Return the verified address of a lead, if it has one."""
    return lead.email if isinstance(lead, EnrichedLead) else None


@dataclass(frozen=True)
class EnrichmentReport:
    """Outcome of one enrichment loop run."""

    target: int
    leads: tuple[EnrichedLead, ...]
    pages_fetched: int
    candidates_fetched: int
    enrichment_attempts: int
    stop_reason: StopReason
    message: str = ""
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime = field(default_factory=utc_now)

    @property
    def reached_target(self) -> bool:
        """Whether the loop found as many leads as requested."""
        return len(self.leads) >= self.target

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        return {
            "target": self.target,
            "leads": [lead.to_dict() for lead in self.leads],
            "pages_fetched": self.pages_fetched,
            "candidates_fetched": self.candidates_fetched,
            "enrichment_attempts": self.enrichment_attempts,
            "stop_reason": self.stop_reason.value,
            "message": self.message,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
        }


# ============== Stage payloads ==============


@dataclass(frozen=True)
class GeographicFocus:
    """Where a company does business, as observed on its website."""

    primary_markets: tuple[str, ...] = ()
    office_locations: tuple[str, ...] = ()
    evidence_signals: tuple[str, ...] = ()
    confidence: str = "low"
    reasoning: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> GeographicFocus:
        """Parse a geography payload; a bare string is read as the primary market."""
        if isinstance(data, str):
            return cls(primary_markets=_str_tuple(data.strip()))
        if not isinstance(data, dict):
            return cls()
        return cls(
            primary_markets=_str_tuple(data.get("primary_markets")),
            office_locations=_str_tuple(data.get("office_locations")),
            evidence_signals=_str_tuple(data.get("evidence_signals")),
            confidence=str(data.get("confidence") or "low"),
            reasoning=str(data.get("reasoning") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_markets": list(self.primary_markets),
            "office_locations": list(self.office_locations),
            "evidence_signals": list(self.evidence_signals),
            "confidence": self.confidence,
            "reasoning": self.reasoning,
        }


@dataclass(frozen=True)
class CompanyProfile:
    """Stage 1 output: what the company does and who it serves."""

    name: str
    domain: str
    tagline: str = ""
    product_or_service: str = ""
    problem_they_solve: str = ""
    how_they_solve_it: str = ""
    target_market: str = ""
    existing_customer_types: tuple[str, ...] = ()
    case_studies: tuple[str, ...] = ()
    geography: GeographicFocus = field(default_factory=GeographicFocus)
    industry: str = ""
    competitive_advantage: str = ""
    pricing_model: str = ""
    company_maturity: str = ""
    sales_motion: str = "unknown"

    @classmethod
    def from_dict(cls, data: dict[str, Any], domain: str) -> CompanyProfile:
        """Build from a reasoning-service payload."""
        return cls(
            name=str(data.get("name") or ""),
            domain=domain,
            tagline=str(data.get("tagline") or ""),
            product_or_service=str(data.get("product_or_service") or ""),
            problem_they_solve=str(data.get("problem_they_solve") or ""),
            how_they_solve_it=str(data.get("how_they_solve_it") or ""),
            target_market=str(data.get("target_market") or ""),
            existing_customer_types=_str_tuple(data.get("existing_customer_types")),
            case_studies=_str_tuple(data.get("case_studies")),
            geography=GeographicFocus.from_dict(data.get("geography")),
            industry=str(data.get("industry") or ""),
            competitive_advantage=str(data.get("competitive_advantage") or ""),
            pricing_model=str(data.get("pricing_model") or ""),
            company_maturity=str(data.get("company_maturity") or ""),
            sales_motion=str(data.get("sales_motion") or "unknown"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict."""
        return {
            "name": self.name,
            "domain": self.domain,
            "tagline": self.tagline,
            "product_or_service": self.product_or_service,
            "problem_they_solve": self.problem_they_solve,
            "how_they_solve_it": self.how_they_solve_it,
            "target_market": self.target_market,
            "existing_customer_types": list(self.existing_customer_types),
            "case_studies": list(self.case_studies),
            "geography": self.geography.to_dict(),
            "industry": self.industry,
            "competitive_advantage": self.competitive_advantage,
            "pricing_model": self.pricing_model,
            "company_maturity": self.company_maturity,
            "sales_motion": self.sales_motion,
        }


@dataclass(frozen=True)
class Persona:
    """Stage 2 output: one candidate buyer archetype."""

    persona_id: str
    name: str
    titles: tuple[str, ...] = ()
    seniority: str = ""
    department: str = ""
    description: str = ""
    pain_points: tuple[str, ...] = ()
    buying_triggers: tuple[str, ...] = ()
    company_size: str = ""
    industries: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Persona:
        return cls(
            persona_id=str(data.get("id") or data.get("persona_id") or ""),
            name=str(data.get("name") or ""),
            titles=_str_tuple(data.get("titles")),
            seniority=str(data.get("seniority") or ""),
            department=str(data.get("department") or ""),
            description=str(data.get("description") or ""),
            pain_points=_str_tuple(data.get("pain_points")),
            buying_triggers=_str_tuple(data.get("buying_triggers")),
            company_size=str(data.get("company_size") or ""),
            industries=_str_tuple(data.get("industries")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.persona_id,
            "name": self.name,
            "titles": list(self.titles),
            "seniority": self.seniority,
            "department": self.department,
            "description": self.description,
            "pain_points": list(self.pain_points),
            "buying_triggers": list(self.buying_triggers),
            "company_size": self.company_size,
            "industries": list(self.industries),
        }


@dataclass(frozen=True)
class PersonaEvaluation:
    """How likely one persona is to respond to cold outreach."""

    persona_id: str
    persona_name: str
    overall_score: float
    inbox_accessibility: float = 0.0
    pain_urgency: float = 0.0
    decision_authority: float = 0.0
    reachability: float = 0.0
    response_likelihood: float = 0.0
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    recommendation: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PersonaEvaluation:
        def score(key: str) -> float:
            try:
                return float(data.get(key) or 0.0)
            except (TypeError, ValueError):
                return 0.0

        return cls(
            persona_id=str(data.get("persona_id") or ""),
            persona_name=str(data.get("persona_name") or ""),
            overall_score=score("overall_score"),
            inbox_accessibility=score("inbox_accessibility"),
            pain_urgency=score("pain_urgency"),
            decision_authority=score("decision_authority"),
            reachability=score("reachability"),
            response_likelihood=score("response_likelihood"),
            strengths=_str_tuple(data.get("strengths")),
            weaknesses=_str_tuple(data.get("weaknesses")),
            recommendation=str(data.get("recommendation") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "persona_id": self.persona_id,
            "persona_name": self.persona_name,
            "overall_score": self.overall_score,
            "inbox_accessibility": self.inbox_accessibility,
            "pain_urgency": self.pain_urgency,
            "decision_authority": self.decision_authority,
            "reachability": self.reachability,
            "response_likelihood": self.response_likelihood,
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "recommendation": self.recommendation,
        }


@dataclass(frozen=True)
class PersonaRanking:
    """Stage 3 output: evaluations plus exactly one selected persona."""

    evaluations: tuple[PersonaEvaluation, ...]
    selected_persona: Persona
    selection_reasoning: str = ""
    provider_selected_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "evaluations": [e.to_dict() for e in self.evaluations],
            "selected_persona": self.selected_persona.to_dict(),
            "selection_reasoning": self.selection_reasoning,
            "provider_selected_id": self.provider_selected_id,
        }


@dataclass(frozen=True)
class EmailContent:
    """Drafted outreach for one lead."""

    why_picked: str
    subject: str
    body: str

    def to_dict(self) -> dict[str, str]:
        return {"why_picked": self.why_picked, "subject": self.subject, "body": self.body}


@dataclass(frozen=True)
class QualifiedLead:
    """A lead paired with its drafted email."""

    lead_id: str
    name: str
    first_name: str
    last_name: str
    title: str
    company: str
    profile_url: str
    location: str
    about: str
    email: str | None
    why_picked: str
    email_subject: str
    email_body: str
    synthetic: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


@dataclass(frozen=True)
class GenerationOutcome:
    """Result or error of drafting content for one lead."""

    lead: Candidate | EnrichedLead
    content: EmailContent | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.content is not None and self.error is None


@dataclass(frozen=True)
class TargetGeo:
    """Map region derived from the final filter locations."""

    region: str
    states: tuple[str, ...] = ()
    countries: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        if self.region == "us":
            return {"region": "us", "states": list(self.states)}
        return {"region": "world", "countries": list(self.countries)}


# ============== Run state ==============


@dataclass(frozen=True)
class StageTrace:
    """Prompt and raw response of a stage, kept only when tracing."""

    prompt: str
    response: str

    def to_dict(self) -> dict[str, str]:
        return {"prompt": self.prompt, "response": self.response}


@dataclass(frozen=True)
class StageResult:
    """Immutable record of one completed pipeline step."""

    stage: StageName
    started_at: datetime
    completed_at: datetime
    output: dict[str, Any] = field(default_factory=dict)
    summary: str = ""
    trace: StageTrace | None = None
    degraded: bool = False
    note: str = ""

    @property
    def duration_ms(self) -> int:
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    def to_dict(self, include_output: bool = True) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stage": self.stage.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
            "summary": self.summary,
            "degraded": self.degraded,
            "note": self.note,
        }
        if include_output:
            data["output"] = self.output
        if self.trace is not None:
            data["trace"] = self.trace.to_dict()
        return data


@dataclass
class CampaignResult:
    """Complete output of a pipeline run."""

    campaign_id: str
    slug: str
    subject_key: str
    company_name: str
    website_url: str
    location: str
    helps_with: str
    great_at: str
    icp_attributes: list[str]
    qualified_leads: list[QualifiedLead]
    target_geo: TargetGeo
    filters: FilterSet
    sales_navigator_url: str
    company_profile: CompanyProfile
    personas: list[Persona]
    ranking: PersonaRanking
    stage_results: list[StageResult] = field(default_factory=list)
    lead_report: EnrichmentReport | None = None
    degradations: list[str] = field(default_factory=list)
    usage: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for JSON."""
        return {
            "campaign_id": self.campaign_id,
            "slug": self.slug,
            "subject_key": self.subject_key,
            "company_name": self.company_name,
            "website_url": self.website_url,
            "location": self.location,
            "helps_with": self.helps_with,
            "great_at": self.great_at,
            "icp_attributes": list(self.icp_attributes),
            "qualified_leads": [lead.to_dict() for lead in self.qualified_leads],
            "target_geo": self.target_geo.to_dict(),
            "filters": self.filters.to_dict(),
            "sales_navigator_url": self.sales_navigator_url,
            "company_profile": self.company_profile.to_dict(),
            "personas": [p.to_dict() for p in self.personas],
            "ranking": self.ranking.to_dict(),
            "stage_results": [s.to_dict() for s in self.stage_results],
            "lead_report": self.lead_report.to_dict() if self.lead_report else None,
            "degradations": list(self.degradations),
            "usage": self.usage,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PipelineRun:
    """Mutable state for one execution of the pipeline.

    Modified in place as the run progresses. Stage results are append-only.
    """

    run_id: str
    subject_key: str
    started_at: datetime
    status: RunStatus = RunStatus.QUEUED
    current_stage: StageName | None = None
    stage_results: list[StageResult] = field(default_factory=list)
    degradations: list[str] = field(default_factory=list)
    result: CampaignResult | None = None
    error: str | None = None
    completed_at: datetime | None = None

    @classmethod
    def create(cls, subject_key: str, run_id: str | None = None) -> PipelineRun:
        """Factory method to create initial run state."""
        return cls(
            run_id=run_id or generate_id("run"), subject_key=subject_key, started_at=utc_now()
        )

    def record(self, stage_result: StageResult) -> None:
        """Append a completed stage."""
        self.stage_results.append(stage_result)

    def stage(self, name: StageName) -> StageResult | None:
        """Find the first recorded result for a stage."""
        for result in self.stage_results:
            if result.stage == name:
                return result
        return None


# ============== Progress ==============


@dataclass(frozen=True)
class ProgressEvent:
    """One progress notification published by the pipeline."""

    subject_key: str
    run_id: str
    status: RunStatus
    percentage: int
    message: str
    current_stage: StageName | None = None
    stage_results: tuple[StageResult, ...] = ()
    insights: dict[str, Any] = field(default_factory=dict)
    result: CampaignResult | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ProgressRecord:
    """Latest externally visible state of a run, keyed by subject key."""

    subject_key: str
    run_id: str
    status: RunStatus
    percentage: int
    message: str
    current_stage: StageName | None = None
    stage_results: tuple[StageResult, ...] = ()
    insights: dict[str, Any] = field(default_factory=dict)
    result: CampaignResult | None = None
    error: str | None = None
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_event(cls, event: ProgressEvent) -> ProgressRecord:
        return cls(
            subject_key=event.subject_key,
            run_id=event.run_id,
            status=event.status,
            percentage=event.percentage,
            message=event.message,
            current_stage=event.current_stage,
            stage_results=event.stage_results,
            insights=dict(event.insights),
            result=event.result,
            error=event.error,
            updated_at=event.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for JSON."""
        return {
            "subject_key": self.subject_key,
            "run_id": self.run_id,
            "status": self.status.value,
            "percentage": self.percentage,
            "message": self.message,
            "current_stage": self.current_stage.value if self.current_stage else None,
            "stage_results": [s.to_dict(include_output=False) for s in self.stage_results],
            "insights": self.insights,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "updated_at": self.updated_at.isoformat(),
        }
