"""
Reasoning stages for the campaign pipeline.

Stages:
- CompanyProfiler: website content -> CompanyProfile
- PersonaBrainstormer: profile -> candidate personas
- PersonaRanker: profile + personas -> evaluations + one selected persona
- FilterBuilder: selected persona -> FilterSet
- EmailWriter: lead + campaign context -> EmailContent
"""

from cg.agents.base import Stage, StageContext, StageReply
from cg.agents.company_profiler import CompanyProfiler
from cg.agents.email_writer import CampaignContext, EmailWriter
from cg.agents.filter_builder import FilterBuilder
from cg.agents.persona_brainstormer import PersonaBrainstormer
from cg.agents.persona_ranker import PersonaRanker, select_persona

__all__ = [
    "CampaignContext",
    "CompanyProfiler",
    "EmailWriter",
    "FilterBuilder",
    "PersonaBrainstormer",
    "PersonaRanker",
    "Stage",
    "StageContext",
    "StageReply",
    "select_persona",
]
