"""
Coordinator package.

This package implements the campaign orchestration:
- Progress channel, per-run reporter and keyed progress tracker
- Best-effort content fan-out
- Synthetic leads for demo runs and lead-source fallbacks
- 4-stage pipeline with early-start lead search
"""

from cg.coordinator.content import ContentGenerator
from cg.coordinator.pipeline import (
    CampaignPipeline,
    LeadBatch,
    PipelineConfig,
    run_campaign,
)
from cg.coordinator.progress import ProgressChannel, ProgressTracker, RunReporter, Subscription
from cg.coordinator.synthetic import synthetic_leads

__all__ = [
    "CampaignPipeline",
    "ContentGenerator",
    "LeadBatch",
    "PipelineConfig",
    "ProgressChannel",
    "ProgressTracker",
    "RunReporter",
    "Subscription",
    "run_campaign",
    "synthetic_leads",
]
