"""Campaign persistence."""

from cg.storage.store import CampaignStore, SqliteCampaignStore

__all__ = ["CampaignStore", "SqliteCampaignStore"]
