"""
Campaign persistence.

The pipeline hands each finished CampaignResult to a CampaignStore.
Anything a store raises is wrapped by the pipeline as PersistenceFailure.

SqliteCampaignStore keeps the full result in an append-only JSONL file
and indexes it in SQLite for lookup by campaign id, slug or subject key.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiosqlite
import orjson

from cg.logging import get_logger
from cg.types import CampaignResult

logger = get_logger(__name__)


@runtime_checkable
class CampaignStore(Protocol):
    """Destination for finished campaigns."""

    async def save(self, result: CampaignResult) -> None:
        ...


class SqliteCampaignStore:
    """Append-only campaign log with a SQLite index.

    Every campaign gets recorded with:
    - Full JSON in append-only JSONL file
    - Index fields in SQLite for fast lookups
    """

    def __init__(self, output_dir: str | Path) -> None:
        """Initialize campaign store.

        Args:
            output_dir: Directory holding campaigns.jsonl and campaigns.db.
        """
        self.output_dir = Path(output_dir)
        self.jsonl_path = self.output_dir / "campaigns.jsonl"
        self.db_path = self.output_dir / "campaigns.db"
        self._db: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Create files and tables."""
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS campaigns (
                campaign_id TEXT PRIMARY KEY,
                slug TEXT NOT NULL,
                subject_key TEXT NOT NULL,
                company_name TEXT NOT NULL,
                lead_count INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                jsonl_offset INTEGER NOT NULL
            )
        """)
        await self._db.execute(
            "CREATE INDEX IF NOT EXISTS idx_subject_key ON campaigns(subject_key)"
        )
        await self._db.execute("CREATE INDEX IF NOT EXISTS idx_slug ON campaigns(slug)")
        await self._db.commit()

        logger.info("Campaign store initialized", output_dir=str(self.output_dir))

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    async def save(self, result: CampaignResult) -> None:
        """Append a campaign to the log.

        Args:
            result: Finished campaign.
        """
        if not self._db:
            raise RuntimeError("SqliteCampaignStore not initialized. Call init() first.")

        line = orjson.dumps(result.to_dict()).decode("utf-8") + "\n"
        offset = self.jsonl_path.stat().st_size if self.jsonl_path.exists() else 0

        with open(self.jsonl_path, "a", encoding="utf-8") as f:
            f.write(line)

        await self._db.execute(
            """
            INSERT OR REPLACE INTO campaigns (
                campaign_id, slug, subject_key, company_name,
                lead_count, created_at, jsonl_offset
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                result.campaign_id,
                result.slug,
                result.subject_key,
                result.company_name,
                len(result.qualified_leads),
                result.created_at.isoformat(),
                offset,
            ),
        )
        await self._db.commit()

        logger.info(
            "Saved campaign",
            campaign_id=result.campaign_id,
            slug=result.slug,
            leads=len(result.qualified_leads),
        )

    async def get(self, campaign_id: str) -> dict[str, Any] | None:
        """Load a saved campaign by id."""
        return await self._lookup("campaign_id = ?", campaign_id)

    async def latest_for_subject(self, subject_key: str) -> dict[str, Any] | None:
        """Load the most recent campaign for a domain."""
        return await self._lookup(
            "subject_key = ? ORDER BY created_at DESC LIMIT 1", subject_key
        )

    async def _lookup(self, clause: str, value: str) -> dict[str, Any] | None:
        if not self._db:
            raise RuntimeError("SqliteCampaignStore not initialized. Call init() first.")

        async with self._db.execute(
            f"SELECT jsonl_offset FROM campaigns WHERE {clause}", (value,)
        ) as cursor:
            row = await cursor.fetchone()
        if not row:
            return None

        with open(self.jsonl_path, "rb") as f:
            f.seek(row["jsonl_offset"])
            return orjson.loads(f.readline())
