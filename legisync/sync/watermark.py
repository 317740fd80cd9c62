"""
Watermark store.

Keeps, per entity type, the start time of the last fully successful
sync pass. Synchronizers never filter on the raw cursor: they use the
adjusted-since value, the cursor minus a fixed safety margin, so records
written near the boundary are delivered at least once. Idempotent
upserts absorb the duplicates.

Responsibility: Per-entity cursors and adjusted-since computation
"""

from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Optional

from ..config import SyncConfig
from ..db.repositories.sync_cursor_repository import SyncCursorRepository
from ..db.session import Database

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_MARGIN = timedelta(minutes=5)


def adjust_since(
    cursor: Optional[datetime],
    margin: timedelta = DEFAULT_SAFETY_MARGIN,
) -> Optional[datetime]:
    """Cursor minus the safety margin; None (full backfill) without a cursor."""
    if cursor is None:
        return None
    return cursor - margin


class WatermarkStore:
    """Reads and advances sync cursors through the store."""

    def __init__(self, db: Database, config: SyncConfig):
        self.db = db
        self.config = config
        self.margin = timedelta(minutes=config.safety_margin_minutes)

    async def get(self, entity: str) -> Optional[datetime]:
        async with self.db.session() as session:
            return await SyncCursorRepository(session).get(entity)

    async def set(self, entity: str, timestamp: datetime) -> datetime:
        """
        Record a new watermark. A cursor never moves backwards.

        Returns:
            The stored cursor value
        """
        async with self.db.session() as session:
            stored = await SyncCursorRepository(session).advance(entity, timestamp)
        logger.info(f"Watermark for {entity} now {stored.isoformat()}")
        return stored

    async def adjusted_since(self, entity: str) -> Optional[datetime]:
        """
        Filter boundary for the next pass of ``entity``.

        Returns None (no filter) when there is no cursor yet or when a
        full backfill is forced for the entity.
        """
        if self.config.forces_full_backfill(entity):
            logger.info(f"Full backfill forced for {entity}; ignoring watermark")
            return None
        return adjust_since(await self.get(entity), self.margin)
