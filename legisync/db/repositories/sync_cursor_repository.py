"""
Repository for per-entity sync cursors.

Responsibility: Data access layer for the ``sync_cursors`` table
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import SyncCursorModel
from ...utils.timestamps import utcnow


class SyncCursorRepository:
    """Reads and writes ``SyncCursorModel`` rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, entity_type: str) -> Optional[datetime]:
        cursor = await self.session.get(SyncCursorModel, entity_type)
        return cursor.last_successful_timestamp if cursor else None

    async def all(self) -> Dict[str, datetime]:
        result = await self.session.execute(select(SyncCursorModel))
        return {row.entity_type: row.last_successful_timestamp for row in result.scalars()}

    async def advance(self, entity_type: str, timestamp: datetime) -> datetime:
        """
        Store ``timestamp`` unless the existing cursor is already later.

        Returns:
            The cursor value after the call
        """
        cursor = await self.session.get(SyncCursorModel, entity_type)
        if cursor is None:
            cursor = SyncCursorModel(
                entity_type=entity_type,
                last_successful_timestamp=timestamp,
                updated_at=utcnow(),
            )
            self.session.add(cursor)
        elif timestamp > cursor.last_successful_timestamp:
            cursor.last_successful_timestamp = timestamp
            cursor.updated_at = utcnow()
        await self.session.flush()
        return cursor.last_successful_timestamp

    async def delete(self, entity_type: str) -> None:
        cursor = await self.session.get(SyncCursorModel, entity_type)
        if cursor is not None:
            await self.session.delete(cursor)
