"""
Repository for per-session summary rows.

Responsibility: Data access layer for the ``sessions`` table
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import SessionModel
from ...utils.timestamps import utcnow


def session_key(parliament: str, session: str) -> str:
    return f"{parliament}-{session}"


class SessionRepository:
    """Session summary: vote totals from sync, compute metadata from analytics."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, parliament: str, session: str) -> Optional[SessionModel]:
        return await self.session.get(SessionModel, session_key(parliament, session))

    async def _get_or_create(self, parliament: str, session: str) -> SessionModel:
        row = await self.get(parliament, session)
        if row is None:
            row = SessionModel(
                session_key=session_key(parliament, session),
                parliament=parliament,
                session=session,
                created_at=utcnow(),
            )
            self.session.add(row)
        return row

    async def record_sync(self, parliament: str, session: str, total_votes: int) -> SessionModel:
        row = await self._get_or_create(parliament, session)
        row.total_votes = total_votes
        row.last_sync = utcnow()
        row.updated_at = utcnow()
        await self.session.flush()
        return row

    async def record_compute(
        self,
        parliament: str,
        session: str,
        total_members_computed: int,
        computed_at: datetime,
        metrics_version: str,
    ) -> SessionModel:
        row = await self._get_or_create(parliament, session)
        row.total_members_computed = total_members_computed
        row.computed_at = computed_at
        row.metrics_version = metrics_version
        row.updated_at = utcnow()
        await self.session.flush()
        return row
