"""
Repository for division and vote-cast database operations.

The vote synchronizer owns division metadata and resets
``casts_complete``; the cast synchronizer owns the cast rows and flips
``casts_complete`` once a division's casts are stored.

Responsibility: Data access layer for the ``votes`` and ``vote_casts`` tables
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import VoteCastModel, VoteModel
from ..upsert import upsert_rows
from ...models.records import DivisionRecord, VoteCastRecord
from ...utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class VoteRepository:
    """Repository for ``VoteModel`` (division) records."""

    KEY_COLUMNS = ("parliament", "session", "division_number")

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, parliament: str, session: str, division_number: int) -> Optional[VoteModel]:
        result = await self.session.execute(
            select(VoteModel).where(
                VoteModel.parliament == parliament,
                VoteModel.session == session,
                VoteModel.division_number == division_number,
            )
        )
        return result.scalar_one_or_none()

    async def upsert_many(self, records: Iterable[DivisionRecord]) -> Tuple[int, int]:
        """
        Upsert division metadata.

        Every synced division is (re)marked ``casts_complete=False`` so
        the cast synchronizer picks it up.
        """
        now = utcnow()
        rows = []
        for record in records:
            row = record.column_values()
            row["casts_complete"] = False
            row["synced_at"] = now
            rows.append(row)
        return await upsert_rows(self.session, VoteModel, self.KEY_COLUMNS, rows)

    async def list_session(self, parliament: str, session: str) -> List[VoteModel]:
        """Divisions of a session ordered by date, then division number."""
        result = await self.session.execute(
            select(VoteModel)
            .where(VoteModel.parliament == parliament, VoteModel.session == session)
            .order_by(VoteModel.date, VoteModel.division_number)
        )
        return list(result.scalars().all())

    async def count_session(self, parliament: str, session: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(VoteModel).where(
                VoteModel.parliament == parliament, VoteModel.session == session
            )
        )
        return int(result.scalar_one())

    async def pending_cast_divisions(
        self,
        parliament: str,
        session: str,
        since: Optional[datetime],
    ) -> List[int]:
        """
        Division numbers whose casts still need fetching.

        Selects divisions not yet marked complete, plus (with a cursor)
        divisions the vote synchronizer touched after ``since``.
        """
        condition = VoteModel.casts_complete.is_(False)
        if since is not None:
            condition = or_(condition, VoteModel.synced_at > since)
        result = await self.session.execute(
            select(VoteModel.division_number)
            .where(VoteModel.parliament == parliament, VoteModel.session == session, condition)
            .order_by(VoteModel.division_number)
        )
        return list(result.scalars().all())

    async def mark_casts_complete(self, parliament: str, session: str, division_number: int) -> None:
        await self.session.execute(
            update(VoteModel)
            .where(
                VoteModel.parliament == parliament,
                VoteModel.session == session,
                VoteModel.division_number == division_number,
            )
            .values(casts_complete=True, casts_synced_at=utcnow())
        )


class VoteCastRepository:
    """Repository for ``VoteCastModel`` records."""

    KEY_COLUMNS = ("parliament", "session", "division_number", "person_id")

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_many(self, records: Iterable[VoteCastRecord]) -> Tuple[int, int]:
        rows = [record.column_values() for record in records]
        return await upsert_rows(self.session, VoteCastModel, self.KEY_COLUMNS, rows)

    async def list_session(self, parliament: str, session: str) -> List[VoteCastModel]:
        result = await self.session.execute(
            select(VoteCastModel)
            .where(VoteCastModel.parliament == parliament, VoteCastModel.session == session)
            .order_by(VoteCastModel.division_number, VoteCastModel.person_id)
        )
        return list(result.scalars().all())

    async def count_division(self, parliament: str, session: str, division_number: int) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(VoteCastModel).where(
                VoteCastModel.parliament == parliament,
                VoteCastModel.session == session,
                VoteCastModel.division_number == division_number,
            )
        )
        return int(result.scalar_one())
