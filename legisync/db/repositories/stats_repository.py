"""
Repository for the derived per-session analytics collections.

A compute pass replaces the whole snapshot for a (parliament, session):
every prior row is deleted and the new generation inserted inside the
caller's transaction, so readers see either the old or the new
generation, never a mix.

Responsibility: Snapshot replacement and reads for member_vote_records, vote_stats, member_stats
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
import zlib

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import MemberStatModel, MemberVoteRecordModel, VoteStatModel

logger = logging.getLogger(__name__)

SNAPSHOT_MODELS = (MemberVoteRecordModel, VoteStatModel, MemberStatModel)


def snapshot_lock_key(parliament: str, session: str) -> int:
    """Stable advisory-lock id for one session snapshot (same value in every process)."""
    return zlib.crc32(f"legisync:snapshot:{parliament}-{session}".encode("utf-8"))


class StatsRepository:
    """Reads and replaces the derived analytics snapshot."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lock_snapshot(self, parliament: str, session: str) -> bool:
        """
        Hold a store-wide lock on the session snapshot until the transaction ends.

        Uses a PostgreSQL transaction-level advisory lock, so compute passes
        in other processes wait here. SQLite already serializes writers, and
        nothing is taken there.

        Returns:
            True when an advisory lock was acquired
        """
        if self.session.bind.dialect.name != "postgresql":
            return False
        await self.session.execute(select(func.pg_advisory_xact_lock(snapshot_lock_key(parliament, session))))
        return True

    async def replace_snapshot(
        self,
        parliament: str,
        session: str,
        member_vote_records: Sequence[Dict[str, Any]],
        vote_stats: Sequence[Dict[str, Any]],
        member_stats: Sequence[Dict[str, Any]],
    ) -> None:
        """Delete the previous generation and insert the new one (no commit)."""
        for model in SNAPSHOT_MODELS:
            await self.session.execute(
                delete(model).where(model.parliament == parliament, model.session == session)
            )

        for model, rows in (
            (MemberVoteRecordModel, member_vote_records),
            (VoteStatModel, vote_stats),
            (MemberStatModel, member_stats),
        ):
            if rows:
                await self.session.execute(insert(model), list(rows))

        logger.debug(
            "Replaced snapshot %s-%s: %s records, %s vote stats, %s member stats",
            parliament, session, len(member_vote_records), len(vote_stats), len(member_stats),
        )

    async def list_vote_stats(self, parliament: str, session: str) -> List[VoteStatModel]:
        result = await self.session.execute(
            select(VoteStatModel)
            .where(VoteStatModel.parliament == parliament, VoteStatModel.session == session)
            .order_by(VoteStatModel.date, VoteStatModel.division_number)
        )
        return list(result.scalars().all())

    async def list_member_stats(
        self,
        parliament: str,
        session: str,
        party: Optional[str] = None,
        province: Optional[str] = None,
        sort: str = "activity_index_score",
        descending: bool = True,
        limit: int = 500,
    ) -> List[MemberStatModel]:
        sort_column = getattr(MemberStatModel, sort)
        query = select(MemberStatModel).where(
            MemberStatModel.parliament == parliament,
            MemberStatModel.session == session,
        )
        if party:
            query = query.where(MemberStatModel.party == party)
        if province:
            query = query.where(MemberStatModel.province == province)
        order = sort_column.desc() if descending else sort_column.asc()
        query = query.order_by(order, MemberStatModel.person_id).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_member_stat(self, person_id: str, parliament: str, session: str) -> Optional[MemberStatModel]:
        result = await self.session.execute(
            select(MemberStatModel).where(
                MemberStatModel.person_id == person_id,
                MemberStatModel.parliament == parliament,
                MemberStatModel.session == session,
            )
        )
        return result.scalar_one_or_none()

    async def list_member_vote_records(
        self,
        parliament: str,
        session: str,
        person_id: Optional[str] = None,
    ) -> List[MemberVoteRecordModel]:
        query = select(MemberVoteRecordModel).where(
            MemberVoteRecordModel.parliament == parliament,
            MemberVoteRecordModel.session == session,
        )
        if person_id:
            query = query.where(MemberVoteRecordModel.person_id == person_id)
        query = query.order_by(MemberVoteRecordModel.division_number, MemberVoteRecordModel.person_id)
        result = await self.session.execute(query)
        return list(result.scalars().all())
