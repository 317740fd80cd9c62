"""
Vote and vote-cast synchronizers.

The vote synchronizer stores division metadata for the target session
and marks every division it touches ``casts_complete=False``. The cast
synchronizer then fetches each pending division's cast list once,
upserts the casts and flips ``casts_complete`` in the same transaction,
so an interrupted backfill resumes where it stopped.

Responsibility: Sync divisions, per-division casts and the session summary
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ..db.repositories.session_repository import SessionRepository
from ..db.repositories.vote_repository import VoteCastRepository, VoteRepository
from ..models.records import DivisionRecord, VoteCastRecord, build_record
from .base_synchronizer import BaseSynchronizer, SyncState

logger = logging.getLogger(__name__)


class VoteSynchronizer(BaseSynchronizer):
    """Syncs ``votes`` for the configured (parliament, session)."""

    entity = "votes"
    key_fields = ("parliament", "session", "division_number")
    progress_every = 20

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reported_total: Optional[int] = None

    async def sync(self, since: Optional[datetime]) -> None:
        self._transition(SyncState.PAGING)
        async for page in self.adapter.vote_pages(self.parliament, self.session):
            if page.total is not None:
                self.reported_total = page.total
            await self.process_page(page, since)
            self._transition(SyncState.PAGING)

    async def to_record(self, raw: Dict[str, Any]) -> Optional[DivisionRecord]:
        record = build_record(
            DivisionRecord,
            "votes",
            {"parliament": self.parliament, "session": self.session, **raw},
        )
        if (record.parliament, record.session) != (self.parliament, self.session):
            logger.debug(f"Discarding division {record.division_number} from {record.parliament}-{record.session}")
            return None
        return record

    async def write(self, session: AsyncSession, records: List[DivisionRecord]) -> Tuple[int, int]:
        return await VoteRepository(session).upsert_many(records)

    async def after_pass(self) -> None:
        async with self.db.session() as session:
            total = self.reported_total
            if total is None:
                total = await VoteRepository(session).count_session(self.parliament, self.session)
            await SessionRepository(session).record_sync(self.parliament, self.session, total)


class VoteCastSynchronizer(BaseSynchronizer):
    """
    Syncs ``vote_casts`` for divisions pending cast completion.

    A division whose cast list cannot be fetched stays incomplete and is
    retried on the next run; that is deferred work, not a data gap.
    """

    entity = "vote_casts"
    key_fields = ("parliament", "session", "division_number", "person_id")
    progress_every = 10

    async def sync(self, since: Optional[datetime]) -> None:
        async with self.db.session() as session:
            pending = await VoteRepository(session).pending_cast_divisions(
                self.parliament, self.session, since
            )
        logger.info(f"[{self.entity}] {len(pending)} division(s) pending cast sync")

        processed = 0
        for division_number in pending:
            self._transition(SyncState.PAGING)
            await self.sync_division(division_number)
            processed += 1
            if processed % self.progress_every == 0:
                logger.info(
                    f"[{self.entity}] Processed {processed} divisions, {self.metrics.items_kept} cast records..."
                )
            await self.adapter.throttle(self.adapter.config.page_delay_seconds)

    async def sync_division(self, division_number: int) -> None:
        casts = await self.adapter.fetch_vote_casts(self.parliament, self.session, division_number)
        if casts is None:
            self.metrics.units_deferred += 1
            logger.warning(f"[{self.entity}] Cast list unavailable for division {division_number}; deferred")
            return

        self.metrics.pages_fetched += 1
        self.metrics.items_seen += len(casts)

        async def build(raw: Dict[str, Any]) -> VoteCastRecord:
            return build_record(
                VoteCastRecord,
                "vote_casts",
                raw,
                parliament=self.parliament,
                session=self.session,
                division_number=division_number,
            )

        self._transition(SyncState.FILTERING)
        records = []
        for raw in casts:
            record = await self.normalize(raw, build)
            if record is not None:
                records.append(record)

        async def write_and_complete(session: AsyncSession, batch: List[VoteCastRecord]) -> Tuple[int, int]:
            counts = await VoteCastRepository(session).upsert_many(batch)
            await VoteRepository(session).mark_casts_complete(self.parliament, self.session, division_number)
            return counts

        self._transition(SyncState.UPSERTING)
        if records:
            # One batch per division so completion is flipped with its casts
            await self.write_batch(records, write_and_complete)
        else:
            async with self.db.session() as session:
                await VoteRepository(session).mark_casts_complete(self.parliament, self.session, division_number)

    async def write(self, session: AsyncSession, records: List[VoteCastRecord]) -> Tuple[int, int]:
        return await VoteCastRepository(session).upsert_many(records)
