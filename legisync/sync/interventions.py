"""
Per-member intervention synchronizers.

For every House member on the roster an independent paginated sub-fetch
walks that member's floor (or committee) interventions. Sub-items are
kept only when they belong to the target (parliament, session); an item
that does not name its session is taken to belong to the target one.
Members are fetched concurrently up to ``member_concurrency``, all
sharing the process-wide rate limiter.

A member whose sub-fetch fails is recorded as a data gap and the pass
continues with the remaining members. Running out of 429 retries is
fatal: the shared budget is spent for every member, so the pass aborts.

Responsibility: Sync interventions and committee interventions per member
"""

from __future__ import annotations

import asyncio
from datetime import datetime
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple, Type

from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import CommitteeInterventionModel, InterventionModel
from ..db.repositories.intervention_repository import InterventionRepository
from ..db.repositories.member_repository import MemberRepository
from ..exceptions import RateLimitExhaustedError, SourceError
from ..models.adapter_models import Page
from ..models.records import (
    Chamber,
    CommitteeInterventionRecord,
    InterventionRecord,
    SourceRecord,
    build_record,
)
from .base_synchronizer import BaseSynchronizer, SyncState, gather_or_cancel, is_changed_since

logger = logging.getLogger(__name__)


class MemberNestedSynchronizer(BaseSynchronizer):
    """Template for per-member nested page walks."""

    key_fields = ("parliament", "session", "person_id", "intervention_id")
    progress_every = 25
    record_model: Type[SourceRecord]
    table = InterventionModel

    def member_pages(self, person_id: str) -> AsyncIterator[Page]:
        raise NotImplementedError

    async def house_roster(self) -> List[str]:
        async with self.db.session() as session:
            members = await MemberRepository(session).list_all()
        return [
            member.person_id
            for member in members
            if Chamber.classify(member.chamber) == Chamber.HOUSE
        ]

    async def sync(self, since: Optional[datetime]) -> None:
        roster = await self.house_roster()
        logger.info(f"[{self.entity}] Fetching for {len(roster)} House member(s)")

        semaphore = asyncio.Semaphore(self.adapter.config.member_concurrency)
        self._members_done = 0

        async def one(person_id: str) -> None:
            async with semaphore:
                await self.sync_member(person_id, since)
            self._members_done += 1
            if self._members_done % self.progress_every == 0:
                logger.info(
                    f"[{self.entity}] Requested {self._members_done} members, "
                    f"{self.metrics.upserts} upserts"
                )

        self._transition(SyncState.PAGING)
        await gather_or_cancel([one(person_id) for person_id in roster])

    async def sync_member(self, person_id: str, since: Optional[datetime]) -> None:
        try:
            async for page in self.member_pages(person_id):
                self.metrics.pages_fetched += 1
                self.metrics.items_seen += len(page.items)

                records = []
                for raw in page.items:
                    if not is_changed_since(raw, since):
                        self.metrics.items_skipped += 1
                        continue
                    record = await self.normalize(raw, self._builder(person_id))
                    if record is not None:
                        records.append(record)

                if records:
                    await self.write_batches(records)
        except RateLimitExhaustedError:
            raise
        except SourceError as exc:
            logger.warning(f"[{self.entity}] Sub-fetch failed for member {person_id}: {exc}")
            self.record_gap(exc, context={"person_id": person_id, "url": exc.url})

    def _builder(self, person_id: str):
        async def build(raw: Dict[str, Any]) -> Optional[SourceRecord]:
            record = build_record(
                self.record_model,
                self.entity,
                {"parliament": self.parliament, "session": self.session, **raw},
                person_id=person_id,
            )
            if (record.parliament, record.session) != (self.parliament, self.session):
                return None
            return record
        return build

    async def write(self, session: AsyncSession, records: List[SourceRecord]) -> Tuple[int, int]:
        return await InterventionRepository(session, self.table).upsert_many(records)


class InterventionSynchronizer(MemberNestedSynchronizer):
    """Syncs House floor ``interventions``."""

    entity = "interventions"
    record_model = InterventionRecord
    table = InterventionModel

    def member_pages(self, person_id: str) -> AsyncIterator[Page]:
        return self.adapter.member_intervention_pages(person_id)


class CommitteeInterventionSynchronizer(MemberNestedSynchronizer):
    """Syncs ``committee_interventions``."""

    entity = "committee_interventions"
    record_model = CommitteeInterventionRecord
    table = CommitteeInterventionModel

    def member_pages(self, person_id: str) -> AsyncIterator[Page]:
        return self.adapter.member_committee_intervention_pages(person_id)
