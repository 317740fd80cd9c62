"""
Member synchronizer.

Walks the current-member listing; House members are enriched with their
detail record (roles, committees, associations), falling back to the
listing data when the detail lookup fails. A fallback write leaves the
detail-only columns stored by earlier passes untouched. Members are not
scoped to a session.

Responsibility: Sync the member roster
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ..db.repositories.member_repository import MemberRepository
from ..models.field_mapping import get_mapping, redact
from ..models.records import MemberRecord, build_record
from .base_synchronizer import BaseSynchronizer

logger = logging.getLogger(__name__)


def is_explicit_house(raw: Dict[str, Any]) -> bool:
    chamber = raw.get("chamber")
    return isinstance(chamber, str) and chamber.strip().lower() == "house"


class MemberSynchronizer(BaseSynchronizer):
    """Syncs ``members`` from ``/members?current=true``."""

    entity = "members"
    key_fields = ("person_id",)
    session_scoped = False
    progress_every = 100

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # Bounds concurrent detail lookups; all of them share the rate limiter
        self._semaphore = asyncio.Semaphore(self.adapter.config.member_concurrency)

    def pages(self):
        return self.adapter.member_pages()

    def needs_backfill(self, raw: Dict[str, Any]) -> bool:
        # House members stored before creation stamps existed
        return not raw.get("created_at") and is_explicit_house(raw)

    async def to_record(self, raw: Dict[str, Any]) -> Optional[MemberRecord]:
        if not is_explicit_house(raw) or raw.get("person_id") is None:
            return build_record(MemberRecord, "members", redact(raw))

        async with self._semaphore:
            detail = await self.adapter.fetch_member_detail(str(raw["person_id"]).strip())
        if detail is not None:
            return build_record(MemberRecord, "members", redact({**raw, **detail}))

        self.metrics.detail_fallbacks += 1
        logger.warning(f"Could not fetch full member details for {raw['person_id']}; using listing data")
        record = build_record(MemberRecord, "members", redact(raw))
        # Keep previously stored details the listing does not carry
        listed = get_mapping("members").extract(raw)
        return record.omit(*(name for name in MemberRecord.DETAIL_FIELDS if listed.get(name) is None))

    async def normalize_page(self, kept: List[Dict[str, Any]]) -> List[MemberRecord]:
        results = await asyncio.gather(*(self.normalize(raw, self.to_record) for raw in kept))
        return [record for record in results if record is not None]

    async def write(self, session: AsyncSession, records: List[MemberRecord]) -> Tuple[int, int]:
        return await MemberRepository(session).upsert_many(records)
