"""
Repository for member database operations.

Responsibility: Data access layer for the ``members`` table
"""

from __future__ import annotations

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import MemberModel
from ..upsert import upsert_rows
from ...models.records import MemberRecord

logger = logging.getLogger(__name__)


class MemberRepository:
    """Repository encapsulating persistence for ``MemberModel`` records."""

    KEY_COLUMNS = ("person_id",)

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, person_id: str) -> Optional[MemberModel]:
        result = await self.session.execute(
            select(MemberModel).where(MemberModel.person_id == person_id)
        )
        return result.scalar_one_or_none()

    async def list_all(self) -> List[MemberModel]:
        """Full roster, ordered by person id."""
        result = await self.session.execute(
            select(MemberModel).order_by(MemberModel.person_id)
        )
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self.session.execute(select(func.count()).select_from(MemberModel))
        return int(result.scalar_one())

    async def upsert_many(self, records: Iterable[MemberRecord]) -> Tuple[int, int]:
        """
        Upsert member write patches. Returns (inserted, updated).

        Patches that leave detail columns out (listing-only fallbacks) are
        written in their own statement so the stored details are kept.
        """
        groups: Dict[FrozenSet[str], List[Dict]] = {}
        for record in records:
            row = record.column_values()
            groups.setdefault(frozenset(row), []).append(row)

        inserted = updated = 0
        for rows in groups.values():
            added, changed = await upsert_rows(self.session, MemberModel, self.KEY_COLUMNS, rows)
            inserted += added
            updated += changed
        return inserted, updated
