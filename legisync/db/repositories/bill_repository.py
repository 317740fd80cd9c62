"""
Repository for bill database operations.

Responsibility: Data access layer for the ``bills`` table
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import BillModel
from ..upsert import upsert_rows
from ...models.records import BillRecord


class BillRepository:
    """Repository encapsulating persistence for ``BillModel`` records."""

    KEY_COLUMNS = ("number", "parliament", "session")

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, number: str, parliament: str, session: str) -> Optional[BillModel]:
        result = await self.session.execute(
            select(BillModel).where(
                BillModel.number == number,
                BillModel.parliament == parliament,
                BillModel.session == session,
            )
        )
        return result.scalar_one_or_none()

    async def list_session(self, parliament: str, session: str) -> List[BillModel]:
        result = await self.session.execute(
            select(BillModel)
            .where(BillModel.parliament == parliament, BillModel.session == session)
            .order_by(BillModel.number)
        )
        return list(result.scalars().all())

    async def upsert_many(self, records: Iterable[BillRecord]) -> Tuple[int, int]:
        rows = [record.column_values() for record in records]
        return await upsert_rows(self.session, BillModel, self.KEY_COLUMNS, rows)
