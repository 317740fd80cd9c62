"""
Repository for floor and committee interventions.

Both tables share the natural key (parliament, session, person_id,
intervention_id), so one repository class serves either model.

Responsibility: Data access layer for ``interventions`` and ``committee_interventions``
"""

from __future__ import annotations

from typing import Iterable, List, Tuple, Type, Union

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import CommitteeInterventionModel, InterventionModel
from ..upsert import upsert_rows
from ...models.records import CommitteeInterventionRecord, InterventionRecord

InterventionTable = Union[Type[InterventionModel], Type[CommitteeInterventionModel]]


class InterventionRepository:
    """Repository for one of the intervention tables."""

    KEY_COLUMNS = ("parliament", "session", "person_id", "intervention_id")

    def __init__(self, session: AsyncSession, model: InterventionTable = InterventionModel) -> None:
        self.session = session
        self.model = model

    async def upsert_many(
        self,
        records: Iterable[Union[InterventionRecord, CommitteeInterventionRecord]],
    ) -> Tuple[int, int]:
        rows = [record.column_values() for record in records]
        return await upsert_rows(self.session, self.model, self.KEY_COLUMNS, rows)

    async def list_for_member(self, person_id: str, parliament: str, session: str) -> List:
        result = await self.session.execute(
            select(self.model)
            .where(
                self.model.person_id == person_id,
                self.model.parliament == parliament,
                self.model.session == session,
            )
            .order_by(self.model.intervention_id)
        )
        return list(result.scalars().all())

    async def count_session(self, parliament: str, session: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(self.model).where(
                self.model.parliament == parliament, self.model.session == session
            )
        )
        return int(result.scalar_one())
