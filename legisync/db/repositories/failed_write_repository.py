"""
Repository for dead-lettered batch writes.

Responsibility: Data access layer for the ``failed_writes`` table
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from pydantic_core import to_jsonable_python
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import FailedWriteModel


class FailedWriteRepository:
    """Stores batches whose write retries were exhausted, for later replay."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record(
        self,
        entity: str,
        natural_keys: Sequence[Any],
        payload: Sequence[Dict[str, Any]],
        error: BaseException,
        attempts: int,
    ) -> FailedWriteModel:
        row = FailedWriteModel(
            entity=entity,
            natural_keys=to_jsonable_python(list(natural_keys)),
            payload=to_jsonable_python(list(payload)),
            error_type=type(error).__name__,
            error_message=str(error)[:2000],
            attempts=attempts,
        )
        self.session.add(row)
        await self.session.flush()
        return row

    async def list_unresolved(self, entity: Optional[str] = None) -> List[FailedWriteModel]:
        query = select(FailedWriteModel).where(FailedWriteModel.resolved.is_(False))
        if entity:
            query = query.where(FailedWriteModel.entity == entity)
        result = await self.session.execute(query.order_by(FailedWriteModel.id))
        return list(result.scalars().all())

    async def mark_resolved(self, ids: Sequence[int]) -> None:
        if ids:
            await self.session.execute(
                update(FailedWriteModel).where(FailedWriteModel.id.in_(list(ids))).values(resolved=True)
            )
