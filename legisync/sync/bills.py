"""
Bill synchronizer.

Responsibility: Sync bill metadata for the target session
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from ..db.repositories.bill_repository import BillRepository
from ..models.records import BillRecord, build_record
from .base_synchronizer import BaseSynchronizer


class BillSynchronizer(BaseSynchronizer):
    """Syncs ``bills`` from ``/bills?session=P-S`` (paged by page number)."""

    entity = "bills"
    key_fields = ("number", "parliament", "session")
    progress_every = 100

    def pages(self):
        return self.adapter.bill_pages(self.parliament, self.session)

    async def to_record(self, raw: Dict[str, Any]) -> Optional[BillRecord]:
        return build_record(
            BillRecord,
            "bills",
            raw,
            parliament=self.parliament,
            session=self.session,
        )

    async def write(self, session: AsyncSession, records: List[BillRecord]) -> Tuple[int, int]:
        return await BillRepository(session).upsert_many(records)
