"""
Repository for SyncLog database operations.

Handles writes and reads of per-pass synchronizer logs, used for
monitoring pipeline health and performance.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import SyncLogModel
from ...models.adapter_models import SyncResult


class SyncLogRepository:
    """Repository for sync log operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_log(
        self,
        result: SyncResult,
        parliament: Optional[str] = None,
        session: Optional[str] = None,
    ) -> SyncLogModel:
        """
        Record the outcome of one synchronizer pass.

        Args:
            result: Result reported by the synchronizer
            parliament: Target parliament, for session-scoped entities
            session: Target session, for session-scoped entities

        Returns:
            Created SyncLogModel instance
        """
        metrics = result.metrics
        error_summary = None
        if result.errors:
            error_summary = "; ".join(
                f"{error.error_type}: {error.message}" for error in result.errors[:5]
            )
            if len(result.errors) > 5:
                error_summary += f" (+{len(result.errors) - 5} more)"

        log = SyncLogModel(
            entity=result.entity,
            parliament=parliament,
            session=session,
            status=result.status.value,
            since=result.since,
            started_at=result.started_at,
            finished_at=result.finished_at,
            duration_seconds=metrics.duration_seconds,
            pages_fetched=metrics.pages_fetched,
            items_seen=metrics.items_seen,
            items_kept=metrics.items_kept,
            inserted=metrics.inserted,
            updated=metrics.updated,
            units_deferred=metrics.units_deferred,
            dead_lettered=metrics.dead_lettered,
            error_count=len(result.errors),
            error_summary=error_summary,
            watermark_advanced=result.watermark_advanced,
        )
        self.session.add(log)
        await self.session.flush()
        return log

    async def get_recent_logs(
        self,
        entity: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[SyncLogModel]:
        """
        Get recent sync logs with optional filtering.

        Args:
            entity: Filter by entity name
            status: Filter by status
            limit: Maximum number of logs to return

        Returns:
            List of SyncLogModel instances, newest first
        """
        query = select(SyncLogModel)
        if entity:
            query = query.where(SyncLogModel.entity == entity)
        if status:
            query = query.where(SyncLogModel.status == status)
        query = query.order_by(SyncLogModel.id.desc()).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())
