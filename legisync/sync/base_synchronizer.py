"""
Shared synchronizer state machine.

Every entity synchronizer runs the same pass:

    Idle -> Paging -> Filtering -> Upserting -> AdvancingCursor -> Idle

Pages are walked until the source reports no further pages; items are
kept when their ``updated_at`` (falling back to ``created_at``) is
strictly after the adjusted-since boundary, when they carry no timestamp
at all, or when an entity-specific backfill predicate asks for them.
Kept items are normalized through the field mapping and upserted in
batches. The watermark advances only when the whole pass finished
without a fatal error and without data gaps.

Responsibility: Template pass, batch writes with retry/dead-letter, result bookkeeping
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from datetime import datetime
from enum import Enum
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.xbill_adapter import XBillAdapter
from ..config import SyncConfig
from ..db.repositories.failed_write_repository import FailedWriteRepository
from ..db.repositories.sync_log_repository import SyncLogRepository
from ..db.session import Database
from ..exceptions import FieldMappingError, SyncAbortedError
from ..models.adapter_models import Page, SyncError, SyncMetrics, SyncResult, SyncStatus
from ..models.records import SourceRecord
from ..utils.dedupe import dedupe_by_key
from ..utils.retry import write_retrying
from ..utils.timestamps import parse_timestamp, utcnow
from .watermark import WatermarkStore

logger = logging.getLogger(__name__)

BatchWriter = Callable[[AsyncSession, List[Any]], Awaitable[Tuple[int, int]]]


class SyncState(str, Enum):
    IDLE = "idle"
    PAGING = "paging"
    FILTERING = "filtering"
    UPSERTING = "upserting"
    ADVANCING_CURSOR = "advancing_cursor"


def is_changed_since(raw: Dict[str, Any], since: Optional[datetime]) -> bool:
    """Whether a source item changed after ``since`` (items without timestamps count as changed)."""
    if since is None:
        return True
    stamp = parse_timestamp(raw.get("updated_at") or raw.get("created_at"))
    if stamp is None:
        return True
    return stamp > since


class BaseSynchronizer(ABC):
    """
    Base class for entity synchronizers.

    Subclasses implement ``pages``, ``to_record`` and ``write`` for the
    flat listing case, or override ``sync`` entirely (vote casts, nested
    per-member fetches). Fatal errors are recorded, logged to the sync
    log and re-raised as ``SyncAbortedError``.
    """

    entity: str = ""
    key_fields: Tuple[str, ...] = ()
    session_scoped: bool = True
    progress_every: int = 100

    def __init__(
        self,
        db: Database,
        adapter: XBillAdapter,
        watermarks: WatermarkStore,
        config: SyncConfig,
    ):
        self.db = db
        self.adapter = adapter
        self.watermarks = watermarks
        self.config = config
        self.parliament = config.parliament
        self.session = config.session

        self.state = SyncState.IDLE
        self.metrics = SyncMetrics()
        self.errors: List[SyncError] = []
        self.gaps = 0
        self._progress_mark = 0

    # -- hooks -----------------------------------------------------------

    def pages(self):
        """Async iterator of listing pages (flat synchronizers)."""
        raise NotImplementedError

    async def to_record(self, raw: Dict[str, Any]) -> Optional[SourceRecord]:
        """Normalize one kept item; None drops it."""
        raise NotImplementedError

    @abstractmethod
    async def write(self, session: AsyncSession, records: List[Any]) -> Tuple[int, int]:
        """Upsert one batch inside ``session``. Returns (inserted, updated)."""

    def needs_backfill(self, raw: Dict[str, Any]) -> bool:
        return False

    async def after_pass(self) -> None:
        """Runs after a pass completed without a fatal error."""

    # -- template --------------------------------------------------------

    async def run(self) -> SyncResult:
        """
        Execute one full pass.

        Returns:
            SyncResult with SUCCESS (watermark advanced) or PARTIAL_SUCCESS

        Raises:
            SyncAbortedError: a fatal error stopped the pass
        """
        started_at = utcnow()
        clock = time.monotonic()
        self.metrics = SyncMetrics()
        self.errors = []
        self.gaps = 0
        self._progress_mark = 0

        result = SyncResult(entity=self.entity, status=SyncStatus.SUCCESS, started_at=started_at)

        try:
            since = await self.watermarks.adjusted_since(self.entity)
            result.since = since
            if since:
                logger.info(f"[{self.entity}] Filtering items updated after {since.isoformat()}")
            else:
                logger.info(f"[{self.entity}] No cursor, processing all items")

            await self.sync(since)
            await self.after_pass()
        except Exception as exc:
            self.state = SyncState.IDLE
            self.record_error(exc, fatal=True)
            result.status = SyncStatus.FAILURE
            logger.error(f"[{self.entity}] Sync failed: {exc}")
            await self._finish(result, clock)
            raise SyncAbortedError(self.entity, exc, result) from exc

        if self.gaps:
            result.status = SyncStatus.PARTIAL_SUCCESS
            logger.warning(
                f"[{self.entity}] Pass finished with {self.gaps} data gap(s); watermark held back"
            )
        else:
            self._transition(SyncState.ADVANCING_CURSOR)
            await self.watermarks.set(self.entity, started_at)
            result.watermark_advanced = True

        self._transition(SyncState.IDLE)
        await self._finish(result, clock)
        logger.info(
            f"[{self.entity}] Sync complete: {self.metrics.items_kept} kept, "
            f"{self.metrics.inserted} inserted, {self.metrics.updated} updated"
        )
        return result

    async def sync(self, since: Optional[datetime]) -> None:
        """Flat page walk: filter each page, normalize, upsert."""
        self._transition(SyncState.PAGING)
        async for page in self.pages():
            await self.process_page(page, since)
            self._transition(SyncState.PAGING)

    async def process_page(self, page: Page, since: Optional[datetime]) -> None:
        self.metrics.pages_fetched += 1
        self.metrics.items_seen += len(page.items)

        self._transition(SyncState.FILTERING)
        kept = [raw for raw in page.items if self.needs_backfill(raw) or is_changed_since(raw, since)]
        self.metrics.items_skipped += len(page.items) - len(kept)
        if not kept:
            return

        records = await self.normalize_page(kept)

        self._transition(SyncState.UPSERTING)
        await self.write_batches(records)
        self._report_progress()

    async def normalize_page(self, kept: List[Dict[str, Any]]) -> List[SourceRecord]:
        records = []
        for raw in kept:
            record = await self.normalize(raw, self.to_record)
            if record is not None:
                records.append(record)
        return records

    async def normalize(
        self,
        raw: Dict[str, Any],
        build: Callable[[Dict[str, Any]], Awaitable[Optional[SourceRecord]]],
    ) -> Optional[SourceRecord]:
        """Build a record, recording (not raising) per-item transform failures."""
        try:
            record = await build(raw)
        except (FieldMappingError, ValidationError) as exc:
            self.metrics.items_skipped += 1
            self.record_error(exc, context={"item": _item_hint(raw)})
            logger.warning(f"[{self.entity}] Skipping malformed item: {exc}")
            return None
        if record is None:
            self.metrics.items_skipped += 1
        else:
            self.metrics.items_kept += 1
        return record

    async def write_batches(
        self,
        records: Sequence[SourceRecord],
        writer: Optional[BatchWriter] = None,
    ) -> bool:
        """
        Write records in batches of ``batch_size``.

        Returns:
            True when every batch was written (none dead-lettered)
        """
        ok = True
        for start in range(0, len(records), self.config.batch_size):
            batch = records[start:start + self.config.batch_size]
            ok = await self.write_batch(batch, writer) and ok
        return ok

    async def write_batch(self, records: Sequence[SourceRecord], writer: Optional[BatchWriter] = None) -> bool:
        """
        Upsert one batch with retry; dead-letter it when retries run out.

        A dead-lettered batch is a data gap. If the dead-letter write
        fails too, the store is unreachable and the error propagates.
        """
        unique, duplicates = dedupe_by_key(records, self.natural_key)
        if duplicates:
            logger.debug(f"[{self.entity}] Dropped {duplicates} duplicate item(s) in batch")
        if not unique:
            return True

        writer = writer or self.write
        attempts = 0
        try:
            async for attempt in write_retrying(
                self.config.write_retry_attempts,
                self.config.write_retry_max_wait_seconds,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    async with self.db.session() as session:
                        inserted, updated = await writer(session, unique)
        except SQLAlchemyError as exc:
            await self._dead_letter(unique, exc, attempts)
            return False

        self.metrics.inserted += inserted
        self.metrics.updated += updated
        return True

    def natural_key(self, record: SourceRecord) -> Tuple[Any, ...]:
        return tuple(getattr(record, name) for name in self.key_fields)

    # -- bookkeeping -----------------------------------------------------

    def record_error(
        self,
        exc: BaseException,
        fatal: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ) -> SyncError:
        error = SyncError(
            timestamp=utcnow(),
            error_type=type(exc).__name__,
            message=str(exc),
            context={"entity": self.entity, **(context or {})},
            fatal=fatal,
        )
        self.errors.append(error)
        return error

    def record_gap(self, exc: BaseException, context: Optional[Dict[str, Any]] = None) -> None:
        """A unit of work failed without aborting the pass; the watermark is held back."""
        self.gaps += 1
        self.record_error(exc, context=context)

    async def _dead_letter(self, records: Sequence[SourceRecord], exc: BaseException, attempts: int) -> None:
        logger.error(
            f"[{self.entity}] Batch of {len(records)} failed after {attempts} attempt(s): {exc}; dead-lettering"
        )
        async with self.db.session() as session:
            await FailedWriteRepository(session).record(
                entity=self.entity,
                natural_keys=[list(self.natural_key(record)) for record in records],
                payload=[record.column_values() for record in records],
                error=exc,
                attempts=attempts,
            )
        self.metrics.dead_lettered += len(records)
        self.record_gap(exc, context={"batch_size": len(records)})

    async def _finish(self, result: SyncResult, clock: float) -> None:
        result.finished_at = utcnow()
        self.metrics.duration_seconds = round(time.monotonic() - clock, 3)
        result.metrics = self.metrics
        result.errors = list(self.errors)
        try:
            async with self.db.session() as session:
                await SyncLogRepository(session).create_log(
                    result,
                    parliament=self.parliament if self.session_scoped else None,
                    session=self.session if self.session_scoped else None,
                )
        except SQLAlchemyError as exc:
            logger.error(f"[{self.entity}] Could not write sync log: {exc}")

    def _transition(self, state: SyncState) -> None:
        if state != self.state:
            logger.debug(f"[{self.entity}] {self.state.value} -> {state.value}")
            self.state = state

    def _report_progress(self) -> None:
        done = self.metrics.items_kept
        if done // self.progress_every > self._progress_mark:
            self._progress_mark = done // self.progress_every
            logger.info(f"[{self.entity}] Synced {done} items so far...")


async def gather_or_cancel(coros: Sequence[Awaitable[Any]]) -> List[Any]:
    """Run coroutines concurrently; on the first failure cancel the rest and re-raise."""
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _item_hint(raw: Dict[str, Any]) -> Dict[str, Any]:
    keys = ("person_id", "division_number", "number", "intervention_id", "id")
    return {key: raw[key] for key in keys if key in raw}
