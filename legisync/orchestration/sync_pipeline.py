"""
Sync pipeline orchestration.

Runs the entity synchronizers as an asyncio task graph:

    members ----+--> interventions
                +--> committee_interventions
    votes ------+--> vote_casts
    bills

Stages without a dependency path between them run concurrently and
share one adapter (and with it one rate limiter). The first fatal stage
failure cancels every running or waiting stage and fails the run;
watermarks of stages that already finished stay advanced.

Responsibility: Dependency-ordered execution of synchronizers and run-level results
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Tuple, Type
import logging
import time

import httpx

from ..adapters.xbill_adapter import XBillAdapter
from ..config import Settings
from ..db.session import Database
from ..exceptions import SyncAbortedError
from ..models.adapter_models import RunResult, SyncResult, SyncStatus
from ..sync.base_synchronizer import BaseSynchronizer
from ..sync.bills import BillSynchronizer
from ..sync.interventions import CommitteeInterventionSynchronizer, InterventionSynchronizer
from ..sync.members import MemberSynchronizer
from ..sync.votes import VoteCastSynchronizer, VoteSynchronizer
from ..sync.watermark import WatermarkStore
from ..utils.timestamps import utcnow

logger = logging.getLogger(__name__)


STAGE_DEPENDENCIES: Dict[str, Tuple[str, ...]] = {
    "members": (),
    "votes": (),
    "bills": (),
    "vote_casts": ("votes",),
    "interventions": ("members",),
    "committee_interventions": ("members",),
}

SYNCHRONIZERS: Dict[str, Type[BaseSynchronizer]] = {
    "members": MemberSynchronizer,
    "votes": VoteSynchronizer,
    "bills": BillSynchronizer,
    "vote_casts": VoteCastSynchronizer,
    "interventions": InterventionSynchronizer,
    "committee_interventions": CommitteeInterventionSynchronizer,
}

STAGES: Tuple[str, ...] = tuple(STAGE_DEPENDENCIES)


def resolve_stages(stages: Optional[Iterable[str]] = None) -> List[str]:
    """
    Validate a stage selection and return it in DAG order.

    Raises:
        ValueError: for unknown stage names
    """
    if not stages:
        return list(STAGES)
    requested = {stage.strip() for stage in stages if stage and stage.strip()}
    unknown = sorted(requested - set(STAGES))
    if unknown:
        raise ValueError(f"Unknown sync stage(s): {', '.join(unknown)}. Valid: {', '.join(STAGES)}")
    return [stage for stage in STAGES if stage in requested]


class SyncOrchestrator:
    """
    Orchestrates one sync run.

    Dependencies outside the selected stages count as satisfied, so a
    single stage can be re-run on its own.

    Example:
        orchestrator = SyncOrchestrator(db, settings)
        result = await orchestrator.run()
        if not result.ok:
            print(result.failed_stage, result.error)
    """

    def __init__(
        self,
        db: Database,
        settings: Settings,
        adapter: Optional[XBillAdapter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            db: Initialized database handle
            settings: Application settings (source and sync groups are used)
            adapter: Shared adapter; built from settings when omitted
            transport: HTTP transport for a built adapter (tests use MockTransport)
        """
        self.db = db
        self.settings = settings
        self._adapter = adapter
        self._transport = transport

    async def run(self, stages: Optional[Iterable[str]] = None) -> RunResult:
        selected = resolve_stages(stages)
        clock = time.monotonic()
        sync_config = self.settings.sync

        logger.info(
            f"Starting sync run: parliament={sync_config.parliament}, "
            f"session={sync_config.session}, stages={','.join(selected)}"
        )

        adapter = self._adapter or XBillAdapter(self.settings.source, transport=self._transport)
        watermarks = WatermarkStore(self.db, sync_config)

        try:
            tasks: Dict[str, asyncio.Task] = {}
            for name in selected:
                synchronizer = SYNCHRONIZERS[name](self.db, adapter, watermarks, sync_config)
                deps = [tasks[dep] for dep in STAGE_DEPENDENCIES[name] if dep in tasks]
                tasks[name] = asyncio.ensure_future(self._run_stage(name, synchronizer, deps))

            await self._wait_all(tasks)
        finally:
            if self._adapter is None:
                await adapter.close()

        result = self._collect(tasks, selected)
        result.rate_limit_pauses = adapter.rate_limiter.pause_count
        result.duration_seconds = round(time.monotonic() - clock, 3)

        if result.status == SyncStatus.FAILURE:
            logger.error(f"Sync run failed at stage '{result.failed_stage}': {result.error}")
        else:
            logger.info(f"Sync run finished with status {result.status.value} in {result.duration_seconds}s")
        return result

    async def _run_stage(
        self,
        name: str,
        synchronizer: BaseSynchronizer,
        deps: List[asyncio.Task],
    ) -> SyncResult:
        if deps:
            await asyncio.wait(deps)
            if any(dep.cancelled() or dep.exception() is not None for dep in deps):
                # An upstream stage failed; the run is being aborted
                raise asyncio.CancelledError()
        logger.info(f"Stage '{name}' starting")
        return await synchronizer.run()

    async def _wait_all(self, tasks: Dict[str, asyncio.Task]) -> None:
        pending = set(tasks.values())
        while pending:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
            if any(not task.cancelled() and task.exception() is not None for task in done):
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                return

    def _collect(self, tasks: Dict[str, asyncio.Task], selected: List[str]) -> RunResult:
        sync_config = self.settings.sync
        result = RunResult(
            status=SyncStatus.SUCCESS,
            parliament=sync_config.parliament,
            session=sync_config.session,
        )

        for name in STAGES:
            if name not in selected:
                result.stages[name] = SyncResult(entity=name, status=SyncStatus.SKIPPED)
                continue

            task = tasks[name]
            if task.cancelled():
                result.stages[name] = SyncResult(entity=name, status=SyncStatus.CANCELLED, finished_at=utcnow())
                continue

            exc = task.exception()
            if exc is None:
                result.stages[name] = task.result()
            elif isinstance(exc, SyncAbortedError) and exc.result is not None:
                result.stages[name] = exc.result
                self._mark_failed(result, name, exc)
            else:
                result.stages[name] = SyncResult(entity=name, status=SyncStatus.FAILURE, finished_at=utcnow())
                self._mark_failed(result, name, exc)

        if result.status != SyncStatus.FAILURE and any(
            stage.status == SyncStatus.PARTIAL_SUCCESS for stage in result.stages.values()
        ):
            result.status = SyncStatus.PARTIAL_SUCCESS
        return result

    @staticmethod
    def _mark_failed(result: RunResult, name: str, exc: BaseException) -> None:
        if result.status != SyncStatus.FAILURE:
            result.status = SyncStatus.FAILURE
            result.failed_stage = name
            result.error = str(exc)
