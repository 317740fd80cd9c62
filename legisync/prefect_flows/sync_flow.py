"""
Prefect flows for sync and compute.

Wrap the sync orchestrator and the analytics service so a deployment
can schedule them:

- sync_parliament_data: one incremental sync run
- compute_session_stats: rebuild the derived analytics for a session
- sync_and_compute: sync, then compute when the sync did not fail
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from prefect import flow, task, get_run_logger

from ..config import settings as default_settings
from ..db.session import Database
from ..exceptions import SyncRunFailedError
from ..models.adapter_models import RunResult
from ..orchestration.sync_pipeline import SyncOrchestrator
from ..services.analytics_service import AnalyticsService


def check_sync_result(result: RunResult) -> Dict[str, Any]:
    """
    JSON form of a run result.

    Raises:
        SyncRunFailedError: the run ended in FAILURE (so Prefect retries the task)
    """
    summary = result.model_dump(mode="json")
    if not result.ok:
        raise SyncRunFailedError(result.failed_stage, result.error, summary)
    return summary


@task(name="run_sync", retries=1, retry_delay_seconds=60)
async def run_sync_task(
    parliament: Optional[str] = None,
    session: Optional[str] = None,
    stages: Optional[List[str]] = None,
    force_full: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Run the synchronizers for one (parliament, session).

    Returns:
        RunResult as a JSON-compatible dict
    """
    logger = get_run_logger()
    run_settings = default_settings.for_run(parliament, session, force_full)
    logger.info(
        "Starting sync: parliament=%s, session=%s, stages=%s",
        run_settings.sync.parliament,
        run_settings.sync.session,
        stages or "all",
    )

    db = Database(run_settings.db)
    await db.initialize()
    try:
        result = await SyncOrchestrator(db, run_settings).run(stages)
    finally:
        await db.close()

    for name, stage in result.stages.items():
        logger.info(
            f"{name}: {stage.status.value} "
            f"(kept={stage.metrics.items_kept}, inserted={stage.metrics.inserted}, "
            f"updated={stage.metrics.updated}, watermark_advanced={stage.watermark_advanced})"
        )
    return check_sync_result(result)


@task(name="run_compute", retries=2, retry_delay_seconds=30)
async def run_compute_task(parliament: str, session: str) -> Dict[str, Any]:
    logger = get_run_logger()
    db = Database(default_settings.db)
    await db.initialize()
    try:
        service = AnalyticsService(db, metrics_version=default_settings.app.metrics_version)
        result = await service.run_compute(parliament, session)
    finally:
        await db.close()

    logger.info(
        f"Compute complete for {parliament}-{session}: "
        f"{result.votes_processed} votes, {result.member_stats_written} member stats"
    )
    return result.model_dump(mode="json")


@flow(
    name="sync-parliament-data",
    description="Incremental sync of members, votes, casts, bills and interventions",
    log_prints=True,
)
async def sync_parliament_data(
    parliament: Optional[str] = None,
    session: Optional[str] = None,
    stages: Optional[List[str]] = None,
    force_full: Optional[List[str]] = None,
) -> Dict[str, Any]:
    return await run_sync_task(parliament, session, stages, force_full)


@flow(
    name="compute-session-stats",
    description="Rebuild member vote records, vote stats and member stats for a session",
    log_prints=True,
)
async def compute_session_stats(
    parliament: Optional[str] = None,
    session: Optional[str] = None,
) -> Dict[str, Any]:
    parliament = str(parliament or default_settings.sync.parliament)
    session = str(session or default_settings.sync.session)
    return await run_compute_task(parliament, session)


@flow(
    name="sync-and-compute",
    description="Incremental sync followed by an analytics rebuild",
    log_prints=True,
)
async def sync_and_compute(
    parliament: Optional[str] = None,
    session: Optional[str] = None,
    force_full: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """
    Sync every stage, then compute the session snapshot.

    The compute step is skipped when the sync run failed; a partial
    sync still computes from whatever was stored.
    """
    logger = get_run_logger()
    parliament = str(parliament or default_settings.sync.parliament)
    session = str(session or default_settings.sync.session)

    try:
        sync_result = await run_sync_task(parliament, session, None, force_full)
    except SyncRunFailedError as exc:
        logger.warning(f"Skipping compute because the sync run failed: {exc}")
        return {"sync": exc.result, "compute": None}

    return {"sync": sync_result, "compute": await run_compute_task(parliament, session)}
