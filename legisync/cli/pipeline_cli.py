"""
Command-line interface for the sync pipeline and analytics compute.

Usage:
    python -m legisync.cli.pipeline_cli sync --parliament 45 --session 1
    python -m legisync.cli.pipeline_cli sync --stage members --stage votes,vote_casts
    python -m legisync.cli.pipeline_cli sync --force-full members
    python -m legisync.cli.pipeline_cli compute --parliament 45 --session 1
    python -m legisync.cli.pipeline_cli run --create-tables --output run.json
"""

import asyncio
import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Settings
from ..db.session import Database
from ..models.adapter_models import ComputeResult, RunResult, SyncStatus
from ..orchestration.sync_pipeline import STAGES, SyncOrchestrator
from ..services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)

console = Console()

STATUS_STYLES = {
    SyncStatus.SUCCESS: "green",
    SyncStatus.PARTIAL_SUCCESS: "yellow",
    SyncStatus.FAILURE: "red",
    SyncStatus.CANCELLED: "red",
    SyncStatus.SKIPPED: "dim",
}


def parse_stage_args(values: Optional[List[str]]) -> Optional[List[str]]:
    """Flatten repeated and comma-separated --stage values."""
    if not values:
        return None
    stages = [stage.strip() for value in values for stage in value.split(",") if stage.strip()]
    return stages or None


def render_run(result: RunResult) -> None:
    table = Table(title=f"Sync {result.parliament}-{result.session}")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Kept", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Inserted", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Deferred", justify="right")
    table.add_column("Dead-lettered", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Watermark")

    for name in STAGES:
        stage = result.stages.get(name)
        if stage is None:
            continue
        style = STATUS_STYLES.get(stage.status, "")
        metrics = stage.metrics
        table.add_row(
            name,
            f"[{style}]{stage.status.value}[/{style}]" if style else stage.status.value,
            str(metrics.items_kept),
            str(metrics.items_skipped),
            str(metrics.inserted),
            str(metrics.updated),
            str(metrics.units_deferred),
            str(metrics.dead_lettered),
            str(len(stage.errors)),
            "advanced" if stage.watermark_advanced else "held",
        )

    console.print(table)
    console.print(
        f"Status: {result.status.value}  Duration: {result.duration_seconds:.2f}s  "
        f"Rate-limit pauses: {result.rate_limit_pauses}"
    )
    if result.failed_stage:
        console.print(Panel(
            f"Stage '{result.failed_stage}' failed: {result.error}",
            title="Sync failed",
            border_style="red",
        ))


def render_compute(result: ComputeResult) -> None:
    table = Table(title=f"Compute {result.parliament}-{result.session} ({result.metrics_version})")
    table.add_column("Collection")
    table.add_column("Rows", justify="right")
    table.add_row("votes processed", str(result.votes_processed))
    table.add_row("member_vote_records", str(result.member_vote_records_written))
    table.add_row("vote_stats", str(result.vote_stats_written))
    table.add_row("member_stats", str(result.member_stats_written))
    console.print(table)


def write_output(output_file: str, payload: Dict[str, Any]) -> None:
    output_path = Path(output_file)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False, default=str)
    console.print(f"Results saved to: {output_path.absolute()}")


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """
    Execute one CLI command.

    Returns:
        Process exit code (0 on success or partial success)
    """
    run_settings = settings.for_run(args.parliament, args.session, args.force_full)
    parliament = run_settings.sync.parliament
    session = run_settings.sync.session
    payload: Dict[str, Any] = {}
    exit_code = 0

    db = Database(run_settings.db)
    await db.initialize()
    try:
        if args.create_tables:
            await db.create_tables()

        if args.command in ("sync", "run"):
            run_result = await SyncOrchestrator(db, run_settings).run(parse_stage_args(args.stage))
            render_run(run_result)
            payload["sync"] = run_result.model_dump(mode="json")
            if not run_result.ok:
                exit_code = 1

        if args.command == "compute" or (args.command == "run" and exit_code == 0):
            service = AnalyticsService(db, metrics_version=run_settings.app.metrics_version)
            compute_result = await service.run_compute(parliament, session)
            render_compute(compute_result)
            payload["compute"] = compute_result.model_dump(mode="json")
        elif args.command == "run":
            console.print("[yellow]Compute skipped because the sync run failed[/yellow]")
    finally:
        await db.close()

    if args.output:
        write_output(args.output, payload)
    return exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="legisync",
        description="Incremental legislative data sync and analytics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"Stages: {', '.join(STAGES)}",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging (DEBUG level)")

    subparsers = parser.add_subparsers(dest="command", required=True)
    sync_parser = subparsers.add_parser("sync", help="Run the entity synchronizers")
    compute_parser = subparsers.add_parser("compute", help="Rebuild derived analytics for a session")
    run_parser = subparsers.add_parser("run", help="Sync, then compute when the sync did not fail")

    for sub in (sync_parser, compute_parser, run_parser):
        sub.add_argument("--parliament", type=str, help="Parliament number (default: SYNC_PARLIAMENT)")
        sub.add_argument("--session", type=str, help="Session number (default: SYNC_SESSION)")
        sub.add_argument("--create-tables", action="store_true", help="Create missing tables first")
        sub.add_argument("--output", type=str, help="Save results to JSON file")

    for sub in (sync_parser, run_parser):
        sub.add_argument(
            "--stage",
            action="append",
            help="Stage to run; repeatable or comma-separated (default: all)",
        )
        sub.add_argument(
            "--force-full",
            action="append",
            nargs="?",
            const="all",
            metavar="ENTITY",
            help="Ignore the watermark for ENTITY (all entities when no name is given)",
        )
    compute_parser.set_defaults(stage=None, force_full=None)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    load_dotenv(".env", override=False)
    settings = Settings()

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.app.log_level.upper(),
        format=settings.app.log_format,
    )

    try:
        return asyncio.run(run_command(args, settings))
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        return 2
    except Exception as exc:
        logger.error("Command failed", exc_info=True)
        console.print(f"[red]Command failed: {exc}[/red]")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
