"""Sync run orchestration."""

from .sync_pipeline import STAGES, STAGE_DEPENDENCIES, SyncOrchestrator, resolve_stages

__all__ = ["STAGES", "STAGE_DEPENDENCIES", "SyncOrchestrator", "resolve_stages"]
