"""
Result models for fetch, sync and compute operations.

Defines the page envelope returned by the remote fetcher and the
structured results each synchronizer, the orchestrator and the compute
engine report back to callers.

Responsibility: Data transfer objects for pipeline operations
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SyncStatus(str, Enum):
    """
    Status of a synchronizer pass or orchestrated run.

    PARTIAL_SUCCESS means the pass completed but recorded data gaps, so
    its watermark was held back.
    """
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"


class Page(BaseModel):
    """One page of a paginated listing endpoint."""
    items: List[Dict[str, Any]] = Field(default_factory=list)
    has_next: bool = Field(default=False)
    total: Optional[int] = Field(default=None)


class SyncError(BaseModel):
    """
    Structured error information from a synchronizer.

    Captures the context needed for debugging and for deciding whether
    the failed unit can be retried on the next run.
    """
    timestamp: datetime = Field(description="When the error occurred (UTC)")
    error_type: str = Field(description="Exception class name or error category")
    message: str = Field(description="Human-readable error message")
    context: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context (URL, member id, division, etc.)"
    )
    fatal: bool = Field(default=False, description="Whether this error aborted the synchronizer")


class SyncMetrics(BaseModel):
    """Counters for one synchronizer pass."""
    pages_fetched: int = Field(default=0, ge=0)
    items_seen: int = Field(default=0, ge=0)
    items_kept: int = Field(default=0, ge=0)
    items_skipped: int = Field(default=0, ge=0)
    inserted: int = Field(default=0, ge=0)
    updated: int = Field(default=0, ge=0)
    detail_fallbacks: int = Field(default=0, ge=0)
    units_deferred: int = Field(default=0, ge=0)
    dead_lettered: int = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def upserts(self) -> int:
        return self.inserted + self.updated


class SyncResult(BaseModel):
    """Outcome of one synchronizer pass."""
    entity: str
    status: SyncStatus
    metrics: SyncMetrics = Field(default_factory=SyncMetrics)
    errors: List[SyncError] = Field(default_factory=list)
    since: Optional[datetime] = Field(default=None, description="Adjusted-since filter used")
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    watermark_advanced: bool = False


class RunResult(BaseModel):
    """Outcome of an orchestrated sync run."""
    status: SyncStatus
    parliament: str
    session: str
    stages: Dict[str, SyncResult] = Field(default_factory=dict)
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    rate_limit_pauses: int = 0
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status in (SyncStatus.SUCCESS, SyncStatus.PARTIAL_SUCCESS)


class ComputeResult(BaseModel):
    """Counts reported by a compute pass for one (parliament, session)."""
    parliament: str
    session: str
    votes_processed: int
    member_vote_records_written: int
    member_stats_written: int
    vote_stats_written: int
    metrics_version: str
    computed_at: datetime
