"""
Data models for legisync.

Pydantic records for normalized source data, result containers for sync
and compute runs, and the versioned source field mapping.
"""

from .adapter_models import (
    ComputeResult,
    Page,
    RunResult,
    SyncError,
    SyncMetrics,
    SyncResult,
    SyncStatus,
)
from .records import (
    Chamber,
    CommitteeInterventionRecord,
    Decision,
    DivisionRecord,
    InterventionRecord,
    BillRecord,
    MemberRecord,
    VoteCastRecord,
)

__all__ = [
    "ComputeResult",
    "Page",
    "RunResult",
    "SyncError",
    "SyncMetrics",
    "SyncResult",
    "SyncStatus",
    "Chamber",
    "CommitteeInterventionRecord",
    "Decision",
    "DivisionRecord",
    "InterventionRecord",
    "BillRecord",
    "MemberRecord",
    "VoteCastRecord",
]
