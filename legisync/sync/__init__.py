"""
Entity synchronizers and the watermark store.
"""

from .base_synchronizer import BaseSynchronizer, SyncState
from .bills import BillSynchronizer
from .interventions import CommitteeInterventionSynchronizer, InterventionSynchronizer
from .members import MemberSynchronizer
from .votes import VoteCastSynchronizer, VoteSynchronizer
from .watermark import WatermarkStore, adjust_since

__all__ = [
    "BaseSynchronizer",
    "SyncState",
    "BillSynchronizer",
    "CommitteeInterventionSynchronizer",
    "InterventionSynchronizer",
    "MemberSynchronizer",
    "VoteCastSynchronizer",
    "VoteSynchronizer",
    "WatermarkStore",
    "adjust_since",
]
