"""Repositories for the legisync store."""

from .bill_repository import BillRepository
from .failed_write_repository import FailedWriteRepository
from .intervention_repository import InterventionRepository
from .member_repository import MemberRepository
from .session_repository import SessionRepository
from .stats_repository import StatsRepository
from .sync_cursor_repository import SyncCursorRepository
from .sync_log_repository import SyncLogRepository
from .vote_repository import VoteCastRepository, VoteRepository

__all__ = [
    "BillRepository",
    "FailedWriteRepository",
    "InterventionRepository",
    "MemberRepository",
    "SessionRepository",
    "StatsRepository",
    "SyncCursorRepository",
    "SyncLogRepository",
    "VoteCastRepository",
    "VoteRepository",
]
