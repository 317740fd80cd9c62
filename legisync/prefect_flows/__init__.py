"""
Prefect flows for scheduled sync and compute.

Responsibility: Define orchestration workflows using Prefect
"""

from .sync_flow import compute_session_stats, sync_and_compute, sync_parliament_data

__all__ = ["sync_parliament_data", "compute_session_stats", "sync_and_compute"]
