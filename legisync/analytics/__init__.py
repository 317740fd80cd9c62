"""
Analytics compute engine: member profiles, vote tallies and rankings.
"""

from .member_profiles import MemberProfile, build_directory, resolve_profile
from .ranking import ACTIVITY_WEIGHTS, RANKED_METRICS, compute_member_stats
from .vote_tally import TallyResult, build_tally

__all__ = [
    "MemberProfile",
    "build_directory",
    "resolve_profile",
    "ACTIVITY_WEIGHTS",
    "RANKED_METRICS",
    "compute_member_stats",
    "TallyResult",
    "build_tally",
]
