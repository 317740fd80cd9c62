"""
Legislative activity sync and analytics.

Keeps a local store of members, divisions, vote casts, bills and
interventions in step with the xBill API, then derives per-session
participation tallies, an activity index and rank/percentile statistics.
"""

__version__ = "0.3.0"
