"""
Utilities package for legisync.

Rate limiting, retry/backoff policies, deduplication and timestamp helpers.
"""

from .rate_limiter import RateLimiter
from .retry import calculate_backoff, is_transient_write_error, write_retrying
from .dedupe import dedupe_by_key
from .timestamps import parse_timestamp, utcnow, whole_months_between

__all__ = [
    "RateLimiter",
    "calculate_backoff",
    "is_transient_write_error",
    "write_retrying",
    "dedupe_by_key",
    "parse_timestamp",
    "utcnow",
    "whole_months_between",
]
