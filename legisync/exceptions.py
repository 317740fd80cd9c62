"""
Exception types shared across the sync pipeline.

Fatal errors abort the owning synchronizer (and with it the run);
partial-item errors are recorded and the synchronizer carries on.
"""

from typing import Any, Dict, Optional


class SourceError(Exception):
    """A primary listing page could not be fetched (fatal for its synchronizer)."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RateLimitExhaustedError(SourceError):
    """Capped 429 backoff ran out of attempts on a primary listing page."""


class FieldMappingError(ValueError):
    """A source record is missing a field required by the active mapping."""

    def __init__(self, entity: str, field: str, revision: str):
        super().__init__(f"{entity} record missing required field '{field}' (schema {revision})")
        self.entity = entity
        self.field = field
        self.revision = revision


class SyncAbortedError(Exception):
    """Raised by a synchronizer after it recorded a fatal failure."""

    def __init__(self, entity: str, cause: BaseException, result: Optional[Any] = None):
        super().__init__(f"{entity} sync aborted: {cause}")
        self.entity = entity
        self.cause = cause
        # SyncResult recorded for the failed pass
        self.result = result


class SyncRunFailedError(Exception):
    """An orchestrated sync run ended in FAILURE; raised so schedulers can retry it."""

    def __init__(self, failed_stage: Optional[str], error: Optional[str], result: Dict[str, Any]):
        super().__init__(f"Sync failed at stage '{failed_stage}': {error}")
        self.failed_stage = failed_stage
        self.result = result
