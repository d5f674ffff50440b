"""
Exception hierarchy for the sync engine.

Transient external failures are retried and then reported in result error
lists; only the single-flight conflict is raised to callers of a sync.
"""
from typing import Optional


class LeagueSyncError(Exception):
    """Base class for all league_sync errors."""


class SyncInProgressError(LeagueSyncError):
    """Raised when a sync is requested while another one is still running."""

    def __init__(self, message: str = "A sync is already in progress"):
        super().__init__(message)


class ExternalSourceError(LeagueSyncError):
    """A request to the external fantasy platform failed."""

    def __init__(self, endpoint: str, message: str, status_code: Optional[int] = None):
        self.endpoint = endpoint
        self.status_code = status_code
        detail = f"{endpoint}: {message}"
        if status_code is not None:
            detail = f"{endpoint}: HTTP {status_code} {message}"
        super().__init__(detail)


class StoreError(LeagueSyncError):
    """A persistent store operation failed."""

    def __init__(self, collection: str, operation: str, message: str):
        self.collection = collection
        self.operation = operation
        super().__init__(f"{operation} on {collection} failed: {message}")


class MappingError(LeagueSyncError):
    """An external identifier could not be mapped to a local record."""


class RosterTransactionError(LeagueSyncError):
    """A roster transaction is not valid for the current roster state."""
