"""Exception types shared by the sync and cache layers."""

from typing import Any


class PortalSyncError(Exception):
    """Base class for recoverable sync/cache failures."""


class SyncAPIError(PortalSyncError):
    """Exception raised for transport faults and non-2xx HTTP responses."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class BackendError(PortalSyncError):
    """Exception raised when a backend query or write fails."""

    def __init__(self, message: str, table: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.table = table
        self.status_code = status_code


class SyncInProgressError(RuntimeError):
    """A run is already active for the requested source."""


class SourceDisabledError(RuntimeError):
    """The requested source is configured but disabled."""


class UnknownSourceError(KeyError):
    """No source definition exists for the requested family."""
