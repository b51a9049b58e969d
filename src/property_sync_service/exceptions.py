"""
Exception hierarchy for the Property Sync Service.
"""

from typing import Optional


class PropertySyncError(Exception):
    """Base class for all errors raised by the service."""


class SourceApiError(PropertySyncError):
    """The external listing API could not be reached or returned an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ContentHashError(PropertySyncError):
    """A field set could not be serialized for fingerprinting."""


class ImageProcessingError(PropertySyncError):
    """An image could not be downloaded, decoded or stored."""


class SyncFatalError(PropertySyncError):
    """An error that terminates the whole synchronization run."""


class SyncAlreadyRunningError(PropertySyncError):
    """Another synchronization run is still in progress."""

    def __init__(self, execution_id: int, started_at=None):
        super().__init__(f"Synchronization {execution_id} is already running")
        self.execution_id = execution_id
        self.started_at = started_at
