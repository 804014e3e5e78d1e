"""
Error taxonomy for the local/remote sync layer.
"""

from typing import List, Optional


class SyncErrorCategory:
    """Error categories for advisory messages and logging."""
    STORAGE = "storage"
    NETWORK = "network"
    MIGRATION = "migration"
    OWNERSHIP = "ownership"
    NOT_FOUND = "not_found"


class SyncError(Exception):
    """Base exception for sync failures."""

    category = SyncErrorCategory.NETWORK

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        original_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.original_exception = original_exception

    def __str__(self) -> str:
        return self.message


class StorageUnavailable(SyncError):
    """Local store is disabled, unwritable or over quota."""
    category = SyncErrorCategory.STORAGE


class RemoteWriteFailed(SyncError):
    """An upsert, delete or settings save was rejected or never arrived."""
    category = SyncErrorCategory.NETWORK


class RecordOwnershipError(RemoteWriteFailed):
    """The record id is already owned by a different identity."""
    category = SyncErrorCategory.OWNERSHIP

    def __init__(self, record_id: str):
        super().__init__(f"Student {record_id} belongs to another account", retryable=False)
        self.record_id = record_id


class RemoteReadFailed(SyncError):
    """A bulk fetch of roster or settings failed."""
    category = SyncErrorCategory.NETWORK


class MigrationFailed(SyncError):
    """Guest data could not be moved into the authenticated account."""
    category = SyncErrorCategory.MIGRATION

    def __init__(self, message: str, failures: Optional[List[BaseException]] = None):
        failures = failures or []
        super().__init__(
            message,
            retryable=True,
            original_exception=failures[0] if failures else None
        )
        self.failures = failures


class StudentNotFoundError(SyncError):
    """An operation referenced a student id that is not in the roster."""
    category = SyncErrorCategory.NOT_FOUND

    def __init__(self, record_id: str):
        super().__init__(f"Student {record_id} is not in the roster", retryable=False)
        self.record_id = record_id
