"""
Local/Cloud Synchronization

Keeps a teacher's roster and settings consistent across the offline local
store and the remote report store.

Components:
- Schema hydrator for records written by older revisions
- Identity-scoped local store adapter
- Remote store adapter (per-identity CRUD)
- Migration coordinator for guest data on first sign-in
- Sync controller enforcing the immediate/debounced write policy
"""

from .errors import (
    SyncError,
    StorageUnavailable,
    RemoteWriteFailed,
    RemoteReadFailed,
    RecordOwnershipError,
    MigrationFailed,
    StudentNotFoundError
)
from .hydrator import hydrate_student, hydrate_roster, hydrate_settings, load_students, load_settings
from .local_store import LocalStoreAdapter, FileLocalBackend, MemoryLocalBackend, StoreKind, storage_key
from .remote_store import BaseRemoteStore, SQLRemoteStore
from .migration import MigrationCoordinator, MigrationState, MigrationOutcome
from .controller import SyncController, SyncMode, SyncNotice, NoticeLevel, PendingWrite

__all__ = [
    # Errors
    'SyncError',
    'StorageUnavailable',
    'RemoteWriteFailed',
    'RemoteReadFailed',
    'RecordOwnershipError',
    'MigrationFailed',
    'StudentNotFoundError',

    # Hydration
    'hydrate_student',
    'hydrate_roster',
    'hydrate_settings',
    'load_students',
    'load_settings',

    # Stores
    'LocalStoreAdapter',
    'FileLocalBackend',
    'MemoryLocalBackend',
    'StoreKind',
    'storage_key',
    'BaseRemoteStore',
    'SQLRemoteStore',

    # Coordination
    'MigrationCoordinator',
    'MigrationState',
    'MigrationOutcome',
    'SyncController',
    'SyncMode',
    'SyncNotice',
    'NoticeLevel',
    'PendingWrite'
]
