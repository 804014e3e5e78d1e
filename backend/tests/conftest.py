"""Shared fixtures for the sync test suite."""

import asyncio
from typing import Dict, List, Optional, Any, Set, Tuple

import pytest

from reportcard.core.database import build_engine, build_session_factory, init_db
from reportcard.schemas.identity import Identity, IdentityRole, guest_identity
from reportcard.schemas.report import AppSettings, StudentRecord
from reportcard.services.sync.errors import RemoteReadFailed, RemoteWriteFailed
from reportcard.services.sync.local_store import LocalStoreAdapter, MemoryLocalBackend
from reportcard.services.sync.remote_store import BaseRemoteStore, SQLRemoteStore


class FakeRemoteStore(BaseRemoteStore):
    """In-memory remote store that records every call and can be told to fail."""

    def __init__(self):
        self.students: Dict[str, Tuple[str, Dict[str, Any]]] = {}
        self.settings: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Any]] = []
        self.fail_upsert_ids: Set[str] = set()
        self.fail_writes = False
        self.fail_reads = False
        self.upsert_gate: Optional[asyncio.Event] = None
        self.active_upserts = 0
        self.max_concurrent_upserts = 0

    def upserts(self) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.calls if name == "upsert_student"]

    async def fetch_roster(self, identity_id: str) -> List[Dict[str, Any]]:
        self.calls.append(("fetch_roster", identity_id))
        if self.fail_reads:
            raise RemoteReadFailed("network down")
        return [dict(data) for owner, data in self.students.values() if owner == identity_id]

    async def upsert_student(self, identity_id: str, record: StudentRecord) -> None:
        payload = record.to_payload()
        self.calls.append(("upsert_student", payload))
        self.active_upserts += 1
        self.max_concurrent_upserts = max(self.max_concurrent_upserts, self.active_upserts)
        try:
            if self.upsert_gate is not None:
                await self.upsert_gate.wait()
            else:
                await asyncio.sleep(0)
            if self.fail_writes or record.id in self.fail_upsert_ids:
                raise RemoteWriteFailed(f"upsert of {record.id} rejected")
            self.students[record.id] = (identity_id, payload)
        finally:
            self.active_upserts -= 1

    async def delete_student(self, record_id: str) -> None:
        self.calls.append(("delete_student", record_id))
        if self.fail_writes:
            raise RemoteWriteFailed(f"delete of {record_id} rejected")
        self.students.pop(record_id, None)

    async def fetch_settings(self, identity_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("fetch_settings", identity_id))
        if self.fail_reads:
            raise RemoteReadFailed("network down")
        return self.settings.get(identity_id)

    async def save_settings(self, identity_id: str, app_settings: AppSettings) -> None:
        self.calls.append(("save_settings", app_settings.to_payload()))
        if self.fail_writes:
            raise RemoteWriteFailed("settings rejected")
        self.settings[identity_id] = app_settings.to_payload()


@pytest.fixture
def memory_backend():
    return MemoryLocalBackend()


@pytest.fixture
def local_store(memory_backend):
    return LocalStoreAdapter(memory_backend)


@pytest.fixture
def remote_store():
    return FakeRemoteStore()


@pytest.fixture
def guest():
    return guest_identity()


@pytest.fixture
def teacher():
    return Identity(
        id="7d1c2f5e-teacher",
        name="Ada Teacher",
        username="ada",
        email="ada@school.test",
        role=IdentityRole.TEACHER
    )


@pytest.fixture
async def sql_session_factory():
    """In-memory SQLite database with the remote store tables."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def sql_store(sql_session_factory):
    return SQLRemoteStore(sql_session_factory)
