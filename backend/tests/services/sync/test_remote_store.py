"""Tests for the SQL-backed remote store."""

from unittest.mock import Mock

import pytest
from sqlalchemy.exc import OperationalError

from reportcard.schemas.report import AppSettings, StudentRecord
from reportcard.services.sync.errors import RecordOwnershipError, RemoteReadFailed, RemoteWriteFailed
from reportcard.services.sync.remote_store import SQLRemoteStore


class TestSQLRemoteStoreStudents:
    """Per-identity student rows."""

    @pytest.mark.asyncio
    async def test_upsert_then_fetch(self, sql_store):
        record = StudentRecord(full_name="Ada")
        await sql_store.upsert_student("acct-1", record)

        roster = await sql_store.fetch_roster("acct-1")
        assert len(roster) == 1
        assert roster[0]["id"] == record.id
        assert roster[0]["fullName"] == "Ada"

    @pytest.mark.asyncio
    async def test_upsert_replaces_existing_row(self, sql_store):
        record = StudentRecord(full_name="Ada")
        await sql_store.upsert_student("acct-1", record)
        record.full_name = "Ada Lovelace"
        await sql_store.upsert_student("acct-1", record)

        roster = await sql_store.fetch_roster("acct-1")
        assert [r["fullName"] for r in roster] == ["Ada Lovelace"]

    @pytest.mark.asyncio
    async def test_fetch_is_scoped_to_identity(self, sql_store):
        await sql_store.upsert_student("acct-1", StudentRecord())
        assert await sql_store.fetch_roster("acct-2") == []

    @pytest.mark.asyncio
    async def test_foreign_record_is_rejected(self, sql_store):
        record = StudentRecord()
        await sql_store.upsert_student("acct-1", record)

        with pytest.raises(RecordOwnershipError) as exc_info:
            await sql_store.upsert_student("acct-2", record)

        assert isinstance(exc_info.value, RemoteWriteFailed)
        assert exc_info.value.record_id == record.id
        assert len(await sql_store.fetch_roster("acct-1")) == 1

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, sql_store):
        record = StudentRecord()
        await sql_store.upsert_student("acct-1", record)

        await sql_store.delete_student(record.id)
        await sql_store.delete_student(record.id)

        assert await sql_store.fetch_roster("acct-1") == []


class TestSQLRemoteStoreSettings:

    @pytest.mark.asyncio
    async def test_settings_absent_by_default(self, sql_store):
        assert await sql_store.fetch_settings("acct-1") is None

    @pytest.mark.asyncio
    async def test_save_settings_replaces(self, sql_store):
        await sql_store.save_settings("acct-1", AppSettings(school_name="First"))
        await sql_store.save_settings("acct-1", AppSettings(school_name="Second"))

        data = await sql_store.fetch_settings("acct-1")
        assert data["schoolName"] == "Second"
        assert await sql_store.fetch_settings("acct-2") is None


class TestSQLRemoteStoreFailures:
    """Database errors surface as remote read/write failures."""

    @pytest.fixture
    def broken_store(self):
        return SQLRemoteStore(Mock(side_effect=OperationalError("SELECT 1", {}, Exception("db down"))))

    @pytest.mark.asyncio
    async def test_write_errors(self, broken_store):
        with pytest.raises(RemoteWriteFailed) as exc_info:
            await broken_store.upsert_student("acct-1", StudentRecord())
        assert isinstance(exc_info.value.original_exception, OperationalError)

        with pytest.raises(RemoteWriteFailed):
            await broken_store.delete_student("x")
        with pytest.raises(RemoteWriteFailed):
            await broken_store.save_settings("acct-1", AppSettings())

    @pytest.mark.asyncio
    async def test_read_errors(self, broken_store):
        with pytest.raises(RemoteReadFailed):
            await broken_store.fetch_roster("acct-1")
        with pytest.raises(RemoteReadFailed):
            await broken_store.fetch_settings("acct-1")
