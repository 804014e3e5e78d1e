"""
Remote Store Adapter

Per-identity CRUD against the multi-tenant record store. Every call is a
single attempt: failures surface as RemoteWriteFailed / RemoteReadFailed and
retry policy belongs to the caller.

Fetches return raw JSON payloads; hydration is the caller's concern.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from reportcard.models.report_store import StudentRow, SettingsRow
from reportcard.schemas.report import AppSettings, StudentRecord
from reportcard.services.sync.errors import (
    RemoteWriteFailed, RemoteReadFailed, RecordOwnershipError
)

logger = logging.getLogger(__name__)


class BaseRemoteStore(ABC):
    """Abstract remote store contract, scoped to one identity per call."""

    @abstractmethod
    async def fetch_roster(self, identity_id: str) -> List[Dict[str, Any]]:
        """All student payloads owned by the identity, in no particular order."""
        pass

    @abstractmethod
    async def upsert_student(self, identity_id: str, record: StudentRecord) -> None:
        """Insert or replace the record by id."""
        pass

    @abstractmethod
    async def delete_student(self, record_id: str) -> None:
        """Remove by id; deleting an absent id is not an error."""
        pass

    @abstractmethod
    async def fetch_settings(self, identity_id: str) -> Optional[Dict[str, Any]]:
        """The identity's settings payload, or None when it has none yet."""
        pass

    @abstractmethod
    async def save_settings(self, identity_id: str, app_settings: AppSettings) -> None:
        """Insert or replace the identity's settings singleton."""
        pass


class SQLRemoteStore(BaseRemoteStore):
    """Remote store backed by the async SQLAlchemy tables."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def fetch_roster(self, identity_id: str) -> List[Dict[str, Any]]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(StudentRow.data).where(StudentRow.user_id == identity_id)
                )
                return [dict(data) for data in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error fetching students for {identity_id}: {e}")
            raise RemoteReadFailed(f"Could not fetch students: {e}", original_exception=e)

    async def upsert_student(self, identity_id: str, record: StudentRecord) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    row = await session.get(StudentRow, record.id)
                    if row is None:
                        session.add(StudentRow(
                            id=record.id,
                            user_id=identity_id,
                            data=record.to_payload(),
                            updated_at=datetime.now(timezone.utc)
                        ))
                    elif row.user_id != identity_id:
                        raise RecordOwnershipError(record.id)
                    else:
                        row.data = record.to_payload()
                        row.updated_at = datetime.now(timezone.utc)
        except SQLAlchemyError as e:
            logger.error(f"Error saving student {record.id}: {e}")
            raise RemoteWriteFailed(f"Could not save student {record.id}: {e}", original_exception=e)

    async def delete_student(self, record_id: str) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(delete(StudentRow).where(StudentRow.id == record_id))
        except SQLAlchemyError as e:
            logger.error(f"Error deleting student {record_id}: {e}")
            raise RemoteWriteFailed(f"Could not delete student {record_id}: {e}", original_exception=e)

    async def fetch_settings(self, identity_id: str) -> Optional[Dict[str, Any]]:
        try:
            async with self.session_factory() as session:
                row = await session.get(SettingsRow, identity_id)
                return dict(row.data) if row else None
        except SQLAlchemyError as e:
            logger.error(f"Error fetching settings for {identity_id}: {e}")
            raise RemoteReadFailed(f"Could not fetch settings: {e}", original_exception=e)

    async def save_settings(self, identity_id: str, app_settings: AppSettings) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.merge(SettingsRow(
                        user_id=identity_id,
                        data=app_settings.to_payload(),
                        updated_at=datetime.now(timezone.utc)
                    ))
        except SQLAlchemyError as e:
            logger.error(f"Error saving settings for {identity_id}: {e}")
            raise RemoteWriteFailed(f"Could not save settings: {e}", original_exception=e)
