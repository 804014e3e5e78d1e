"""
API endpoints of the remote report store.

Students are addressed per owning identity for reads and writes; deletes are
by record id alone and idempotent.
"""

from fastapi import APIRouter, HTTPException, Depends, Response, status
from typing import List, Dict, Any
import logging

from reportcard.core.database import AsyncSessionLocal
from reportcard.schemas.report import AppSettings, StudentRecord
from reportcard.services.sync.errors import SyncError, RecordOwnershipError
from reportcard.services.sync.remote_store import BaseRemoteStore, SQLRemoteStore

logger = logging.getLogger(__name__)
router = APIRouter()


def get_remote_store() -> BaseRemoteStore:
    return SQLRemoteStore(AsyncSessionLocal)


def _raise_for_sync_error(error: SyncError):
    if isinstance(error, RecordOwnershipError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=error.message)
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=error.message)


@router.get("/identities/{identity_id}/students", response_model=List[Dict[str, Any]])
async def list_students(identity_id: str, store: BaseRemoteStore = Depends(get_remote_store)):
    """All student payloads owned by an identity"""
    try:
        return await store.fetch_roster(identity_id)
    except SyncError as e:
        _raise_for_sync_error(e)


@router.put("/identities/{identity_id}/students/{record_id}", response_model=Dict[str, Any])
async def upsert_student(
    identity_id: str,
    record_id: str,
    record: StudentRecord,
    store: BaseRemoteStore = Depends(get_remote_store)
):
    """Insert or replace one student record"""
    if record.id != record_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Record id does not match the URL"
        )
    try:
        await store.upsert_student(identity_id, record)
    except SyncError as e:
        _raise_for_sync_error(e)

    logger.info(f"Saved student {record_id} for {identity_id}")
    return record.to_payload()


@router.delete("/students/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_student(record_id: str, store: BaseRemoteStore = Depends(get_remote_store)):
    try:
        await store.delete_student(record_id)
    except SyncError as e:
        _raise_for_sync_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/identities/{identity_id}/settings", response_model=Dict[str, Any])
async def get_settings(identity_id: str, store: BaseRemoteStore = Depends(get_remote_store)):
    try:
        data = await store.fetch_settings(identity_id)
    except SyncError as e:
        _raise_for_sync_error(e)

    if data is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Settings not found")
    return data


@router.put("/identities/{identity_id}/settings", response_model=Dict[str, Any])
async def put_settings(
    identity_id: str,
    app_settings: AppSettings,
    store: BaseRemoteStore = Depends(get_remote_store)
):
    try:
        await store.save_settings(identity_id, app_settings)
    except SyncError as e:
        _raise_for_sync_error(e)
    return app_settings.to_payload()
