"""
HTTP implementation of the remote store contract, talking to the report
store API (``/api/v1``) of this service.
"""

import logging
from typing import Dict, List, Optional, Any

import httpx

from reportcard.core.config import settings
from reportcard.schemas.report import AppSettings, StudentRecord
from reportcard.services.sync.errors import (
    RemoteReadFailed, RemoteWriteFailed, RecordOwnershipError
)
from reportcard.services.sync.remote_store import BaseRemoteStore

logger = logging.getLogger(__name__)


class HTTPRemoteStore(BaseRemoteStore):
    """Remote store reached over HTTP; one request per call, never retried."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        self.base_url = (base_url or settings.REMOTE_API_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.REMOTE_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                headers={"Accept": "application/json"}
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await self.client.request(method, self._url(path), **kwargs)

    async def fetch_roster(self, identity_id: str) -> List[Dict[str, Any]]:
        try:
            response = await self._request("GET", f"/identities/{identity_id}/students")
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching students for {identity_id}: {e}")
            raise RemoteReadFailed(f"Could not fetch students: {e}", original_exception=e)

    async def upsert_student(self, identity_id: str, record: StudentRecord) -> None:
        try:
            response = await self._request(
                "PUT",
                f"/identities/{identity_id}/students/{record.id}",
                json=record.to_payload()
            )
            if response.status_code == 403:
                raise RecordOwnershipError(record.id)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error saving student {record.id}: {e}")
            raise RemoteWriteFailed(f"Could not save student {record.id}: {e}", original_exception=e)

    async def delete_student(self, record_id: str) -> None:
        try:
            response = await self._request("DELETE", f"/students/{record_id}")
            if response.status_code != 404:
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error deleting student {record_id}: {e}")
            raise RemoteWriteFailed(f"Could not delete student {record_id}: {e}", original_exception=e)

    async def fetch_settings(self, identity_id: str) -> Optional[Dict[str, Any]]:
        try:
            response = await self._request("GET", f"/identities/{identity_id}/settings")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching settings for {identity_id}: {e}")
            raise RemoteReadFailed(f"Could not fetch settings: {e}", original_exception=e)

    async def save_settings(self, identity_id: str, app_settings: AppSettings) -> None:
        try:
            response = await self._request(
                "PUT",
                f"/identities/{identity_id}/settings",
                json=app_settings.to_payload()
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Error saving settings for {identity_id}: {e}")
            raise RemoteWriteFailed(f"Could not save settings: {e}", original_exception=e)
