"""
Local Store Adapter

Identity-scoped persistence for the offline (guest) tier. Each identity owns
two keys, ``{prefix}_roster_{identity}`` and ``{prefix}_settings_{identity}``,
holding JSON documents that are always written and read as a whole.
Reads are passed through the schema hydrator.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from urllib.parse import quote
from typing import Dict, List, Optional, Any

from reportcard.core.config import settings
from reportcard.schemas.report import AppSettings, StudentRecord
from reportcard.services.sync.errors import StorageUnavailable
from reportcard.services.sync.hydrator import load_students, load_settings as settings_from_payload

logger = logging.getLogger(__name__)


class StoreKind(str, Enum):
    ROSTER = "roster"
    SETTINGS = "settings"


def storage_key(identity_id: str, kind: StoreKind, prefix: Optional[str] = None) -> str:
    return f"{prefix or settings.LOCAL_KEY_PREFIX}_{kind.value}_{identity_id}"


class BaseLocalBackend(ABC):
    """Abstract key -> serialized JSON surface."""

    def __init__(self, max_bytes: Optional[int] = None):
        self.max_bytes = max_bytes if max_bytes is not None else settings.LOCAL_STORE_MAX_BYTES

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored document or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store a document, replacing any previous value atomically."""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    def rename(self, key: str, new_key: str) -> bool:
        value = self.get(key)
        if value is None:
            return False
        self.set(new_key, value)
        self.delete(key)
        return True

    def check_quota(self, key: str, value: str) -> None:
        size = len(value.encode("utf-8"))
        if size > self.max_bytes:
            raise StorageUnavailable(
                f"Storage quota exceeded writing {key} ({size} > {self.max_bytes} bytes)",
                retryable=False
            )


class MemoryLocalBackend(BaseLocalBackend):
    """Process-local backend; ``available=False`` simulates disabled storage."""

    def __init__(self, max_bytes: Optional[int] = None, available: bool = True):
        super().__init__(max_bytes)
        self.available = available
        self.documents: Dict[str, str] = {}

    def _ensure_available(self):
        if not self.available:
            raise StorageUnavailable("Local storage is disabled")

    def get(self, key: str) -> Optional[str]:
        self._ensure_available()
        return self.documents.get(key)

    def set(self, key: str, value: str) -> None:
        self._ensure_available()
        self.check_quota(key, value)
        self.documents[key] = value

    def delete(self, key: str) -> None:
        self._ensure_available()
        self.documents.pop(key, None)


class FileLocalBackend(BaseLocalBackend):
    """One JSON file per key inside a directory."""

    def __init__(self, directory: Optional[str] = None, max_bytes: Optional[int] = None):
        super().__init__(max_bytes)
        self.directory = Path(directory or settings.LOCAL_STORE_DIR)

    def _path(self, key: str) -> Path:
        # Percent-encoding is reversible, so distinct keys never share a file
        return self.directory / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageUnavailable(f"Cannot read {key}: {e}", original_exception=e)

    def set(self, key: str, value: str) -> None:
        self.check_quota(key, value)
        path = self._path(key)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(value)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StorageUnavailable(f"Cannot write {key}: {e}", original_exception=e)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageUnavailable(f"Cannot delete {key}: {e}", original_exception=e)


class LocalStoreAdapter:
    """Reads and writes roster/settings documents scoped to one identity."""

    def __init__(self, backend: Optional[BaseLocalBackend] = None, prefix: Optional[str] = None):
        self.backend = backend or FileLocalBackend()
        self.prefix = prefix or settings.LOCAL_KEY_PREFIX

    def key(self, identity_id: str, kind: StoreKind) -> str:
        return storage_key(identity_id, kind, self.prefix)

    def _read(self, key: str) -> Optional[Any]:
        document = self.backend.get(key)
        if document is None:
            return None
        try:
            return json.loads(document)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to load saved document {key}: {e}")
            return None

    def _write(self, key: str, payload: Any) -> None:
        try:
            document = json.dumps(payload)
        except (TypeError, ValueError) as e:
            raise StorageUnavailable(f"Cannot serialize {key}: {e}", retryable=False, original_exception=e)
        self.backend.set(key, document)

    async def load_roster(
        self,
        identity_id: str,
        settings: Optional[AppSettings] = None
    ) -> Optional[List[StudentRecord]]:
        raw = self._read(self.key(identity_id, StoreKind.ROSTER))
        if raw is None:
            return None
        return load_students(raw, settings)

    async def load_settings(self, identity_id: str) -> Optional[AppSettings]:
        raw = self._read(self.key(identity_id, StoreKind.SETTINGS))
        if raw is None:
            return None
        return settings_from_payload(raw)

    async def save_roster(self, identity_id: str, roster: List[StudentRecord]) -> None:
        self._write(
            self.key(identity_id, StoreKind.ROSTER),
            [record.to_payload() for record in roster]
        )

    async def save_settings(self, identity_id: str, app_settings: AppSettings) -> None:
        self._write(self.key(identity_id, StoreKind.SETTINGS), app_settings.to_payload())

    async def mark_consumed(self, identity_id: str, consumer_id: str) -> List[str]:
        """Move both documents of ``identity_id`` aside so they are never read again."""
        moved = []
        for kind in StoreKind:
            key = self.key(identity_id, kind)
            if self.backend.rename(key, f"{key}_migrated_{consumer_id}"):
                moved.append(key)
        return moved
