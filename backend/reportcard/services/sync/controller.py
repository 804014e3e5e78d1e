"""
Sync Controller

The single mutation entry point for the report-card editor. Owns the in-memory
roster and settings of the active identity and decides, per identity mode and
per operation, where and when each change is persisted:

- guest: every change is written to the local store immediately
- authenticated: creates, deletes and settings saves go to the remote store
  immediately; field edits are coalesced into one debounced remote write

All changes are optimistic: memory is updated before any write resolves and a
failed write is reported as a notice, never rolled back.
"""

import asyncio
import functools
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Set

from reportcard.core.config import settings
from reportcard.core.session import IdentityEvent, SessionBroker
from reportcard.schemas.identity import Identity
from reportcard.schemas.report import AppSettings, StudentRecord, create_initial_student
from reportcard.services.remarks import BaseRemarkGenerator, RemarkGenerationError
from reportcard.services.sync.errors import (
    MigrationFailed, RemoteReadFailed, RemoteWriteFailed,
    StorageUnavailable, StudentNotFoundError
)
from reportcard.services.sync.hydrator import load_settings, load_students
from reportcard.services.sync.local_store import LocalStoreAdapter
from reportcard.services.sync.migration import MigrationCoordinator
from reportcard.services.sync.remote_store import BaseRemoteStore

logger = logging.getLogger(__name__)


class SyncMode(str, Enum):
    GUEST = "guest"
    AUTHENTICATED = "authenticated"


class NoticeLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class SyncNotice:
    """User-facing advisory produced from a caught storage or network failure."""
    level: NoticeLevel
    message: str
    blocking: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PendingWrite:
    """The one outstanding debounced remote write of a controller."""
    record_id: str
    identity_id: str
    generation: int
    handle: asyncio.TimerHandle

    def cancel(self) -> None:
        self.handle.cancel()


def _now_ms() -> int:
    return int(time.time() * 1000)


class SyncController:
    """Owns the roster/settings of the active identity and enforces the write policy."""

    def __init__(
        self,
        local_store: LocalStoreAdapter,
        remote_store: Optional[BaseRemoteStore] = None,
        remark_generator: Optional[BaseRemarkGenerator] = None,
        migration: Optional[MigrationCoordinator] = None,
        debounce_seconds: Optional[float] = None
    ):
        self.local_store = local_store
        self.remote_store = remote_store
        self.remark_generator = remark_generator
        if migration is None and remote_store is not None:
            migration = MigrationCoordinator(local_store, remote_store)
        self.migration = migration
        self.debounce_seconds = debounce_seconds if debounce_seconds is not None else settings.SYNC_DEBOUNCE_SECONDS

        self._identity: Optional[Identity] = None
        self._roster: List[StudentRecord] = []
        self._settings = AppSettings()
        self._generation = 0

        self._pending: Optional[PendingWrite] = None
        self._inflight_creates: Dict[str, asyncio.Task] = {}
        self._inflight_updates: Dict[str, asyncio.Task] = {}
        self._background: Set[asyncio.Task] = set()
        self._active_remote_calls = 0
        self._generating_remarks = False

        self._notices: List[SyncNotice] = []
        self._broker: Optional[SessionBroker] = None

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def mode(self) -> Optional[SyncMode]:
        if self._identity is None:
            return None
        return SyncMode.GUEST if self._identity.is_guest else SyncMode.AUTHENTICATED

    @property
    def roster(self) -> List[StudentRecord]:
        """Snapshot of the roster; mutating it has no effect on the controller."""
        return [record.model_copy(deep=True) for record in self._roster]

    @property
    def settings(self) -> AppSettings:
        return self._settings.model_copy(deep=True)

    @property
    def is_syncing(self) -> bool:
        return self._active_remote_calls > 0 or self._pending is not None or bool(self._background)

    @property
    def is_generating_remarks(self) -> bool:
        return self._generating_remarks

    @property
    def notices(self) -> List[SyncNotice]:
        return list(self._notices)

    def drain_notices(self) -> List[SyncNotice]:
        notices, self._notices = self._notices, []
        return notices

    def get_student(self, record_id: str) -> StudentRecord:
        return self._roster[self._index_of(record_id)].model_copy(deep=True)

    # ------------------------------------------------------------------
    # Identity lifecycle
    # ------------------------------------------------------------------

    def attach(self, broker: SessionBroker) -> None:
        """Follow identity changes announced by the session broker."""
        self._broker = broker
        broker.subscribe(self._on_identity_event)

    async def _on_identity_event(self, event: IdentityEvent, identity: Optional[Identity]) -> None:
        if event == IdentityEvent.ESTABLISHED and identity is not None:
            await self.activate(identity)
        else:
            await self.deactivate()

    async def activate(self, identity: Identity) -> bool:
        """Load the state of ``identity``; returns False when it could not be entered."""
        self._reset()
        self._clear_state()
        generation = self._generation

        if identity.is_guest:
            roster, app_settings = await self._load_guest(identity.id)
        else:
            if self.migration is None:
                raise RuntimeError("Authenticated mode needs a remote store")
            try:
                async with self._remote_call():
                    outcome = await self.migration.run(identity.id)
            except MigrationFailed as e:
                logger.error(f"Migration for {identity.id} failed: {e}")
                self._notify(
                    NoticeLevel.ERROR,
                    "Your offline data could not be moved to your account. "
                    "Check your connection and sign in again.",
                    blocking=True
                )
                return False
            except RemoteReadFailed as e:
                logger.error(f"Loading data for {identity.id} failed: {e}")
                self._notify(
                    NoticeLevel.ERROR,
                    "Your data could not be loaded. Check your connection and sign in again.",
                    blocking=True
                )
                return False
            app_settings = load_settings(outcome.settings_payload)
            roster = self._dedupe(load_students(outcome.roster_payloads, app_settings))
            if outcome.migrated_students or outcome.migrated_settings:
                self._notify(
                    NoticeLevel.INFO,
                    f"Moved {outcome.migrated_students} offline report(s) into your account."
                )

        if generation != self._generation:
            logger.info(f"Discarding stale load for {identity.id}")
            return False

        self._identity = identity
        self._roster = roster
        self._settings = app_settings
        logger.info(f"Activated {identity.id} with {len(roster)} students")
        return True

    async def deactivate(self) -> None:
        """Forget the active identity; in-flight writes finish but are not awaited."""
        if self._identity is not None:
            logger.info(f"Deactivating {self._identity.id}")
        self._reset()
        self._clear_state()

    async def close(self) -> None:
        """Write any pending edit, wait for background writes and detach from the broker."""
        await self.flush()
        if self._broker is not None:
            self._broker.unsubscribe(self._on_identity_event)
            self._broker = None

    def _reset(self) -> None:
        self._cancel_pending()
        self._generation += 1
        self._inflight_creates = {}
        self._inflight_updates = {}

    def _clear_state(self) -> None:
        self._identity = None
        self._roster = []
        self._settings = AppSettings()

    async def _load_guest(self, identity_id: str):
        try:
            app_settings = await self.local_store.load_settings(identity_id) or AppSettings()
            roster = await self.local_store.load_roster(identity_id, app_settings) or []
        except StorageUnavailable as e:
            logger.warning(f"Local store unavailable for {identity_id}: {e}")
            self._notify(
                NoticeLevel.WARNING,
                "Offline storage is unavailable; changes will only last for this session."
            )
            return [], AppSettings()
        return self._dedupe(roster), app_settings

    @staticmethod
    def _dedupe(roster: List[StudentRecord]) -> List[StudentRecord]:
        by_id: Dict[str, StudentRecord] = {}
        for record in roster:
            by_id[record.id] = record
        return list(by_id.values())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_student(self) -> StudentRecord:
        identity = self._require_identity()
        record = create_initial_student(self._settings)
        if self._roster:
            # Convenience: carry class and logo over from the latest record
            last = self._roster[-1]
            record.class_name = last.class_name
            record.school_logo_url = last.school_logo_url
        record.last_updated = _now_ms()
        self._roster.append(record)

        if identity.is_guest:
            await self._persist_local_roster(identity.id)
        else:
            # Edits and deletes of this id wait for this task
            task = self._spawn(self._remote_upsert(identity.id, record.model_copy(deep=True)))
            self._inflight_creates[record.id] = task
            task.add_done_callback(functools.partial(self._forget_create, record.id))

        return record.model_copy(deep=True)

    async def update_student(self, record: StudentRecord) -> StudentRecord:
        identity = self._require_identity()
        index = self._index_of(record.id)
        # Re-validate so scores are clamped even for records built with model_copy(update=...)
        updated = StudentRecord.model_validate(record.to_payload())
        updated.last_updated = _now_ms()
        self._roster[index] = updated

        if identity.is_guest:
            await self._persist_local_roster(identity.id)
        else:
            self._schedule_remote_write(identity.id, updated.id)

        return updated.model_copy(deep=True)

    async def set_score(
        self,
        record_id: str,
        subject_id: str,
        ca_score: Optional[float] = None,
        exam_score: Optional[float] = None
    ) -> StudentRecord:
        record = self.get_student(record_id)
        subject = record.subject(subject_id)
        if ca_score is not None:
            subject.ca_score = ca_score
        if exam_score is not None:
            subject.exam_score = exam_score
        return await self.update_student(record)

    async def delete_student(self, record_id: str) -> None:
        identity = self._require_identity()
        index = self._index_of(record_id)
        self._roster.pop(index)

        if self._pending is not None and self._pending.record_id == record_id:
            self._cancel_pending()

        if identity.is_guest:
            await self._persist_local_roster(identity.id)
            return

        # Writes already on the wire for this record must land before the delete
        for inflight in (self._inflight_creates.get(record_id), self._inflight_updates.get(record_id)):
            if inflight is not None:
                await asyncio.shield(inflight)

        async with self._remote_call():
            try:
                await self.remote_store.delete_student(record_id)
            except RemoteWriteFailed as e:
                self._report_remote_failure(f"delete of student {record_id}", e)

    async def save_settings(self, app_settings: AppSettings) -> AppSettings:
        identity = self._require_identity()
        self._settings = AppSettings.model_validate(app_settings.to_payload())

        if identity.is_guest:
            try:
                await self.local_store.save_settings(identity.id, self._settings)
            except StorageUnavailable as e:
                self._report_storage_failure(e)
        else:
            async with self._remote_call():
                try:
                    await self.remote_store.save_settings(identity.id, self._settings)
                except RemoteWriteFailed as e:
                    self._report_remote_failure("settings save", e)

        return self.settings

    async def generate_remarks(self, record_id: str) -> Optional[StudentRecord]:
        """Fill both remark fields from the remark service, then save like an edit."""
        self._require_identity()
        student = self.get_student(record_id)
        if self.remark_generator is None:
            self._notify(NoticeLevel.WARNING, "Remark generation is not configured.")
            return None

        generation = self._generation
        self._generating_remarks = True
        try:
            remarks = await self.remark_generator.generate(student)
        except RemarkGenerationError as e:
            logger.error(f"Remark generation for {record_id} failed: {e}")
            self._notify(NoticeLevel.WARNING, "Failed to generate remarks.")
            return None
        finally:
            self._generating_remarks = False

        if generation != self._generation or self._find(record_id) is None:
            logger.info(f"Discarding remarks for {record_id}; roster changed meanwhile")
            return None

        current = self.get_student(record_id)
        current.teacher_remark = remarks.teacher_remark
        current.head_remark = remarks.head_remark
        return await self.update_student(current)

    # ------------------------------------------------------------------
    # Debounced remote writes
    # ------------------------------------------------------------------

    def _schedule_remote_write(self, identity_id: str, record_id: str) -> None:
        self._cancel_pending()
        loop = asyncio.get_running_loop()
        handle = loop.call_later(self.debounce_seconds, self._fire_pending)
        self._pending = PendingWrite(
            record_id=record_id,
            identity_id=identity_id,
            generation=self._generation,
            handle=handle
        )

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return
        self._start_write(pending)

    def _start_write(self, pending: PendingWrite) -> asyncio.Task:
        task = self._spawn(self._write_latest(pending))
        self._inflight_updates[pending.record_id] = task
        task.add_done_callback(functools.partial(self._forget_update, pending.record_id))
        return task

    def _forget_create(self, record_id: str, task: asyncio.Task) -> None:
        if self._inflight_creates.get(record_id) is task:
            del self._inflight_creates[record_id]

    def _forget_update(self, record_id: str, task: asyncio.Task) -> None:
        if self._inflight_updates.get(record_id) is task:
            del self._inflight_updates[record_id]

    async def _write_latest(self, pending: PendingWrite) -> None:
        if pending.generation != self._generation:
            return
        create = self._inflight_creates.get(pending.record_id)
        if create is not None:
            await asyncio.shield(create)
        if pending.generation != self._generation:
            return
        record = self._find(pending.record_id)
        if record is None:
            return
        await self._remote_upsert(pending.identity_id, record.model_copy(deep=True))

    async def flush(self) -> None:
        """Send the pending debounced write now and wait for all background writes."""
        pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()
            self._start_write(pending)
        await self.wait_idle()

    async def wait_idle(self) -> None:
        while self._background:
            await asyncio.gather(*list(self._background))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _remote_call(self):
        self._active_remote_calls += 1
        try:
            yield
        finally:
            self._active_remote_calls -= 1

    async def _remote_upsert(self, identity_id: str, record: StudentRecord) -> bool:
        async with self._remote_call():
            try:
                await self.remote_store.upsert_student(identity_id, record)
                return True
            except RemoteWriteFailed as e:
                self._report_remote_failure(f"save of student {record.id}", e)
                return False

    async def _persist_local_roster(self, identity_id: str) -> None:
        try:
            await self.local_store.save_roster(identity_id, self._roster)
        except StorageUnavailable as e:
            self._report_storage_failure(e)

    def _report_storage_failure(self, error: StorageUnavailable) -> None:
        logger.warning(f"Local save failed: {error}")
        self._notify(
            NoticeLevel.WARNING,
            "Changes could not be saved on this device; they will be kept until you close the app."
        )

    def _report_remote_failure(self, action: str, error: RemoteWriteFailed) -> None:
        logger.error(f"Remote {action} failed: {error}")
        self._notify(NoticeLevel.WARNING, f"Sync failed ({action}). Your changes are kept on screen.")

    def _notify(self, level: NoticeLevel, message: str, blocking: bool = False) -> None:
        self._notices.append(SyncNotice(level=level, message=message, blocking=blocking))

    def _require_identity(self) -> Identity:
        if self._identity is None:
            raise RuntimeError("No identity is active")
        return self._identity

    def _find(self, record_id: str) -> Optional[StudentRecord]:
        for record in self._roster:
            if record.id == record_id:
                return record
        return None

    def _index_of(self, record_id: str) -> int:
        for index, record in enumerate(self._roster):
            if record.id == record_id:
                return index
        raise StudentNotFoundError(record_id)
