"""
Migration Coordinator

Moves data a guest left in the local store into an authenticated account the
first time that account signs in, then loads the account's data from the
remote store.

    IDLE -> DETECTING -> MIGRATING -> FETCHING_REMOTE -> DONE
    IDLE -> DETECTING -> FETCHING_REMOTE -> DONE          (nothing to migrate)

The guest documents are marked consumed only after every upload succeeded, so
a failed migration is retried in full on the next sign-in.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any

from reportcard.core.config import settings
from reportcard.schemas.report import AppSettings, StudentRecord
from reportcard.services.sync.errors import MigrationFailed, StorageUnavailable, RemoteWriteFailed
from reportcard.services.sync.local_store import LocalStoreAdapter
from reportcard.services.sync.remote_store import BaseRemoteStore

logger = logging.getLogger(__name__)


class MigrationState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    MIGRATING = "migrating"
    FETCHING_REMOTE = "fetching_remote"
    DONE = "done"
    FAILED = "failed"


@dataclass
class GuestLeftovers:
    roster: List[StudentRecord] = field(default_factory=list)
    settings: Optional[AppSettings] = None

    @property
    def is_empty(self) -> bool:
        return not self.roster and self.settings is None


@dataclass
class MigrationOutcome:
    """Remote state of the identity after the transition."""
    identity_id: str
    roster_payloads: List[Dict[str, Any]]
    settings_payload: Optional[Dict[str, Any]]
    migrated_students: int = 0
    migrated_settings: bool = False


class MigrationCoordinator:
    """Runs the guest -> account transition once per sign-in."""

    def __init__(
        self,
        local_store: LocalStoreAdapter,
        remote_store: BaseRemoteStore,
        guest_identity_id: Optional[str] = None
    ):
        self.local_store = local_store
        self.remote_store = remote_store
        self.guest_identity_id = guest_identity_id or settings.GUEST_IDENTITY_ID
        self.state = MigrationState.IDLE
        self._lock = asyncio.Lock()

    def _transition(self, state: MigrationState, identity_id: str) -> None:
        logger.info(f"Migration for {identity_id}: {self.state.value} -> {state.value}")
        self.state = state

    async def run(self, identity_id: str) -> MigrationOutcome:
        """Migrate any guest leftovers to ``identity_id`` and fetch its remote state.

        Raises:
            MigrationFailed: an upload was rejected; guest data is left untouched
            RemoteReadFailed: the final fetch failed
        """
        if identity_id == self.guest_identity_id:
            raise ValueError("The guest identity cannot be a migration target")

        async with self._lock:
            self.state = MigrationState.IDLE
            try:
                self._transition(MigrationState.DETECTING, identity_id)
                leftovers = await self.detect()

                migrated_students = 0
                migrated_settings = False
                if not leftovers.is_empty:
                    self._transition(MigrationState.MIGRATING, identity_id)
                    await self._migrate(identity_id, leftovers)
                    migrated_students = len(leftovers.roster)
                    migrated_settings = leftovers.settings is not None
                    await self._mark_consumed(identity_id)

                self._transition(MigrationState.FETCHING_REMOTE, identity_id)
                roster_payloads, settings_payload = await asyncio.gather(
                    self.remote_store.fetch_roster(identity_id),
                    self.remote_store.fetch_settings(identity_id),
                )
            except Exception:
                self._transition(MigrationState.FAILED, identity_id)
                raise

            self._transition(MigrationState.DONE, identity_id)
            return MigrationOutcome(
                identity_id=identity_id,
                roster_payloads=roster_payloads,
                settings_payload=settings_payload,
                migrated_students=migrated_students,
                migrated_settings=migrated_settings,
            )

    async def detect(self) -> GuestLeftovers:
        """Read whatever the guest namespace still holds; roster and settings are independent."""
        try:
            guest_settings = await self.local_store.load_settings(self.guest_identity_id)
            roster = await self.local_store.load_roster(self.guest_identity_id, guest_settings)
        except StorageUnavailable as e:
            logger.warning(f"Local store unreadable, skipping guest migration: {e}")
            return GuestLeftovers()
        return GuestLeftovers(roster=roster or [], settings=guest_settings)

    async def _migrate(self, identity_id: str, leftovers: GuestLeftovers) -> None:
        results = await asyncio.gather(
            *(self.remote_store.upsert_student(identity_id, record) for record in leftovers.roster),
            return_exceptions=True
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            for failure in failures:
                logger.error(f"Migration upload for {identity_id} failed: {failure}")
            raise MigrationFailed(
                f"{len(failures)} of {len(leftovers.roster)} students could not be uploaded",
                failures=failures
            )

        if leftovers.settings is not None:
            try:
                await self.remote_store.save_settings(identity_id, leftovers.settings)
            except RemoteWriteFailed as e:
                logger.error(f"Migration of settings for {identity_id} failed: {e}")
                raise MigrationFailed("Settings could not be uploaded", failures=[e])

        logger.info(
            f"Migrated {len(leftovers.roster)} students"
            f"{' and settings' if leftovers.settings is not None else ''} to {identity_id}"
        )

    async def _mark_consumed(self, identity_id: str) -> None:
        try:
            moved = await self.local_store.mark_consumed(self.guest_identity_id, identity_id)
            logger.info(f"Marked guest documents consumed: {moved}")
        except StorageUnavailable as e:
            # Uploads are idempotent, so the next sign-in simply repeats them
            logger.warning(f"Could not mark guest documents consumed: {e}")
