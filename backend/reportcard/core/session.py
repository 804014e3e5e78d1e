"""
Identity/session boundary.

The authentication provider itself is external; this broker only tracks the
current identity and notifies subscribers when one is established or cleared.
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from reportcard.schemas.identity import Identity, guest_identity

logger = logging.getLogger(__name__)


class IdentityEvent(str, Enum):
    ESTABLISHED = "identity_established"
    CLEARED = "identity_cleared"


SessionListener = Callable[[IdentityEvent, Optional[Identity]], Awaitable[None]]


class SessionBroker:
    """Holds the signed-in identity and fans out change events."""

    def __init__(self):
        self.current: Optional[Identity] = None
        self._listeners: List[SessionListener] = []

    def subscribe(self, listener: SessionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _emit(self, event: IdentityEvent, identity: Optional[Identity]) -> None:
        for listener in list(self._listeners):
            await listener(event, identity)

    async def establish(self, identity: Identity) -> None:
        logger.info(f"Identity established: {identity.id}")
        self.current = identity
        await self._emit(IdentityEvent.ESTABLISHED, identity)

    async def login_as_guest(self) -> Identity:
        identity = guest_identity()
        await self.establish(identity)
        return identity

    async def clear(self) -> None:
        if self.current is None:
            return
        logger.info(f"Identity cleared: {self.current.id}")
        self.current = None
        await self._emit(IdentityEvent.CLEARED, None)
