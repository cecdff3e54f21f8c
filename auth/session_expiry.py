"""Session teardown when the access token can no longer be refreshed."""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from auth.token_store import TokenStore

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionExpiredContext:
    reason: str
    endpoint: str | None = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


SessionExpiredHandler = Callable[[SessionExpiredContext], Awaitable[None] | None]


class SessionLifecycleNotifier:
    """Fires the "go back to login" side effects once per expiry episode.

    The first ``notify_expired`` of an episode disarms the notifier, clears
    the token store, then runs the handler and the listeners. It re-arms
    ``cooldown`` seconds after the side effects finish, or right away on
    ``rearm()`` (a new session started).
    """

    def __init__(self, token_store: TokenStore, *, cooldown: float = 2.0):
        self._tokens = token_store
        self._cooldown = cooldown
        self._handler: SessionExpiredHandler | None = None
        self._listeners: list[SessionExpiredHandler] = []
        self._armed = True
        self._rearm_handle: asyncio.TimerHandle | None = None

    @property
    def armed(self) -> bool:
        return self._armed

    def set_handler(self, handler: SessionExpiredHandler | None):
        """Register the single session-expired handler (replaces any previous)."""
        self._handler = handler

    def add_listener(self, listener: SessionExpiredHandler):
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionExpiredHandler):
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def notify_expired(self, reason: str, *, endpoint: str | None = None) -> bool:
        """Tear the session down. Returns False if this episode was already handled."""
        if not self._armed:
            log.debug("Session expiry already handled, ignoring: %s", reason)
            return False
        self._armed = False
        log.warning("Session expired: %s", reason)

        self._tokens.clear()
        context = SessionExpiredContext(reason, endpoint)
        if self._handler is not None:
            await self._invoke(self._handler, context)
        for listener in list(self._listeners):
            await self._invoke(listener, context)

        self._schedule_rearm()
        return True

    def rearm(self):
        self._cancel_rearm()
        if not self._armed:
            log.debug("Session expiry notifier re-armed")
        self._armed = True

    def close(self):
        self._cancel_rearm()

    def _schedule_rearm(self):
        self._cancel_rearm()
        if self._cooldown <= 0:
            self._armed = True
            return
        loop = asyncio.get_running_loop()
        self._rearm_handle = loop.call_later(self._cooldown, self.rearm)

    def _cancel_rearm(self):
        if self._rearm_handle is not None:
            self._rearm_handle.cancel()
            self._rearm_handle = None

    @staticmethod
    async def _invoke(callback: SessionExpiredHandler, context: SessionExpiredContext):
        try:
            result = callback(context)
            if inspect.isawaitable(result):
                await result
        except Exception:
            log.exception("Session-expired callback %r failed", callback)
