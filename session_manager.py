"""Owns one authenticated session: tokens, refresh state, HTTP session."""

import logging

from api_client import ApiClient
from auth.refresh import RefreshCoordinator
from auth.session_expiry import SessionExpiredHandler, SessionLifecycleNotifier
from auth.token_store import TokenStore
from config import ClientSettings, get_settings
from request_executor import RequestExecutor

log = logging.getLogger(__name__)


class SessionManager:
    """Build with ``create``, hand ``api`` to whatever issues requests,
    ``dispose`` on shutdown. Usable as ``async with``.
    """

    def __init__(
        self,
        settings: ClientSettings,
        token_store: TokenStore,
        executor: RequestExecutor,
        refresher: RefreshCoordinator,
        notifier: SessionLifecycleNotifier,
    ):
        self.settings = settings
        self.tokens = token_store
        self.executor = executor
        self.refresher = refresher
        self.notifier = notifier
        self.api = ApiClient(executor, token_store, refresher, notifier)
        self._disposed = False

    @classmethod
    def create(
        cls,
        settings: ClientSettings | None = None,
        *,
        token_store: TokenStore | None = None,
    ) -> "SessionManager":
        settings = settings or get_settings()
        tokens = token_store or TokenStore(settings.token_file)
        executor = RequestExecutor(
            settings.api_url, tokens,
            timeout=settings.api_timeout,
            app_version=settings.app_version,
            app_env=settings.app_env,
        )
        refresher = RefreshCoordinator(
            executor, tokens,
            endpoint=settings.refresh_endpoint,
            timeout=settings.api_timeout,
        )
        notifier = SessionLifecycleNotifier(tokens, cooldown=settings.session_expired_cooldown)
        log.info("Session manager created for %s (%s)", executor.base_url, settings.app_env)
        return cls(settings, tokens, executor, refresher, notifier)

    def on_session_expired(self, handler: SessionExpiredHandler | None):
        self.notifier.set_handler(handler)

    def on_navigation_reset(self, listener: SessionExpiredHandler):
        self.notifier.add_listener(listener)

    async def dispose(self):
        if self._disposed:
            return
        self._disposed = True
        await self.refresher.close()
        self.notifier.close()
        await self.executor.close()
        log.info("Session manager disposed")

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.dispose()
