"""Central HTTP client for server communication. JWT auth with auto-refresh."""

import logging
from typing import Any, Mapping

import jwt

from auth.refresh import RefreshCoordinator
from auth.session_expiry import SessionLifecycleNotifier
from auth.token_store import TokenStore
from errors import ApiError, AuthError, SessionExpiredError
from request_executor import ApiResponse, RequestContext, RequestExecutor

log = logging.getLogger(__name__)


class ApiClient:
    """Every authenticated call goes through ``call``.

    An auth failure on the first attempt waits for the shared refresh and is
    retried exactly once with the new token. If there is no new token the
    session is torn down and the call raises ``SessionExpiredError``.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        token_store: TokenStore,
        refresher: RefreshCoordinator,
        notifier: SessionLifecycleNotifier,
    ):
        self._executor = executor
        self._tokens = token_store
        self._refresher = refresher
        self._notifier = notifier

    @property
    def is_authenticated(self) -> bool:
        return self._tokens.is_authenticated

    async def close(self):
        await self._executor.close()

    async def call(
        self,
        endpoint: str,
        method: str = "GET",
        *,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        auth: bool = True,
        timeout: float | None = None,
    ) -> ApiResponse:
        ctx = RequestContext(
            method.upper(), endpoint,
            json=json, params=params, headers=dict(headers or {}),
            auth=auth, timeout=timeout,
        )
        try:
            return await self._executor.execute(ctx)
        except AuthError as e:
            if not ctx.auth or ctx.is_retry:
                raise
            return await self._refresh_and_retry(ctx, e)

    async def _refresh_and_retry(self, ctx: RequestContext, error: AuthError) -> ApiResponse:
        current = self._tokens.access_token
        if current and current != error.bearer:
            # Rejected with a token that has since been replaced
            log.info("API %s %s → %d, retrying with the newer token",
                     ctx.method, ctx.endpoint, error.status)
            return await self._executor.execute(ctx.for_retry(current))

        log.info("API %s %s → %d, refreshing token", ctx.method, ctx.endpoint, error.status)
        token = await self._refresher.ensure_fresh_token()
        if token is None:
            await self._notifier.notify_expired(
                f"{ctx.method} {ctx.endpoint}: {error.message}", endpoint=ctx.endpoint,
            )
            raise SessionExpiredError.from_auth_error(error) from error
        # Whatever the retry returns or raises is final
        return await self._executor.execute(ctx.for_retry(token))

    # ── Session ────────────────────────────────────────────

    def start_session(self, access_token: str, refresh_token: str):
        """Hand tokens over from a login flow. Raises TokenStoreError."""
        self._tokens.set(access_token, refresh_token)
        self._notifier.rearm()

    async def logout(self):
        """Tell the server, then always drop local tokens.

        Goes straight to the executor: an expired token at logout is not a
        session-expired episode.
        """
        if self._tokens.is_authenticated:
            try:
                await self._executor.execute(RequestContext("POST", "/auth/logout"))
            except ApiError as e:
                log.warning("Backend logout failed: %s", e)
        self._tokens.clear()

    def current_user_id(self) -> str | None:
        """User id from the access token payload.

        The signature is NOT verified: only use this for display and
        filtering, never for access decisions.
        """
        token = self._tokens.access_token
        if not token:
            return None
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError:
            log.warning("Could not decode access token payload")
            return None
        for key in ("userId", "sub", "id"):
            if payload.get(key) is not None:
                return str(payload[key])
        return None
