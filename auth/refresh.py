"""Single-flight access token refresh shared by all in-flight requests."""

import asyncio
import logging

from auth.token_store import TokenStore
from errors import ApiError, TokenStoreError
from request_executor import RequestContext, RequestExecutor

log = logging.getLogger(__name__)


class RefreshCoordinator:
    """At most one refresh call at a time; everyone who asks shares its result.

    Callers that hit an auth failure while a refresh is running are queued as
    waiters and resolved, in the order they arrived, with the new access token
    or ``None``. The queue is swapped out and ``in_progress`` cleared before
    any waiter wakes up, so a waiter asking again starts a fresh cycle.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        token_store: TokenStore,
        *,
        endpoint: str = "/auth/refresh",
        timeout: float | None = None,
    ):
        self._executor = executor
        self._tokens = token_store
        self._endpoint = endpoint
        self._timeout = timeout
        self._in_progress = False
        self._waiters: list[asyncio.Future] = []
        self._task: asyncio.Task | None = None

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def ensure_fresh_token(self) -> str | None:
        """New access token, or None if refresh is impossible or failed."""
        loop = asyncio.get_running_loop()
        # No awaits until the waiter is queued: the flag is the only guard
        if not self._in_progress:
            refresh_token = self._tokens.refresh_token
            if not refresh_token:
                log.info("No refresh token stored, cannot refresh")
                return None
            self._in_progress = True
            self._task = loop.create_task(self._run(refresh_token))
        else:
            log.debug("Refresh already in flight, queueing (%d waiting)", len(self._waiters))

        waiter = loop.create_future()
        self._waiters.append(waiter)
        return await waiter

    async def close(self):
        """Cancel an outstanding refresh; its waiters get None."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self, refresh_token: str):
        token = None
        try:
            token = await self._exchange(refresh_token)
        except Exception:
            log.exception("Token refresh crashed")
        finally:
            self._settle(token)

    async def _exchange(self, refresh_token: str) -> str | None:
        ctx = RequestContext(
            "POST", self._endpoint,
            json={"refreshToken": refresh_token},
            auth=False,
            timeout=self._timeout,
        )
        try:
            resp = await self._executor.execute(ctx)
        except ApiError as e:
            log.warning("Token refresh failed: %s", e)
            return None

        payload = resp.data
        if not isinstance(payload, dict) or payload.get("success") is not True:
            log.warning("Token refresh returned an unexpected response")
            return None
        data = payload.get("data")
        access_token = data.get("accessToken") if isinstance(data, dict) else None
        if not isinstance(access_token, str) or not access_token:
            log.warning("Token refresh response has no access token")
            return None
        new_refresh = data.get("refreshToken")
        if not isinstance(new_refresh, str) or not new_refresh:
            new_refresh = refresh_token

        try:
            self._tokens.set(access_token, new_refresh)
        except TokenStoreError:
            log.exception("Refreshed tokens could not be saved")
            return None
        log.info("Access token refreshed")
        return access_token

    def _settle(self, token: str | None):
        waiters, self._waiters = self._waiters, []
        self._in_progress = False
        self._task = None
        log.debug("Refresh settled (%s), waking %d waiter(s)",
                  "ok" if token else "failed", len(waiters))
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(token)
