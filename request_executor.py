"""Single HTTP request with a bounded timeout and outcome classification."""

import asyncio
import dataclasses
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

import aiohttp

from auth.token_store import TokenStore
from errors import AuthError, HttpError, NetworkError, RequestTimeoutError

log = logging.getLogger(__name__)

_TOKEN_EXPIRED = re.compile(r"(token|jwt)[\w\s]*expired", re.IGNORECASE)


@dataclass(frozen=True)
class RequestContext:
    """One attempt of a logical request.

    ``is_retry`` is only ever set through ``for_retry``, which also pins the
    bearer token the retry must use.
    """

    method: str
    endpoint: str
    json: Any = None
    params: Mapping[str, Any] | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    auth: bool = True
    timeout: float | None = None
    is_retry: bool = False
    bearer: str | None = None

    def for_retry(self, access_token: str) -> "RequestContext":
        return dataclasses.replace(self, is_retry=True, bearer=access_token)


@dataclass
class ApiResponse:
    status: int
    data: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


def is_auth_failure(status: int, body) -> bool:
    """401, or any error body saying the token expired."""
    if status == 401:
        return True
    if isinstance(body, dict):
        text = " ".join(str(body.get(k) or "") for k in ("message", "error"))
    elif isinstance(body, str):
        text = body
    else:
        return False
    return bool(_TOKEN_EXPIRED.search(text))


class RequestExecutor:
    def __init__(
        self,
        base_url: str,
        token_store: TokenStore,
        *,
        timeout: float = 30.0,
        app_version: str = "",
        app_env: str = "",
    ):
        self._base = base_url.rstrip("/")
        self._tokens = token_store
        self._timeout = timeout
        self._app_version = app_version
        self._app_env = app_env
        self._session: aiohttp.ClientSession | None = None

    @property
    def base_url(self) -> str:
        return self._base

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def build_headers(self, ctx: RequestContext) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-App-Version": self._app_version,
            "X-App-Environment": self._app_env,
        }
        headers.update(ctx.headers)
        token = self.bearer_for(ctx)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def bearer_for(self, ctx: RequestContext) -> str | None:
        if not ctx.auth:
            return None
        return ctx.bearer or self._tokens.access_token

    async def execute(self, ctx: RequestContext) -> ApiResponse:
        """Send one request. Raises an ApiError subclass on any failure."""
        await self._ensure_session()
        url = f"{self._base}{ctx.endpoint}"
        headers = self.build_headers(ctx)
        bearer = self.bearer_for(ctx)
        limit = ctx.timeout if ctx.timeout is not None else self._timeout
        log.debug("API %s %s%s", ctx.method, ctx.endpoint, " (retry)" if ctx.is_retry else "")

        try:
            async with self._session.request(
                ctx.method, url,
                json=ctx.json, params=ctx.params, headers=headers,
                timeout=aiohttp.ClientTimeout(total=limit),
            ) as resp:
                status = resp.status
                body = await self._read_body(resp)
                resp_headers = dict(resp.headers)
        except asyncio.TimeoutError as e:
            log.warning("API %s %s timed out after %gs", ctx.method, ctx.endpoint, limit)
            raise RequestTimeoutError(ctx.method, ctx.endpoint, limit) from e
        except aiohttp.ClientError as e:
            log.error("API %s %s error: %s", ctx.method, ctx.endpoint, e)
            raise NetworkError(
                f"Network error on {ctx.method} {ctx.endpoint}: {e}",
                method=ctx.method, endpoint=ctx.endpoint,
            ) from e

        if 200 <= status < 300:
            return ApiResponse(status, body, resp_headers)

        if is_auth_failure(status, body):
            log.info("API %s %s → %d (auth)", ctx.method, ctx.endpoint, status)
            raise AuthError(
                status, body, method=ctx.method, endpoint=ctx.endpoint, bearer=bearer,
            )
        log.error("API %s %s → %d: %s", ctx.method, ctx.endpoint, status, str(body)[:200])
        raise HttpError(status, body, method=ctx.method, endpoint=ctx.endpoint)

    @staticmethod
    async def _read_body(resp: aiohttp.ClientResponse):
        if "json" in resp.content_type:
            text = await resp.text(errors="replace")
            if not text.strip():
                return None
            try:
                return json.loads(text)
            except ValueError:
                log.warning("Malformed JSON from %s, keeping raw text", resp.url)
                return text
        return await resp.text(errors="replace")
