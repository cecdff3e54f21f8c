"""Exceptions raised by the HTTP layer.

Every outbound failure is an ``ApiError``. Only ``AuthError`` on a first
attempt is recovered from (refresh + one retry); everything else reaches the
caller unchanged.
"""


class ApiError(Exception):
    """Base exception for all outbound request failures."""

    def __init__(self, message: str, *, method: str = "", endpoint: str = ""):
        super().__init__(message)
        self.method = method
        self.endpoint = endpoint


class RequestTimeoutError(ApiError):
    """Request exceeded its configured duration."""

    def __init__(self, method: str, endpoint: str, timeout: float):
        super().__init__(
            f"{method} {endpoint} timed out after {timeout:g}s",
            method=method, endpoint=endpoint,
        )
        self.timeout = timeout


class NetworkError(ApiError):
    """Connection-level failure. Please check your connection."""


class HttpError(ApiError):
    """Non-2xx response."""

    def __init__(self, status: int, body=None, *, method: str = "", endpoint: str = ""):
        self.status = status
        self.body = body
        super().__init__(
            f"{method} {endpoint} -> HTTP {status}: {self.message}",
            method=method, endpoint=endpoint,
        )

    @property
    def message(self) -> str:
        """Server-supplied message, falling back to the status code."""
        if isinstance(self.body, dict):
            msg = self.body.get("message") or self.body.get("error")
            if msg:
                return str(msg)
        elif isinstance(self.body, str) and self.body.strip():
            return self.body.strip()[:200]
        return f"HTTP {self.status}"


class AuthError(HttpError):
    """401, or a response that says the access token has expired.

    ``bearer`` is the access token the failed attempt was sent with.
    """

    def __init__(self, status: int, body=None, *, method: str = "", endpoint: str = "",
                 bearer: str | None = None):
        super().__init__(status, body, method=method, endpoint=endpoint)
        self.bearer = bearer


class SessionExpiredError(AuthError):
    """Terminal: the token could not be refreshed and the session was torn down.

    Carries the status and body of the auth failure that started the episode.
    Callers must not retry; the host is already returning to the login screen.
    """

    @classmethod
    def from_auth_error(cls, error: AuthError) -> "SessionExpiredError":
        return cls(
            error.status, error.body,
            method=error.method, endpoint=error.endpoint, bearer=error.bearer,
        )


class TokenStoreError(Exception):
    """Tokens could not be persisted (file I/O error)."""
