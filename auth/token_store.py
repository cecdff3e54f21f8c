"""JWT token storage in config.json."""

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path

from errors import TokenStoreError

log = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"


class TokenStore:
    """Access/refresh token pair persisted as two keys of a JSON file.

    Both tokens are always written and cleared together. Other keys already in
    the file are preserved.
    """

    def __init__(self, path: str | os.PathLike):
        self._path = Path(path)
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    def get(self, key: str) -> str | None:
        if key == ACCESS_TOKEN_KEY:
            return self._access_token
        if key == REFRESH_TOKEN_KEY:
            return self._refresh_token
        return self._read_file().get(key)

    def set(self, access_token: str, refresh_token: str):
        """Persist both tokens. Raises TokenStoreError if the write fails.

        In-memory values only change once the file is in place, so a reader
        never sees a new access token next to a stale refresh token.
        """
        if not access_token or not refresh_token:
            raise TokenStoreError("Both access and refresh tokens are required")
        self._persist(access_token, refresh_token)
        self._access_token = access_token
        self._refresh_token = refresh_token
        log.info("Tokens saved")

    def clear(self):
        self._access_token = None
        self._refresh_token = None
        try:
            self._persist(None, None)
        except TokenStoreError:
            log.exception("Failed to remove tokens from %s", self._path)
            return
        log.info("Tokens cleared")

    def _load(self):
        data = self._read_file()
        access = data.get(ACCESS_TOKEN_KEY)
        refresh = data.get(REFRESH_TOKEN_KEY)
        # A half-written pair counts as logged out
        if isinstance(access, str) and isinstance(refresh, str):
            self._access_token = access
            self._refresh_token = refresh

    def _read_file(self) -> dict:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            return {}
        except OSError:
            log.exception("Failed to read %s", self._path)
            return {}
        return data if isinstance(data, dict) else {}

    def _persist(self, access_token: str | None, refresh_token: str | None):
        # Read existing config, merge tokens
        data = self._read_file()
        if access_token:
            data[ACCESS_TOKEN_KEY] = access_token
            data[REFRESH_TOKEN_KEY] = refresh_token
        else:
            data.pop(ACCESS_TOKEN_KEY, None)
            data.pop(REFRESH_TOKEN_KEY, None)

        # Write a sibling temp file, then swap it in
        tmp_path = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent,
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except OSError as e:
            if tmp_path:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_path)
            raise TokenStoreError(f"Could not write tokens to {self._path}: {e}") from e
