"""Client settings, loaded from REFERRAL_* env vars or a local .env file."""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

from version import __version__

_BASE_DIR = Path(__file__).parent
_ENV_FILE = _BASE_DIR / ".env"


class ClientSettings(BaseSettings):
    api_url: str = "https://nexhire-api-func.azurewebsites.net/api"
    api_timeout: float = 30.0          # seconds, per request
    app_version: str = __version__
    app_env: str = "development"
    token_file: Path = _BASE_DIR / "config.json"
    refresh_endpoint: str = "/auth/refresh"
    session_expired_cooldown: float = 2.0

    model_config = {
        "env_prefix": "REFERRAL_",
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
    }


@lru_cache
def get_settings() -> ClientSettings:
    return ClientSettings()
