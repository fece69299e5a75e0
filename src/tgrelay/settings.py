"""Runtime configuration for tgrelay.

Values come from the environment. A `.env` file in the working directory is
loaded first but never overrides variables that are already set.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigError

DEFAULT_API_URL = "https://api.telegram.org"
TWO_GB = 2 * 1024 * 1024 * 1024


@dataclass(frozen=True)
class Settings:
    telegram_token: str
    chat_id: str
    api_url: str = DEFAULT_API_URL
    poll_timeout_seconds: int = 30
    http_timeout_seconds: float = 15.0
    poll_retry_seconds: float = 5.0
    max_archive_bytes: int = TWO_GB
    log_level: str = "INFO"


def _env_str(name: str) -> str:
    return (os.environ.get(name) or "").strip()


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def load_settings(*, require_chat_id: bool = True, env_file: Path | None = None) -> Settings:
    """Build settings from the environment.

    Raises ConfigError when TELEGRAM_TOKEN (or CHAT_ID, unless
    `require_chat_id` is False) is missing.
    """

    load_dotenv(dotenv_path=env_file or Path.cwd() / ".env", override=False)

    token = _env_str("TELEGRAM_TOKEN")
    chat_id = _env_str("CHAT_ID")

    if not token or (require_chat_id and not chat_id):
        raise ConfigError("TELEGRAM_TOKEN and CHAT_ID are required in the environment or .env file")

    return Settings(
        telegram_token=token,
        chat_id=chat_id,
        api_url=(_env_str("TGRELAY_API_URL") or DEFAULT_API_URL).rstrip("/"),
        poll_timeout_seconds=max(0, _env_int("TGRELAY_POLL_TIMEOUT", 30)),
        http_timeout_seconds=_env_float("TGRELAY_HTTP_TIMEOUT", 15.0),
        poll_retry_seconds=_env_float("TGRELAY_RETRY_DELAY", 5.0),
        max_archive_bytes=_env_int("TGRELAY_MAX_ARCHIVE_BYTES", TWO_GB),
        log_level=(_env_str("TGRELAY_LOG_LEVEL") or "INFO").upper(),
    )
