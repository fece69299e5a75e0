from __future__ import annotations

import hashlib
import logging
import threading
from datetime import UTC, datetime, timedelta
from typing import Any

logger = logging.getLogger(__name__)

# Thread-safe storage for deduplication of recent errors
_RECENT_SIGNATURES: dict[str, datetime] = {}
_SIGNATURES_LOCK = threading.Lock()


class RelayError(RuntimeError):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigError(RelayError):
    """Missing or invalid configuration. Fatal at startup."""


class TransportError(RelayError):
    """A Telegram Bot API call failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuestionInterrupted(RelayError):
    """A pending question was released without an answer (shutdown)."""


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _error_signature(*, operation: str, exc: BaseException) -> str:
    material = f"{operation}|{type(exc).__name__}|{str(exc)}".encode("utf-8", errors="replace")
    return hashlib.sha256(material).hexdigest()


def record_error(
    *,
    operation: str,
    exc: BaseException,
    context: dict[str, Any] | None = None,
    dedupe_window_seconds: int = 60,
) -> bool:
    """Log an error, suppressing identical repeats for a short window.

    Background loops (update polling) can fail the same way many times a
    minute while the network is down; only the first occurrence per window is
    logged at warning level, repeats go to debug.

    Returns True when the error was logged at warning level.
    """

    signature = _error_signature(operation=operation, exc=exc)
    now = _utcnow()

    if dedupe_window_seconds > 0:
        cutoff = now - timedelta(seconds=dedupe_window_seconds)
        with _SIGNATURES_LOCK:
            last_seen = _RECENT_SIGNATURES.get(signature)
            if last_seen is not None and last_seen >= cutoff:
                logger.debug("%s failed again: %s: %s", operation, type(exc).__name__, exc)
                return False
            _RECENT_SIGNATURES[signature] = now
            # Prune old entries to prevent memory growth
            stale = [k for k, v in _RECENT_SIGNATURES.items() if v < cutoff]
            for k in stale:
                del _RECENT_SIGNATURES[k]

    logger.warning(
        "%s failed: %s: %s%s",
        operation,
        type(exc).__name__,
        exc,
        f" {context}" if context else "",
    )
    return True
