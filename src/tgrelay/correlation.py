"""Question/answer correlation.

Outbound questions are tagged with a short identity (`#<id>\\n<question>`).
Each pending question owns a `PendingAnswer` registered in a
`QuestionRegistry` until a reply resolves it.

The registry also tracks the most recently sent question ("last question"),
which is the target for replies that do not quote a tagged message. Sending
a newer question supersedes the older one as fallback target without
removing it; the older one stays answerable by quoting it.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
import threading
from concurrent.futures import Future

from .errors import QuestionInterrupted

logger = logging.getLogger(__name__)

IDENTITY_ALPHABET = string.ascii_lowercase + string.digits
IDENTITY_LENGTH = 8

_TAG_RE = re.compile(r"#([a-z0-9]+)\n")


def generate_identity(length: int = IDENTITY_LENGTH) -> str:
    return "".join(secrets.choice(IDENTITY_ALPHABET) for _ in range(length))


def tag_question(identity: str, text: str) -> str:
    return f"#{identity}\n{text}"


def parse_identity(quoted_text: str | None) -> str | None:
    """Recover the identity from the leading line of a quoted tagged message."""
    if not quoted_text:
        return None
    match = _TAG_RE.match(quoted_text)
    return match.group(1) if match else None


class PendingAnswer:
    """Single-resolution continuation for one outstanding question."""

    def __init__(self) -> None:
        self._future: Future[str] = Future()
        self._lock = threading.Lock()

    @property
    def done(self) -> bool:
        return self._future.done()

    def resolve(self, answer: str) -> bool:
        """Deliver the answer. Returns False if already resolved or interrupted."""
        with self._lock:
            if self._future.done():
                return False
            self._future.set_result(answer)
            return True

    def interrupt(self, reason: str) -> bool:
        with self._lock:
            if self._future.done():
                return False
            self._future.set_exception(QuestionInterrupted(reason))
            return True

    def wait(self, timeout: float | None = None) -> str:
        """Block until answered. No timeout unless the caller passes one."""
        return self._future.result(timeout=timeout)


class QuestionRegistry:
    """Outstanding questions keyed by identity, plus the fallback slot."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingAnswer] = {}
        self._last: str | None = None
        self._closed: str | None = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._pending

    def new_identity(self) -> str:
        while True:
            identity = generate_identity()
            with self._lock:
                if identity not in self._pending:
                    return identity
            logger.debug("Identity collision on %s; regenerating", identity)

    def register(self, identity: str, pending: PendingAnswer) -> None:
        """Track a question. Raises QuestionInterrupted after interrupt_all."""
        with self._lock:
            if self._closed is not None:
                raise QuestionInterrupted(self._closed)
            self._pending[identity] = pending
            self._last = identity

    def resolve(self, identity: str, answer: str) -> bool:
        with self._lock:
            pending = self._pending.pop(identity, None)
            if pending is None:
                return False
            if self._last == identity:
                self._last = None
        return pending.resolve(answer)

    def peek_last(self) -> str | None:
        with self._lock:
            return self._last

    def pending_ids(self) -> list[str]:
        with self._lock:
            return list(self._pending)

    def interrupt_all(self, reason: str = "server shutting down") -> int:
        """Release every waiter with QuestionInterrupted and refuse new ones.

        Returns how many waiters were released.
        """
        with self._lock:
            self._closed = reason
            pending = list(self._pending.values())
            self._pending.clear()
            self._last = None
        return sum(1 for p in pending if p.interrupt(reason))
