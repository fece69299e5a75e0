from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from tgrelay.correlation import QuestionRegistry
from tgrelay.errors import TransportError
from tgrelay.questions import QuestionService

CHAT_ID = "42"


class FakeTransport:
    """In-memory stand-in for the Telegram client."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.documents: list[Path] = []
        self.fail_with: TransportError | None = None
        self._lock = threading.Lock()

    def send_text(self, chat_id: str, text: str, *, force_reply: bool = False) -> dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.sent.append({"chat_id": chat_id, "text": text, "force_reply": force_reply})
        return {"message_id": len(self.sent)}

    def send_document(self, chat_id: str, file_path: Path) -> dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.documents.append(file_path)
        return {"message_id": len(self.documents)}


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def registry() -> QuestionRegistry:
    return QuestionRegistry()


@pytest.fixture
def service(transport: FakeTransport, registry: QuestionRegistry) -> QuestionService:
    return QuestionService(transport, registry, chat_id=CHAT_ID)
