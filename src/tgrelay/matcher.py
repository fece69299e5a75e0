"""Match inbound chat messages to outstanding questions."""

from __future__ import annotations

import logging
import queue
import threading

from .correlation import QuestionRegistry, parse_identity
from .models import InboundMessage

logger = logging.getLogger(__name__)


class ReplyMatcher:
    def __init__(self, registry: QuestionRegistry, *, chat_id: str) -> None:
        self._registry = registry
        self._chat_id = str(chat_id)

    def candidate(self, message: InboundMessage) -> str | None:
        """Return the identity this message would answer, or None.

        A quoted tagged message wins even when that question is no longer
        outstanding; otherwise the most recently sent question is the target.
        """

        if message.channel != self._chat_id or not message.text:
            return None

        identity = parse_identity(message.quoted_text)
        if identity is None:
            identity = self._registry.peek_last()
        return identity

    def handle(self, message: InboundMessage) -> bool:
        """Resolve the matching question with the message text."""

        if message.channel != self._chat_id:
            logger.info("Ignoring message from chat %s", message.channel)
            return False
        if not message.text:
            logger.debug("Ignoring message without text")
            return False

        identity = self.candidate(message)
        if identity is None:
            logger.info("No pending question for incoming message")
            return False

        if self._registry.resolve(identity, message.text):
            logger.info("Question %s answered", identity)
            return True

        logger.info(
            "No matching question for %s (pending: %s)", identity, self._registry.pending_ids()
        )
        return False


class ReplyConsumer:
    """Drain the inbound queue in delivery order and feed the matcher."""

    def __init__(self, matcher: ReplyMatcher, inbox: queue.Queue[InboundMessage]) -> None:
        self._matcher = matcher
        self._inbox = inbox
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="tgrelay-replies", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                message = self._inbox.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                self._matcher.handle(message)
            except Exception:  # noqa: BLE001
                logger.exception("Error handling inbound message")
            finally:
                self._inbox.task_done()
