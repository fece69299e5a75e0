"""Ask the configured chat a question and wait for the answer."""

from __future__ import annotations

import logging
from pathlib import Path

from .correlation import PendingAnswer, QuestionRegistry, tag_question
from .errors import RelayError
from .telegram import ChatTransport

logger = logging.getLogger(__name__)


class QuestionService:
    def __init__(self, transport: ChatTransport, registry: QuestionRegistry, *, chat_id: str) -> None:
        self._transport = transport
        self._registry = registry
        self._chat_id = str(chat_id)

    def ask(self, question: str) -> str:
        """Send a tagged question and block this caller until it is answered.

        There is deliberately no timeout: a human may take hours. Raises
        TransportError if the question could not be sent (nothing is
        registered in that case) and QuestionInterrupted on shutdown.
        """

        identity = self._registry.new_identity()
        logger.info("Asking question %s", identity)

        self._transport.send_text(self._chat_id, tag_question(identity, question), force_reply=True)

        pending = PendingAnswer()
        self._registry.register(identity, pending)
        answer = pending.wait()
        logger.debug("Question %s received answer %r", identity, answer)
        return answer

    def notify(self, message: str) -> None:
        self._transport.send_text(self._chat_id, message)
        logger.info("Notification sent")

    def send_file(self, file_path: str | Path) -> None:
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise RelayError(f"File not found: {file_path}")
        self._transport.send_document(self._chat_id, path)
        logger.info("File sent: %s", path.name)
