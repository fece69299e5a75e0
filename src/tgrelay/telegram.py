"""Telegram Bot API transport.

A thin synchronous client over the HTTPS Bot API plus a background poller
that turns `getUpdates` long-polling into a queue of `InboundMessage`s.

Nothing in here knows about questions or correlation; the poller is a pure
producer and the reply matcher consumes its queue.
"""

from __future__ import annotations

import logging
import queue
import threading
from pathlib import Path
from typing import Any, Protocol

import httpx

from .errors import TransportError, record_error
from .models import InboundMessage, TelegramUpdate

logger = logging.getLogger(__name__)

HTTP_CONFLICT = 409


class ChatTransport(Protocol):
    """Outbound operations the question service needs."""

    def send_text(self, chat_id: str, text: str, *, force_reply: bool = False) -> dict[str, Any]:
        ...

    def send_document(self, chat_id: str, file_path: Path) -> dict[str, Any]:
        ...


class TelegramClient:
    def __init__(
        self,
        token: str,
        *,
        api_url: str = "https://api.telegram.org",
        timeout_seconds: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base = f"{api_url.rstrip('/')}/bot{token}"
        self._timeout = timeout_seconds
        self._client = httpx.Client(timeout=timeout_seconds, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> TelegramClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _call(self, method: str, *, timeout: float | None = None, **kwargs: Any) -> Any:
        url = f"{self._base}/{method}"
        try:
            res = self._client.post(url, timeout=timeout or self._timeout, **kwargs)
        except httpx.HTTPError as exc:
            # The URL embeds the bot token; keep it out of the message.
            raise TransportError(f"{method} failed: {type(exc).__name__}") from exc

        try:
            payload = res.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            raise TransportError(
                f"{method} failed: HTTP {res.status_code}", status_code=res.status_code
            )
        if not payload.get("ok"):
            description = payload.get("description") or f"HTTP {res.status_code}"
            code = payload.get("error_code")
            raise TransportError(
                f"{method} failed: {description}",
                status_code=code if isinstance(code, int) else res.status_code,
            )
        return payload.get("result")

    def get_me(self) -> dict[str, Any]:
        """Verify the token. Used as the startup handshake."""
        result = self._call("getMe")
        if not isinstance(result, dict):
            raise TransportError("getMe failed: unexpected response")
        return result

    def send_text(self, chat_id: str, text: str, *, force_reply: bool = False) -> dict[str, Any]:
        payload: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if force_reply:
            payload["reply_markup"] = {"force_reply": True, "selective": True}
        return self._call("sendMessage", json=payload)

    def send_document(self, chat_id: str, file_path: Path) -> dict[str, Any]:
        with file_path.open("rb") as fh:
            files = {"document": (file_path.name, fh, "application/octet-stream")}
            # Uploads can be large; no read/write deadline beyond the connect one.
            timeout = httpx.Timeout(self._timeout, read=None, write=None)
            return self._call("sendDocument", data={"chat_id": chat_id}, files=files, timeout=timeout)

    def get_updates(self, *, offset: int | None = None, timeout: int = 30) -> list[TelegramUpdate]:
        payload: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        result = self._call("getUpdates", json=payload, timeout=self._timeout + timeout)
        if not isinstance(result, list):
            raise TransportError("getUpdates failed: unexpected response")
        return [TelegramUpdate.model_validate(item) for item in result]


class UpdatePoller:
    """Long-poll `getUpdates` on a daemon thread and enqueue inbound messages."""

    def __init__(
        self,
        client: TelegramClient,
        inbox: queue.Queue[InboundMessage],
        *,
        poll_timeout: int = 30,
        retry_seconds: float = 5.0,
        skip_backlog: bool = True,
    ) -> None:
        self._client = client
        self._inbox = inbox
        self._poll_timeout = poll_timeout
        self._retry_seconds = retry_seconds
        self._skip_backlog = skip_backlog
        self._offset: int | None = None
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="tgrelay-poller", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def _drop_backlog(self) -> None:
        # offset=-1 returns only the newest pending update; acknowledging it
        # discards everything queued before this process started.
        updates = self._client.get_updates(offset=-1, timeout=0)
        if updates:
            self._offset = updates[-1].update_id + 1
            logger.info("Skipped stale updates up to update_id=%d", updates[-1].update_id)

    def poll_once(self) -> int:
        """Fetch one batch of updates. Returns the number of messages enqueued."""

        updates = self._client.get_updates(offset=self._offset, timeout=self._poll_timeout)
        enqueued = 0
        for update in updates:
            self._offset = update.update_id + 1
            if update.message is None:
                continue
            self._inbox.put(InboundMessage.from_telegram(update.message))
            enqueued += 1
        return enqueued

    def _run(self) -> None:
        if self._skip_backlog:
            try:
                self._drop_backlog()
            except TransportError as exc:
                record_error(operation="getUpdates backlog", exc=exc)

        while not self._stop.is_set():
            try:
                self.poll_once()
            except TransportError as exc:
                if self._stop.is_set():
                    break
                if exc.status_code == HTTP_CONFLICT:
                    # Another poller (usually a previous instance) still holds
                    # the session during a restart.
                    logger.debug("getUpdates conflict; retrying")
                else:
                    record_error(operation="getUpdates", exc=exc)
                self._stop.wait(self._retry_seconds)
            except Exception as exc:  # noqa: BLE001
                if self._stop.is_set():
                    break
                record_error(operation="getUpdates", exc=exc)
                self._stop.wait(self._retry_seconds)
