"""Command-line entry points.

    tgrelay            run the MCP stdio server (same as `tgrelay serve`)
    tgrelay chat-id    print the chat id of every incoming message

Logs go to stderr; stdout belongs to the JSON-RPC protocol.
"""

from __future__ import annotations

import argparse
import logging
import queue
import signal
import sys

from .errors import ConfigError, TransportError
from .mcp_server import run_stdio_server
from .models import InboundMessage
from .settings import Settings, load_settings
from .telegram import TelegramClient, UpdatePoller

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _client(settings: Settings) -> TelegramClient:
    return TelegramClient(
        settings.telegram_token,
        api_url=settings.api_url,
        timeout_seconds=settings.http_timeout_seconds,
    )


def _serve(settings: Settings) -> int:
    try:
        run_stdio_server(settings, client=_client(settings))
    except TransportError as exc:
        logger.error("Failed to initialize bot, exiting: %s", exc.message)
        return 1
    return 0


def _chat_id(settings: Settings) -> int:
    inbox: queue.Queue[InboundMessage] = queue.Queue()
    with _client(settings) as client:
        try:
            me = client.get_me()
        except TransportError as exc:
            logger.error("Failed to initialize bot: %s", exc.message)
            return 1

        poller = UpdatePoller(
            client,
            inbox,
            poll_timeout=settings.poll_timeout_seconds,
            retry_seconds=settings.poll_retry_seconds,
            skip_backlog=False,
        )
        poller.start()
        print(f"Bot is running. Please send any message to your bot (@{me.get('username')})...")
        try:
            while True:
                message = inbox.get()
                print(f"Your Chat ID is: {message.channel}")
                print("You can now update your .env file with this ID")
                print("Press Ctrl+C to exit", flush=True)
        except KeyboardInterrupt:
            return 0
        finally:
            poller.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tgrelay",
        description="Relay MCP questions and files to a Telegram chat.",
    )
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the MCP server over stdio (default)")
    sub.add_parser("chat-id", help="Print the chat id of incoming messages")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "serve"

    try:
        settings = load_settings(require_chat_id=command == "serve")
    except ConfigError as exc:
        _configure_logging("INFO")
        logger.error("%s", exc.message)
        return 1

    _configure_logging(settings.log_level)

    if command == "chat-id":
        return _chat_id(settings)

    # Ctrl+C ends the server cleanly; pending questions are released.
    signal.signal(signal.SIGINT, lambda *_: sys.exit(0))
    return _serve(settings)


if __name__ == "__main__":
    raise SystemExit(main())
