"""tgrelay MCP server (stdio bridge).

A lightweight MCP-compatible JSON-RPC server over stdio.

Requests arrive as newline-delimited JSON objects. `tools/call` requests run
on their own worker thread because `ask_user` blocks until a human replies;
everything else is answered inline. Responses are written one JSON object
per line, in the order requests complete.
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import threading
from typing import Any, TextIO

from . import __version__
from .correlation import QuestionRegistry
from .matcher import ReplyConsumer, ReplyMatcher
from .mcp_tools import ToolError, call_tool, list_tools
from .models import InboundMessage
from .questions import QuestionService
from .settings import TWO_GB, Settings
from .telegram import TelegramClient, UpdatePoller

logger = logging.getLogger(__name__)

_JSON = dict[str, Any]

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "mcp-communicator-telegram"
SERVER_VERSION = __version__

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
TOOL_ERROR = -32000


class McpError(RuntimeError):
    def __init__(self, code: int, message: str, data: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


def _jsonrpc_error(*, req_id: Any, code: int, message: str, data: Any | None = None) -> _JSON:
    err: _JSON = {"code": code, "message": message}
    if data is not None:
        err["data"] = data
    return {"jsonrpc": "2.0", "id": req_id, "error": err}


def _jsonrpc_result(*, req_id: Any, result: Any) -> _JSON:
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def _tool_text(content: str) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": content}]}


def _tool_list_response() -> dict[str, Any]:
    return {
        "tools": [
            {
                "name": t.name,
                "description": t.description,
                "inputSchema": t.input_schema,
            }
            for t in list_tools()
        ]
    }


def _initialize_response() -> dict[str, Any]:
    return {
        "protocolVersion": PROTOCOL_VERSION,
        "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
        "capabilities": {"tools": {"listTools": True, "callTool": True}},
    }


class McpServer:
    def __init__(
        self,
        service: QuestionService,
        *,
        output: TextIO | None = None,
        max_archive_bytes: int = TWO_GB,
    ) -> None:
        self._service = service
        self._output = output
        self._max_archive_bytes = max_archive_bytes
        self._buffer = ""
        self._write_lock = threading.Lock()
        self._closed = threading.Event()
        self._workers: set[threading.Thread] = set()
        self._workers_lock = threading.Lock()

    # -- output ---------------------------------------------------------

    def write(self, obj: Any) -> None:
        if self._closed.is_set():
            return
        out = self._output or sys.stdout
        serialized = json.dumps(obj)
        try:
            with self._write_lock:
                out.write(serialized + "\n")
                out.flush()
        except OSError as exc:
            self._closed.set()
            logger.warning("stdout closed while sending: %s", exc)
        except ValueError as exc:
            if not getattr(out, "closed", False):
                # Only this response is lost; the stream stays usable.
                logger.error("Failed to write response: %s", exc)
                return
            self._closed.set()
            logger.warning("stdout closed while sending: %s", exc)

    # -- request handling ----------------------------------------------

    def handle_request(self, req: dict[str, Any]) -> _JSON | None:
        """Handle one request synchronously and return its response.

        Returns None for notifications (requests without an id).
        """

        method = req.get("method")
        req_id = req.get("id")
        params = req.get("params")

        if "id" not in req:
            logger.debug("Notification %s", method)
            return None

        try:
            if method == "initialize":
                return _jsonrpc_result(req_id=req_id, result=_initialize_response())

            if method == "tools/list":
                return _jsonrpc_result(req_id=req_id, result=_tool_list_response())

            if method == "tools/call":
                if not isinstance(params, dict):
                    raise McpError(code=INVALID_PARAMS, message="params must be an object")
                name = params.get("name")
                arguments = params.get("arguments")
                if not isinstance(name, str) or not name:
                    raise McpError(code=INVALID_PARAMS, message="name is required")
                if arguments is not None and not isinstance(arguments, dict):
                    raise McpError(code=INVALID_PARAMS, message="arguments must be an object")

                result = self._handle_tool_call(name=name, arguments=arguments)
                return _jsonrpc_result(req_id=req_id, result=result)

            raise McpError(code=METHOD_NOT_FOUND, message=f"Method not found: {method}")

        except McpError as exc:
            return _jsonrpc_error(req_id=req_id, code=exc.code, message=exc.message, data=exc.data)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error handling %s", method)
            return _jsonrpc_error(
                req_id=req_id,
                code=INTERNAL_ERROR,
                message="Internal error",
                data={"error": str(exc)},
            )

    def _handle_tool_call(self, *, name: str, arguments: dict[str, Any] | None) -> dict[str, Any]:
        try:
            text = call_tool(
                self._service,
                name=name,
                arguments=arguments,
                max_archive_bytes=self._max_archive_bytes,
            )
            return _tool_text(text)
        except ToolError as exc:
            code = INVALID_PARAMS if exc.code in {"invalid_args"} else TOOL_ERROR
            raise McpError(code=code, message=exc.message, data=exc.data) from exc

    def _respond(self, req: dict[str, Any]) -> None:
        resp = self.handle_request(req)
        if resp is not None:
            self.write(resp)

    def _run_worker(self, req: dict[str, Any]) -> None:
        try:
            self._respond(req)
        finally:
            with self._workers_lock:
                self._workers.discard(threading.current_thread())

    def submit(self, req: dict[str, Any]) -> None:
        """Handle a request without blocking intake of later frames."""

        if req.get("method") != "tools/call":
            self._respond(req)
            return

        thread = threading.Thread(
            target=self._run_worker,
            args=(req,),
            name=f"tgrelay-call-{req.get('id')}",
            daemon=True,
        )
        with self._workers_lock:
            self._workers.add(thread)
        thread.start()

    def join_workers(self, timeout: float | None = None) -> None:
        with self._workers_lock:
            workers = list(self._workers)
        for thread in workers:
            thread.join(timeout)

    # -- framing -------------------------------------------------------

    def handle_frame(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            req = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.warning("Dropping malformed frame: %s", exc)
            return
        if not isinstance(req, dict):
            logger.warning("Dropping non-object frame")
            return
        logger.debug("Received request %s (id=%s)", req.get("method"), req.get("id"))
        self.submit(req)

    def feed(self, chunk: str) -> None:
        """Append raw input; dispatch every complete newline-terminated frame."""

        self._buffer += chunk
        *frames, self._buffer = self._buffer.split("\n")
        for frame in frames:
            self.handle_frame(frame)

    def serve(self, stream: TextIO) -> None:
        """Read frames until end of input."""

        while not self._closed.is_set():
            chunk = stream.readline()
            if not chunk:
                break
            self.feed(chunk)

        if self._buffer.strip():
            logger.warning("Dropping incomplete trailing frame at end of input")
        self._buffer = ""


def run_stdio_server(
    settings: Settings,
    *,
    client: TelegramClient | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> None:
    """Run the MCP JSON-RPC server over stdio.

    Raises TransportError if the Telegram handshake fails; nothing is served
    in that case.
    """

    client = client or TelegramClient(
        settings.telegram_token,
        api_url=settings.api_url,
        timeout_seconds=settings.http_timeout_seconds,
    )
    me = client.get_me()
    logger.info("Bot initialized: @%s", me.get("username"))

    registry = QuestionRegistry()
    service = QuestionService(client, registry, chat_id=settings.chat_id)
    inbox: queue.Queue[InboundMessage] = queue.Queue()

    poller = UpdatePoller(
        client,
        inbox,
        poll_timeout=settings.poll_timeout_seconds,
        retry_seconds=settings.poll_retry_seconds,
    )
    consumer = ReplyConsumer(ReplyMatcher(registry, chat_id=settings.chat_id), inbox)
    server = McpServer(service, output=stdout, max_archive_bytes=settings.max_archive_bytes)

    poller.start()
    consumer.start()
    logger.info("MCP server running")
    try:
        server.serve(stdin or sys.stdin)
    finally:
        poller.stop()
        consumer.stop()
        released = registry.interrupt_all()
        if released:
            logger.info("Released %d pending question(s) on shutdown", released)
        server.join_workers(timeout=1.0)
        client.close()


__all__ = ["McpServer", "McpError", "run_stdio_server"]
