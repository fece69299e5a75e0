"""Tool catalogue exposed over MCP `tools/list` and `tools/call`."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .archive import zip_project
from .errors import RelayError
from .questions import QuestionService
from .settings import TWO_GB

logger = logging.getLogger(__name__)


class ToolError(RuntimeError):
    def __init__(self, code: str, message: str, data: Any | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_schema: dict[str, Any]


def _string_schema(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def list_tools() -> list[Tool]:
    return [
        Tool(
            name="ask_user",
            description="Ask the user a question via Telegram and wait for their response",
            input_schema={
                "type": "object",
                "properties": {"question": _string_schema("The question to ask the user")},
                "required": ["question"],
            },
        ),
        Tool(
            name="notify_user",
            description="Send a notification message to the user via Telegram (no response required)",
            input_schema={
                "type": "object",
                "properties": {"message": _string_schema("The message to send to the user")},
                "required": ["message"],
            },
        ),
        Tool(
            name="send_file",
            description="Send a file to the user via Telegram",
            input_schema={
                "type": "object",
                "properties": {"filePath": _string_schema("The path to the file to send")},
                "required": ["filePath"],
            },
        ),
        Tool(
            name="zip_project",
            description="Zip a project directory and send it to the user",
            input_schema={
                "type": "object",
                "properties": {
                    "directory": _string_schema(
                        "Directory to zip (defaults to current working directory)"
                    )
                },
                "required": [],
            },
        ),
    ]


def _required_str(args: dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str):
        raise ToolError("invalid_args", f"{key} is required", {"field": key})
    return value


def _optional_str(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ToolError("invalid_args", f"{key} must be a string", {"field": key})
    return value


def _zip_and_send(service: QuestionService, directory: str | None, *, max_bytes: int) -> None:
    archive = zip_project(directory, max_bytes=max_bytes)
    try:
        service.send_file(archive)
    finally:
        archive.unlink(missing_ok=True)


def call_tool(
    service: QuestionService,
    *,
    name: str,
    arguments: dict[str, Any] | None,
    max_archive_bytes: int = TWO_GB,
) -> str:
    """Run a tool and return its text output.

    Raises ToolError for unknown tools, bad arguments and tool failures.
    """

    args = arguments or {}

    try:
        if name == "ask_user":
            return service.ask(_required_str(args, "question"))

        if name == "notify_user":
            service.notify(_required_str(args, "message"))
            return "Notification sent successfully"

        if name == "send_file":
            service.send_file(_required_str(args, "filePath"))
            return "File sent successfully"

        if name == "zip_project":
            _zip_and_send(service, _optional_str(args, "directory"), max_bytes=max_archive_bytes)
            return "Project zipped and sent successfully"

    except ToolError:
        raise
    except (RelayError, OSError) as exc:
        logger.warning("Tool %s failed: %s", name, exc)
        raise ToolError("failed", str(exc)) from exc
    except Exception as exc:
        logger.exception("Tool %s failed unexpectedly", name)
        raise ToolError("failed", str(exc) or type(exc).__name__) from exc

    raise ToolError("unknown_tool", f"Unknown tool: {name}", {"name": name})
