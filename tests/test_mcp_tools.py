"""Tests for the tool catalogue and tool invocation."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from tgrelay.errors import RelayError, TransportError
from tgrelay.mcp_tools import ToolError, call_tool, list_tools


def test_catalogue_names() -> None:
    assert [t.name for t in list_tools()] == ["ask_user", "notify_user", "send_file", "zip_project"]


def test_ask_user_returns_answer() -> None:
    service = MagicMock()
    service.ask.return_value = "blue"

    assert call_tool(service, name="ask_user", arguments={"question": "Color?"}) == "blue"
    service.ask.assert_called_once_with("Color?")


def test_send_file_success_text() -> None:
    service = MagicMock()
    assert call_tool(service, name="send_file", arguments={"filePath": "/tmp/x"}) == "File sent successfully"
    service.send_file.assert_called_once_with("/tmp/x")


@pytest.mark.parametrize("arguments", [None, {}, {"question": None}, {"question": 3}])
def test_ask_user_requires_question(arguments: dict | None) -> None:
    service = MagicMock()
    with pytest.raises(ToolError) as exc_info:
        call_tool(service, name="ask_user", arguments=arguments)

    assert exc_info.value.code == "invalid_args"
    service.ask.assert_not_called()


def test_unknown_tool() -> None:
    with pytest.raises(ToolError) as exc_info:
        call_tool(MagicMock(), name="format_disk", arguments={})

    assert exc_info.value.code == "unknown_tool"
    assert exc_info.value.message == "Unknown tool: format_disk"


def test_service_failure_becomes_tool_error() -> None:
    service = MagicMock()
    service.notify.side_effect = TransportError("sendMessage failed: Too Many Requests", status_code=429)

    with pytest.raises(ToolError) as exc_info:
        call_tool(service, name="notify_user", arguments={"message": "hi"})

    assert exc_info.value.code == "failed"
    assert "Too Many Requests" in exc_info.value.message


def test_zip_project_sends_and_removes_archive(tmp_path: Path) -> None:
    root = tmp_path / "proj"
    root.mkdir()
    (root / "a.txt").write_text("a", encoding="utf-8")
    sent: list[Path] = []

    service = MagicMock()
    service.send_file.side_effect = lambda path: sent.append(Path(path))

    text = call_tool(service, name="zip_project", arguments={"directory": str(root)})

    assert text == "Project zipped and sent successfully"
    assert [p.name for p in sent] == ["proj-project.zip"]
    assert not sent[0].exists()


def test_zip_project_removes_archive_on_send_failure(tmp_path: Path) -> None:
    root = tmp_path / "proj"
    root.mkdir()
    (root / "a.txt").write_text("a", encoding="utf-8")

    service = MagicMock()
    service.send_file.side_effect = RelayError("upload failed")

    with pytest.raises(ToolError, match="upload failed"):
        call_tool(service, name="zip_project", arguments={"directory": str(root)})

    assert not (root / "proj-project.zip").exists()


def test_zip_project_size_limit(tmp_path: Path) -> None:
    root = tmp_path / "proj"
    root.mkdir()
    (root / "a.txt").write_text("a" * 100, encoding="utf-8")
    service = MagicMock()

    with pytest.raises(ToolError, match="exceeds"):
        call_tool(service, name="zip_project", arguments={"directory": str(root)}, max_archive_bytes=10)

    service.send_file.assert_not_called()


def test_ask_user_accepts_whitespace_question() -> None:
    service = MagicMock()
    service.ask.return_value = "ok"

    assert call_tool(service, name="ask_user", arguments={"question": "  "}) == "ok"
    service.ask.assert_called_once_with("  ")


def test_unexpected_error_becomes_tool_error() -> None:
    service = MagicMock()
    service.notify.side_effect = ValueError("bad payload")

    with pytest.raises(ToolError) as exc_info:
        call_tool(service, name="notify_user", arguments={"message": "hi"})

    assert exc_info.value.code == "failed"
    assert exc_info.value.message == "bad payload"


def test_zip_project_accepts_pre_1980_timestamps(tmp_path: Path) -> None:
    root = tmp_path / "proj"
    root.mkdir()
    old = root / "old.txt"
    old.write_text("epoch", encoding="utf-8")
    os.utime(old, (0, 0))
    sent: list[Path] = []

    service = MagicMock()
    service.send_file.side_effect = lambda path: sent.append(Path(path))

    assert call_tool(service, name="zip_project", arguments={"directory": str(root)}) == (
        "Project zipped and sent successfully"
    )
    assert [p.name for p in sent] == ["proj-project.zip"]
    assert not (root / "proj-project.zip").exists()
