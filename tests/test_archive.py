from __future__ import annotations

import os
import zipfile
from pathlib import Path

import pytest

from tgrelay.archive import ArchiveTooLargeError, archive_path_for, iter_project_files, zip_project
from tgrelay.errors import RelayError


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "demo"
    (root / "sub").mkdir(parents=True)
    (root / "build").mkdir()
    (root / ".git").mkdir()
    (root / ".gitignore").write_text("*.log\nbuild/\n", encoding="utf-8")
    (root / "main.py").write_text("print('hi')\n", encoding="utf-8")
    (root / "debug.log").write_text("noise\n", encoding="utf-8")
    (root / "build" / "out.bin").write_bytes(b"\x00" * 16)
    (root / "sub" / "notes.txt").write_text("notes\n", encoding="utf-8")
    (root / ".git" / "config").write_text("[core]\n", encoding="utf-8")
    return root


def test_iter_project_files_respects_gitignore(project: Path) -> None:
    rel = {p.relative_to(project).as_posix() for p in iter_project_files(project)}
    assert rel == {".gitignore", "main.py", "sub/notes.txt"}


def test_zip_project_contents(project: Path) -> None:
    archive = zip_project(project)

    assert archive == archive_path_for(project.resolve())
    assert archive.name == "demo-project.zip"
    with zipfile.ZipFile(archive) as zf:
        assert set(zf.namelist()) == {".gitignore", "main.py", "sub/notes.txt"}
        assert zf.read("main.py") == b"print('hi')\n"


def test_zip_project_replaces_stale_archive(project: Path) -> None:
    archive_path_for(project).write_bytes(b"stale")

    archive = zip_project(project)

    with zipfile.ZipFile(archive) as zf:
        assert "demo-project.zip" not in zf.namelist()


def test_zip_project_without_gitignore(tmp_path: Path) -> None:
    root = tmp_path / "plain"
    root.mkdir()
    (root / "a.log").write_text("kept\n", encoding="utf-8")

    with zipfile.ZipFile(zip_project(root)) as zf:
        assert zf.namelist() == ["a.log"]


def test_zip_project_size_limit(project: Path) -> None:
    with pytest.raises(ArchiveTooLargeError, match="exceeds"):
        zip_project(project, max_bytes=10)
    assert not archive_path_for(project).exists()


def test_zip_project_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(RelayError, match="Directory not found"):
        zip_project(tmp_path / "missing")


def test_zip_project_defaults_to_cwd(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(project)
    assert zip_project().name == "demo-project.zip"


def test_zip_project_removes_partial_archive_on_failure(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_write(self: zipfile.ZipFile, *args: object, **kwargs: object) -> None:
        raise PermissionError("unreadable")

    monkeypatch.setattr(zipfile.ZipFile, "write", failing_write)

    with pytest.raises(PermissionError, match="unreadable"):
        zip_project(project)
    assert not archive_path_for(project.resolve()).exists()


def test_zip_project_keeps_files_older_than_1980(project: Path) -> None:
    os.utime(project / "main.py", (0, 0))

    with zipfile.ZipFile(zip_project(project)) as zf:
        assert "main.py" in zf.namelist()
