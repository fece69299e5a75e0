"""Package a project directory into a zip archive.

Files ignored by the directory's top-level `.gitignore` are left out, as is
the `.git` directory itself.
"""

from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path

import pathspec

from .errors import RelayError
from .settings import TWO_GB

logger = logging.getLogger(__name__)


class ArchiveTooLargeError(RelayError):
    pass


def archive_path_for(directory: Path) -> Path:
    return directory / f"{directory.name}-project.zip"


def _load_ignore_spec(directory: Path) -> pathspec.GitIgnoreSpec:
    gitignore = directory / ".gitignore"
    lines: list[str] = []
    if gitignore.is_file():
        lines = gitignore.read_text(encoding="utf-8", errors="replace").splitlines()
    return pathspec.GitIgnoreSpec.from_lines(lines)


def iter_project_files(directory: Path, *, exclude: Path | None = None) -> list[Path]:
    """Return files under `directory` not ignored by its .gitignore."""

    spec = _load_ignore_spec(directory)
    out: list[Path] = []

    for dirpath, dirnames, filenames in os.walk(directory):
        current = Path(dirpath)
        rel_dir = current.relative_to(directory)

        kept: list[str] = []
        for name in sorted(dirnames):
            if name == ".git":
                continue
            rel = (rel_dir / name).as_posix()
            if spec.match_file(rel + "/"):
                continue
            kept.append(name)
        # Prune in place so os.walk does not descend into ignored dirs.
        dirnames[:] = kept

        for name in sorted(filenames):
            path = current / name
            if exclude is not None and path == exclude:
                continue
            if spec.match_file((rel_dir / name).as_posix()):
                continue
            out.append(path)

    return out


def zip_project(directory: str | Path | None = None, *, max_bytes: int = TWO_GB) -> Path:
    """Zip a project directory and return the archive path.

    Any previous archive at the same path is replaced. If the result exceeds
    `max_bytes` it is deleted and ArchiveTooLargeError is raised.
    """

    root = Path(directory or os.getcwd()).expanduser().resolve()
    if not root.is_dir():
        raise RelayError(f"Directory not found: {root}")

    output = archive_path_for(root)
    output.unlink(missing_ok=True)

    files = iter_project_files(root, exclude=output)
    try:
        with zipfile.ZipFile(
            output, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9, strict_timestamps=False
        ) as zf:
            for path in files:
                zf.write(path, arcname=path.relative_to(root).as_posix())
    except BaseException:
        output.unlink(missing_ok=True)
        raise

    size = output.stat().st_size
    logger.info("Zipped %d file(s), %d bytes", len(files), size)

    if size > max_bytes:
        output.unlink(missing_ok=True)
        raise ArchiveTooLargeError(
            "File size exceeds 2GB limit. Please implement file splitting or reduce the project size."
            if max_bytes == TWO_GB
            else f"File size exceeds {max_bytes} byte limit. Reduce the project size."
        )
    return output
