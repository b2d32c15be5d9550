"""Filesystem helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator


def ensure_parent(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def read_text(path: Path, *, encoding: str = "utf-8") -> str:
    with path.open("r", encoding=encoding) as fp:
        return fp.read()


def read_optional_text(path: Path, *, encoding: str = "utf-8") -> str | None:
    """Return the file's text, or ``None`` when it does not exist.

    Read and decode failures are raised to the caller.
    """
    if not path.is_file():
        return None
    return read_text(path, encoding=encoding)


def write_text(path: Path, data: str, *, encoding: str = "utf-8") -> None:
    ensure_parent(path)
    with path.open("w", encoding=encoding) as fp:
        fp.write(data)


def iter_files(directory: Path) -> Iterator[Path]:
    """Yield regular files directly inside ``directory`` in listing order."""
    if not directory.is_dir():
        return
    for child in directory.iterdir():
        if child.is_file():
            yield child


def iter_directories(directory: Path) -> Iterator[Path]:
    """Yield sub-directories of ``directory`` in listing order."""
    for child in directory.iterdir():
        if child.is_dir():
            yield child
