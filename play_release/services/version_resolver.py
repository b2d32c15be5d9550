"""Derive version codes from changelog file names."""

from __future__ import annotations

import re
from pathlib import PurePath

_VERSION_PATTERN = re.compile(r"[0-9]+")


def resolve_version_code(file_name: str, fallback: int | None) -> int | None:
    """Return the integer encoded in ``file_name``'s stem, else ``fallback``.

    ``"42.txt"`` resolves to 42; names such as ``"notes.txt"`` or ``""`` return
    ``fallback`` unchanged.
    """
    stem = PurePath(file_name).stem if file_name else ""
    if _VERSION_PATTERN.fullmatch(stem):
        return int(stem)
    return fallback


__all__ = ["resolve_version_code"]
