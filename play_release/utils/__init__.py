"""Utility exports."""

from .file_helper import (
    ensure_parent,
    iter_directories,
    iter_files,
    read_optional_text,
    read_text,
    write_text,
)
from .logging import configure_logging, get_logger

__all__ = [
    "ensure_parent",
    "iter_directories",
    "iter_files",
    "read_optional_text",
    "read_text",
    "write_text",
    "configure_logging",
    "get_logger",
]
