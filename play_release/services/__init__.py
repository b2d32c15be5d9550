"""Filesystem-facing services feeding the publish pipeline."""

from __future__ import annotations

from .artifacts import Artifact, read_package_name, resolve_artifact, resolve_artifacts
from .image_resolver import resolve_images
from .metadata_sync import MetadataSynchronizer, SyncReport
from .version_resolver import resolve_version_code

__all__ = [
    "Artifact",
    "MetadataSynchronizer",
    "SyncReport",
    "read_package_name",
    "resolve_artifact",
    "resolve_artifacts",
    "resolve_images",
    "resolve_version_code",
]
