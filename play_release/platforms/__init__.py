"""Platform integration package."""

from __future__ import annotations

from .base import (
    ChangelogEntry,
    EditSession,
    ImageSlot,
    ImageUpload,
    ListingResource,
    PublishSummary,
    RemoteEditService,
    SlotKind,
    TrackUpdate,
)

__all__ = [
    "ChangelogEntry",
    "EditSession",
    "ImageSlot",
    "ImageUpload",
    "ListingResource",
    "PublishSummary",
    "RemoteEditService",
    "SlotKind",
    "TrackUpdate",
]
