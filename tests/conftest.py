"""Shared test doubles."""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Iterable

import pytest

from play_release.errors import TransactionError
from play_release.platforms import (
    ChangelogEntry,
    EditSession,
    ImageUpload,
    ListingResource,
    TrackUpdate,
)


class RecordingService:
    """In-memory edit service that records every call in order."""

    def __init__(
        self,
        *,
        version_codes: Iterable[int] = (42,),
        fail_on: str | None = None,
        tracks: dict[str, list[int]] | None = None,
    ) -> None:
        self.calls: list[tuple[str, tuple[object, ...]]] = []
        self._version_codes = iter(version_codes)
        self.fail_on = fail_on
        self.tracks = dict(tracks or {})

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def args_for(self, name: str) -> list[tuple[object, ...]]:
        return [args for call, args in self.calls if call == name]

    def _record(self, name: str, *args: object) -> None:
        self.calls.append((name, args))
        if name == self.fail_on:
            raise TransactionError(f"{name} failed")

    def create_edit(self, package_name: str) -> EditSession:
        self._record("createEdit", package_name)
        return EditSession(edit_id="edit-1", expiry="1700000000")

    def get_track(self, package_name: str, edit_id: str, track: str) -> list[int]:
        self._record("getTrack", track)
        return list(self.tracks.get(track, []))

    def update_track(self, package_name: str, edit_id: str, update: TrackUpdate) -> TrackUpdate:
        self._record("updateTrack", update)
        self.tracks[update.track] = list(update.version_codes)
        return update

    def upload_artifact(
        self, package_name: str, edit_id: str, stream: BinaryIO, *, media_type: str
    ) -> int:
        self._record("uploadArtifact", stream.read(), media_type)
        return next(self._version_codes)

    def patch_listing(self, package_name: str, edit_id: str, listing: ListingResource) -> None:
        self._record("patchListing", listing)

    def patch_changelog(self, package_name: str, edit_id: str, entry: ChangelogEntry) -> None:
        self._record("patchChangelog", entry)

    def upload_image(
        self, package_name: str, edit_id: str, image: ImageUpload, content: bytes
    ) -> str:
        self._record("uploadImage", image, content)
        return f"image-{len(self.calls)}"

    def commit(self, package_name: str, edit_id: str) -> None:
        self._record("commit", edit_id)

    def abort(self, package_name: str, edit_id: str) -> None:
        self._record("abort", edit_id)


@pytest.fixture
def service() -> RecordingService:
    return RecordingService()


@pytest.fixture
def artifact(tmp_path: Path) -> Path:
    path = tmp_path / "app-release.apk"
    path.write_bytes(b"apk-bytes")
    return path
