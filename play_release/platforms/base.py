"""Domain types and the remote edit contract used by the publish pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Protocol, Sequence

from ..errors import UsageError

ROLLOUT_TRACK = "rollout"
PRODUCTION_TRACK = "production"
APK_MEDIA_TYPE = "application/vnd.android.package-archive"
BUNDLE_MEDIA_TYPE = "application/octet-stream"
STANDARD_TRACKS = ("internal", "alpha", "beta", PRODUCTION_TRACK, ROLLOUT_TRACK)


def release_track(track: str) -> str:
    """Name of the store track that holds ``track``'s releases.

    A staged rollout is an in-progress release on the production track, so
    ``rollout`` and ``production`` share one track.
    """
    return PRODUCTION_TRACK if track == ROLLOUT_TRACK else track


@dataclass(slots=True, frozen=True)
class EditSession:
    """An open edit transaction on the remote service."""

    edit_id: str
    expiry: str | None = None


@dataclass(slots=True, frozen=True)
class TrackUpdate:
    """Assignment of version codes to a release track."""

    track: str
    version_codes: tuple[int, ...]
    user_fraction: float | None = None

    @classmethod
    def build(
        cls,
        track: str,
        version_codes: Sequence[int],
        user_fraction: float | None = None,
    ) -> "TrackUpdate":
        """Create an update, validating the fraction for rollouts and dropping it elsewhere."""
        if not track:
            raise UsageError("Track name must not be empty")
        codes: list[int] = []
        for code in map(int, version_codes):
            if code not in codes:
                codes.append(code)
        if track != ROLLOUT_TRACK:
            return cls(track=track, version_codes=tuple(codes))
        validate_user_fraction(user_fraction)
        return cls(track=track, version_codes=tuple(codes), user_fraction=float(user_fraction))

    @property
    def is_rollout(self) -> bool:
        return self.track == ROLLOUT_TRACK

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "track": self.track,
            "versionCodes": list(self.version_codes),
        }
        if self.is_rollout and self.user_fraction is not None:
            payload["userFraction"] = self.user_fraction
        return payload


def validate_user_fraction(user_fraction: float | None) -> None:
    """Raise ``UsageError`` unless the fraction lies in (0, 1]."""
    if user_fraction is None:
        raise UsageError("A user fraction is required for the rollout track")
    if not 0 < float(user_fraction) <= 1:
        raise UsageError(f"User fraction must be in (0, 1], got {user_fraction}")


@dataclass(slots=True)
class ListingResource:
    """Localized store listing; ``None`` fields are left out of the patch."""

    language: str
    full_description: str | None = None
    short_description: str | None = None
    title: str | None = None
    video: str | None = None

    _WIRE_NAMES = {
        "full_description": "fullDescription",
        "short_description": "shortDescription",
        "title": "title",
        "video": "video",
    }

    def populated_fields(self) -> list[str]:
        return [name for name in self._WIRE_NAMES if getattr(self, name) is not None]

    def to_payload(self) -> dict[str, str]:
        payload = {"language": self.language}
        for name, wire_name in self._WIRE_NAMES.items():
            value = getattr(self, name)
            if value is not None:
                payload[wire_name] = value
        return payload


@dataclass(slots=True, frozen=True)
class ChangelogEntry:
    """Release notes for one version code in one language."""

    version_code: int
    language: str
    text: str


class SlotKind(Enum):
    SINGLETON = "singleton"
    REPEATING = "repeating"


class ImageSlot(str, Enum):
    """Store listing image types, tagged with how many files each accepts."""

    FEATURE_GRAPHIC = "featureGraphic"
    ICON = "icon"
    PROMO_GRAPHIC = "promoGraphic"
    TV_BANNER = "tvBanner"
    PHONE_SCREENSHOTS = "phoneScreenshots"
    SEVEN_INCH_SCREENSHOTS = "sevenInchScreenshots"
    TEN_INCH_SCREENSHOTS = "tenInchScreenshots"
    TV_SCREENSHOTS = "tvScreenshots"
    WEAR_SCREENSHOTS = "wearScreenshots"

    @property
    def kind(self) -> SlotKind:
        return _SLOT_KINDS[self]


_SLOT_KINDS = {
    ImageSlot.FEATURE_GRAPHIC: SlotKind.SINGLETON,
    ImageSlot.ICON: SlotKind.SINGLETON,
    ImageSlot.PROMO_GRAPHIC: SlotKind.SINGLETON,
    ImageSlot.TV_BANNER: SlotKind.SINGLETON,
    ImageSlot.PHONE_SCREENSHOTS: SlotKind.REPEATING,
    ImageSlot.SEVEN_INCH_SCREENSHOTS: SlotKind.REPEATING,
    ImageSlot.TEN_INCH_SCREENSHOTS: SlotKind.REPEATING,
    ImageSlot.TV_SCREENSHOTS: SlotKind.REPEATING,
    ImageSlot.WEAR_SCREENSHOTS: SlotKind.REPEATING,
}


@dataclass(slots=True, frozen=True)
class ImageUpload:
    """A resolved listing image ready to be sent."""

    language: str
    slot: ImageSlot
    path: Path


@dataclass(slots=True)
class PublishSummary:
    """Outcome of a completed pipeline run."""

    package_name: str
    edit_id: str
    track: str
    version_codes: list[int] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    listings_patched: int = 0
    changelogs_applied: int = 0
    images_uploaded: int = 0
    committed: bool = False


class RemoteEditService(Protocol):
    """Operations offered by the app store's edit API."""

    def create_edit(self, package_name: str) -> EditSession:
        """Open a new edit and return its session."""

    def get_track(self, package_name: str, edit_id: str, track: str) -> list[int]:
        """Return the version codes currently assigned to ``track``."""

    def update_track(self, package_name: str, edit_id: str, update: TrackUpdate) -> TrackUpdate:
        """Replace the track assignment and return what the service recorded."""

    def upload_artifact(
        self, package_name: str, edit_id: str, stream: BinaryIO, *, media_type: str
    ) -> int:
        """Upload a binary and return the version code it was assigned."""

    def patch_listing(self, package_name: str, edit_id: str, listing: ListingResource) -> None:
        """Patch the listing fields present in ``listing``."""

    def patch_changelog(self, package_name: str, edit_id: str, entry: ChangelogEntry) -> None:
        """Attach release notes to a version code."""

    def upload_image(
        self, package_name: str, edit_id: str, image: ImageUpload, content: bytes
    ) -> str:
        """Upload a listing image and return its remote identifier."""

    def commit(self, package_name: str, edit_id: str) -> None:
        """Finalize the edit."""

    def abort(self, package_name: str, edit_id: str) -> None:
        """Discard the edit."""


__all__ = [
    "APK_MEDIA_TYPE",
    "BUNDLE_MEDIA_TYPE",
    "ChangelogEntry",
    "EditSession",
    "ImageSlot",
    "ImageUpload",
    "ListingResource",
    "PublishSummary",
    "ROLLOUT_TRACK",
    "RemoteEditService",
    "STANDARD_TRACKS",
    "SlotKind",
    "TrackUpdate",
    "validate_user_fraction",
]
