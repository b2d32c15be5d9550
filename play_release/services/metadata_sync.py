"""Synchronise one language of the fastlane-style metadata tree with an edit."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Collection

from ..errors import MetadataReadError
from ..platforms import (
    ChangelogEntry,
    ImageSlot,
    ImageUpload,
    ListingResource,
    RemoteEditService,
)
from ..utils.file_helper import iter_files, read_optional_text, read_text
from ..utils.logging import get_logger

from .image_resolver import IMAGES_DIRNAME, has_image_extension, resolve_images
from .version_resolver import resolve_version_code

LOGGER = get_logger(__name__)

LISTING_FILES = {
    "full_description": "full_description.txt",
    "short_description": "short_description.txt",
    "title": "title.txt",
    "video": "video.txt",
}
CHANGELOG_DIRNAME = "changelog"


@dataclass(slots=True)
class SyncReport:
    """What a single language sync sent and what it skipped."""

    language: str
    listing_fields: list[str] = field(default_factory=list)
    changelogs_applied: int = 0
    images_uploaded: int = 0
    skipped: list[str] = field(default_factory=list)


class MetadataSynchronizer:
    """Turns a ``metadata/<language>/`` directory into listing, changelog and image calls."""

    def __init__(
        self,
        service: RemoteEditService,
        package_name: str,
        *,
        fallback_version: int | None = None,
        release_version_codes: Collection[int] | None = None,
    ) -> None:
        self._service = service
        self._package_name = package_name
        self._fallback_version = fallback_version
        self._release_codes = None if release_version_codes is None else frozenset(release_version_codes)

    def is_released(self, version_code: int) -> bool:
        """Whether notes for ``version_code`` can reach a release of this edit."""
        return self._release_codes is None or version_code in self._release_codes

    def sync(self, language: str, language_dir: Path, edit_id: str) -> SyncReport:
        """Patch the listing, then changelogs, then images for ``language``.

        Unreadable items are logged and skipped. A failed remote call is
        raised and ends the sync.
        """
        report = SyncReport(language=language)

        listing = self.build_listing(language, language_dir, report)
        LOGGER.info(
            "Patching listing",
            extra={"event": "metadata.listing", "language": language, "fields": listing.populated_fields()},
        )
        self._service.patch_listing(self._package_name, edit_id, listing)
        report.listing_fields = listing.populated_fields()

        for entry in self._collect_changelogs(language, language_dir, report):
            LOGGER.info(
                "Applying changelog",
                extra={"event": "metadata.changelog", "language": language, "version_code": entry.version_code},
            )
            self._service.patch_changelog(self._package_name, edit_id, entry)
            report.changelogs_applied += 1

        for slot in ImageSlot:
            for path in self._slot_images(language, language_dir, slot, report):
                if self._upload_image(ImageUpload(language, slot, path), edit_id, report):
                    report.images_uploaded += 1

        return report

    def build_listing(
        self, language: str, language_dir: Path, report: SyncReport | None = None
    ) -> ListingResource:
        listing = ListingResource(language=language)
        for attribute, file_name in LISTING_FILES.items():
            path = language_dir / file_name
            try:
                value = self._read_listing_field(path)
            except MetadataReadError as exc:
                LOGGER.warning(
                    "Skipping unreadable listing field",
                    extra={"event": "metadata.skip", "language": language, "reason": str(exc)},
                )
                if report is not None:
                    report.skipped.append(str(path))
                continue
            if value is not None:
                setattr(listing, attribute, value)
        return listing

    def _read_listing_field(self, path: Path) -> str | None:
        try:
            return read_optional_text(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise MetadataReadError(
                "Listing file could not be read", details={"path": str(path), "reason": str(exc)}
            ) from exc

    def _collect_changelogs(
        self, language: str, language_dir: Path, report: SyncReport
    ) -> list[ChangelogEntry]:
        entries: list[ChangelogEntry] = []
        changelog_dir = language_dir / CHANGELOG_DIRNAME
        if not changelog_dir.is_dir():
            LOGGER.debug(
                "No changelog directory",
                extra={"event": "metadata.changelog", "language": language, "path": str(changelog_dir)},
            )
            return entries

        try:
            paths = self._list(changelog_dir, lambda: list(iter_files(changelog_dir)))
        except MetadataReadError as exc:
            self._skip(language, changelog_dir, exc, report)
            return entries

        for path in paths:
            try:
                entry = self.read_changelog(language, path)
            except MetadataReadError as exc:
                self._skip(language, path, exc, report)
                continue
            if not self.is_released(entry.version_code):
                self._skip(
                    language,
                    path,
                    MetadataReadError(
                        "Changelog version is not part of this release",
                        details={"path": str(path), "version_code": entry.version_code},
                    ),
                    report,
                )
                continue
            entries.append(entry)
        return entries

    def _slot_images(
        self, language: str, language_dir: Path, slot: ImageSlot, report: SyncReport
    ) -> list[Path]:
        location = language_dir / IMAGES_DIRNAME / slot.value
        try:
            return self._list(location, lambda: list(resolve_images(language_dir, slot)))
        except MetadataReadError as exc:
            self._skip(language, location, exc, report)
            return []

    @staticmethod
    def _list(location: Path, listing: Callable[[], list[Path]]) -> list[Path]:
        try:
            return listing()
        except OSError as exc:
            raise MetadataReadError(
                "Directory could not be listed", details={"path": str(location), "reason": str(exc)}
            ) from exc

    @staticmethod
    def _skip(language: str, path: Path, exc: MetadataReadError, report: SyncReport) -> None:
        LOGGER.warning(
            "Skipping %s",
            path.name,
            extra={"event": "metadata.skip", "language": language, "reason": str(exc)},
        )
        report.skipped.append(str(path))

    def read_changelog(self, language: str, path: Path) -> ChangelogEntry:
        """Build an entry for ``path``, or raise ``MetadataReadError``."""
        version_code = resolve_version_code(path.name, self._fallback_version)
        if version_code is None:
            raise MetadataReadError(
                "No version code in changelog name and no artifact uploaded",
                details={"path": str(path)},
            )
        try:
            text = read_text(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise MetadataReadError(
                "Changelog could not be read", details={"path": str(path), "reason": str(exc)}
            ) from exc
        return ChangelogEntry(version_code=version_code, language=language, text=text)

    def _upload_image(self, image: ImageUpload, edit_id: str, report: SyncReport) -> bool:
        if not has_image_extension(image.path):
            LOGGER.debug(
                "Ignoring non-image file",
                extra={"event": "metadata.skip", "language": image.language, "path": str(image.path)},
            )
            return False
        try:
            content = image.path.read_bytes()
        except OSError as exc:
            LOGGER.warning(
                "Skipping unreadable image",
                extra={
                    "event": "metadata.skip",
                    "language": image.language,
                    "path": str(image.path),
                    "reason": str(exc),
                },
            )
            report.skipped.append(str(image.path))
            return False

        image_id = self._service.upload_image(self._package_name, edit_id, image, content)
        LOGGER.info(
            "Uploaded image",
            extra={
                "event": "metadata.image",
                "language": image.language,
                "slot": image.slot.value,
                "path": str(image.path),
                "image_id": image_id,
            },
        )
        return True


__all__ = ["LISTING_FILES", "MetadataSynchronizer", "SyncReport"]
