"""Google Play Android Publisher (v3) implementation of the edit contract."""

from __future__ import annotations

import mimetypes
from typing import Any, BinaryIO, Mapping

import requests

from ...errors import TransactionError
from ..base import (
    BUNDLE_MEDIA_TYPE,
    PRODUCTION_TRACK,
    ROLLOUT_TRACK,
    release_track,
    ChangelogEntry,
    EditSession,
    ImageUpload,
    ListingResource,
    TrackUpdate,
)
from ...utils.logging import get_logger

from .credentials import GooglePlayCredentialStore

LOGGER = get_logger(__name__)

DEFAULT_BASE_URL = "https://androidpublisher.googleapis.com"
_API_PATH = "androidpublisher/v3/applications"
_UPLOAD_PATH = "upload/androidpublisher/v3/applications"
_IN_PROGRESS = "inProgress"
_COMPLETED = "completed"


class GooglePlayEditService:
    """Sends edit operations to Google Play over HTTPS.

    Release notes have no endpoint of their own in v3; they travel inside the
    track release that carries their version code. Changelogs patched before
    the track update are held until it happens, and ones patched afterwards
    cause the last track update of the edit to be sent again.
    """

    def __init__(
        self,
        credential_store: GooglePlayCredentialStore,
        *,
        session: requests.Session | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 120.0,
    ) -> None:
        self._credentials = credential_store
        self._session = session or requests.Session()
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._release_notes: dict[tuple[str, str], dict[int, dict[str, str]]] = {}
        self._last_tracks: dict[tuple[str, str], TrackUpdate] = {}
        self._released_codes: dict[tuple[str, str], set[int]] = {}

    def create_edit(self, package_name: str) -> EditSession:
        data = self._request("POST", self._edits_url(package_name), operation="createEdit", json={})
        edit_id = data.get("id")
        if not edit_id:
            raise TransactionError("Edit creation returned no id", details=data)
        return EditSession(edit_id=str(edit_id), expiry=data.get("expiryTimeSeconds"))

    def get_track(self, package_name: str, edit_id: str, track: str) -> list[int]:
        """Version codes currently assigned to ``track``.

        ``rollout`` reads the in-progress releases of production and
        ``production`` reads the rest, so the two never overlap.
        """
        url = self._edit_url(package_name, edit_id, "tracks", release_track(track))
        data = self._request("GET", url, operation="getTrack")
        codes: list[int] = []
        for release in data.get("releases") or []:
            if not _release_belongs_to(track, release):
                continue
            for code in release.get("versionCodes") or []:
                try:
                    value = int(code)
                except (TypeError, ValueError) as exc:
                    raise TransactionError(
                        "Track returned a malformed version code", details={"track": track, "code": code}
                    ) from exc
                if value not in codes:
                    codes.append(value)
        return codes

    def update_track(self, package_name: str, edit_id: str, update: TrackUpdate) -> TrackUpdate:
        api_track = release_track(update.track)
        body = {"track": api_track, "releases": []}
        if update.version_codes:
            body["releases"].append(self._build_release(package_name, edit_id, update))
        url = self._edit_url(package_name, edit_id, "tracks", api_track)
        self._request("PUT", url, operation="updateTrack", json=body)
        self._last_tracks[(package_name, edit_id)] = update
        self._released_codes.setdefault((package_name, edit_id), set()).update(update.version_codes)
        return update

    def upload_artifact(
        self, package_name: str, edit_id: str, stream: BinaryIO, *, media_type: str
    ) -> int:
        collection = "bundles" if media_type == BUNDLE_MEDIA_TYPE else "apks"
        url = self._edit_url(package_name, edit_id, collection, upload=True)
        data = self._request(
            "POST",
            url,
            operation="uploadArtifact",
            params={"uploadType": "media"},
            headers={"Content-Type": media_type},
            data=stream,
        )
        version_code = data.get("versionCode")
        if version_code is None:
            raise TransactionError("Upload returned no versionCode", details=data)
        return int(version_code)

    def patch_listing(self, package_name: str, edit_id: str, listing: ListingResource) -> None:
        url = self._edit_url(package_name, edit_id, "listings", listing.language)
        self._request("PATCH", url, operation="patchListing", json=listing.to_payload())

    def patch_changelog(self, package_name: str, edit_id: str, entry: ChangelogEntry) -> None:
        notes = self._release_notes.setdefault((package_name, edit_id), {})
        notes.setdefault(entry.version_code, {})[entry.language] = entry.text

        last = self._last_tracks.get((package_name, edit_id))
        if last is not None and entry.version_code in last.version_codes:
            LOGGER.debug(
                "Re-sending track with new release notes",
                extra={"event": "googleplay.release_notes", "track": last.track},
            )
            self.update_track(package_name, edit_id, last)

    def upload_image(
        self, package_name: str, edit_id: str, image: ImageUpload, content: bytes
    ) -> str:
        url = self._edit_url(
            package_name, edit_id, "listings", image.language, image.slot.value, upload=True
        )
        mime_type = mimetypes.guess_type(image.path.name)[0] or "image/png"
        data = self._request(
            "POST",
            url,
            operation="uploadImage",
            params={"uploadType": "media"},
            headers={"Content-Type": mime_type},
            data=content,
        )
        image_id = (data.get("image") or {}).get("id")
        if not image_id:
            raise TransactionError(
                "Image upload returned no id", details={"path": str(image.path), "response": data}
            )
        return str(image_id)

    def commit(self, package_name: str, edit_id: str) -> None:
        self._warn_undelivered_notes(package_name, edit_id)
        url = f"{self._edits_url(package_name)}/{edit_id}:commit"
        self._request("POST", url, operation="commit")
        self._forget(package_name, edit_id)

    def abort(self, package_name: str, edit_id: str) -> None:
        self._request("DELETE", self._edit_url(package_name, edit_id), operation="abort")
        self._forget(package_name, edit_id)

    def _build_release(self, package_name: str, edit_id: str, update: TrackUpdate) -> dict[str, Any]:
        release: dict[str, Any] = {
            "versionCodes": [str(code) for code in update.version_codes],
            "status": _IN_PROGRESS if update.is_rollout else _COMPLETED,
        }
        if update.is_rollout and update.user_fraction is not None:
            release["userFraction"] = update.user_fraction

        notes_by_version = self._release_notes.get((package_name, edit_id), {})
        notes: dict[str, str] = {}
        for code in update.version_codes:
            notes.update(notes_by_version.get(code, {}))
        if notes:
            release["releaseNotes"] = [
                {"language": language, "text": text} for language, text in notes.items()
            ]
        return release

    def _warn_undelivered_notes(self, package_name: str, edit_id: str) -> None:
        released = self._released_codes.get((package_name, edit_id), set())
        for code in self._release_notes.get((package_name, edit_id), {}):
            if code not in released:
                LOGGER.warning(
                    "Release notes for version %s were not sent: no track release carries it",
                    code,
                    extra={"event": "googleplay.release_notes", "version_code": code},
                )

    def _forget(self, package_name: str, edit_id: str) -> None:
        self._release_notes.pop((package_name, edit_id), None)
        self._last_tracks.pop((package_name, edit_id), None)
        self._released_codes.pop((package_name, edit_id), None)

    def _edits_url(self, package_name: str, *, upload: bool = False) -> str:
        prefix = _UPLOAD_PATH if upload else _API_PATH
        return f"{self._base_url}/{prefix}/{package_name}/edits"

    def _edit_url(self, package_name: str, edit_id: str, *parts: str, upload: bool = False) -> str:
        return "/".join([self._edits_url(package_name, upload=upload), edit_id, *parts])

    def _request(
        self,
        method: str,
        url: str,
        *,
        operation: str,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
        json: Any = None,
        data: Any = None,
    ) -> dict[str, Any]:
        token = self._credentials.get_token()
        merged_headers = {"Authorization": f"Bearer {token.value}", **(headers or {})}
        LOGGER.debug("Calling %s", operation, extra={"event": "googleplay.request", "method": method, "url": url})
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                headers=merged_headers,
                json=json,
                data=data,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise TransactionError(
                f"{operation} was rejected by Google Play",
                details={
                    "url": url,
                    "status": exc.response.status_code if exc.response is not None else None,
                    "response": exc.response.text[:500] if exc.response is not None else None,
                },
            ) from exc
        except requests.RequestException as exc:
            raise TransactionError(
                f"{operation} request failed", details={"url": url, "reason": str(exc)}
            ) from exc

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise TransactionError(
                f"{operation} returned an unreadable response",
                details={"url": url, "response": response.text[:200]},
            ) from exc
        return payload if isinstance(payload, dict) else {}


def _release_belongs_to(track: str, release: Mapping[str, Any]) -> bool:
    in_progress = release.get("status") == _IN_PROGRESS
    if track == ROLLOUT_TRACK:
        return in_progress
    if track == PRODUCTION_TRACK:
        return not in_progress
    return True


__all__ = ["DEFAULT_BASE_URL", "GooglePlayEditService"]
