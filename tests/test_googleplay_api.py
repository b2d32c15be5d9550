"""Tests for the Google Play edit service using a fake HTTP session."""

from __future__ import annotations

import io
import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
import requests

from play_release.app.pipeline import PromotePipeline
from play_release.errors import TransactionError
from play_release.platforms import ChangelogEntry, ImageSlot, ImageUpload, ListingResource, TrackUpdate
from play_release.platforms.base import APK_MEDIA_TYPE, BUNDLE_MEDIA_TYPE
from play_release.platforms.googleplay import AccessToken, GooglePlayEditService

BASE = "https://play.test"
EDITS = f"{BASE}/androidpublisher/v3/applications/com.example.app/edits"
UPLOADS = f"{BASE}/upload/androidpublisher/v3/applications/com.example.app/edits"


class FakeResponse:
    def __init__(self, payload: Any = None, status: int = 200) -> None:
        self.status_code = status
        self.text = "" if payload is None else json.dumps(payload)
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.text)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)  # type: ignore[arg-type]


class FakeSession:
    def __init__(self, responses: list[FakeResponse] | None = None) -> None:
        self.responses = list(responses or [])
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        return self.responses.pop(0) if self.responses else FakeResponse()


class StaticCredentials:
    def __init__(self) -> None:
        self.calls = 0

    def get_token(self, *, force_refresh: bool = False) -> AccessToken:
        self.calls += 1
        return AccessToken(value="token-123", expires_at=datetime.now(tz=UTC) + timedelta(hours=1))


def _service(session: FakeSession) -> GooglePlayEditService:
    return GooglePlayEditService(StaticCredentials(), session=session, base_url=BASE + "/")  # type: ignore[arg-type]


def test_create_edit_returns_session() -> None:
    session = FakeSession([FakeResponse({"id": "abc", "expiryTimeSeconds": "1700000000"})])

    edit = _service(session).create_edit("com.example.app")

    assert (edit.edit_id, edit.expiry) == ("abc", "1700000000")
    request = session.requests[0]
    assert (request["method"], request["url"]) == ("POST", EDITS)
    assert request["headers"]["Authorization"] == "Bearer token-123"


def test_create_edit_without_id_fails() -> None:
    with pytest.raises(TransactionError):
        _service(FakeSession([FakeResponse({})])).create_edit("com.example.app")


@pytest.mark.parametrize(
    ("media_type", "collection"),
    [(APK_MEDIA_TYPE, "apks"), (BUNDLE_MEDIA_TYPE, "bundles")],
)
def test_upload_artifact_targets_collection(media_type: str, collection: str) -> None:
    session = FakeSession([FakeResponse({"versionCode": 77})])
    stream = io.BytesIO(b"binary")

    code = _service(session).upload_artifact("com.example.app", "e1", stream, media_type=media_type)

    assert code == 77
    request = session.requests[0]
    assert request["url"] == f"{UPLOADS}/e1/{collection}"
    assert request["params"] == {"uploadType": "media"}
    assert request["headers"]["Content-Type"] == media_type
    assert request["data"] is stream


def test_rollout_maps_to_in_progress_production_release() -> None:
    session = FakeSession()
    update = TrackUpdate.build("rollout", [5], 0.1)

    _service(session).update_track("com.example.app", "e1", update)

    request = session.requests[0]
    assert (request["method"], request["url"]) == ("PUT", f"{EDITS}/e1/tracks/production")
    assert request["json"] == {
        "track": "production",
        "releases": [{"versionCodes": ["5"], "status": "inProgress", "userFraction": 0.1}],
    }


def test_cleared_track_sends_no_release() -> None:
    session = FakeSession()

    _service(session).update_track("com.example.app", "e1", TrackUpdate(track="beta", version_codes=()))

    assert session.requests[0]["json"] == {"track": "beta", "releases": []}


def test_changelogs_travel_with_track_release() -> None:
    session = FakeSession()
    service = _service(session)

    service.patch_changelog("com.example.app", "e1", ChangelogEntry(9, "en-US", "Fixes"))
    assert session.requests == []

    service.update_track("com.example.app", "e1", TrackUpdate.build("beta", [9]))
    service.patch_changelog("com.example.app", "e1", ChangelogEntry(9, "de-DE", "Korrekturen"))

    assert len(session.requests) == 2
    assert session.requests[0]["json"]["releases"][0]["releaseNotes"] == [
        {"language": "en-US", "text": "Fixes"}
    ]
    assert session.requests[1]["json"]["releases"][0]["releaseNotes"] == [
        {"language": "en-US", "text": "Fixes"},
        {"language": "de-DE", "text": "Korrekturen"},
    ]


def test_patch_listing_sends_populated_fields() -> None:
    session = FakeSession()
    listing = ListingResource(language="en-US", title="My App", short_description="Short")

    _service(session).patch_listing("com.example.app", "e1", listing)

    request = session.requests[0]
    assert (request["method"], request["url"]) == ("PATCH", f"{EDITS}/e1/listings/en-US")
    assert request["json"] == {"language": "en-US", "title": "My App", "shortDescription": "Short"}


def test_upload_image_uses_slot_path(tmp_path: Path) -> None:
    session = FakeSession([FakeResponse({"image": {"id": "img-1"}})])
    image = ImageUpload(language="en-US", slot=ImageSlot.PHONE_SCREENSHOTS, path=tmp_path / "01.jpg")

    image_id = _service(session).upload_image("com.example.app", "e1", image, b"jpeg")

    assert image_id == "img-1"
    request = session.requests[0]
    assert request["url"] == f"{UPLOADS}/e1/listings/en-US/phoneScreenshots"
    assert request["headers"]["Content-Type"] == "image/jpeg"
    assert request["data"] == b"jpeg"


def test_get_track_collects_version_codes() -> None:
    payload = {"track": "beta", "releases": [{"versionCodes": ["3", "4"]}, {"versionCodes": ["4"]}]}
    session = FakeSession([FakeResponse(payload)])

    assert _service(session).get_track("com.example.app", "e1", "beta") == [3, 4]
    assert session.requests[0]["method"] == "GET"


def test_commit_and_abort_urls() -> None:
    session = FakeSession()
    service = _service(session)

    service.commit("com.example.app", "e1")
    service.abort("com.example.app", "e2")

    assert [(r["method"], r["url"]) for r in session.requests] == [
        ("POST", f"{EDITS}/e1:commit"),
        ("DELETE", f"{EDITS}/e2"),
    ]


def test_http_error_becomes_transaction_error() -> None:
    session = FakeSession([FakeResponse({"error": {"message": "APK specifies a version code that has already been used."}}, status=403)])

    with pytest.raises(TransactionError) as excinfo:
        _service(session).commit("com.example.app", "e1")

    assert excinfo.value.details["status"] == 403
    assert "already been used" in excinfo.value.details["response"]


def test_connection_error_becomes_transaction_error() -> None:
    class BrokenSession(FakeSession):
        def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
            raise requests.ConnectionError("unreachable")

    with pytest.raises(TransactionError, match="createEdit request failed"):
        _service(BrokenSession()).create_edit("com.example.app")


def test_rollout_track_reads_only_in_progress_releases() -> None:
    payload = {
        "track": "production",
        "releases": [
            {"versionCodes": ["3"], "status": "completed"},
            {"versionCodes": ["7"], "status": "inProgress", "userFraction": 0.2},
        ],
    }
    session = FakeSession([FakeResponse(payload), FakeResponse(payload)])
    service = _service(session)

    assert service.get_track("com.example.app", "e1", "rollout") == [7]
    assert service.get_track("com.example.app", "e1", "production") == [3]
    assert {r["url"] for r in session.requests} == {f"{EDITS}/e1/tracks/production"}


def test_completing_a_rollout_keeps_the_promoted_release() -> None:
    track = {
        "track": "production",
        "releases": [
            {"versionCodes": ["3"], "status": "completed"},
            {"versionCodes": ["7"], "status": "inProgress", "userFraction": 0.2},
        ],
    }
    session = FakeSession([FakeResponse({"id": "e1"}), FakeResponse(track)])

    summary = PromotePipeline(_service(session)).run("com.example.app", "rollout", "production")

    puts = [r for r in session.requests if r["method"] == "PUT"]
    assert [r["json"] for r in puts] == [
        {"track": "production", "releases": [{"versionCodes": ["7"], "status": "completed"}]}
    ]
    assert session.requests[-1]["url"] == f"{EDITS}/e1:commit"
    assert summary.version_codes == [7]


def test_malformed_version_code_is_a_transaction_error() -> None:
    session = FakeSession([FakeResponse({"releases": [{"versionCodes": ["abc"]}]})])

    with pytest.raises(TransactionError, match="malformed version code"):
        _service(session).get_track("com.example.app", "e1", "beta")


def test_commit_warns_about_notes_no_release_carries(caplog: pytest.LogCaptureFixture) -> None:
    session = FakeSession()
    service = _service(session)

    service.patch_changelog("com.example.app", "e1", ChangelogEntry(41, "en-US", "Old notes"))
    service.update_track("com.example.app", "e1", TrackUpdate.build("beta", [42]))
    with caplog.at_level(logging.WARNING, logger="play_release.platforms.googleplay.api"):
        service.commit("com.example.app", "e1")

    assert "releaseNotes" not in session.requests[0]["json"]["releases"][0]
    assert any(getattr(record, "version_code", None) == 41 for record in caplog.records)
