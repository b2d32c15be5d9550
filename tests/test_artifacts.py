from __future__ import annotations

from pathlib import Path

import pytest

from play_release.errors import ResourceNotFoundError, UsageError
from play_release.platforms.base import APK_MEDIA_TYPE, BUNDLE_MEDIA_TYPE
from play_release.services import artifacts as artifacts_module
from play_release.services.artifacts import Artifact, read_package_name, resolve_artifact, resolve_artifacts


def test_literal_path_is_used(tmp_path: Path) -> None:
    apk = tmp_path / "app.apk"
    apk.write_bytes(b"")

    artifact = resolve_artifact(apk)

    assert artifact == Artifact(apk)
    assert artifact.media_type == APK_MEDIA_TYPE
    assert not artifact.is_bundle


def test_quoted_glob_picks_first_sorted_match(tmp_path: Path) -> None:
    (tmp_path / "b-release.aab").write_bytes(b"")
    (tmp_path / "a-release.aab").write_bytes(b"")

    artifact = resolve_artifact(f'"{tmp_path}/*-release.aab"')

    assert artifact.path.name == "a-release.aab"
    assert artifact.is_bundle
    assert artifact.media_type == BUNDLE_MEDIA_TYPE


def test_glob_skips_directories(tmp_path: Path) -> None:
    (tmp_path / "outputs.apk").mkdir()
    (tmp_path / "real.apk").write_bytes(b"")

    assert resolve_artifact(tmp_path / "*.apk").path.name == "real.apk"


@pytest.mark.parametrize("pattern", ["", '""', "missing.apk"])
def test_unresolvable_pattern_raises(tmp_path: Path, pattern: str) -> None:
    with pytest.raises(ResourceNotFoundError):
        resolve_artifact(str(tmp_path / pattern) if pattern == "missing.apk" else pattern)


def test_resolve_artifacts_keeps_order(tmp_path: Path) -> None:
    first = tmp_path / "z.apk"
    second = tmp_path / "a.aab"
    first.write_bytes(b"")
    second.write_bytes(b"")

    assert [artifact.path for artifact in resolve_artifacts([str(first), str(second)])] == [first, second]


class FakeApk:
    packages: dict[str, str] = {}

    def __init__(self, path: str) -> None:
        if path not in self.packages:
            raise ValueError("not an APK")
        self.package = self.packages[path]


def test_read_package_name_uses_first_apk(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    first = tmp_path / "first.apk"
    second = tmp_path / "second.apk"
    monkeypatch.setattr(FakeApk, "packages", {str(first): "com.example.first", str(second): "com.example.second"})
    monkeypatch.setattr(artifacts_module, "APK", FakeApk)

    artifacts = [Artifact(tmp_path / "app.aab"), Artifact(first), Artifact(second)]

    assert read_package_name(artifacts) == "com.example.first"


def test_read_package_name_requires_an_apk(tmp_path: Path) -> None:
    with pytest.raises(UsageError):
        read_package_name([Artifact(tmp_path / "app.aab")])


def test_unparseable_apk_is_reported(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(FakeApk, "packages", {})
    monkeypatch.setattr(artifacts_module, "APK", FakeApk)

    with pytest.raises(ResourceNotFoundError, match="Package name could not be read"):
        read_package_name([Artifact(tmp_path / "broken.apk")])
