"""Resolve artifact arguments to files on disk."""

from __future__ import annotations

import glob
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from pyaxmlparser import APK

from ..errors import ResourceNotFoundError, UsageError
from ..platforms.base import APK_MEDIA_TYPE, BUNDLE_MEDIA_TYPE


@dataclass(slots=True, frozen=True)
class Artifact:
    """An installable binary headed for the edit."""

    path: Path

    @property
    def is_bundle(self) -> bool:
        return self.path.suffix.lower() == ".aab"

    @property
    def media_type(self) -> str:
        return BUNDLE_MEDIA_TYPE if self.is_bundle else APK_MEDIA_TYPE


def resolve_artifact(pattern: str | Path) -> Artifact:
    """Return the first file matching ``pattern``.

    Quotes wrapped around the pattern by CI systems are stripped. A literal
    path that exists is used as is.
    """
    text = str(pattern).replace('"', "").strip()
    if not text:
        raise ResourceNotFoundError("Empty artifact path")

    literal = Path(text).expanduser()
    if literal.is_file():
        return Artifact(literal)

    for match in sorted(glob.glob(str(literal), recursive=True)):
        candidate = Path(match)
        if candidate.is_file():
            return Artifact(candidate)

    raise ResourceNotFoundError("Artifact not found", details={"pattern": text})


def resolve_artifacts(patterns: list[str] | tuple[str, ...]) -> list[Artifact]:
    return [resolve_artifact(pattern) for pattern in patterns]



def read_package_name(artifacts: Sequence[Artifact]) -> str:
    """Return the package name declared in the manifest of the first APK.

    Bundles are skipped; their manifest is not in binary XML form.
    """
    apk = next((artifact for artifact in artifacts if not artifact.is_bundle), None)
    if apk is None:
        raise UsageError("A package name is required when no APK artifact is given")
    try:
        package_name = APK(str(apk.path)).package
    except Exception as exc:
        raise ResourceNotFoundError(
            "Package name could not be read from the APK",
            details={"path": str(apk.path), "reason": str(exc)},
        ) from exc
    if not package_name:
        raise ResourceNotFoundError("APK manifest declares no package", details={"path": str(apk.path)})
    return str(package_name)


__all__ = ["Artifact", "read_package_name", "resolve_artifact", "resolve_artifacts"]
