"""Helpers for loading configuration."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_NAME = "play-release.toml"
CONFIG_ENV_VAR = "PLAY_RELEASE_CONFIG"
DEFAULT_BASE_URL = "https://androidpublisher.googleapis.com"


@dataclass(slots=True)
class AuthSettings:
    key_file: Path | None
    env_prefix: str = "PLAY_"
    token_timeout: float = 30.0
    cache_token: bool = True


@dataclass(slots=True)
class ApiSettings:
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 120.0


@dataclass(slots=True)
class PathSettings:
    state_dir: Path

    @property
    def runs_dir(self) -> Path:
        return self.state_dir / "runs"

    @property
    def token_cache(self) -> Path:
        return self.state_dir / "token.json"


@dataclass(slots=True)
class PublishSettings:
    track: str = "internal"
    user_fraction: float | None = None
    metadata_root: Path | None = None
    changelog_language: str = "en-US"


@dataclass(slots=True)
class AppConfig:
    auth: AuthSettings
    api: ApiSettings
    paths: PathSettings
    publish: PublishSettings
    source: Path | None = None


def _to_path(value: str | None, *, base: Path) -> Path | None:
    if not value:
        return None
    candidate = Path(value).expanduser()
    return candidate if candidate.is_absolute() else base / candidate


def _config_path(explicit: str | os.PathLike[str] | None, cwd: Path) -> tuple[Path, bool]:
    """Return the config path and whether the caller insisted on it."""
    if explicit:
        return Path(explicit), True
    env_value = os.environ.get(CONFIG_ENV_VAR)
    if env_value:
        return Path(env_value), True
    return cwd / DEFAULT_CONFIG_NAME, False


def _load_toml(path: Path) -> dict[str, Any]:
    with path.open("rb") as fp:
        return tomllib.load(fp)


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


def load_config(
    config_path: str | os.PathLike[str] | None = None,
    *,
    cwd: Path | None = None,
) -> AppConfig:
    """Load settings from TOML, falling back to defaults when no file is configured.

    Relative paths in the file resolve against the file's directory.
    """
    working_dir = cwd or Path.cwd()
    path, required = _config_path(config_path, working_dir)
    if not path.is_absolute():
        path = working_dir / path

    data: dict[str, Any] = {}
    source: Path | None = None
    if path.exists():
        data = _load_toml(path)
        source = path
    elif required:
        raise FileNotFoundError(f"Config file not found: {path}")

    base = path.parent if source else working_dir
    auth_section = data.get("auth", {})
    api_section = data.get("api", {})
    paths_section = data.get("paths", {})
    publish_section = data.get("publish", {})

    auth = AuthSettings(
        key_file=_to_path(auth_section.get("key_file"), base=base),
        env_prefix=str(auth_section.get("env_prefix", "PLAY_")),
        token_timeout=float(auth_section.get("token_timeout", 30)),
        cache_token=bool(auth_section.get("cache_token", True)),
    )
    api = ApiSettings(
        base_url=str(api_section.get("base_url", DEFAULT_BASE_URL)),
        timeout=float(api_section.get("timeout", 120)),
    )
    paths = PathSettings(
        state_dir=_to_path(paths_section.get("state_dir"), base=base) or base / ".play-release",
    )
    publish = PublishSettings(
        track=str(publish_section.get("track", "internal")),
        user_fraction=_optional_float(publish_section.get("user_fraction")),
        metadata_root=_to_path(publish_section.get("metadata_root"), base=base),
        changelog_language=str(publish_section.get("changelog_language", "en-US")),
    )
    return AppConfig(auth=auth, api=api, paths=paths, publish=publish, source=source)


__all__ = [
    "ApiSettings",
    "AppConfig",
    "AuthSettings",
    "PathSettings",
    "PublishSettings",
    "load_config",
]
