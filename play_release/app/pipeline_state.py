"""Shared state for one pipeline run and the on-disk record of the last run."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from ..utils.file_helper import write_text


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _slugify(value: str) -> str:
    lowered = value.lower()
    safe = [ch if ch.isalnum() or ch in {"-", "_", "."} else "-" for ch in lowered]
    slug = "".join(safe).strip("-")
    return slug or "default"


@dataclass(slots=True)
class PipelineState:
    """Values carried from one step to the next, plus per-step status.

    Owned by a single pipeline and mutated only between steps.
    """

    package_name: str
    steps: dict[str, str] = field(default_factory=dict)
    edit_id: str | None = None
    edit_expiry: str | None = None
    last_uploaded_version_code: int | None = None
    uploaded_version_codes: list[int] = field(default_factory=list)
    committed: bool = False
    run_id: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    STATUS_PENDING = "pending"
    STATUS_RUNNING = "running"
    STATUS_COMPLETED = "completed"
    STATUS_FAILED = "failed"

    @classmethod
    def initialize(cls, package_name: str, step_names: Iterable[str]) -> "PipelineState":
        return cls(package_name=package_name, steps={name: cls.STATUS_PENDING for name in step_names})

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "PipelineState":
        raw_steps = data.get("steps", {})
        if not isinstance(raw_steps, dict):
            raise ValueError("Invalid pipeline state: 'steps' must be a mapping")
        raw_codes = data.get("uploaded_version_codes") or []
        last = data.get("last_uploaded_version_code")
        edit_id = data.get("edit_id")
        expiry = data.get("edit_expiry")
        return cls(
            package_name=str(data.get("package_name", "")),
            steps={str(name): str(status) for name, status in raw_steps.items()},
            edit_id=str(edit_id) if edit_id else None,
            edit_expiry=str(expiry) if expiry else None,
            last_uploaded_version_code=int(last) if last is not None else None,
            uploaded_version_codes=[int(code) for code in raw_codes],
            committed=bool(data.get("committed", False)),
            run_id=str(data.get("run_id") or _now()),
            updated_at=str(data.get("updated_at") or _now()),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "package_name": self.package_name,
            "steps": self.steps,
            "edit_id": self.edit_id,
            "edit_expiry": self.edit_expiry,
            "last_uploaded_version_code": self.last_uploaded_version_code,
            "uploaded_version_codes": self.uploaded_version_codes,
            "committed": self.committed,
            "run_id": self.run_id,
            "updated_at": self.updated_at,
        }

    def record_edit(self, edit_id: str, expiry: str | None = None) -> None:
        self.edit_id = edit_id
        self.edit_expiry = expiry
        self.updated_at = _now()

    def record_upload(self, version_code: int) -> None:
        self.last_uploaded_version_code = version_code
        self.uploaded_version_codes.append(version_code)
        self.updated_at = _now()

    def require_edit(self) -> str:
        if not self.edit_id:
            raise RuntimeError("No edit is open for this run")
        return self.edit_id

    def mark_running(self, step: str) -> None:
        self.steps[step] = self.STATUS_RUNNING
        self.updated_at = _now()

    def mark_completed(self, step: str) -> None:
        self.steps[step] = self.STATUS_COMPLETED
        self.updated_at = _now()

    def mark_failed(self, step: str) -> None:
        self.steps[step] = self.STATUS_FAILED
        self.updated_at = _now()

    def completed_steps(self) -> list[str]:
        return [name for name, status in self.steps.items() if status == self.STATUS_COMPLETED]

    def failed_step(self) -> str | None:
        for name, status in self.steps.items():
            if status == self.STATUS_FAILED:
                return name
        return None

    @property
    def has_open_edit(self) -> bool:
        return bool(self.edit_id) and not self.committed


class PipelineStateStore:
    """Keeps the record of the latest run per package under the state directory."""

    def __init__(self, root: Path) -> None:
        self._root = root

    def path_for(self, package_name: str) -> Path:
        return self._root / f"{_slugify(package_name)}.json"

    def load(self, package_name: str) -> PipelineState | None:
        path = self.path_for(package_name)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        state = PipelineState.from_dict(data)
        state.package_name = package_name
        return state

    def save(self, state: PipelineState) -> Path:
        path = self.path_for(state.package_name)
        write_text(path, json.dumps(state.to_dict(), ensure_ascii=False, indent=2))
        return path

    def delete(self, package_name: str) -> None:
        path = self.path_for(package_name)
        if path.exists():
            path.unlink()


__all__ = ["PipelineState", "PipelineStateStore"]
