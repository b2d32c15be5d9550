"""Error taxonomy for the publish pipeline."""

from __future__ import annotations

import json
from typing import Any, Mapping


class PublishError(RuntimeError):
    """Base class for failures reported by a pipeline run."""

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.details = dict(details or {})

    def __str__(self) -> str:
        base = super().__str__()
        if self.step:
            base = f"[{self.step}] {base}"
        if not self.details:
            return base
        try:
            detail_repr = json.dumps(self.details, ensure_ascii=False, default=str)
        except TypeError:
            detail_repr = str(self.details)
        return f"{base} | details: {detail_repr}"


class UsageError(ValueError):
    """Arguments that can never produce a valid run; reported as a usage error."""


class AuthError(PublishError):
    """Credentials could not be loaded or exchanged for an access token."""


class TransactionError(PublishError):
    """A remote edit call failed."""


class MetadataReadError(PublishError):
    """A single metadata item could not be read; callers skip it."""


class ResourceNotFoundError(PublishError):
    """An expected local path does not exist."""


__all__ = [
    "AuthError",
    "MetadataReadError",
    "PublishError",
    "ResourceNotFoundError",
    "TransactionError",
    "UsageError",
]
