"""Google Play platform adapters."""

from __future__ import annotations

from .api import DEFAULT_BASE_URL, GooglePlayEditService
from .credentials import AccessToken, GooglePlayCredentialStore, ServiceAccountKey

__all__ = [
    "AccessToken",
    "DEFAULT_BASE_URL",
    "GooglePlayCredentialStore",
    "GooglePlayEditService",
    "ServiceAccountKey",
]
