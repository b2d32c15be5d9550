"""Service-account credentials and access token caching for Google Play."""

from __future__ import annotations

import json
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Mapping

import jwt
import requests

from ...errors import AuthError
from ...security import SecretNotFoundError, SecretProvider
from ...utils.logging import get_logger

LOGGER = get_logger(__name__)

ANDROID_PUBLISHER_SCOPE = "https://www.googleapis.com/auth/androidpublisher"
DEFAULT_TOKEN_URI = "https://oauth2.googleapis.com/token"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

SERVICE_ACCOUNT_SECRET = "service_account_json"
CLIENT_EMAIL_SECRET = "client_email"
PRIVATE_KEY_SECRET = "private_key"


@dataclass(slots=True, frozen=True)
class ServiceAccountKey:
    """The parts of a service-account key needed to sign token requests."""

    client_email: str
    private_key: str
    token_uri: str = DEFAULT_TOKEN_URI
    private_key_id: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ServiceAccountKey":
        client_email = data.get("client_email")
        private_key = data.get("private_key")
        if not client_email or not private_key:
            raise AuthError("Service account key lacks client_email or private_key")
        return cls(
            client_email=str(client_email),
            # Keys pasted into CI variables often carry literal "\n" sequences.
            private_key=str(private_key).replace("\\n", "\n"),
            token_uri=str(data.get("token_uri") or DEFAULT_TOKEN_URI),
            private_key_id=str(data["private_key_id"]) if data.get("private_key_id") else None,
        )


@dataclass(slots=True)
class AccessToken:
    """Holds the current access token state."""

    value: str
    expires_at: datetime


class GooglePlayCredentialStore:
    """Resolves the service account, exchanges signed assertions for tokens and caches them."""

    _REFRESH_MARGIN = timedelta(minutes=5)
    _ASSERTION_LIFETIME = 3600

    def __init__(
        self,
        secrets: SecretProvider,
        *,
        token_cache_path: Path | None = None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        scopes: tuple[str, ...] = (ANDROID_PUBLISHER_SCOPE,),
    ) -> None:
        self._secrets = secrets
        self._token_cache_path = token_cache_path
        self._session = session or requests.Session()
        self._timeout = timeout
        self._scopes = scopes
        self._token: AccessToken | None = None
        self._key: ServiceAccountKey | None = None

    def load_service_account(self) -> ServiceAccountKey:
        """Read the key from a full JSON document, or from separate email/key secrets."""
        if self._key is not None:
            return self._key
        try:
            raw = self._secrets.get_secret(SERVICE_ACCOUNT_SECRET)
        except SecretNotFoundError:
            raw = None

        if raw is not None:
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise AuthError("Service account key is not valid JSON") from exc
            if not isinstance(data, dict):
                raise AuthError("Service account key must be a JSON object")
            self._key = ServiceAccountKey.from_mapping(data)
            return self._key

        try:
            data = {
                "client_email": self._secrets.get_secret(CLIENT_EMAIL_SECRET),
                "private_key": self._secrets.get_secret(PRIVATE_KEY_SECRET),
            }
        except SecretNotFoundError as exc:
            raise AuthError(
                "No service account configured; set a key file or PLAY_SERVICE_ACCOUNT_JSON",
                details={"missing": str(exc)},
            ) from exc
        self._key = ServiceAccountKey.from_mapping(data)
        return self._key

    def build_assertion(self, key: ServiceAccountKey, *, issued_at: int | None = None) -> str:
        """Sign the JWT that is exchanged for an access token."""
        now = int(time.time()) if issued_at is None else issued_at
        claims = {
            "iss": key.client_email,
            "scope": " ".join(self._scopes),
            "aud": key.token_uri,
            "iat": now,
            "exp": now + self._ASSERTION_LIFETIME,
        }
        headers = {"kid": key.private_key_id} if key.private_key_id else None
        try:
            return jwt.encode(claims, key.private_key, algorithm="RS256", headers=headers)
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AuthError("Could not sign the service account assertion") from exc

    def load_cached_token(self) -> AccessToken | None:
        """Retrieve the cached token when available and not expired."""
        path = self._token_cache_path
        if path is None or not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            token = AccessToken(
                value=payload["access_token"],
                expires_at=datetime.fromisoformat(payload["expires_at"]),
            )
            client_email = payload.get("client_email")
        except (OSError, json.JSONDecodeError, KeyError, ValueError):
            return None
        if client_email != self.load_service_account().client_email:
            return None
        if self._is_expired(token):
            return None
        return token

    def store_token(self, token: AccessToken) -> None:
        """Persist the token details for reuse."""
        path = self._token_cache_path
        if path is None:
            return
        payload = {
            "access_token": token.value,
            "expires_at": token.expires_at.isoformat(),
            "client_email": self.load_service_account().client_email,
        }
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile("w", delete=False, dir=str(path.parent)) as tmp:
            tmp.write(json.dumps(payload))
            tmp_path = Path(tmp.name)
        tmp_path.replace(path)
        if os.name != "nt":  # set stricter permissions on POSIX systems
            os.chmod(path, 0o600)

    def request_new_token(self) -> AccessToken:
        """Exchange a fresh assertion for an access token."""
        key = self.load_service_account()
        assertion = self.build_assertion(key)
        LOGGER.debug("Requesting access token", extra={"event": "auth.token", "client": key.client_email})
        try:
            response = self._session.post(
                key.token_uri,
                data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                timeout=self._timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise AuthError(
                "Token request failed",
                details={"token_uri": key.token_uri, "reason": str(exc)},
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise AuthError(
                "Token response is not JSON", details={"response": response.text[:200]}
            ) from exc

        value = data.get("access_token")
        expires_in = data.get("expires_in")
        if not value or not expires_in:
            raise AuthError("Token response lacks access_token or expires_in", details=data)
        try:
            expires_at = datetime.now(tz=UTC) + timedelta(seconds=int(expires_in))
        except (TypeError, ValueError) as exc:
            raise AuthError("expires_in is not a number", details={"expires_in": expires_in}) from exc

        token = AccessToken(value=str(value), expires_at=expires_at)
        self.store_token(token)
        return token

    def get_token(self, *, force_refresh: bool = False) -> AccessToken:
        """Return a valid access token, refreshing if needed."""
        if not force_refresh:
            if self._token is not None and not self._is_expired(self._token):
                return self._token
            cached = self.load_cached_token()
            if cached:
                self._token = cached
                return cached
        self._token = self.request_new_token()
        return self._token

    def _is_expired(self, token: AccessToken) -> bool:
        now = datetime.now(tz=UTC)
        return token.expires_at <= now + self._REFRESH_MARGIN


__all__ = [
    "ANDROID_PUBLISHER_SCOPE",
    "AccessToken",
    "GooglePlayCredentialStore",
    "ServiceAccountKey",
]
