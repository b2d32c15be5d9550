"""Interfaces and basic implementations for secret resolution."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Mapping


class SecretNotFoundError(KeyError):
    """Raised when a secret cannot be resolved."""


class SecretProvider(ABC):
    """Abstract secret lookup contract."""

    @abstractmethod
    def get_secret(self, key: str) -> str:
        """Return the secret associated with ``key``."""


class EnvSecretProvider(SecretProvider):
    """Reads secrets from environment variables named ``<PREFIX><KEY>`` in upper case."""

    def __init__(self, prefix: str = "", env: Mapping[str, str] | None = None) -> None:
        self._env = env if env is not None else os.environ
        self._prefix = prefix

    def get_secret(self, key: str) -> str:
        name = f"{self._prefix}{key}".upper().replace(".", "_")
        value = self._env.get(name)
        if not value:
            raise SecretNotFoundError(name)
        return value


class FileSecretProvider(SecretProvider):
    """Returns the contents of a file registered for a secret key."""

    def __init__(self, files: Mapping[str, Path]) -> None:
        self._files = dict(files)

    def get_secret(self, key: str) -> str:
        path = self._files.get(key)
        if path is None or not path.is_file():
            raise SecretNotFoundError(key)
        value = path.read_text(encoding="utf-8")
        if not value.strip():
            raise SecretNotFoundError(key)
        return value


class MappingSecretProvider(SecretProvider):
    """Wraps a simple dictionary for testing."""

    def __init__(self, mapping: Mapping[str, str]) -> None:
        self._mapping = mapping

    def get_secret(self, key: str) -> str:
        try:
            return self._mapping[key]
        except KeyError as exc:
            raise SecretNotFoundError(key) from exc


class ChainedSecretProvider(SecretProvider):
    """Tries multiple providers until one returns a secret."""

    def __init__(self, providers: Iterable[SecretProvider]) -> None:
        self._providers = tuple(providers)

    def get_secret(self, key: str) -> str:
        for provider in self._providers:
            try:
                return provider.get_secret(key)
            except SecretNotFoundError:
                continue
        raise SecretNotFoundError(key)


__all__ = [
    "ChainedSecretProvider",
    "EnvSecretProvider",
    "FileSecretProvider",
    "MappingSecretProvider",
    "SecretNotFoundError",
    "SecretProvider",
]
