"""Settings package exports."""

from .loader import (
    ApiSettings,
    AppConfig,
    AuthSettings,
    PathSettings,
    PublishSettings,
    load_config,
)

__all__ = [
    "ApiSettings",
    "AppConfig",
    "AuthSettings",
    "PathSettings",
    "PublishSettings",
    "load_config",
]
