"""Configuration for oa-accounts."""

from .auth import OAuthSettings
from .settings import ConfigurationError, Settings, get_settings, reset_settings
from .storage import SecretBackend, StorageSettings
from .usage import UsageSettings


__all__ = [
    "ConfigurationError",
    "OAuthSettings",
    "SecretBackend",
    "Settings",
    "StorageSettings",
    "UsageSettings",
    "get_settings",
    "reset_settings",
]
