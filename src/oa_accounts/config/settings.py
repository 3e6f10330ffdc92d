"""Settings configuration for oa-accounts."""

import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from oa_accounts.config.auth import OAuthSettings
from oa_accounts.config.discovery import find_toml_config_file
from oa_accounts.config.storage import StorageSettings
from oa_accounts.config.usage import UsageSettings


__all__ = [
    "Settings",
    "LoggingSettings",
    "ConfigurationError",
    "get_settings",
    "reset_settings",
]


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def _coerce_settings(value: Any, settings_class: type) -> Any:
    """Coerce None or a dict into a settings section instance."""
    if value is None:
        return settings_class()
    if isinstance(value, settings_class):
        return value
    if isinstance(value, dict):
        return settings_class(**value)
    return value


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OA_LOG_",
        case_sensitive=False,
        extra="ignore",
    )

    level: str = "INFO"
    json_logs: bool = False


class Settings(BaseSettings):
    """
    Configuration settings for oa.

    Settings are loaded from environment variables and TOML configuration files.
    TOML configuration files are looked up in the following order:
    1. .oa_accounts.toml in current directory
    2. oa_accounts.toml in current directory
    3. config.toml in user config directory/oa_accounts/ (platform-specific)
    """

    model_config = SettingsConfigDict(
        env_prefix="OA_",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    auth: OAuthSettings = Field(
        default_factory=OAuthSettings,
        description="OAuth issuer, client and timeouts",
    )

    usage: UsageSettings = Field(
        default_factory=UsageSettings,
        description="Usage endpoint and fetch concurrency",
    )

    storage: StorageSettings = Field(
        default_factory=StorageSettings,
        description="Repository files and secret backends",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Log level and renderer",
    )

    @field_validator("auth", mode="before")
    @classmethod
    def validate_auth(cls, v: Any) -> Any:
        return _coerce_settings(v, OAuthSettings)

    @field_validator("usage", mode="before")
    @classmethod
    def validate_usage(cls, v: Any) -> Any:
        return _coerce_settings(v, UsageSettings)

    @field_validator("storage", mode="before")
    @classmethod
    def validate_storage(cls, v: Any) -> Any:
        return _coerce_settings(v, StorageSettings)

    @field_validator("logging", mode="before")
    @classmethod
    def validate_logging(cls, v: Any) -> Any:
        return _coerce_settings(v, LoggingSettings)

    @classmethod
    def load_toml_config(cls, toml_path: Path) -> dict[str, Any]:
        """Load configuration from a TOML file.

        Args:
            toml_path: Path to the TOML configuration file

        Returns:
            dict: Configuration data from the TOML file

        Raises:
            ConfigurationError: If the TOML file is invalid or cannot be read
        """
        try:
            with toml_path.open("rb") as f:
                return tomllib.load(f)
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read TOML config file {toml_path}: {e}"
            ) from e
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML syntax in {toml_path}: {e}") from e

    @classmethod
    def from_config(
        cls, config_path: Path | str | None = None, **kwargs: Any
    ) -> "Settings":
        """Create Settings from a configuration file.

        Args:
            config_path: Path to a TOML file. When None, ``OA_CONFIG_FILE`` is
                consulted and then the discovery locations.
            **kwargs: Section overrides, taking precedence over file values

        Returns:
            Settings: Configured Settings instance
        """
        if config_path is None:
            config_path_env = os.environ.get("OA_CONFIG_FILE")
            if config_path_env:
                config_path = Path(config_path_env)

        if isinstance(config_path, str):
            config_path = Path(config_path)

        if config_path is None:
            config_path = find_toml_config_file()

        config_data: dict[str, Any] = {}
        if config_path and config_path.exists():
            config_data = cls.load_toml_config(config_path)

        return cls(**{**config_data, **kwargs})


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = Settings.from_config()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next call reloads them."""
    global _settings
    _settings = None
