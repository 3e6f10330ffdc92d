"""Repository and secret backend locations."""

from enum import StrEnum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from oa_accounts.core.system import get_oa_config_dir


class SecretBackend(StrEnum):
    KEYRING = "keyring"
    PASS = "pass"
    FILE = "file"


class StorageSettings(BaseSettings):
    """Where accounts, pools, runtime state and file secrets live."""

    model_config = SettingsConfigDict(
        env_prefix="OA_STORAGE_",
        case_sensitive=False,
        extra="ignore",
    )

    data_dir: Path = Field(default_factory=get_oa_config_dir)
    accounts_file: str = "accounts.json"
    pools_file: str = "pools.json"
    runtime_file: str = "pool_runtime.json"
    secrets_dir: Path | None = Field(
        default=None, description="File secret root; defaults to <data_dir>/secrets"
    )
    secret_backend: SecretBackend = Field(
        default=SecretBackend.KEYRING,
        description="Primary secret backend; the file backend is always the fallback",
    )
    keyring_service: str = "oa-accounts"
    opencode_auth_file: Path | None = Field(
        default=None,
        description="Defaults to <user data dir>/opencode/auth.json",
    )

    @property
    def accounts_path(self) -> Path:
        return self.data_dir.expanduser() / self.accounts_file

    @property
    def pools_path(self) -> Path:
        return self.data_dir.expanduser() / self.pools_file

    @property
    def runtime_path(self) -> Path:
        return self.data_dir.expanduser() / self.runtime_file

    @property
    def secrets_path(self) -> Path:
        if self.secrets_dir is not None:
            return self.secrets_dir.expanduser()
        return self.data_dir.expanduser() / "secrets"
