"""OS keyring secret backend."""

import keyring
from keyring.errors import KeyringError, NoKeyringError, PasswordDeleteError
from structlog import get_logger

from oa_accounts.core.async_utils import run_in_executor
from oa_accounts.exceptions import (
    SecretBackendUnavailableError,
    SecretNotFoundError,
    SecretStoreError,
)
from oa_accounts.secrets.base import SecretStore


logger = get_logger(__name__)

DEFAULT_KEYRING_SERVICE = "oa-accounts"


class KeyringSecretStore(SecretStore):
    """Stores secrets in the system keyring under one service name."""

    name = "keyring"

    def __init__(self, service: str = DEFAULT_KEYRING_SERVICE) -> None:
        self.service = service

    async def get(self, key: str) -> str:
        value = await run_in_executor(self._call, "get", key, keyring.get_password)
        if value is None:
            raise SecretNotFoundError(key)
        return value

    async def put(self, key: str, value: str) -> None:
        await run_in_executor(
            self._call, "put", key, keyring.set_password, value
        )

    async def delete(self, key: str) -> None:
        try:
            await run_in_executor(
                self._call, "delete", key, keyring.delete_password
            )
        except _MissingOnDelete:
            logger.debug("keyring_delete_missing_key", key=key)

    def _call(self, operation: str, key: str, func, *args: str):
        try:
            return func(self.service, key, *args)
        except PasswordDeleteError as e:
            raise _MissingOnDelete(key) from e
        except NoKeyringError as e:
            raise SecretBackendUnavailableError(
                f"keyring {operation}: no keyring backend available", key=key
            ) from e
        except KeyringError as e:
            raise SecretStoreError(f"keyring {operation}: {e}", key=key) from e


class _MissingOnDelete(SecretNotFoundError):
    pass
