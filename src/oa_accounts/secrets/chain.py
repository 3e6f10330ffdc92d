"""Primary/fallback secret store routing."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from structlog import get_logger

from oa_accounts.exceptions import (
    SecretChainError,
    SecretNotFoundError,
    format_chain_failure,
)
from oa_accounts.secrets.base import SecretStore


logger = get_logger(__name__)

T = TypeVar("T")

# Errors that mean the caller gave up; they must never be masked by the fallback.
_CALLER_ABORTS = (asyncio.CancelledError, TimeoutError)


class ChainSecretStore(SecretStore):
    """Routes every operation to ``primary`` and falls back to ``fallback``.

    The fallback is only touched when the primary fails, and never when the
    primary failure is a cancellation or an elapsed deadline.
    """

    def __init__(self, primary: SecretStore, fallback: SecretStore) -> None:
        self.primary = primary
        self.fallback = fallback
        self.name = f"{primary.name}+{fallback.name}"

    async def get(self, key: str) -> str:
        return await self._route("get", key, lambda store: store.get(key))

    async def put(self, key: str, value: str) -> None:
        await self._route("put", key, lambda store: store.put(key, value))

    async def delete(self, key: str) -> None:
        await self._route("delete", key, lambda store: store.delete(key))

    async def _route(
        self,
        operation: str,
        key: str,
        call: Callable[[SecretStore], Awaitable[T]],
    ) -> T:
        try:
            return await call(self.primary)
        except _CALLER_ABORTS:
            raise
        except Exception as primary_error:
            logger.warning(
                "secret_primary_backend_failed",
                operation=operation,
                key=key,
                backend=self.primary.name,
                error=str(primary_error),
            )
            try:
                return await call(self.fallback)
            except _CALLER_ABORTS:
                raise
            except Exception as fallback_error:
                if isinstance(primary_error, SecretNotFoundError) and isinstance(
                    fallback_error, SecretNotFoundError
                ):
                    raise SecretNotFoundError(
                        key,
                        format_chain_failure(
                            operation,
                            self.primary.name,
                            primary_error,
                            self.fallback.name,
                            fallback_error,
                        ),
                    ) from fallback_error
                raise SecretChainError(
                    operation,
                    key,
                    primary_name=self.primary.name,
                    primary_error=primary_error,
                    fallback_name=self.fallback.name,
                    fallback_error=fallback_error,
                ) from fallback_error
