"""JSON-file implementations of the account, pool and runtime repositories.

Document reads and writes run in the default executor; the per-path lock in
``JsonDocument`` serializes them across threads.
"""

from pathlib import Path

from structlog import get_logger

from oa_accounts.core.async_utils import run_in_executor
from oa_accounts.domain import Account, Pool, PoolRuntime
from oa_accounts.exceptions import AccountNotFoundError, PoolNotFoundError
from oa_accounts.repositories.base import (
    AccountRepository,
    PoolRepository,
    PoolRuntimeRepository,
)
from oa_accounts.repositories.document import JsonDocument


logger = get_logger(__name__)


def _upsert(records: list, record, key: str) -> list:
    record_id = getattr(record, key)
    for index, existing in enumerate(records):
        if getattr(existing, key) == record_id:
            records[index] = record
            return records
    records.append(record)
    return records


def _find(records: list, key: str, value: str):
    for record in records:
        if getattr(record, key) == value:
            return record
    return None


class JsonAccountRepository(AccountRepository):
    """Accounts stored in ``accounts.json``."""

    def __init__(self, path: Path) -> None:
        self._document = JsonDocument(path, "accounts", Account)

    @property
    def path(self) -> Path:
        return self._document.path

    async def get_by_id(self, account_id: str) -> Account:
        account = _find(await self.list(), "id", account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def list(self) -> list[Account]:
        return await run_in_executor(self._document.read)

    async def save(self, account: Account) -> None:
        snapshot = account.model_copy(deep=True)
        await run_in_executor(
            self._document.update, lambda records: _upsert(records, snapshot, "id")
        )
        logger.debug("account_saved", account_id=account.id)

    async def delete(self, account_id: str) -> None:
        def _remove(records: list[Account]) -> list[Account]:
            kept = [record for record in records if record.id != account_id]
            if len(kept) == len(records):
                raise AccountNotFoundError(account_id)
            return kept

        await run_in_executor(self._document.update, _remove)
        logger.debug("account_deleted", account_id=account_id)


class JsonPoolRepository(PoolRepository):
    """Pools stored in ``pools.json``."""

    def __init__(self, path: Path) -> None:
        self._document = JsonDocument(path, "pools", Pool)

    async def get_by_id(self, pool_id: str) -> Pool:
        pool = _find(await self.list(), "id", pool_id)
        if pool is None:
            raise PoolNotFoundError(pool_id)
        return pool

    async def list(self) -> list[Pool]:
        return await run_in_executor(self._document.read)

    async def save(self, pool: Pool) -> None:
        snapshot = pool.model_copy(deep=True)
        await run_in_executor(
            self._document.update, lambda records: _upsert(records, snapshot, "id")
        )
        logger.debug("pool_saved", pool_id=pool.id, members=len(pool.members))


class JsonPoolRuntimeRepository(PoolRuntimeRepository):
    """Pool runtime records stored in ``pool_runtime.json``."""

    def __init__(self, path: Path) -> None:
        self._document = JsonDocument(path, "runtimes", PoolRuntime)

    async def get_by_pool_id(self, pool_id: str) -> PoolRuntime:
        runtimes = await run_in_executor(self._document.read)
        runtime = _find(runtimes, "pool_id", pool_id)
        if runtime is None:
            raise PoolNotFoundError(pool_id)
        return runtime

    async def save(self, runtime: PoolRuntime) -> None:
        snapshot = runtime.model_copy(deep=True)
        await run_in_executor(
            self._document.update,
            lambda records: _upsert(records, snapshot, "pool_id"),
        )
        logger.debug("pool_runtime_saved", pool_id=runtime.pool_id)
