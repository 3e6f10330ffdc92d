"""Abstract repository interfaces."""

from abc import ABC, abstractmethod

from oa_accounts.domain import Account, Pool, PoolRuntime


class AccountRepository(ABC):
    """Persistence for accounts keyed by id."""

    @abstractmethod
    async def get_by_id(self, account_id: str) -> Account:
        """Load one account.

        Raises:
            AccountNotFoundError: If no account has this id
        """

    @abstractmethod
    async def list(self) -> list[Account]:
        """Load every account in stored order."""

    @abstractmethod
    async def save(self, account: Account) -> None:
        """Insert or replace the account with the same id."""

    @abstractmethod
    async def delete(self, account_id: str) -> None:
        """Remove an account.

        Raises:
            AccountNotFoundError: If no account has this id
        """


class PoolRepository(ABC):
    """Persistence for pools keyed by id."""

    @abstractmethod
    async def get_by_id(self, pool_id: str) -> Pool:
        """Load one pool.

        Raises:
            PoolNotFoundError: If no pool has this id
        """

    @abstractmethod
    async def list(self) -> list[Pool]:
        """Load every pool in stored order."""

    @abstractmethod
    async def save(self, pool: Pool) -> None:
        """Insert or replace the pool with the same id."""


class PoolRuntimeRepository(ABC):
    """Persistence for per-pool runtime state."""

    @abstractmethod
    async def get_by_pool_id(self, pool_id: str) -> PoolRuntime:
        """Load the runtime record of a pool.

        Raises:
            PoolNotFoundError: If the pool has no runtime record yet
        """

    @abstractmethod
    async def save(self, runtime: PoolRuntime) -> None:
        """Insert or replace the runtime record for its pool."""
