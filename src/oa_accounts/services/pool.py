"""Pool service: membership sync and least-weekly-used account selection."""

from collections.abc import Callable
from datetime import UTC, datetime

from structlog import get_logger

from oa_accounts.domain import DEFAULT_POOL_ID, Account, AuthMethod, Pool, Provider
from oa_accounts.exceptions import (
    AccountNotEligibleError,
    NoEligibleAccountsError,
    PoolInactiveError,
    PoolNotFoundError,
)
from oa_accounts.repositories import AccountRepository, PoolRepository


logger = get_logger(__name__)

WEEKLY_EXHAUSTED_PERCENT = 100.0

# Auth method that implies membership for a provider even without metadata.
PROVIDER_OAUTH_METHODS: dict[str, AuthMethod] = {
    Provider.OPENAI.value: AuthMethod.CHATGPT,
}


def _normalize_provider(provider: str) -> str:
    return provider.strip().lower()


def provider_members(accounts: list[Account], provider: str) -> list[str]:
    """Ids of accounts belonging to ``provider``, in account order."""
    provider = _normalize_provider(provider)
    oauth_method = PROVIDER_OAUTH_METHODS.get(provider)
    return [
        account.id
        for account in accounts
        if _normalize_provider(account.metadata.provider) == provider
        or (oauth_method is not None and account.auth.method == oauth_method)
    ]


def selection_order(accounts: list[Account]) -> list[Account]:
    """Sort ascending by weekly percent, then by id."""
    return sorted(accounts, key=lambda account: (account.weekly_percent, account.id))


class PoolService:
    """Sole writer of ``Pool.members`` and ``Pool.active``."""

    def __init__(
        self,
        pools: PoolRepository,
        accounts: AccountRepository,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.pools = pools
        self.accounts = accounts
        self._now = now or (lambda: datetime.now(UTC))

    async def activate_default_pool(self) -> Pool:
        """Create or load the default pool, sync members and mark it active."""
        try:
            pool = await self.pools.get_by_id(DEFAULT_POOL_ID)
        except PoolNotFoundError:
            pool = Pool.default_openai()

        if pool.auto_sync_members:
            pool.members = provider_members(await self.accounts.list(), pool.provider)

        pool.active = True
        pool.updated_at = self._now()
        pool.normalize_members()
        pool.validate_pool()
        await self.pools.save(pool)

        logger.info("pool_activated", pool_id=pool.id, members=len(pool.members))
        return pool

    async def deactivate_pool(self, pool_id: str) -> Pool:
        pool = await self.pools.get_by_id(pool_id)
        pool.active = False
        pool.updated_at = self._now()
        await self.pools.save(pool)
        logger.info("pool_deactivated", pool_id=pool.id)
        return pool

    async def get_pool(self, pool_id: str) -> Pool:
        """Load a pool, refreshing members in memory when it auto-syncs."""
        pool = await self.pools.get_by_id(pool_id)
        if pool.auto_sync_members:
            pool.members = provider_members(await self.accounts.list(), pool.provider)
            pool.normalize_members()
        return pool

    async def eligible_accounts(self, pool_id: str) -> list[Account]:
        """Members that exist, match the provider and are not weekly-exhausted.

        Returns:
            Eligible accounts in selection order

        Raises:
            PoolNotFoundError: If the pool does not exist
            PoolInactiveError: If the pool is deactivated
        """
        pool = await self.pools.get_by_id(pool_id)
        if not pool.active:
            raise PoolInactiveError(pool_id)

        by_id = {account.id: account for account in await self.accounts.list()}
        provider = _normalize_provider(pool.provider)
        eligible = []
        for member in pool.members:
            account = by_id.get(member)
            if account is None:
                continue
            if _normalize_provider(account.metadata.provider) != provider:
                continue
            if account.weekly_percent >= WEEKLY_EXHAUSTED_PERCENT:
                continue
            eligible.append(account)
        return selection_order(eligible)

    async def pick_account(self, pool_id: str) -> tuple[Account, list[Account]]:
        """Pick the least weekly-used eligible account.

        Returns:
            The picked account and the remaining eligible accounts as an
            ordered failover list

        Raises:
            PoolInactiveError: If the pool is deactivated
            NoEligibleAccountsError: If no member is eligible
        """
        eligible = await self.eligible_accounts(pool_id)
        if not eligible:
            raise NoEligibleAccountsError(pool_id)

        picked, failover = eligible[0], eligible[1:]
        logger.debug(
            "pool_account_picked",
            pool_id=pool_id,
            account_id=picked.id,
            weekly_percent=picked.weekly_percent,
            failover=[account.id for account in failover],
        )
        return picked, failover

    async def is_eligible_account(self, pool_id: str, account_id: str) -> bool:
        try:
            eligible = await self.eligible_accounts(pool_id)
        except (PoolNotFoundError, PoolInactiveError):
            return False
        return any(account.id == account_id for account in eligible)

    async def next_account(self, pool_id: str, current_account_id: str = "") -> Account:
        """Rotate to the eligible account after ``current_account_id``.

        Wraps around; when the current account is not eligible the first
        account in selection order is returned.

        Raises:
            NoEligibleAccountsError: If no member is eligible
        """
        eligible = await self.eligible_accounts(pool_id)
        if not eligible:
            raise NoEligibleAccountsError(pool_id)

        ids = [account.id for account in eligible]
        if current_account_id not in ids:
            return eligible[0]
        return eligible[(ids.index(current_account_id) + 1) % len(eligible)]

    async def switch_account(self, pool_id: str, selector: str) -> Account:
        """Pick an eligible account by id or case-insensitive name.

        Raises:
            AccountNotEligibleError: If no eligible account matches
        """
        selector = selector.strip()
        eligible = await self.eligible_accounts(pool_id)
        for account in eligible:
            if account.id == selector:
                return account
        for account in eligible:
            if account.name.strip().lower() == selector.lower():
                return account
        raise AccountNotEligibleError(pool_id, selector)
