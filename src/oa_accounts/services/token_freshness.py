"""Token freshness management for OAuth-backed accounts.

At most one refresh per credential is in flight: every caller needing a live
access token goes through a lock keyed by the account's secret reference,
reloads the stored tokens under it and only refreshes when they are still
stale.
"""

import asyncio
import threading
import weakref
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from structlog import get_logger

from oa_accounts.auth.oauth_client import OAuthClient
from oa_accounts.domain import OAuthTokens
from oa_accounts.exceptions import (
    InvalidRefreshTokenError,
    ReauthenticationRequiredError,
    ValidationError,
)
from oa_accounts.repositories import AccountRepository
from oa_accounts.secrets import SecretStore


logger = get_logger(__name__)

DEFAULT_REFRESH_SKEW = timedelta(minutes=2)

_registry_lock = threading.Lock()
_refresh_locks: weakref.WeakKeyDictionary[
    asyncio.AbstractEventLoop, dict[str, asyncio.Lock]
] = weakref.WeakKeyDictionary()


def refresh_lock_for(secret_ref: str) -> asyncio.Lock:
    """Return the process-wide refresh lock of a credential.

    Locks are kept per running event loop and never removed while it lives.
    """
    loop = asyncio.get_running_loop()
    with _registry_lock:
        locks = _refresh_locks.setdefault(loop, {})
        lock = locks.get(secret_ref)
        if lock is None:
            lock = asyncio.Lock()
            locks[secret_ref] = lock
        return lock


class TokenFreshnessManager:
    """Hands out access tokens, refreshing them proactively or on demand."""

    def __init__(
        self,
        accounts: AccountRepository,
        secrets: SecretStore,
        oauth_client: OAuthClient,
        *,
        refresh_skew: timedelta = DEFAULT_REFRESH_SKEW,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.accounts = accounts
        self.secrets = secrets
        self.oauth_client = oauth_client
        self.refresh_skew = refresh_skew
        self._now = now or (lambda: datetime.now(UTC))

    async def load_tokens(self, account_id: str) -> OAuthTokens:
        """Read the stored tokens of an account without refreshing."""
        secret_ref = await self._secret_ref(account_id)
        return OAuthTokens.from_secret(await self.secrets.get(secret_ref))

    async def ensure_fresh_tokens(
        self,
        account_id: str,
        cached_tokens: OAuthTokens | None = None,
        force: bool = False,
    ) -> OAuthTokens:
        """Return tokens that are safe to use right now.

        Args:
            account_id: Account whose tokens are needed
            cached_tokens: Tokens the caller last used; with ``force`` these
                are the ones the server rejected
            force: Refresh even if the stored tokens look valid, unless
                another caller already replaced ``cached_tokens``

        Returns:
            Stored or freshly refreshed tokens

        Raises:
            ReauthenticationRequiredError: If there is no refresh token or the
                provider rejected it
            TokenExchangeError: If the refresh failed for another reason
        """
        secret_ref = await self._secret_ref(account_id)

        async with refresh_lock_for(secret_ref):
            stored = OAuthTokens.from_secret(await self.secrets.get(secret_ref))
            now = self._now()

            if not force and not stored.expiring_soon(now, self.refresh_skew):
                return stored

            if (
                force
                and cached_tokens is not None
                and stored.access_token != cached_tokens.access_token
            ):
                logger.debug("token_already_refreshed", account_id=account_id)
                return stored

            if not stored.refresh_token:
                raise ReauthenticationRequiredError(
                    account_id, "no refresh token stored"
                )

            try:
                refreshed = await self.oauth_client.refresh_tokens(stored.refresh_token)
            except InvalidRefreshTokenError as e:
                logger.error(
                    "refresh_token_rejected", account_id=account_id, error=str(e)
                )
                raise ReauthenticationRequiredError(account_id) from e

            merged = refreshed.carry_over(stored).with_calculated_expiry(now)
            await self.secrets.put(secret_ref, merged.to_secret())
            logger.info(
                "account_tokens_refreshed",
                account_id=account_id,
                forced=force,
                expires_at=merged.expires_at,
            )
            return merged

    async def _secret_ref(self, account_id: str) -> str:
        account = await self.accounts.get_by_id(account_id)
        secret_ref = (account.auth.secret_ref or account.metadata.secret_ref).strip()
        if not secret_ref:
            raise ValidationError(f"account {account_id} has no auth secret reference")
        return secret_ref
