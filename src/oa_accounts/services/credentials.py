"""Credential lifecycle service.

Auth material lives in a secret store while the account record that points
at it lives in a repository, and the two cannot be committed atomically.
``set_auth`` and ``remove_auth`` therefore run as ordered forward steps,
each paired with a compensating action that is always attempted before an
error is returned.
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from structlog import get_logger

from oa_accounts.domain import (
    Account,
    AuthMethod,
    LimitSnapshot,
    LimitWindowKind,
    Subscription,
    Usage,
)
from oa_accounts.exceptions import (
    AccountNotFoundError,
    CompensationError,
    SecretNotFoundError,
    UnsupportedWindowKindError,
    ValidationError,
)
from oa_accounts.repositories import AccountRepository
from oa_accounts.secrets import SecretStore


logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def apply_secret_refs(
    account: Account, refs: list[str], method: AuthMethod | None
) -> None:
    """Point an account at ``refs`` (at most two), clearing the method when empty."""
    account.metadata.secret_ref = refs[0] if refs else ""
    account.auth.secret_ref = refs[1] if len(refs) > 1 else account.metadata.secret_ref
    account.auth.method = method if refs else None


class CredentialService:
    """Sole writer of ``Account.auth`` and ``Account.metadata.secret_ref``."""

    def __init__(
        self,
        accounts: AccountRepository,
        secrets: SecretStore,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.accounts = accounts
        self.secrets = secrets
        self._now = now

    async def _load_or_new(self, account_id: str) -> Account:
        try:
            return await self.accounts.get_by_id(account_id)
        except AccountNotFoundError:
            return Account.new(account_id)

    # ------------------------------------------------------------------
    # Auth rotation
    # ------------------------------------------------------------------

    async def set_auth(
        self,
        account_id: str,
        method: AuthMethod,
        secret_key: str,
        secret_value: str,
    ) -> Account:
        """Store new auth material and point the account at it.

        Args:
            account_id: Account to update; created when missing
            method: Auth method recorded on the account
            secret_key: Secret reference for the new material
            secret_value: New secret value

        Returns:
            The saved account

        Raises:
            ValidationError: If the id or key is blank
            CompensationError: If a step failed and its rollback failed too
        """
        account_id = account_id.strip()
        secret_key = secret_key.strip()
        if not account_id:
            raise ValidationError("account id is required")
        if not secret_key:
            raise ValidationError("secret key is required")

        original = await self._load_or_new(account_id)
        previous_refs = original.secret_refs()
        undo_put = await self._undo_put_step(secret_key, previous_refs)

        await self.secrets.put(secret_key, secret_value)

        updated = original.model_copy(deep=True)
        updated.auth.method = method
        updated.auth.secret_ref = secret_key
        updated.metadata.secret_ref = secret_key

        try:
            await self.accounts.save(updated)
        except Exception as save_error:
            logger.warning(
                "auth_save_failed", account_id=account_id, error=str(save_error)
            )
            await self._compensate("save account auth", save_error, [undo_put])
            raise

        stale_refs = [ref for ref in previous_refs if ref != secret_key]
        for index, ref in enumerate(stale_refs):
            try:
                await self.secrets.delete(ref)
            except Exception as delete_error:
                remaining = stale_refs[index:]
                logger.warning(
                    "auth_previous_secret_delete_failed",
                    account_id=account_id,
                    secret_ref=ref,
                    remaining=remaining,
                    error=str(delete_error),
                )
                restore = original.model_copy(deep=True)
                apply_secret_refs(restore, remaining, original.auth.method)
                await self._compensate(
                    f"delete previous auth secret {ref}",
                    delete_error,
                    [
                        lambda: self.accounts.save(restore),
                        lambda: self.secrets.delete(secret_key),
                    ],
                )
                raise

        logger.info(
            "auth_secret_rotated",
            account_id=account_id,
            method=str(method),
            secret_ref=secret_key,
            removed_refs=stale_refs,
        )
        return updated

    async def remove_auth(self, account_id: str) -> Account:
        """Clear the account's auth and delete every secret it referenced.

        Raises:
            AccountNotFoundError: If the account does not exist
            CompensationError: If a delete failed and restoring the account
                record failed too
        """
        original = await self.accounts.get_by_id(account_id)
        refs = original.secret_refs()

        cleared = original.model_copy(deep=True)
        apply_secret_refs(cleared, [], None)
        await self.accounts.save(cleared)

        for index, ref in enumerate(refs):
            try:
                await self.secrets.delete(ref)
            except Exception as delete_error:
                remaining = refs[index:]
                logger.warning(
                    "auth_secret_delete_failed",
                    account_id=account_id,
                    secret_ref=ref,
                    remaining=remaining,
                    error=str(delete_error),
                )
                restore = cleared.model_copy(deep=True)
                apply_secret_refs(restore, remaining, original.auth.method)
                await self._compensate(
                    f"delete auth secret {ref}",
                    delete_error,
                    [lambda: self.accounts.save(restore)],
                )
                raise

        logger.info("auth_removed", account_id=account_id, removed_refs=refs)
        return cleared

    async def remove_account(self, account_id: str) -> None:
        """Remove the account's auth, then the account record itself."""
        await self.remove_auth(account_id)
        await self.accounts.delete(account_id)
        logger.info("account_removed", account_id=account_id)

    async def _undo_put_step(
        self, secret_key: str, previous_refs: list[str]
    ) -> Callable[[], Awaitable[None]]:
        """Build the step that reverts writing ``secret_key``.

        A key the account already referenced is restored to its prior value;
        a fresh key is deleted.
        """
        if secret_key in previous_refs:
            try:
                prior_value = await self.secrets.get(secret_key)
            except SecretNotFoundError:
                pass
            else:
                return lambda: self.secrets.put(secret_key, prior_value)
        return lambda: self.secrets.delete(secret_key)

    async def _compensate(
        self,
        message: str,
        error: BaseException,
        steps: list[Callable[[], Awaitable[object]]],
    ) -> None:
        """Run rollback steps in order, stopping at the first that fails.

        A later step is only safe once the earlier ones succeeded: the new
        secret may only be deleted after the account stops pointing at it.

        Raises:
            CompensationError: Joining ``error`` with the rollback failure
        """
        for step in steps:
            try:
                await step()
            except Exception as rollback_error:
                logger.error(
                    "auth_rollback_failed", step=message, error=str(rollback_error)
                )
                raise CompensationError(
                    message, original=error, compensation_errors=[rollback_error]
                ) from error

    # ------------------------------------------------------------------
    # Account fields
    # ------------------------------------------------------------------

    async def set_usage(self, account_id: str, usage: Usage) -> Account:
        account = await self._load_or_new(account_id)
        account.usage = usage.model_copy()
        await self.accounts.save(account)
        return account

    async def set_account_name(self, account_id: str, name: str) -> Account:
        name = name.strip()
        if not name:
            raise ValidationError("account name is required")
        account = await self._load_or_new(account_id)
        account.name = name
        await self.accounts.save(account)
        return account

    async def set_account_plan_type(self, account_id: str, plan_type: str) -> Account:
        account = await self._load_or_new(account_id)
        account.metadata.plan_type = plan_type.strip()
        await self.accounts.save(account)
        return account

    async def set_limit(
        self,
        account_id: str,
        kind: LimitWindowKind | str,
        percent: float,
        resets_at: datetime | None,
        captured_at: datetime | None = None,
    ) -> Account:
        """Record a daily or weekly limit snapshot.

        Raises:
            UnsupportedWindowKindError: If ``kind`` is not daily or weekly
        """
        try:
            window = LimitWindowKind(kind)
        except ValueError as e:
            raise UnsupportedWindowKindError(str(kind)) from e

        snapshot = LimitSnapshot(
            percent=percent,
            resets_at=resets_at,
            captured_at=captured_at or self._now(),
        )
        account = await self._load_or_new(account_id)
        if window is LimitWindowKind.DAILY:
            account.limits.daily = snapshot
        else:
            account.limits.weekly = snapshot
        await self.accounts.save(account)
        return account

    async def set_subscription(
        self, account_id: str, subscription: Subscription
    ) -> Account:
        account = await self._load_or_new(account_id)
        account.subscription = subscription.model_copy(
            update={"captured_at": subscription.captured_at or self._now()}
        )
        await self.accounts.save(account)
        return account

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_account(self, account_id: str) -> Account:
        return await self.accounts.get_by_id(account_id)

    async def list_accounts(self) -> list[Account]:
        return await self.accounts.list()

    async def resolve_account_id(self, raw: str) -> str:
        """Resolve a user-supplied account id.

        Blank or ``0`` picks the smallest positive integer id not in use.
        Numeric ids must be positive; other ids pass through trimmed.

        Raises:
            ValidationError: If a numeric id is zero-or-negative
        """
        raw = raw.strip()
        if raw and raw != "0":
            try:
                numeric = int(raw)
            except ValueError:
                return raw
            if numeric <= 0:
                raise ValidationError(f"account id must be positive: {raw}")
            return str(numeric)

        taken = {account.id for account in await self.accounts.list()}
        candidate = 1
        while str(candidate) in taken:
            candidate += 1
        return str(candidate)
