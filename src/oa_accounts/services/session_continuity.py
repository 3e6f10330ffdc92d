"""Session continuity across account switches.

A logical session is identified by workspace and window. Each account used
inside it gets its own provider session id, minted once and never
reassigned, and a shared memory packet carries the hand-off notes from one
account to the next.
"""

import hashlib
from collections.abc import Callable
from datetime import UTC, datetime

from structlog import get_logger

from oa_accounts.domain import MemoryPacket, PoolRuntime
from oa_accounts.exceptions import PoolNotFoundError, ValidationError
from oa_accounts.repositories import PoolRuntimeRepository


logger = get_logger(__name__)


def resolve_logical_session_id(workspace_root: str, window_fingerprint: str) -> str:
    """Deterministic id for a workspace and window pair."""
    material = f"{workspace_root.strip()}|{window_fingerprint.strip()}"
    return hashlib.sha256(material.encode()).hexdigest()


def provider_session_id(logical_session_id: str, account_id: str) -> str:
    return f"{logical_session_id}:{account_id}"


class SessionContinuityService:
    """Sole writer of ``PoolRuntime`` records."""

    def __init__(
        self,
        runtimes: PoolRuntimeRepository,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.runtimes = runtimes
        self._now = now or (lambda: datetime.now(UTC))

    async def _load(self, pool_id: str) -> PoolRuntime:
        try:
            return await self.runtimes.get_by_pool_id(pool_id)
        except PoolNotFoundError:
            return PoolRuntime(pool_id=pool_id)

    def resolve_logical_session_id(
        self, workspace_root: str, window_fingerprint: str
    ) -> str:
        return resolve_logical_session_id(workspace_root, window_fingerprint)

    async def get_or_attach_account_session(
        self, pool_id: str, logical_session_id: str, account_id: str
    ) -> tuple[str, bool]:
        """Return the provider session for an account, minting it once.

        Returns:
            Tuple of (provider_session_id, bootstrapped), where
            ``bootstrapped`` is True only when the id was created by this call
        """
        if not logical_session_id.strip():
            raise ValidationError("logical session id is required")
        if not account_id.strip():
            raise ValidationError("account id is required")

        runtime = await self._load(pool_id)
        ledger = runtime.ledger(logical_session_id)

        existing = ledger.account_sessions.get(account_id, "")
        if existing:
            return existing, False

        session_id = provider_session_id(logical_session_id, account_id)
        ledger.account_sessions[account_id] = session_id
        runtime.active_account_id = account_id
        runtime.last_synced_at = self._now()
        await self.runtimes.save(runtime)

        logger.info(
            "provider_session_attached",
            pool_id=pool_id,
            logical_session_id=logical_session_id,
            account_id=account_id,
        )
        return session_id, True

    async def update_memory_packet(
        self, pool_id: str, logical_session_id: str, packet: MemoryPacket
    ) -> MemoryPacket:
        """Overwrite the session's memory packet and stamp it."""
        runtime = await self._load(pool_id)
        ledger = runtime.ledger(logical_session_id)
        now = self._now()
        ledger.memory = packet.model_copy(deep=True, update={"updated_at": now})
        runtime.last_synced_at = now
        await self.runtimes.save(runtime)
        return ledger.memory

    async def get_memory_packet(
        self, pool_id: str, logical_session_id: str
    ) -> MemoryPacket:
        runtime = await self._load(pool_id)
        ledger = runtime.sessions.get(logical_session_id)
        return ledger.memory if ledger is not None else MemoryPacket()

    async def get_active_account_id(self, pool_id: str) -> str:
        """Active account of the pool, empty when none was recorded."""
        return (await self._load(pool_id)).active_account_id

    async def set_active_account_id(self, pool_id: str, account_id: str) -> None:
        runtime = await self._load(pool_id)
        runtime.active_account_id = account_id.strip()
        runtime.last_synced_at = self._now()
        await self.runtimes.save(runtime)
        logger.info("pool_active_account_set", pool_id=pool_id, account_id=account_id)
