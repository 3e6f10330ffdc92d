"""Pool and pool runtime models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from oa_accounts.exceptions import PoolValidationError


DEFAULT_POOL_ID = "default-openai"
DEFAULT_POOL_NAME = "default"


class Provider(StrEnum):
    OPENAI = "openai"


class PoolStrategy(StrEnum):
    LEAST_WEEKLY_USED = "least_weekly_used"


SUPPORTED_PROVIDERS = frozenset(provider.value for provider in Provider)


class Pool(BaseModel):
    """A named rotation group of accounts sharing one provider."""

    id: str
    name: str
    provider: str = Provider.OPENAI.value
    strategy: str = PoolStrategy.LEAST_WEEKLY_USED.value
    active: bool = False
    auto_sync_members: bool = True
    members: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None

    @classmethod
    def default_openai(cls) -> "Pool":
        return cls(id=DEFAULT_POOL_ID, name=DEFAULT_POOL_NAME)

    def normalize_members(self) -> None:
        """Trim, drop blank and de-duplicate members, keeping first occurrence."""
        self.members = normalize_members(self.members)

    def validate_pool(self) -> None:
        """Validate required fields and the provider.

        Raises:
            PoolValidationError: If the pool shape is invalid
        """
        if not self.id.strip():
            raise PoolValidationError("id is required")
        if not self.name.strip():
            raise PoolValidationError("name is required")
        provider = self.provider.strip()
        if not provider:
            raise PoolValidationError("provider is required")
        if provider.lower() not in SUPPORTED_PROVIDERS:
            raise PoolValidationError(f"unsupported provider {provider!r}")
        if not self.strategy.strip():
            raise PoolValidationError("strategy is required")


def normalize_members(members: list[str]) -> list[str]:
    normalized: list[str] = []
    for member in members:
        member = member.strip()
        if member and member not in normalized:
            normalized.append(member)
    return normalized


class MemoryPacket(BaseModel):
    """Cross-account hand-off notes for one logical session."""

    summary: str = ""
    decisions: list[str] = Field(default_factory=list)
    pending_tasks: list[str] = Field(default_factory=list)
    last_code_refs: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None


class SessionLedger(BaseModel):
    logical_session_id: str
    account_sessions: dict[str, str] = Field(default_factory=dict)
    memory: MemoryPacket = Field(default_factory=MemoryPacket)


class PoolRuntime(BaseModel):
    """Mutable rotation state for a pool."""

    pool_id: str
    active_account_id: str = ""
    last_synced_at: datetime | None = None
    sessions: dict[str, SessionLedger] = Field(default_factory=dict)

    def ledger(self, logical_session_id: str) -> SessionLedger:
        """Return the ledger for a logical session, creating it if needed."""
        ledger = self.sessions.get(logical_session_id)
        if ledger is None:
            ledger = SessionLedger(logical_session_id=logical_session_id)
            self.sessions[logical_session_id] = ledger
        return ledger
