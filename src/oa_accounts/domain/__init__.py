"""Domain models."""

from .account import (
    Account,
    AccountAuth,
    AccountClassification,
    AccountLimits,
    AccountMetadata,
    AuthMethod,
    LimitSnapshot,
    LimitWindowKind,
    Subscription,
    Usage,
    account_classification,
    compact_number,
    oauth_secret_key,
    unique_secret_refs,
)
from .pool import (
    DEFAULT_POOL_ID,
    MemoryPacket,
    Pool,
    PoolRuntime,
    PoolStrategy,
    Provider,
    SessionLedger,
    normalize_members,
)
from .tokens import OAuthTokens


__all__ = [
    "Account",
    "AccountAuth",
    "AccountClassification",
    "AccountLimits",
    "AccountMetadata",
    "AuthMethod",
    "LimitSnapshot",
    "LimitWindowKind",
    "Subscription",
    "Usage",
    "account_classification",
    "compact_number",
    "oauth_secret_key",
    "unique_secret_refs",
    "DEFAULT_POOL_ID",
    "MemoryPacket",
    "Pool",
    "PoolRuntime",
    "PoolStrategy",
    "Provider",
    "SessionLedger",
    "normalize_members",
    "OAuthTokens",
]
