"""Account model: identity, auth references, usage and limit snapshots."""

from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import BaseModel, Field


DEFAULT_PROVIDER = "openai"

BUSINESS_PLAN_TYPES = frozenset(
    {"business", "enterprise", "education", "edu", "k12", "quorum", "free_workspace"}
)


class AuthMethod(StrEnum):
    """How an account authenticates against the provider."""

    API_KEY = "api_key"
    CHATGPT = "chatgpt"


class LimitWindowKind(StrEnum):
    """Rate-limit window buckets tracked per account."""

    DAILY = "daily"
    WEEKLY = "weekly"


class AccountClassification(StrEnum):
    """Coarse account category derived from the provider plan type."""

    UNKNOWN = "unknown"
    PERSONAL = "personal"
    TEAM = "team"
    BUSINESS = "business"


class AccountMetadata(BaseModel):
    provider: str = DEFAULT_PROVIDER
    model: str = ""
    secret_ref: str = ""
    plan_type: str = ""


class AccountAuth(BaseModel):
    method: AuthMethod | None = None
    secret_ref: str = ""


class Usage(BaseModel):
    """Token counters reported for an account."""

    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0

    @property
    def blended_total(self) -> int:
        """Input, output and cached input tokens combined."""
        return self.input_tokens + self.output_tokens + self.cached_input_tokens


class LimitSnapshot(BaseModel):
    """Point-in-time reading of one rate-limit window."""

    percent: float
    resets_at: datetime | None = None
    captured_at: datetime | None = None

    def is_stale(self, now: datetime, max_age: timedelta) -> bool:
        """Check whether the snapshot is older than ``max_age``.

        Args:
            now: Reference time
            max_age: Maximum acceptable snapshot age

        Returns:
            True when the snapshot was never captured or is too old
        """
        if self.captured_at is None:
            return True
        return now - self.captured_at > max_age


class AccountLimits(BaseModel):
    daily: LimitSnapshot | None = None
    weekly: LimitSnapshot | None = None

    def latest_capture(self) -> datetime | None:
        """Most recent capture time across both windows."""
        captures = [
            snapshot.captured_at
            for snapshot in (self.daily, self.weekly)
            if snapshot is not None and snapshot.captured_at is not None
        ]
        return max(captures) if captures else None


class Subscription(BaseModel):
    active_start: datetime | None = None
    active_until: datetime | None = None
    will_renew: bool = False
    billing_period: str = ""
    billing_currency: str = ""
    is_delinquent: bool = False
    captured_at: datetime | None = None


class Account(BaseModel):
    """A provider account managed by oa.

    ``metadata.secret_ref`` and ``auth.secret_ref`` converge to the same key
    once a credential rotation completes.
    """

    id: str
    name: str = ""
    metadata: AccountMetadata = Field(default_factory=AccountMetadata)
    auth: AccountAuth = Field(default_factory=AccountAuth)
    usage: Usage = Field(default_factory=Usage)
    limits: AccountLimits = Field(default_factory=AccountLimits)
    subscription: Subscription | None = None

    @classmethod
    def new(cls, account_id: str) -> "Account":
        """Create an account with the default display name."""
        return cls(id=account_id, name=f"Account {account_id}")

    @property
    def weekly_percent(self) -> float:
        """Weekly usage percent, 0 when no snapshot exists."""
        if self.limits.weekly is None:
            return 0.0
        return self.limits.weekly.percent

    @property
    def classification(self) -> AccountClassification:
        return account_classification(self.metadata.plan_type)

    def secret_refs(self) -> list[str]:
        """Distinct non-empty secret references, metadata first."""
        return unique_secret_refs(self.metadata.secret_ref, self.auth.secret_ref)


def unique_secret_refs(*refs: str) -> list[str]:
    """Trim, drop blanks and de-duplicate while preserving order."""
    seen: list[str] = []
    for ref in refs:
        ref = ref.strip()
        if ref and ref not in seen:
            seen.append(ref)
    return seen


def account_classification(plan_type: str) -> AccountClassification:
    """Classify an account from its plan type string."""
    normalized = plan_type.strip().lower()
    if not normalized:
        return AccountClassification.UNKNOWN
    if normalized == "team":
        return AccountClassification.TEAM
    if normalized in BUSINESS_PLAN_TYPES:
        return AccountClassification.BUSINESS
    return AccountClassification.PERSONAL


def compact_number(value: int) -> str:
    """Render a count as ``999``, ``1.2k`` or ``3.4M``.

    Negative values are rendered unchanged.
    """
    if value < 1_000:
        return str(value)
    thousands = round(value / 1_000, 1)
    if thousands < 1_000:
        return f"{thousands:.1f}k"
    return f"{value / 1_000_000:.1f}M"


def oauth_secret_key(account_id: str) -> str:
    """Secret reference under which an account's OAuth tokens are stored."""
    return f"openai://{account_id}/oauth_tokens"
