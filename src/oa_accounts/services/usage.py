"""Usage and rate-limit snapshots fetched from the provider.

``UsageClient`` talks to the usage endpoint, ``select_limit_windows`` turns
its payload into daily/weekly snapshots and ``UsageFetcher`` refreshes many
accounts at once with bounded concurrency and per-account failure isolation.
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import orjson
from dateutil import parser as dateutil_parser
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from oa_accounts.auth.claims import parse_token_claims
from oa_accounts.config.usage import UsageSettings
from oa_accounts.core.async_utils import gather_bounded
from oa_accounts.domain import (
    Account,
    AuthMethod,
    LimitWindowKind,
    OAuthTokens,
    Subscription,
)
from oa_accounts.exceptions import (
    AllAccountsFailedError,
    FetchCancelledError,
    ReauthenticationRequiredError,
    SessionExpiredError,
    UsageFetchError,
)
from oa_accounts.services.credentials import CredentialService
from oa_accounts.services.token_freshness import TokenFreshnessManager


logger = get_logger(__name__)

USAGE_PATH = "/wham/usage"
USER_AGENT = "oa/usage"
MAX_USAGE_RESPONSE_BYTES = 1 << 20
WEEKLY_WINDOW_SECONDS = 6 * 24 * 60 * 60


# ============================================================================
# Payload
# ============================================================================


class UsageWindow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    used_percent: float = 0.0
    limit_window_seconds: int = 0
    reset_at: int = 0

    @property
    def is_weekly(self) -> bool:
        return self.limit_window_seconds >= WEEKLY_WINDOW_SECONDS

    @property
    def resets_at(self) -> datetime:
        return datetime.fromtimestamp(self.reset_at, tz=UTC)


class UsageRateLimit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    primary_window: UsageWindow | None = None
    secondary_window: UsageWindow | None = None


class AdditionalRateLimit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    rate_limit: UsageRateLimit | None = None


class UsagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    plan_type: str = ""
    rate_limit: UsageRateLimit | None = None
    additional_rate_limits: list[AdditionalRateLimit] = []

    def windows(self) -> list[UsageWindow]:
        limits = [self.rate_limit] + [
            extra.rate_limit for extra in self.additional_rate_limits
        ]
        collected = []
        for limit in limits:
            if limit is None:
                continue
            for window in (limit.primary_window, limit.secondary_window):
                if window is not None:
                    collected.append(window)
        return collected


def select_limit_windows(
    payload: UsagePayload,
) -> tuple[UsageWindow | None, UsageWindow | None]:
    """Pick the daily and weekly windows from a usage payload.

    Windows without a reset time are ignored. Windows of six days or more are
    weekly and the widest one wins; of the rest the narrowest is daily.

    Returns:
        Tuple of (daily, weekly), either of which may be None
    """
    daily: UsageWindow | None = None
    weekly: UsageWindow | None = None
    daily_seconds = weekly_seconds = 0
    for window in payload.windows():
        if window.reset_at <= 0:
            continue
        if window.is_weekly:
            if weekly is None or window.limit_window_seconds > weekly_seconds:
                weekly, weekly_seconds = window, window.limit_window_seconds
        elif daily is None or window.limit_window_seconds < daily_seconds:
            daily, daily_seconds = window, window.limit_window_seconds
    return daily, weekly


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = dateutil_parser.isoparse(str(value))
    except (ValueError, OverflowError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def parse_subscription(data: dict[str, Any]) -> Subscription:
    """Map a subscription endpoint body to a ``Subscription``."""
    return Subscription(
        active_start=_parse_timestamp(data.get("active_start")),
        active_until=_parse_timestamp(data.get("active_until")),
        will_renew=bool(data.get("will_renew", False)),
        billing_period=str(data.get("billing_period") or ""),
        billing_currency=str(data.get("billing_currency") or ""),
        is_delinquent=bool(data.get("is_delinquent", False)),
    )


# ============================================================================
# HTTP client
# ============================================================================


class UsageClient:
    """Client for the provider's usage and subscription endpoints."""

    def __init__(
        self,
        config: UsageSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or UsageSettings()
        self._shared_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            yield client

    def _headers(self, tokens: OAuthTokens) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {tokens.access_token}",
            "User-Agent": USER_AGENT,
        }
        account_id = parse_token_claims(tokens.id_token).chatgpt_account_id
        if account_id:
            headers["ChatGPT-Account-Id"] = account_id
        return headers

    async def _get_json(self, operation: str, path: str, tokens: OAuthTokens) -> Any:
        url = self.config.base_url.rstrip("/") + "/" + path.lstrip("/")
        try:
            async with self._client() as client:
                response = await client.get(
                    url,
                    headers=self._headers(tokens),
                    timeout=self.config.request_timeout,
                )
        except httpx.HTTPError as e:
            raise UsageFetchError(f"{operation}: request failed: {e}") from e

        body = response.content[:MAX_USAGE_RESPONSE_BYTES]
        if response.status_code in (401, 403):
            raise SessionExpiredError(response.status_code)
        if not response.is_success:
            preview = body.decode(errors="replace").strip()[:200]
            raise UsageFetchError(
                f"{operation}: status {response.status_code}: {preview}"
            )
        if len(response.content) > MAX_USAGE_RESPONSE_BYTES:
            raise UsageFetchError(
                f"{operation}: response exceeds {MAX_USAGE_RESPONSE_BYTES} bytes"
            )
        try:
            return orjson.loads(body)
        except orjson.JSONDecodeError as e:
            raise UsageFetchError(f"{operation}: decode payload: {e}") from e

    async def fetch_usage(self, tokens: OAuthTokens) -> UsagePayload:
        """GET the usage payload.

        Raises:
            SessionExpiredError: On 401/403
            UsageFetchError: On any other failure
        """
        data = await self._get_json("fetch_usage", USAGE_PATH, tokens)
        try:
            return UsagePayload.model_validate(data)
        except PydanticValidationError as e:
            raise UsageFetchError(f"fetch_usage: decode payload: {e}") from e

    async def fetch_subscription(self, tokens: OAuthTokens) -> Subscription | None:
        """GET the subscription, or None when no endpoint is configured."""
        if not self.config.subscription_path:
            return None
        data = await self._get_json(
            "fetch_subscription", self.config.subscription_path, tokens
        )
        if not isinstance(data, dict):
            raise UsageFetchError("fetch_subscription: payload is not an object")
        return parse_subscription(data)


# ============================================================================
# Fetcher
# ============================================================================


@dataclass
class UsageFetchReport:
    """Outcome of a batch fetch."""

    updated: list[str] = field(default_factory=list)
    cached: list[str] = field(default_factory=list)
    failures: list[tuple[str, BaseException]] = field(default_factory=list)


class UsageFetcher:
    """Refreshes limit snapshots for one or many accounts."""

    def __init__(
        self,
        client: UsageClient,
        freshness: TokenFreshnessManager,
        credentials: CredentialService,
        *,
        max_concurrency: int = 5,
        cache_ttl: timedelta = timedelta(minutes=5),
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.client = client
        self.freshness = freshness
        self.credentials = credentials
        self.max_concurrency = max_concurrency
        self.cache_ttl = cache_ttl
        self._now = now or (lambda: datetime.now(UTC))

    def _is_cached(self, account: Account) -> bool:
        latest = account.limits.latest_capture()
        return latest is not None and self._now() - latest < self.cache_ttl

    async def refresh_account(self, account_id: str, force: bool = False) -> bool:
        """Fetch and persist limits for one account.

        Args:
            account_id: Account to refresh
            force: Ignore the recent-capture cache

        Returns:
            True when the endpoint was called, False when served from cache

        Raises:
            ReauthenticationRequiredError: If the session cannot be revived
            UsageFetchError: If the endpoint fails or reports no usable window
        """
        account = await self.credentials.get_account(account_id)
        if not force and self._is_cached(account):
            logger.debug("usage_fetch_cached", account_id=account_id)
            return False

        tokens = await self.freshness.ensure_fresh_tokens(account_id)
        payload: UsagePayload | None = None
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(2),
                retry=retry_if_exception_type(SessionExpiredError),
                reraise=True,
            ):
                with attempt:
                    if attempt.retry_state.attempt_number > 1:
                        logger.info(
                            "usage_session_expired_retry", account_id=account_id
                        )
                        tokens = await self.freshness.ensure_fresh_tokens(
                            account_id, tokens, force=True
                        )
                    payload = await self.client.fetch_usage(tokens)
        except SessionExpiredError as e:
            raise ReauthenticationRequiredError(account_id, "session expired") from e
        assert payload is not None

        daily, weekly = select_limit_windows(payload)
        if daily is None and weekly is None:
            raise UsageFetchError(
                f"account {account_id}: missing limit snapshots in usage payload"
            )

        now = self._now()
        if daily is not None:
            await self.credentials.set_limit(
                account_id,
                LimitWindowKind.DAILY,
                daily.used_percent,
                daily.resets_at,
                now,
            )
        if weekly is not None:
            await self.credentials.set_limit(
                account_id,
                LimitWindowKind.WEEKLY,
                weekly.used_percent,
                weekly.resets_at,
                now,
            )

        email = parse_token_claims(tokens.id_token).email.strip()
        if email and account.name != email:
            await self.credentials.set_account_name(account_id, email)

        plan_type = payload.plan_type.strip()
        if plan_type and account.metadata.plan_type != plan_type:
            await self.credentials.set_account_plan_type(account_id, plan_type)

        await self._refresh_subscription(account_id, tokens)

        logger.info(
            "usage_fetched",
            account_id=account_id,
            daily_percent=daily.used_percent if daily else None,
            weekly_percent=weekly.used_percent if weekly else None,
        )
        return True

    async def _refresh_subscription(self, account_id: str, tokens: OAuthTokens) -> None:
        try:
            subscription = await self.client.fetch_subscription(tokens)
        except (UsageFetchError, SessionExpiredError) as e:
            logger.warning(
                "subscription_fetch_failed", account_id=account_id, error=str(e)
            )
            return
        if subscription is not None:
            await self.credentials.set_subscription(account_id, subscription)

    async def refresh_all(
        self,
        account_ids: list[str] | None = None,
        *,
        force: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> UsageFetchReport:
        """Refresh many accounts concurrently.

        Args:
            account_ids: Accounts to refresh; every ChatGPT-authenticated
                account when None
            force: Ignore the recent-capture cache
            cancel_event: Abandons work still pending when set

        Returns:
            Per-account successes and failures

        Raises:
            AllAccountsFailedError: If every account failed (more than one)
            Exception: The single account's own error when only one was requested
        """
        if account_ids is None:
            account_ids = [
                account.id
                for account in await self.credentials.list_accounts()
                if account.auth.method == AuthMethod.CHATGPT
            ]

        results = await gather_bounded(
            account_ids,
            lambda account_id: self.refresh_account(account_id, force=force),
            limit=self.max_concurrency,
            cancel_event=cancel_event,
            on_cancelled=FetchCancelledError,
        )

        report = UsageFetchReport()
        for account_id, fetched, error in results:
            if error is not None:
                logger.warning(
                    "usage_fetch_failed", account_id=account_id, error=str(error)
                )
                report.failures.append((account_id, error))
            elif fetched:
                report.updated.append(account_id)
            else:
                report.cached.append(account_id)

        if account_ids and len(report.failures) == len(account_ids):
            if len(account_ids) == 1:
                raise report.failures[0][1]
            raise AllAccountsFailedError(report.failures)
        return report
