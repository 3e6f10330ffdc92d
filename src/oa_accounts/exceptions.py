"""Consolidated exception hierarchy for oa-accounts.

All exceptions use proper exception chaining with the `from` keyword.
Error types use StrEnum so callers can branch on a stable code as well as
on the exception class.
"""

from enum import StrEnum
from typing import Any


class ErrorType(StrEnum):
    """Error type codes attached to every raised error."""

    VALIDATION = "validation_error"
    NOT_FOUND = "not_found_error"
    CONFLICT = "conflict_error"
    STORAGE = "storage_error"
    UNAVAILABLE = "unavailable_error"
    AUTHENTICATION = "authentication_error"
    SESSION_EXPIRED = "session_expired_error"
    TIMEOUT = "timeout_error"
    CANCELLED = "cancelled_error"
    NETWORK = "network_error"
    INTERNAL = "internal_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class OAAccountsError(Exception):
    """Base exception for all oa-accounts errors."""

    error_type: ErrorType = ErrorType.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type
        self.details = details or {}


class CompensationError(OAAccountsError):
    """A failed operation whose rollback also failed.

    Carries the original failure and every rollback failure so that no
    information is lost. Raised ``from`` the original failure.
    """

    def __init__(
        self,
        message: str,
        *,
        original: BaseException,
        compensation_errors: list[BaseException],
    ) -> None:
        parts = [f"{message}: {original}"]
        parts.extend(f"rollback failed: {err}" for err in compensation_errors)
        super().__init__("; ".join(parts), error_type=ErrorType.CONFLICT)
        self.original = original
        self.compensation_errors = list(compensation_errors)


# ============================================================================
# Validation Errors
# ============================================================================


class ValidationError(OAAccountsError):
    """Bad input or record shape. Never retried."""

    error_type = ErrorType.VALIDATION


class PoolValidationError(ValidationError):
    """Pool record failed validation."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"invalid pool: {reason}")
        self.reason = reason


class UnsupportedWindowKindError(ValidationError):
    """Limit window kind is neither daily nor weekly."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"unsupported window kind: {kind!r}")
        self.kind = kind


# ============================================================================
# Not Found Errors
# ============================================================================


class NotFoundError(OAAccountsError):
    """Base for named not-found conditions."""

    error_type = ErrorType.NOT_FOUND


class AccountNotFoundError(NotFoundError):
    """No account with the requested id."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"account not found: {account_id}")
        self.account_id = account_id


class PoolNotFoundError(NotFoundError):
    """No pool (or pool runtime) with the requested id."""

    def __init__(self, pool_id: str) -> None:
        super().__init__(f"pool not found: {pool_id}")
        self.pool_id = pool_id


# ============================================================================
# Pool Selection Errors
# ============================================================================


class PoolInactiveError(OAAccountsError):
    """Pool exists but is deactivated."""

    error_type = ErrorType.CONFLICT

    def __init__(self, pool_id: str) -> None:
        super().__init__(f"pool is deactivated: {pool_id}")
        self.pool_id = pool_id


class NoEligibleAccountsError(OAAccountsError):
    """Every pool member is missing, mismatched or weekly-exhausted."""

    error_type = ErrorType.CONFLICT

    def __init__(self, pool_id: str) -> None:
        super().__init__(f"no eligible accounts in pool {pool_id}")
        self.pool_id = pool_id


class AccountNotEligibleError(OAAccountsError):
    """Requested account is not eligible in the pool."""

    error_type = ErrorType.CONFLICT

    def __init__(self, pool_id: str, selector: str) -> None:
        super().__init__(f"account {selector!r} is not eligible in pool {pool_id}")
        self.pool_id = pool_id
        self.selector = selector


# ============================================================================
# Storage & Secret Errors
# ============================================================================


class StorageError(OAAccountsError):
    """Repository file could not be read or written."""

    error_type = ErrorType.STORAGE


class SecretStoreError(OAAccountsError):
    """Base secret backend error."""

    error_type = ErrorType.STORAGE

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message, details={"key": key} if key else None)
        self.key = key


class SecretNotFoundError(SecretStoreError):
    """Secret key does not exist in the backend."""

    error_type = ErrorType.NOT_FOUND

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f"secret not found: {key}", key=key)


class SecretBackendUnavailableError(SecretStoreError):
    """Secret backend cannot be used on this host."""

    error_type = ErrorType.UNAVAILABLE


class SecretChainError(SecretStoreError):
    """Both the primary and the fallback secret backends failed."""

    def __init__(
        self,
        operation: str,
        key: str,
        *,
        primary_name: str,
        primary_error: BaseException,
        fallback_name: str,
        fallback_error: BaseException,
    ) -> None:
        super().__init__(
            format_chain_failure(
                operation, primary_name, primary_error, fallback_name, fallback_error
            ),
            key=key,
        )
        self.operation = operation
        self.primary_error = primary_error
        self.fallback_error = fallback_error


def format_chain_failure(
    operation: str,
    primary_name: str,
    primary_error: BaseException,
    fallback_name: str,
    fallback_error: BaseException,
) -> str:
    """Render the combined primary/fallback failure message."""
    return (
        f"{operation}: primary backend {primary_name} failed: {primary_error}; "
        f"fallback backend {fallback_name} failed: {fallback_error}"
    )


# ============================================================================
# OAuth Errors
# ============================================================================


class OAuthError(OAAccountsError):
    """Base OAuth error."""

    error_type = ErrorType.AUTHENTICATION


class AuthorizationRequestError(OAuthError):
    """Authorization URL parameters were rejected."""

    error_type = ErrorType.VALIDATION


class TokenExchangeError(OAuthError):
    """Token endpoint returned a failure."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        response_text: str | None = None,
        oauth_error: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text
        self.oauth_error = oauth_error


class InvalidRefreshTokenError(TokenExchangeError):
    """Refresh was rejected with ``invalid_grant``; a new login is needed."""


class OAuthCallbackError(OAuthError):
    """Browser callback failed."""


class OAuthStateMismatchError(OAuthCallbackError):
    """Callback state did not match the state sent with the request."""

    def __init__(self) -> None:
        super().__init__("oauth callback state mismatch")


class OAuthCallbackTimeoutError(OAuthCallbackError):
    """No callback arrived before the login timeout."""

    error_type = ErrorType.TIMEOUT

    def __init__(self, timeout: float) -> None:
        super().__init__(f"timed out after {timeout:g}s waiting for oauth callback")
        self.timeout = timeout


class DeviceFlowError(OAuthError):
    """Device authorization request or poll failed."""


class DeviceFlowTimeoutError(DeviceFlowError):
    """Device authorization was not completed before the deadline."""

    error_type = ErrorType.TIMEOUT


# ============================================================================
# Session Errors
# ============================================================================


class SessionExpiredError(OAAccountsError):
    """Remote endpoint rejected the access token (401/403)."""

    error_type = ErrorType.SESSION_EXPIRED

    def __init__(self, status_code: int) -> None:
        super().__init__(f"session expired (status {status_code})")
        self.status_code = status_code


class ReauthenticationRequiredError(OAAccountsError):
    """Stored credentials can no longer be refreshed."""

    error_type = ErrorType.SESSION_EXPIRED

    def __init__(self, account_id: str, reason: str = "refresh token rejected") -> None:
        super().__init__(
            f"account {account_id}: {reason}; "
            f"run `oa login browser --account {account_id}` to sign in again"
        )
        self.account_id = account_id
        self.reason = reason


# ============================================================================
# Usage Errors
# ============================================================================


class UsageFetchError(OAAccountsError):
    """Usage endpoint call or payload interpretation failed."""

    error_type = ErrorType.NETWORK


class FetchCancelledError(UsageFetchError):
    """Fetch was abandoned because the batch was cancelled."""

    error_type = ErrorType.CANCELLED

    def __init__(self, account_id: str) -> None:
        super().__init__(f"usage fetch cancelled for account {account_id}")
        self.account_id = account_id


class AllAccountsFailedError(UsageFetchError):
    """Every account in a batch fetch failed."""

    def __init__(self, failures: list[tuple[str, BaseException]]) -> None:
        joined = "; ".join(f"{account_id}: {err}" for account_id, err in failures)
        super().__init__(f"usage fetch failed for all accounts: {joined}")
        self.failures = list(failures)


__all__ = [
    "ErrorType",
    "OAAccountsError",
    "CompensationError",
    "ValidationError",
    "PoolValidationError",
    "UnsupportedWindowKindError",
    "NotFoundError",
    "AccountNotFoundError",
    "PoolNotFoundError",
    "PoolInactiveError",
    "NoEligibleAccountsError",
    "AccountNotEligibleError",
    "StorageError",
    "SecretStoreError",
    "SecretNotFoundError",
    "SecretBackendUnavailableError",
    "SecretChainError",
    "format_chain_failure",
    "OAuthError",
    "AuthorizationRequestError",
    "TokenExchangeError",
    "InvalidRefreshTokenError",
    "OAuthCallbackError",
    "OAuthStateMismatchError",
    "OAuthCallbackTimeoutError",
    "DeviceFlowError",
    "DeviceFlowTimeoutError",
    "SessionExpiredError",
    "ReauthenticationRequiredError",
    "UsageFetchError",
    "FetchCancelledError",
    "AllAccountsFailedError",
]
