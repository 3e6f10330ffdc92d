"""OAuth client: authorization URL, code exchange and token refresh."""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode, urlsplit

import httpx
import orjson
from structlog import get_logger

from oa_accounts.config.auth import DEFAULT_ORIGINATOR, OAuthSettings
from oa_accounts.domain import OAuthTokens
from oa_accounts.exceptions import (
    AuthorizationRequestError,
    InvalidRefreshTokenError,
    OAuthError,
    TokenExchangeError,
)


logger = get_logger(__name__)

MAX_OAUTH_RESPONSE_BYTES = 1 << 20
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


@dataclass
class AuthorizationRequest:
    """Parameters of a PKCE authorization request."""

    authorize_url: str
    client_id: str
    redirect_uri: str
    state: str
    code_challenge: str
    scopes: list[str] = field(default_factory=list)
    originator: str = DEFAULT_ORIGINATOR


def build_authorization_url(request: AuthorizationRequest) -> str:
    """Build the browser authorization URL.

    Args:
        request: Authorization request parameters

    Returns:
        Authorization URL with the query string appended

    Raises:
        AuthorizationRequestError: If the endpoint is not an absolute http(s)
            URL or a required parameter is missing
    """
    parsed = urlsplit(request.authorize_url.strip())
    if parsed.scheme not in ("http", "https"):
        raise AuthorizationRequestError("authorize url must use http or https")
    if not parsed.netloc:
        raise AuthorizationRequestError("authorize url must include a host")

    required = {
        "client id": request.client_id,
        "redirect uri": request.redirect_uri,
        "state": request.state,
        "code challenge": request.code_challenge,
    }
    for label, value in required.items():
        if not value.strip():
            raise AuthorizationRequestError(f"{label} is required")

    params = {
        "response_type": "code",
        "client_id": request.client_id,
        "redirect_uri": request.redirect_uri,
        "scope": " ".join(request.scopes),
        "state": request.state,
        "code_challenge": request.code_challenge,
        "code_challenge_method": "S256",
        "id_token_add_organizations": "true",
        "codex_cli_simplified_flow": "true",
        "originator": request.originator or DEFAULT_ORIGINATOR,
    }
    separator = "&" if parsed.query else "?"
    return f"{request.authorize_url.strip()}{separator}{urlencode(params)}"


def _truncate_error_text(response_text: str) -> str:
    """Truncate response text for compact error logging."""
    if len(response_text) > 200:
        return f"{response_text[:100]}...{response_text[-50:]}"
    if len(response_text) > 100:
        return f"{response_text[:100]}..."
    return response_text


def _log_http_error_compact(operation: str, response: httpx.Response) -> None:
    """Log an HTTP error response, in full only when OA_VERBOSE_API is set."""
    verbose_api = os.environ.get("OA_VERBOSE_API", "false").lower() == "true"

    if verbose_api:
        logger.error(
            "http_operation_failed",
            operation=operation,
            status_code=response.status_code,
            response_text=response.text,
        )
    else:
        logger.error(
            "http_operation_failed_compact",
            operation=operation,
            status_code=response.status_code,
            response_preview=_truncate_error_text(response.text),
            verbose_hint="use OA_VERBOSE_API=true for full response",
        )


def read_json_body(response: httpx.Response, operation: str) -> dict[str, Any]:
    """Decode a JSON object body capped at 1 MiB.

    Raises:
        OAuthError: If the body is too large or not a JSON object
    """
    body = response.content
    if len(body) > MAX_OAUTH_RESPONSE_BYTES:
        raise OAuthError(
            f"{operation}: response exceeds {MAX_OAUTH_RESPONSE_BYTES} bytes"
        )
    try:
        data = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise OAuthError(f"{operation}: decode response: {e}") from e
    if not isinstance(data, dict):
        raise OAuthError(f"{operation}: response is not a JSON object")
    return data


def parse_oauth_error(response: httpx.Response) -> tuple[str, str]:
    """Extract ``(error, error_description)`` from an OAuth error body."""
    try:
        data = orjson.loads(response.content[:MAX_OAUTH_RESPONSE_BYTES])
    except orjson.JSONDecodeError:
        return "", ""
    if not isinstance(data, dict):
        return "", ""

    error = data.get("error", "")
    description = data.get("error_description", "")
    if isinstance(error, dict):
        description = description or error.get("message", "")
        error = error.get("code") or error.get("type") or ""
    return str(error or ""), str(description or "")


def format_oauth_error(status_code: int, error: str, description: str) -> str:
    if not error:
        return f"status {status_code}"
    if description:
        return f"{error}: {description}"
    return error


class OAuthClient:
    """OAuth client for the provider's authorization-code and refresh grants.

    Supports connection pooling by reusing a caller-supplied httpx.AsyncClient.
    """

    def __init__(
        self,
        config: OAuthSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize OAuth client.

        Args:
            config: OAuth configuration, uses default if not provided
            http_client: Optional shared httpx client for connection pooling
        """
        self.config = config or OAuthSettings()
        self._shared_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            yield client

    def build_authorization_url(
        self, state: str, code_challenge: str, redirect_uri: str | None = None
    ) -> str:
        """Build the authorization URL from configured client settings.

        Args:
            state: State parameter for CSRF protection
            code_challenge: PKCE S256 code challenge
            redirect_uri: Override for the configured callback URI

        Returns:
            Authorization URL
        """
        return build_authorization_url(
            AuthorizationRequest(
                authorize_url=self.config.authorize_url,
                client_id=self.config.client_id,
                redirect_uri=redirect_uri or self.config.redirect_uri,
                state=state,
                code_challenge=code_challenge,
                scopes=list(self.config.scopes),
                originator=self.config.originator,
            )
        )

    async def exchange_code_for_tokens(
        self,
        authorization_code: str,
        code_verifier: str,
        redirect_uri: str | None = None,
    ) -> OAuthTokens:
        """Exchange an authorization code for tokens.

        Args:
            authorization_code: Authorization code from the callback
            code_verifier: PKCE code verifier
            redirect_uri: Redirect URI used in the authorization request

        Returns:
            Tokens with ``expires_at`` computed from ``expires_in``

        Raises:
            TokenExchangeError: If the endpoint rejects the exchange or the
                response lacks the access, refresh or id token
        """
        if not authorization_code.strip():
            raise TokenExchangeError("authorization code is required")
        if not code_verifier.strip():
            raise TokenExchangeError("code verifier is required")

        tokens = await self._post_token_request(
            "token_exchange",
            {
                "grant_type": "authorization_code",
                "code": authorization_code,
                "redirect_uri": redirect_uri or self.config.redirect_uri,
                "client_id": self.config.client_id,
                "code_verifier": code_verifier,
            },
        )
        missing = [
            name
            for name in ("access_token", "refresh_token", "id_token")
            if not getattr(tokens, name)
        ]
        if missing:
            raise TokenExchangeError(
                f"token exchange response missing {', '.join(missing)}"
            )
        logger.info("oauth_code_exchanged", expires_at=tokens.expires_at)
        return tokens

    async def refresh_tokens(self, refresh_token: str) -> OAuthTokens:
        """Refresh tokens with a refresh token.

        The response may omit the refresh and id tokens; callers carry them
        over from the previous record.

        Args:
            refresh_token: Current refresh token

        Returns:
            Refreshed tokens with ``expires_at`` recomputed

        Raises:
            InvalidRefreshTokenError: If the endpoint answers ``invalid_grant``
            TokenExchangeError: For any other rejection
        """
        if not refresh_token.strip():
            raise InvalidRefreshTokenError("refresh token is empty")

        tokens = await self._post_token_request(
            "token_refresh",
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
            },
        )
        logger.info("oauth_tokens_refreshed", expires_at=tokens.expires_at)
        return tokens

    async def _post_token_request(
        self, operation: str, form: dict[str, str]
    ) -> OAuthTokens:
        try:
            async with self._client() as client:
                response = await client.post(
                    self.config.token_url,
                    headers=FORM_HEADERS,
                    data=form,
                    timeout=self.config.request_timeout,
                )
        except httpx.TimeoutException as e:
            raise TokenExchangeError(f"{operation}: request timed out") from e
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"{operation}: request failed: {e}") from e

        if not response.is_success:
            self._raise_token_error(
                operation, response, refresh=form["grant_type"] == "refresh_token"
            )

        data = read_json_body(response, operation)
        access_token = str(data.get("access_token") or "")
        if not access_token:
            raise TokenExchangeError(f"{operation}: response missing access_token")

        return OAuthTokens(
            access_token=access_token,
            refresh_token=str(data.get("refresh_token") or ""),
            id_token=str(data.get("id_token") or ""),
            token_type=str(data.get("token_type") or ""),
            expires_in=int(data.get("expires_in") or 0),
        ).with_calculated_expiry()

    @staticmethod
    def _raise_token_error(
        operation: str, response: httpx.Response, *, refresh: bool
    ) -> None:
        _log_http_error_compact(operation, response)
        error, description = parse_oauth_error(response)
        detail = format_oauth_error(response.status_code, error, description)
        message = f"{operation}: {detail}"
        error_class = (
            InvalidRefreshTokenError
            if refresh and error == "invalid_grant"
            else TokenExchangeError
        )
        raise error_class(
            message,
            status_code=response.status_code,
            response_text=_truncate_error_text(response.text),
            oauth_error=error or None,
        )
