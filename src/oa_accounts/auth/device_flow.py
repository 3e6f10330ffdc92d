"""Device authorization grant: request a user code, then poll for tokens."""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import httpx
from structlog import get_logger

from oa_accounts.auth.oauth_client import (
    FORM_HEADERS,
    format_oauth_error,
    parse_oauth_error,
    read_json_body,
)
from oa_accounts.config.auth import OAuthSettings
from oa_accounts.domain import OAuthTokens
from oa_accounts.exceptions import DeviceFlowError, DeviceFlowTimeoutError, OAuthError


logger = get_logger(__name__)

DEVICE_CODE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
DEFAULT_POLL_INTERVAL = 5.0
SLOW_DOWN_INCREMENT = 5.0


@dataclass
class DeviceCode:
    verification_url: str
    user_code: str
    device_code: str
    poll_interval: float


def _api_url(base_url: str, path: str) -> str:
    if not path:
        raise DeviceFlowError("api path is required")
    parsed = urlsplit(base_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise DeviceFlowError("api base url must be an absolute http(s) url")
    return urljoin(base_url.rstrip("/") + "/", path.lstrip("/"))


class DeviceFlowClient:
    """Client for the OAuth device authorization grant."""

    slow_down_increment: float = SLOW_DOWN_INCREMENT

    def __init__(
        self,
        config: OAuthSettings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or OAuthSettings()
        self._shared_client = http_client

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._shared_client is not None:
            yield self._shared_client
            return
        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            yield client

    async def _post(
        self, operation: str, path: str, form: dict[str, str]
    ) -> httpx.Response:
        url = _api_url(self.config.issuer, path)
        try:
            async with self._client() as client:
                return await client.post(
                    url,
                    headers=FORM_HEADERS,
                    data=form,
                    timeout=self.config.request_timeout,
                )
        except httpx.HTTPError as e:
            raise DeviceFlowError(f"{operation}: request failed: {e}") from e

    async def request_device_code(self, scopes: list[str] | None = None) -> DeviceCode:
        """Start a device authorization.

        Args:
            scopes: Requested scopes; configured scopes if None

        Returns:
            Verification URL, user code and device code for polling

        Raises:
            DeviceFlowError: If the request fails or the response is incomplete
        """
        if not self.config.client_id:
            raise DeviceFlowError("client id is required")

        form = {"client_id": self.config.client_id}
        requested = self.config.scopes if scopes is None else scopes
        if requested:
            form["scope"] = " ".join(requested)

        response = await self._post(
            "request_device_code", self.config.device_code_path, form
        )
        if not response.is_success:
            error, description = parse_oauth_error(response)
            raise DeviceFlowError(
                "request device code: "
                + format_oauth_error(response.status_code, error, description)
            )

        try:
            payload = read_json_body(response, "request_device_code")
        except OAuthError as e:
            raise DeviceFlowError(str(e)) from e

        verification_url = str(
            payload.get("verification_uri_complete")
            or payload.get("verification_uri")
            or ""
        )
        device_code = str(payload.get("device_code") or "")
        user_code = str(payload.get("user_code") or "")
        if not (device_code and user_code and verification_url):
            raise DeviceFlowError("device code response missing required fields")

        interval = float(payload.get("interval") or 0)
        return DeviceCode(
            verification_url=verification_url,
            user_code=user_code,
            device_code=device_code,
            poll_interval=interval if interval > 0 else DEFAULT_POLL_INTERVAL,
        )

    async def poll_token(
        self,
        device_code: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float | None = None,
    ) -> OAuthTokens:
        """Poll the token endpoint until the user approves the device.

        ``authorization_pending`` keeps polling, ``slow_down`` lengthens the
        interval and a server-sent ``interval`` replaces it.

        Args:
            device_code: Device code from :meth:`request_device_code`
            poll_interval: Initial seconds between polls
            timeout: Wall-clock limit in seconds; configured default if None

        Returns:
            Issued tokens

        Raises:
            DeviceFlowTimeoutError: If the deadline passes before approval
            DeviceFlowError: On any other token endpoint error
        """
        if not self.config.client_id:
            raise DeviceFlowError("client id is required")
        if not device_code:
            raise DeviceFlowError("device code is required")

        interval = poll_interval if poll_interval > 0 else DEFAULT_POLL_INTERVAL
        limit = timeout if timeout and timeout > 0 else self.config.device_poll_timeout
        deadline = time.monotonic() + limit

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise DeviceFlowTimeoutError("device authorization timed out")

            try:
                async with asyncio.timeout(remaining):
                    tokens, next_interval = await self._poll_once(
                        device_code, interval
                    )
            except TimeoutError as e:
                raise DeviceFlowTimeoutError("device authorization timed out") from e

            if tokens is not None:
                logger.info("device_flow_authorized")
                return tokens

            interval = next_interval
            if time.monotonic() + interval > deadline:
                raise DeviceFlowTimeoutError("device authorization timed out")
            logger.debug("device_flow_pending", next_poll_seconds=interval)
            await asyncio.sleep(interval)

    async def _poll_once(
        self, device_code: str, interval: float
    ) -> tuple[OAuthTokens | None, float]:
        response = await self._post(
            "poll_token",
            self.config.device_token_path,
            {
                "grant_type": DEVICE_CODE_GRANT_TYPE,
                "client_id": self.config.client_id,
                "device_code": device_code,
            },
        )

        if response.is_success:
            try:
                payload = read_json_body(response, "poll_token")
            except OAuthError as e:
                raise DeviceFlowError(str(e)) from e
            access_token = str(payload.get("access_token") or "")
            if not access_token:
                raise DeviceFlowError("token response missing access token")
            tokens = OAuthTokens(
                access_token=access_token,
                refresh_token=str(payload.get("refresh_token") or ""),
                id_token=str(payload.get("id_token") or ""),
                token_type=str(payload.get("token_type") or ""),
                expires_in=int(payload.get("expires_in") or 0),
            )
            return tokens.with_calculated_expiry(), interval

        error, description = parse_oauth_error(response)
        if error not in ("authorization_pending", "slow_down"):
            raise DeviceFlowError(
                "poll token: "
                + format_oauth_error(response.status_code, error, description)
            )

        next_interval = interval
        try:
            server_interval = float(response.json().get("interval") or 0)
        except (ValueError, AttributeError):
            server_interval = 0
        if server_interval > 0:
            next_interval = server_interval
        if error == "slow_down":
            next_interval += self.slow_down_increment
        return None, next_interval
