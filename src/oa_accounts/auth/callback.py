"""Local HTTP listener receiving the browser OAuth redirect."""

import asyncio
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, HTTPServer
from threading import Thread
from typing import Any
from urllib.parse import parse_qs, urlparse

from structlog import get_logger

from oa_accounts.exceptions import (
    OAuthCallbackError,
    OAuthCallbackTimeoutError,
    OAuthStateMismatchError,
)


logger = get_logger(__name__)


@dataclass
class OAuthCallbackResult:
    """Container for OAuth callback results."""

    authorization_code: str | None = None
    error: str | None = None
    state_mismatch: bool = False

    @property
    def done(self) -> bool:
        return (
            self.authorization_code is not None
            or self.error is not None
            or self.state_mismatch
        )


def _create_oauth_callback_handler(
    callback_path: str, expected_state: str, result: OAuthCallbackResult
) -> type[BaseHTTPRequestHandler]:
    """Create a request handler bound to one pending login.

    Args:
        callback_path: Path the provider redirects to
        expected_state: Expected state parameter for CSRF protection
        result: Mutable container to store callback results

    Returns:
        A BaseHTTPRequestHandler subclass for processing OAuth callbacks
    """

    class OAuthCallbackHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            parsed_url = urlparse(self.path)
            if parsed_url.path != callback_path:
                self.send_response(404)
                self.end_headers()
                return

            query_params = parse_qs(parsed_url.query)
            received_state = query_params.get("state", [None])[0]

            if received_state != expected_state:
                result.state_mismatch = True
                self._send_error("Invalid state parameter")
            elif "error" in query_params:
                result.error = query_params.get(
                    "error_description", query_params["error"]
                )[0]
                self._send_error(result.error)
            elif query_params.get("code", [""])[0]:
                result.authorization_code = query_params["code"][0]
                self._send_success()
            else:
                result.error = "No authorization code received"
                self._send_error(result.error)

        def _send_success(self) -> None:
            self.send_response(200)
            self.end_headers()
            self.wfile.write(b"Login successful! You can close this window.")

        def _send_error(self, message: str | None) -> None:
            self.send_response(400)
            self.end_headers()
            self.wfile.write(f"Error: {message}".encode())

        def log_message(self, format: str, *args: Any) -> None:
            pass  # Suppress HTTP server logs

    return OAuthCallbackHandler


class CallbackListener:
    """Serves the callback path on a daemon thread until closed."""

    def __init__(self, host: str, port: int, callback_path: str, state: str) -> None:
        self.result = OAuthCallbackResult()
        handler_class = _create_oauth_callback_handler(
            callback_path, state, self.result
        )
        try:
            self._server = HTTPServer((host, port), handler_class)
        except OSError as e:
            raise OAuthCallbackError(
                f"start callback listener on {host}:{port}: {e}"
            ) from e
        self._thread = Thread(target=self._server.serve_forever, daemon=True)

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def __enter__(self) -> "CallbackListener":
        self._thread.start()
        logger.debug("oauth_callback_listening", port=self.port)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout=1)

    async def wait_for_code(self, timeout: float, poll_interval: float = 0.1) -> str:
        """Wait for the redirect carrying the authorization code.

        Raises:
            OAuthCallbackTimeoutError: If nothing arrives within ``timeout``
            OAuthStateMismatchError: If the callback state is wrong
            OAuthCallbackError: If the provider reported an error
        """
        start_time = time.monotonic()
        while not self.result.done:
            if time.monotonic() - start_time > timeout:
                raise OAuthCallbackTimeoutError(timeout)
            await asyncio.sleep(poll_interval)

        if self.result.state_mismatch:
            raise OAuthStateMismatchError()
        if self.result.error:
            raise OAuthCallbackError(f"OAuth callback failed: {self.result.error}")
        assert self.result.authorization_code is not None
        return self.result.authorization_code
