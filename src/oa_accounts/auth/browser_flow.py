"""Interactive browser login using PKCE and a local callback listener."""

import webbrowser
from collections.abc import Callable

from structlog import get_logger

from oa_accounts.auth.callback import CallbackListener
from oa_accounts.auth.oauth_client import OAuthClient
from oa_accounts.auth.pkce import generate_pkce_pair, generate_state
from oa_accounts.domain import OAuthTokens


logger = get_logger(__name__)


class BrowserLoginFlow:
    """Runs one authorization-code login end to end."""

    def __init__(
        self,
        oauth_client: OAuthClient,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self.oauth_client = oauth_client
        self._open_browser = open_browser

    async def run(
        self,
        on_url: Callable[[str], None] | None = None,
        timeout: float | None = None,
    ) -> OAuthTokens:
        """Open the authorization URL and exchange the returned code.

        Args:
            on_url: Called with the authorization URL before the browser opens
            timeout: Seconds to wait for the callback; configured default if None

        Returns:
            Tokens from the code exchange

        Raises:
            OAuthCallbackTimeoutError: If the callback does not arrive in time
            OAuthCallbackError: If the callback reports an error
            TokenExchangeError: If the code exchange fails
        """
        config = self.oauth_client.config
        state = generate_state()
        code_verifier, code_challenge = generate_pkce_pair()
        wait_timeout = timeout if timeout is not None else config.callback_timeout

        with CallbackListener(
            config.listen_host, config.listen_port, config.callback_path, state
        ) as listener:
            auth_url = self.oauth_client.build_authorization_url(state, code_challenge)
            if on_url is not None:
                on_url(auth_url)
            logger.info("oauth_browser_opening", port=listener.port)
            if not self._open_browser(auth_url):
                logger.warning("oauth_browser_open_failed")

            authorization_code = await listener.wait_for_code(wait_timeout)

        return await self.oauth_client.exchange_code_for_tokens(
            authorization_code, code_verifier
        )
