"""Mirror the active account's OAuth tokens into opencode's auth file."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import orjson
from structlog import get_logger

from oa_accounts.auth.claims import parse_token_claims
from oa_accounts.core.async_utils import run_in_executor
from oa_accounts.core.system import get_xdg_data_home
from oa_accounts.domain import AuthMethod, OAuthTokens
from oa_accounts.exceptions import StorageError
from oa_accounts.repositories import AccountRepository
from oa_accounts.repositories.document import atomic_write_bytes, lock_for_path
from oa_accounts.secrets import SecretStore


logger = get_logger(__name__)

OPENCODE_PROVIDER_KEY = "openai"
OPENCODE_COMMAND = "opencode"


def default_opencode_auth_path() -> Path:
    return get_xdg_data_home() / "opencode" / "auth.json"


def should_sync_opencode_auth(command: str) -> bool:
    """True when ``command`` launches opencode."""
    return Path(command.strip()).name == OPENCODE_COMMAND


def token_expiry_millis(tokens: OAuthTokens, now: datetime) -> int:
    if tokens.expires_at > 0:
        return tokens.expires_at * 1000
    if tokens.expires_in > 0:
        return int((now + timedelta(seconds=tokens.expires_in)).timestamp() * 1000)
    return 0


class OpencodeAuthSync:
    """Writes the ``openai`` entry of opencode's ``auth.json``.

    Entries for other providers are preserved.
    """

    def __init__(
        self,
        accounts: AccountRepository,
        secrets: SecretStore,
        path: Path | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self.accounts = accounts
        self.secrets = secrets
        self.path = Path(path) if path is not None else default_opencode_auth_path()
        self._now = now or (lambda: datetime.now(UTC))

    async def sync_account(self, account_id: str) -> bool:
        """Sync the stored tokens of an account.

        Returns:
            False when the account does not use ChatGPT OAuth
        """
        account = await self.accounts.get_by_id(account_id)
        if account.auth.method != AuthMethod.CHATGPT:
            return False
        secret_ref = account.auth.secret_ref.strip()
        if not secret_ref:
            return False

        tokens = OAuthTokens.from_secret(await self.secrets.get(secret_ref))
        await self.sync(tokens)
        logger.info("opencode_auth_synced", account_id=account_id, path=str(self.path))
        return True

    async def sync(self, tokens: OAuthTokens) -> None:
        entry: dict[str, Any] = {
            "type": "oauth",
            "refresh": tokens.refresh_token,
            "access": tokens.access_token,
        }
        expires = token_expiry_millis(tokens, self._now())
        if expires:
            entry["expires"] = expires
        chatgpt_account_id = parse_token_claims(tokens.id_token).chatgpt_account_id
        if chatgpt_account_id:
            entry["accountId"] = chatgpt_account_id

        await run_in_executor(self._write_entry, entry)

    def _write_entry(self, entry: dict[str, Any]) -> None:
        with lock_for_path(self.path):
            content = self._read()
            content[OPENCODE_PROVIDER_KEY] = entry
            atomic_write_bytes(
                self.path, orjson.dumps(content, option=orjson.OPT_INDENT_2)
            )

    def _read(self) -> dict[str, Any]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageError(f"read opencode auth file: {e}") from e
        if not raw.strip():
            return {}
        try:
            content = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise StorageError(f"decode opencode auth file: {e}") from e
        if not isinstance(content, dict):
            raise StorageError("decode opencode auth file: expected object")
        return content
