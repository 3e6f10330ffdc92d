"""Tests for mirroring OAuth tokens into opencode's auth file."""

from datetime import timedelta

import orjson
import pytest

from conftest import FIXED_NOW, make_id_token
from oa_accounts.domain import Account, AuthMethod, OAuthTokens, oauth_secret_key
from oa_accounts.exceptions import StorageError
from oa_accounts.services import OpencodeAuthSync
from oa_accounts.services.opencode_sync import (
    default_opencode_auth_path,
    should_sync_opencode_auth,
    token_expiry_millis,
)


NOW_TS = int(FIXED_NOW.timestamp())


@pytest.fixture
def auth_path(tmp_path):
    return tmp_path / "opencode" / "auth.json"


@pytest.fixture
def sync(account_repo, secret_store, auth_path) -> OpencodeAuthSync:
    return OpencodeAuthSync(
        account_repo, secret_store, auth_path, now=lambda: FIXED_NOW
    )


def _chatgpt_account(account_repo, secret_store, account_id: str = "1") -> OAuthTokens:
    key = oauth_secret_key(account_id)
    account = Account.new(account_id)
    account.auth.method = AuthMethod.CHATGPT
    account.auth.secret_ref = key
    account.metadata.secret_ref = key
    account_repo.records[account_id] = account
    tokens = OAuthTokens(
        access_token="at",
        refresh_token="rt",
        id_token=make_id_token(chatgpt_account_id="acct-9"),
        expires_at=NOW_TS + 600,
    )
    secret_store.values[key] = tokens.to_secret()
    return tokens


@pytest.mark.unit
class TestOpencodeAuthSync:
    """Tests for OpencodeAuthSync."""

    async def test_writes_openai_entry(
        self, sync, account_repo, secret_store, auth_path
    ):
        _chatgpt_account(account_repo, secret_store)

        assert await sync.sync_account("1") is True

        content = orjson.loads(auth_path.read_bytes())
        assert content == {
            "openai": {
                "type": "oauth",
                "refresh": "rt",
                "access": "at",
                "expires": (NOW_TS + 600) * 1000,
                "accountId": "acct-9",
            }
        }

    async def test_preserves_other_providers(
        self, sync, account_repo, secret_store, auth_path
    ):
        auth_path.parent.mkdir(parents=True)
        auth_path.write_bytes(
            orjson.dumps(
                {
                    "anthropic": {"type": "api", "key": "k"},
                    "openai": {"type": "oauth", "access": "stale"},
                }
            )
        )
        _chatgpt_account(account_repo, secret_store)

        await sync.sync_account("1")

        content = orjson.loads(auth_path.read_bytes())
        assert content["anthropic"] == {"type": "api", "key": "k"}
        assert content["openai"]["access"] == "at"

    async def test_api_key_accounts_are_skipped(
        self, sync, account_repo, secret_store, auth_path
    ):
        account = Account.new("1")
        account.auth.method = AuthMethod.API_KEY
        account.auth.secret_ref = "k"
        account_repo.records["1"] = account

        assert await sync.sync_account("1") is False
        assert not auth_path.exists()
        assert secret_store.calls == []

    async def test_corrupt_file_is_not_overwritten(
        self, sync, account_repo, secret_store, auth_path
    ):
        auth_path.parent.mkdir(parents=True)
        auth_path.write_text("[1, 2]")
        _chatgpt_account(account_repo, secret_store)

        with pytest.raises(StorageError):
            await sync.sync_account("1")
        assert auth_path.read_text() == "[1, 2]"

    async def test_entry_without_expiry_or_claims(self, sync, auth_path):
        await sync.sync(OAuthTokens(access_token="at", refresh_token="rt"))

        entry = orjson.loads(auth_path.read_bytes())["openai"]
        assert entry == {"type": "oauth", "refresh": "rt", "access": "at"}


@pytest.mark.unit
class TestOpencodeHelpers:
    """Tests for the module-level helpers."""

    @pytest.mark.parametrize(
        "command, expected",
        [
            ("opencode", True),
            ("/usr/local/bin/opencode", True),
            (" opencode ", True),
            ("codex", False),
            ("opencode-dev", False),
        ],
    )
    def test_should_sync(self, command, expected):
        assert should_sync_opencode_auth(command) is expected

    def test_expiry_prefers_absolute_time(self):
        tokens = OAuthTokens(access_token="a", expires_at=100, expires_in=5)
        assert token_expiry_millis(tokens, FIXED_NOW) == 100_000

    def test_expiry_from_lifetime(self):
        tokens = OAuthTokens(access_token="a", expires_in=60)
        expected = int((FIXED_NOW + timedelta(seconds=60)).timestamp() * 1000)
        assert token_expiry_millis(tokens, FIXED_NOW) == expected

    def test_default_path_uses_xdg_data_home(self, tmp_path):
        assert default_opencode_auth_path() == (
            tmp_path / "xdg-data" / "opencode" / "auth.json"
        )
