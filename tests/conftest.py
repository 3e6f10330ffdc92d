"""Shared fixtures and in-memory collaborators for oa-accounts tests."""

import copy
import os
from datetime import UTC, datetime
from pathlib import Path

import jwt
import pytest

from oa_accounts.cli.context import reset_context
from oa_accounts.config import reset_settings
from oa_accounts.domain import Account, Pool, PoolRuntime
from oa_accounts.exceptions import (
    AccountNotFoundError,
    PoolNotFoundError,
    SecretNotFoundError,
    SecretStoreError,
    StorageError,
)
from oa_accounts.repositories import (
    AccountRepository,
    PoolRepository,
    PoolRuntimeRepository,
)
from oa_accounts.secrets import SecretStore


FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
SIGNING_KEY = "test-signing-key-0123456789abcdef"


class MemorySecretStore(SecretStore):
    """Dict-backed secret store with injectable failures."""

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self.values: dict[str, str] = {}
        self.fail_get: set[str] = set()
        self.fail_put: set[str] = set()
        self.fail_delete: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    async def get(self, key: str) -> str:
        self.calls.append(("get", key))
        if key in self.fail_get:
            raise SecretStoreError(f"get {key} failed", key=key)
        try:
            return self.values[key]
        except KeyError:
            raise SecretNotFoundError(key) from None

    async def put(self, key: str, value: str) -> None:
        self.calls.append(("put", key))
        if key in self.fail_put:
            raise SecretStoreError(f"put {key} failed", key=key)
        self.values[key] = value

    async def delete(self, key: str) -> None:
        self.calls.append(("delete", key))
        if key in self.fail_delete:
            raise SecretStoreError(f"delete {key} failed", key=key)
        self.values.pop(key, None)


class MemoryAccountRepository(AccountRepository):
    """Account repository keeping deep copies in insertion order.

    ``save_errors`` is consumed one entry per save call: an exception entry
    makes that call fail, ``None`` lets it through.
    """

    def __init__(self, accounts: list[Account] | None = None) -> None:
        self.records: dict[str, Account] = {}
        self.save_errors: list[Exception | None] = []
        self.saves: list[Account] = []
        for account in accounts or []:
            self.records[account.id] = account.model_copy(deep=True)

    async def get_by_id(self, account_id: str) -> Account:
        try:
            return self.records[account_id].model_copy(deep=True)
        except KeyError:
            raise AccountNotFoundError(account_id) from None

    async def list(self):
        return [account.model_copy(deep=True) for account in self.records.values()]

    async def save(self, account: Account) -> None:
        if self.save_errors:
            error = self.save_errors.pop(0)
            if error is not None:
                raise error
        snapshot = account.model_copy(deep=True)
        self.saves.append(snapshot)
        self.records[account.id] = snapshot

    async def delete(self, account_id: str) -> None:
        if self.records.pop(account_id, None) is None:
            raise AccountNotFoundError(account_id)


class MemoryPoolRepository(PoolRepository):
    def __init__(self) -> None:
        self.records: dict[str, Pool] = {}

    async def get_by_id(self, pool_id: str) -> Pool:
        try:
            return self.records[pool_id].model_copy(deep=True)
        except KeyError:
            raise PoolNotFoundError(pool_id) from None

    async def list(self):
        return [pool.model_copy(deep=True) for pool in self.records.values()]

    async def save(self, pool: Pool) -> None:
        self.records[pool.id] = pool.model_copy(deep=True)


class MemoryPoolRuntimeRepository(PoolRuntimeRepository):
    def __init__(self) -> None:
        self.records: dict[str, PoolRuntime] = {}
        self.save_count = 0

    async def get_by_pool_id(self, pool_id: str) -> PoolRuntime:
        try:
            return copy.deepcopy(self.records[pool_id])
        except KeyError:
            raise PoolNotFoundError(pool_id) from None

    async def save(self, runtime: PoolRuntime) -> None:
        self.save_count += 1
        self.records[runtime.pool_id] = copy.deepcopy(runtime)


def make_id_token(
    email: str = "",
    chatgpt_account_id: str = "",
    plan_type: str = "",
) -> str:
    """HS256-signed id token carrying the claims oa reads."""
    payload: dict = {"sub": "user"}
    if email:
        payload["email"] = email
    auth_claim = {}
    if chatgpt_account_id:
        auth_claim["chatgpt_account_id"] = chatgpt_account_id
    if plan_type:
        auth_claim["chatgpt_plan_type"] = plan_type
    if auth_claim:
        payload["https://api.openai.com/auth"] = auth_claim
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


def storage_failure(message: str = "disk full") -> StorageError:
    return StorageError(message)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Keep tests away from the user's config, data and secret backends."""
    for name in list(os.environ):
        if name.startswith("OA_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("OA_CONFIG_FILE", str(tmp_path / "missing-config.toml"))
    reset_settings()
    reset_context()
    yield
    reset_settings()
    reset_context()


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def secret_store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def account_repo() -> MemoryAccountRepository:
    return MemoryAccountRepository()


@pytest.fixture
def pool_repo() -> MemoryPoolRepository:
    return MemoryPoolRepository()


@pytest.fixture
def runtime_repo() -> MemoryPoolRuntimeRepository:
    return MemoryPoolRuntimeRepository()
