"""Tests for the JSON-file repositories."""

import asyncio
import os
import stat
import threading
from datetime import UTC, datetime
from pathlib import Path

import orjson
import pytest

from oa_accounts.domain import (
    Account,
    AuthMethod,
    LimitSnapshot,
    MemoryPacket,
    Pool,
    PoolRuntime,
)
from oa_accounts.exceptions import AccountNotFoundError, PoolNotFoundError, StorageError
from oa_accounts.repositories import (
    JsonAccountRepository,
    JsonPoolRepository,
    JsonPoolRuntimeRepository,
)
from oa_accounts.repositories.document import lock_for_path


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture
def accounts_path(tmp_path: Path) -> Path:
    return tmp_path / "state" / "accounts.json"


@pytest.mark.unit
class TestJsonAccountRepository:
    """Tests for JsonAccountRepository."""

    async def test_missing_file_reads_as_empty(self, accounts_path):
        repo = JsonAccountRepository(accounts_path)
        assert await repo.list() == []
        with pytest.raises(AccountNotFoundError):
            await repo.get_by_id("1")

    async def test_save_and_reload_round_trip(self, accounts_path):
        account = Account.new("1")
        account.auth.method = AuthMethod.CHATGPT
        account.auth.secret_ref = "openai://1/oauth_tokens"
        account.metadata.secret_ref = "openai://1/oauth_tokens"
        account.limits.weekly = LimitSnapshot(
            percent=30, resets_at=NOW, captured_at=NOW
        )

        await JsonAccountRepository(accounts_path).save(account)
        loaded = await JsonAccountRepository(accounts_path).get_by_id("1")

        assert loaded == account

    async def test_save_upserts_in_place(self, accounts_path):
        repo = JsonAccountRepository(accounts_path)
        for account_id in ("1", "2", "3"):
            await repo.save(Account.new(account_id))

        renamed = Account.new("2")
        renamed.name = "work"
        await repo.save(renamed)

        accounts = await repo.list()
        assert [account.id for account in accounts] == ["1", "2", "3"]
        assert accounts[1].name == "work"

    async def test_delete(self, accounts_path):
        repo = JsonAccountRepository(accounts_path)
        await repo.save(Account.new("1"))
        await repo.save(Account.new("2"))

        await repo.delete("1")

        assert [account.id for account in await repo.list()] == ["2"]
        with pytest.raises(AccountNotFoundError):
            await repo.delete("1")

    async def test_file_layout_and_permissions(self, accounts_path):
        await JsonAccountRepository(accounts_path).save(Account.new("1"))

        data = orjson.loads(accounts_path.read_bytes())
        assert data["version"] == 1
        assert data["accounts"][0]["id"] == "1"
        assert stat.S_IMODE(accounts_path.stat().st_mode) == 0o600
        assert stat.S_IMODE(accounts_path.parent.stat().st_mode) == 0o700
        assert list(accounts_path.parent.glob("*.tmp")) == []

    async def test_newer_version_is_rejected(self, accounts_path):
        accounts_path.parent.mkdir(parents=True)
        accounts_path.write_bytes(orjson.dumps({"version": 2, "accounts": []}))

        with pytest.raises(StorageError, match="unsupported version"):
            await JsonAccountRepository(accounts_path).list()

    async def test_corrupt_file_is_a_storage_error(self, accounts_path):
        accounts_path.parent.mkdir(parents=True)
        accounts_path.write_text("{not json")

        with pytest.raises(StorageError):
            await JsonAccountRepository(accounts_path).list()

    async def test_concurrent_saves_from_separate_instances_are_not_lost(
        self, accounts_path
    ):
        repos = [JsonAccountRepository(accounts_path) for _ in range(4)]

        await asyncio.gather(
            *(
                repos[index % len(repos)].save(Account.new(str(index)))
                for index in range(20)
            )
        )

        ids = {account.id for account in await repos[0].list()}
        assert ids == {str(index) for index in range(20)}

    async def test_save_does_not_block_the_event_loop(
        self, accounts_path, monkeypatch
    ):
        entered = threading.Event()
        release = threading.Event()
        released_in_time: list[bool] = []
        real_fsync = os.fsync

        def slow_fsync(fd: int) -> None:
            entered.set()
            released_in_time.append(release.wait(timeout=2))
            real_fsync(fd)

        monkeypatch.setattr("oa_accounts.repositories.document.os.fsync", slow_fsync)
        repo = JsonAccountRepository(accounts_path)

        task = asyncio.create_task(repo.save(Account.new("1")))
        await asyncio.to_thread(entered.wait, 2)
        assert not task.done()
        release.set()
        await task

        assert released_in_time == [True]
        assert [account.id for account in await repo.list()] == ["1"]

    def test_lock_is_shared_per_resolved_path(self, tmp_path):
        first = lock_for_path(tmp_path / "a" / ".." / "accounts.json")
        second = lock_for_path(tmp_path / "accounts.json")
        assert first is second
        assert lock_for_path(tmp_path / "pools.json") is not first


@pytest.mark.unit
class TestJsonPoolRepository:
    """Tests for JsonPoolRepository."""

    async def test_round_trip(self, tmp_path):
        repo = JsonPoolRepository(tmp_path / "pools.json")
        pool = Pool.default_openai()
        pool.active = True
        pool.members = ["1", "2"]
        pool.updated_at = NOW

        await repo.save(pool)

        assert await repo.get_by_id(pool.id) == pool
        assert await repo.list() == [pool]

    async def test_missing_pool(self, tmp_path):
        with pytest.raises(PoolNotFoundError):
            await JsonPoolRepository(tmp_path / "pools.json").get_by_id("nope")


@pytest.mark.unit
class TestJsonPoolRuntimeRepository:
    """Tests for JsonPoolRuntimeRepository."""

    async def test_missing_runtime(self, tmp_path):
        repo = JsonPoolRuntimeRepository(tmp_path / "pool_runtime.json")
        with pytest.raises(PoolNotFoundError):
            await repo.get_by_pool_id("default-openai")

    async def test_round_trip_with_ledger(self, tmp_path):
        repo = JsonPoolRuntimeRepository(tmp_path / "pool_runtime.json")
        runtime = PoolRuntime(pool_id="default-openai", active_account_id="2")
        ledger = runtime.ledger("abc")
        ledger.account_sessions["2"] = "abc:2"
        ledger.memory = MemoryPacket(summary="halfway", pending_tasks=["tests"])

        await repo.save(runtime)

        assert await repo.get_by_pool_id("default-openai") == runtime
