"""Tests for the primary/fallback secret chain."""

import asyncio

import pytest

from conftest import MemorySecretStore
from oa_accounts.exceptions import (
    SecretChainError,
    SecretNotFoundError,
    SecretStoreError,
)
from oa_accounts.secrets import ChainSecretStore


class SlowStore(MemorySecretStore):
    """Primary that blocks until cancelled."""

    def __init__(self) -> None:
        super().__init__("slow")
        self.started = asyncio.Event()

    async def get(self, key: str) -> str:
        self.started.set()
        await asyncio.sleep(3600)
        return ""


class TimingOutStore(MemorySecretStore):
    async def put(self, key: str, value: str) -> None:
        raise TimeoutError


@pytest.fixture
def primary() -> MemorySecretStore:
    return MemorySecretStore("primary")


@pytest.fixture
def fallback() -> MemorySecretStore:
    return MemorySecretStore("fallback")


@pytest.mark.unit
class TestChainSecretStore:
    """Tests for ChainSecretStore routing."""

    async def test_primary_success_never_touches_fallback(self, primary, fallback):
        primary.values["k"] = "v"
        chain = ChainSecretStore(primary, fallback)

        assert await chain.get("k") == "v"
        await chain.put("k2", "v2")
        await chain.delete("k")

        assert fallback.calls == []
        assert primary.values == {"k2": "v2"}

    async def test_falls_back_when_primary_fails(self, primary, fallback):
        primary.fail_get.add("k")
        fallback.values["k"] = "from-file"

        assert await ChainSecretStore(primary, fallback).get("k") == "from-file"

    async def test_put_falls_back(self, primary, fallback):
        primary.fail_put.add("k")
        await ChainSecretStore(primary, fallback).put("k", "v")
        assert fallback.values == {"k": "v"}

    async def test_primary_not_found_reads_fallback(self, primary, fallback):
        fallback.values["k"] = "v"
        assert await ChainSecretStore(primary, fallback).get("k") == "v"

    async def test_both_missing_is_not_found(self, primary, fallback):
        with pytest.raises(SecretNotFoundError) as exc_info:
            await ChainSecretStore(primary, fallback).get("k")

        message = str(exc_info.value)
        assert "primary backend primary failed" in message
        assert "fallback backend fallback failed" in message

    async def test_both_failing_names_both_causes(self, primary, fallback):
        primary.fail_delete.add("k")
        fallback.fail_delete.add("k")

        with pytest.raises(SecretChainError) as exc_info:
            await ChainSecretStore(primary, fallback).delete("k")

        error = exc_info.value
        assert isinstance(error.primary_error, SecretStoreError)
        assert isinstance(error.fallback_error, SecretStoreError)
        assert str(error).startswith("delete: primary backend primary failed")
        assert error.__cause__ is error.fallback_error

    async def test_cancellation_does_not_fall_back(self, fallback):
        slow = SlowStore()
        fallback.values["k"] = "v"
        task = asyncio.create_task(ChainSecretStore(slow, fallback).get("k"))
        await slow.started.wait()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert fallback.calls == []

    async def test_deadline_does_not_fall_back(self, fallback):
        with pytest.raises(TimeoutError):
            await ChainSecretStore(TimingOutStore("slow"), fallback).put("k", "v")
        assert fallback.calls == []

    def test_name_joins_backends(self, primary, fallback):
        assert ChainSecretStore(primary, fallback).name == "primary+fallback"
