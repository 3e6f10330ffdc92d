"""Tests for SessionContinuityService."""

import pytest

from conftest import FIXED_NOW
from oa_accounts.domain import MemoryPacket
from oa_accounts.exceptions import ValidationError
from oa_accounts.services import SessionContinuityService
from oa_accounts.services.session_continuity import resolve_logical_session_id


POOL_ID = "default-openai"


@pytest.fixture
def service(runtime_repo) -> SessionContinuityService:
    return SessionContinuityService(runtime_repo, now=lambda: FIXED_NOW)


@pytest.mark.unit
class TestLogicalSessionId:
    """Tests for resolve_logical_session_id."""

    def test_deterministic_and_trimmed(self):
        assert resolve_logical_session_id("/repo", "w1") == (
            resolve_logical_session_id(" /repo ", "w1 ")
        )
        assert len(resolve_logical_session_id("/repo", "w1")) == 64

    @pytest.mark.parametrize(
        "other", [("/repo", "w2"), ("/other", "w1"), ("/repo|w1", "")]
    )
    def test_distinct_inputs_differ(self, other):
        assert resolve_logical_session_id("/repo", "w1") != (
            resolve_logical_session_id(*other)
        )


@pytest.mark.unit
class TestAccountSessions:
    """Tests for provider session attachment."""

    async def test_attach_is_idempotent(self, service, runtime_repo):
        first = await service.get_or_attach_account_session(POOL_ID, "L", "1")
        second = await service.get_or_attach_account_session(POOL_ID, "L", "1")

        assert first == ("L:1", True)
        assert second == ("L:1", False)
        assert runtime_repo.save_count == 1

        runtime = runtime_repo.records[POOL_ID]
        assert runtime.active_account_id == "1"
        assert runtime.last_synced_at == FIXED_NOW

    async def test_each_account_gets_its_own_session(self, service, runtime_repo):
        await service.get_or_attach_account_session(POOL_ID, "L", "1")
        session_id, created = await service.get_or_attach_account_session(
            POOL_ID, "L", "2"
        )

        assert (session_id, created) == ("L:2", True)
        ledger = runtime_repo.records[POOL_ID].sessions["L"]
        assert ledger.account_sessions == {"1": "L:1", "2": "L:2"}

    @pytest.mark.parametrize("logical_id, account_id", [(" ", "1"), ("L", "")])
    async def test_blank_inputs(self, service, logical_id, account_id):
        with pytest.raises(ValidationError):
            await service.get_or_attach_account_session(
                POOL_ID, logical_id, account_id
            )

    async def test_active_account(self, service):
        assert await service.get_active_account_id(POOL_ID) == ""
        await service.set_active_account_id(POOL_ID, " 2 ")
        assert await service.get_active_account_id(POOL_ID) == "2"


@pytest.mark.unit
class TestMemoryPacket:
    """Tests for the shared memory packet."""

    async def test_missing_packet_is_empty(self, service):
        assert await service.get_memory_packet(POOL_ID, "L") == MemoryPacket()

    async def test_update_stamps_and_survives_account_switch(self, service):
        packet = MemoryPacket(summary="refactor", pending_tasks=["tests"])

        stored = await service.update_memory_packet(POOL_ID, "L", packet)
        await service.get_or_attach_account_session(POOL_ID, "L", "2")

        assert stored.updated_at == FIXED_NOW
        assert packet.updated_at is None
        loaded = await service.get_memory_packet(POOL_ID, "L")
        assert loaded.summary == "refactor"
        assert loaded.pending_tasks == ["tests"]
