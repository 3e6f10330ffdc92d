"""Tests for pool and runtime models."""

import pytest

from oa_accounts.domain import DEFAULT_POOL_ID, Pool, PoolRuntime, normalize_members
from oa_accounts.exceptions import PoolValidationError


@pytest.mark.unit
class TestPool:
    """Tests for Pool validation and member normalization."""

    def test_default_pool(self):
        pool = Pool.default_openai()
        assert pool.id == DEFAULT_POOL_ID
        assert pool.name == "default"
        assert pool.provider == "openai"
        assert pool.strategy == "least_weekly_used"
        assert pool.auto_sync_members is True
        assert pool.active is False
        pool.validate_pool()

    def test_normalize_members_keeps_first_occurrence(self):
        assert normalize_members([" 2", "1", "", "2", "3 "]) == ["2", "1", "3"]

    @pytest.mark.parametrize(
        ("update", "reason"),
        [
            ({"id": " "}, "id is required"),
            ({"name": ""}, "name is required"),
            ({"provider": ""}, "provider is required"),
            ({"strategy": ""}, "strategy is required"),
        ],
    )
    def test_validate_rejects_missing_fields(self, update, reason):
        pool = Pool.default_openai().model_copy(update=update)
        with pytest.raises(PoolValidationError, match=reason):
            pool.validate_pool()

    def test_validate_rejects_unknown_provider(self):
        pool = Pool.default_openai().model_copy(update={"provider": "acme"})
        with pytest.raises(PoolValidationError, match="unsupported provider"):
            pool.validate_pool()


@pytest.mark.unit
class TestPoolRuntime:
    """Tests for the runtime ledger accessor."""

    def test_ledger_is_created_once(self):
        runtime = PoolRuntime(pool_id=DEFAULT_POOL_ID)
        ledger = runtime.ledger("logical")
        ledger.account_sessions["1"] = "logical:1"

        assert runtime.ledger("logical") is ledger
        assert runtime.sessions["logical"].account_sessions == {"1": "logical:1"}
