"""Tests for account domain helpers."""

from datetime import UTC, datetime, timedelta

import pytest

from oa_accounts.domain import (
    Account,
    AccountClassification,
    AccountLimits,
    LimitSnapshot,
    Usage,
    account_classification,
    compact_number,
    oauth_secret_key,
    unique_secret_refs,
)


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.mark.unit
class TestAccount:
    """Tests for the Account model."""

    def test_new_account_gets_default_name(self):
        account = Account.new("7")
        assert account.id == "7"
        assert account.name == "Account 7"
        assert account.metadata.provider == "openai"
        assert account.auth.method is None

    def test_weekly_percent_defaults_to_zero(self):
        assert Account.new("1").weekly_percent == 0.0

    def test_weekly_percent_reads_snapshot(self):
        account = Account.new("1")
        account.limits.weekly = LimitSnapshot(percent=42.5)
        assert account.weekly_percent == 42.5

    def test_secret_refs_are_distinct_metadata_first(self):
        account = Account.new("1")
        account.metadata.secret_ref = "key-a"
        account.auth.secret_ref = "key-b"
        assert account.secret_refs() == ["key-a", "key-b"]

        account.auth.secret_ref = "key-a"
        assert account.secret_refs() == ["key-a"]

    def test_secret_refs_skip_blanks(self):
        account = Account.new("1")
        account.auth.secret_ref = "  "
        assert account.secret_refs() == []

    def test_round_trip_through_json(self):
        account = Account.new("3")
        account.limits.daily = LimitSnapshot(
            percent=12, resets_at=NOW, captured_at=NOW
        )
        restored = Account.model_validate_json(account.model_dump_json())
        assert restored == account


@pytest.mark.unit
class TestLimits:
    """Tests for limit snapshots."""

    def test_snapshot_without_capture_is_stale(self):
        assert LimitSnapshot(percent=1).is_stale(NOW, timedelta(hours=6))

    def test_snapshot_age_against_max_age(self):
        snapshot = LimitSnapshot(percent=1, captured_at=NOW - timedelta(hours=1))
        assert not snapshot.is_stale(NOW, timedelta(hours=6))
        assert snapshot.is_stale(NOW, timedelta(minutes=30))

    def test_latest_capture_takes_newest_window(self):
        limits = AccountLimits(
            daily=LimitSnapshot(percent=1, captured_at=NOW - timedelta(hours=2)),
            weekly=LimitSnapshot(percent=1, captured_at=NOW),
        )
        assert limits.latest_capture() == NOW
        assert AccountLimits().latest_capture() is None


@pytest.mark.unit
class TestHelpers:
    """Tests for free helper functions."""

    @pytest.mark.parametrize(
        ("plan_type", "expected"),
        [
            ("", AccountClassification.UNKNOWN),
            ("team", AccountClassification.TEAM),
            ("Enterprise", AccountClassification.BUSINESS),
            ("k12", AccountClassification.BUSINESS),
            ("plus", AccountClassification.PERSONAL),
        ],
    )
    def test_account_classification(self, plan_type, expected):
        assert account_classification(plan_type) == expected

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (999, "999"),
            (1_234, "1.2k"),
            (999_949, "999.9k"),
            (999_950, "1.0M"),
            (3_400_000, "3.4M"),
            (-5, "-5"),
        ],
    )
    def test_compact_number(self, value, expected):
        assert compact_number(value) == expected

    def test_blended_total(self):
        usage = Usage(input_tokens=10, output_tokens=5, cached_input_tokens=2)
        assert usage.blended_total == 17

    def test_unique_secret_refs(self):
        assert unique_secret_refs(" a ", "", "b", "a") == ["a", "b"]

    def test_oauth_secret_key(self):
        assert oauth_secret_key("4") == "openai://4/oauth_tokens"
