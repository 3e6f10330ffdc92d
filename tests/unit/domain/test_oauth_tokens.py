"""Tests for the OAuth token secret encoding."""

from datetime import UTC, datetime, timedelta

import orjson
import pytest

from oa_accounts.domain import OAuthTokens
from oa_accounts.exceptions import ValidationError


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.mark.unit
class TestOAuthTokens:
    """Tests for OAuthTokens."""

    def test_secret_omits_defaults(self):
        tokens = OAuthTokens(access_token="at", refresh_token="rt")
        assert orjson.loads(tokens.to_secret()) == {
            "access_token": "at",
            "refresh_token": "rt",
        }

    def test_from_secret_round_trip(self):
        tokens = OAuthTokens(
            access_token="at", refresh_token="rt", id_token="it", expires_at=10
        )
        assert OAuthTokens.from_secret(tokens.to_secret()) == tokens

    @pytest.mark.parametrize(
        "value", ["not json", "[]", '{"refresh_token": "rt"}', '{"access_token": " "}']
    )
    def test_from_secret_rejects_bad_values(self, value):
        with pytest.raises(ValidationError):
            OAuthTokens.from_secret(value)

    def test_calculated_expiry(self):
        tokens = OAuthTokens(access_token="at", expires_in=3600)
        assert tokens.with_calculated_expiry(NOW).expires_at == int(
            NOW.timestamp()
        ) + 3600

    def test_calculated_expiry_without_lifetime_is_unchanged(self):
        tokens = OAuthTokens(access_token="at", expires_at=5)
        assert tokens.with_calculated_expiry(NOW).expires_at == 5

    def test_unknown_expiry_is_never_expiring(self):
        tokens = OAuthTokens(access_token="at")
        assert not tokens.expiring_soon(NOW, timedelta(days=365))

    def test_expiring_soon_honours_skew(self):
        tokens = OAuthTokens(
            access_token="at", expires_at=int(NOW.timestamp()) + 60
        )
        assert not tokens.expiring_soon(NOW)
        assert tokens.expiring_soon(NOW, timedelta(minutes=2))

    def test_carry_over_fills_missing_tokens(self):
        previous = OAuthTokens(access_token="old", refresh_token="rt", id_token="it")
        refreshed = OAuthTokens(access_token="new").carry_over(previous)
        assert refreshed.access_token == "new"
        assert refreshed.refresh_token == "rt"
        assert refreshed.id_token == "it"

    def test_carry_over_keeps_rotated_refresh_token(self):
        previous = OAuthTokens(access_token="old", refresh_token="rt")
        refreshed = OAuthTokens(access_token="new", refresh_token="rt2")
        assert refreshed.carry_over(previous).refresh_token == "rt2"
