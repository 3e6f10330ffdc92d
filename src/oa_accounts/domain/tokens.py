"""OAuth token set stored as a JSON secret."""

from datetime import UTC, datetime, timedelta

import orjson
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from oa_accounts.exceptions import ValidationError


class OAuthTokens(BaseModel):
    """Tokens returned by the provider token endpoint.

    ``expires_at`` is epoch seconds, derived from ``expires_in`` at the time the
    tokens were issued or refreshed. Zero means unknown.
    """

    access_token: str
    refresh_token: str = ""
    id_token: str = ""
    token_type: str = ""
    expires_in: int = 0
    expires_at: int = 0

    def to_secret(self) -> str:
        """Encode as the JSON value written to a secret backend."""
        return orjson.dumps(self.model_dump(exclude_defaults=True)).decode()

    @classmethod
    def from_secret(cls, value: str) -> "OAuthTokens":
        """Decode a stored secret value.

        Raises:
            ValidationError: If the value is not a token set with an access token
        """
        try:
            tokens = cls.model_validate(orjson.loads(value))
        except (orjson.JSONDecodeError, PydanticValidationError) as e:
            raise ValidationError(f"decode oauth tokens: {e}") from e
        if not tokens.access_token.strip():
            raise ValidationError("decode oauth tokens: access_token is empty")
        return tokens

    def with_calculated_expiry(self, now: datetime | None = None) -> "OAuthTokens":
        """Return a copy whose ``expires_at`` is ``now + expires_in``."""
        if self.expires_in <= 0:
            return self.model_copy()
        now = now or datetime.now(UTC)
        return self.model_copy(
            update={"expires_at": int(now.timestamp()) + self.expires_in}
        )

    def expiring_soon(
        self, now: datetime | None = None, skew: timedelta = timedelta(0)
    ) -> bool:
        """Check whether the access token expires within ``skew``.

        Tokens without a known expiry are never considered expiring.
        """
        if self.expires_at <= 0:
            return False
        now = now or datetime.now(UTC)
        return self.expires_at <= int((now + skew).timestamp())

    def carry_over(self, previous: "OAuthTokens") -> "OAuthTokens":
        """Fill refresh/id tokens omitted by a refresh response from ``previous``."""
        update: dict[str, str] = {}
        if not self.refresh_token:
            update["refresh_token"] = previous.refresh_token
        if not self.id_token:
            update["id_token"] = previous.id_token
        return self.model_copy(update=update) if update else self
