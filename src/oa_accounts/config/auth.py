"""OAuth configuration settings."""

from datetime import timedelta
from urllib.parse import urlsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ISSUER = "https://auth.openai.com"
DEFAULT_CLIENT_ID = "app_EMoamEEZ73f0CkXaXp7hrann"
DEFAULT_LISTEN_ADDRESS = "127.0.0.1:1455"
DEFAULT_CALLBACK_PATH = "/auth/callback"
DEFAULT_SCOPES = ["openid", "profile", "email", "offline_access"]
DEFAULT_ORIGINATOR = "oa"


class OAuthSettings(BaseSettings):
    """OAuth endpoints, client identity and timeouts."""

    model_config = SettingsConfigDict(
        env_prefix="OA_AUTH_",
        case_sensitive=False,
        extra="ignore",
    )

    issuer: str = Field(default=DEFAULT_ISSUER, description="OAuth issuer base URL")
    client_id: str = Field(default=DEFAULT_CLIENT_ID, description="OAuth client id")
    listen: str = Field(
        default=DEFAULT_LISTEN_ADDRESS,
        description="host:port of the local browser callback listener",
    )
    callback_path: str = DEFAULT_CALLBACK_PATH
    scopes: list[str] = Field(default_factory=lambda: list(DEFAULT_SCOPES))
    originator: str = DEFAULT_ORIGINATOR
    callback_timeout: float = Field(
        default=300.0, gt=0, description="Seconds to wait for the browser callback"
    )
    request_timeout: float = Field(
        default=30.0, gt=0, description="Per-request HTTP timeout in seconds"
    )
    refresh_skew_seconds: int = Field(
        default=120, ge=0, description="Refresh tokens expiring within this window"
    )
    device_code_path: str = "/oauth/device/code"
    device_token_path: str = "/oauth/token"
    device_poll_timeout: float = Field(default=300.0, gt=0)

    @field_validator("issuer")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def authorize_url(self) -> str:
        return f"{self.issuer}/oauth/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.issuer}/oauth/token"

    @property
    def listen_host(self) -> str:
        return self._split_listen()[0]

    @property
    def listen_port(self) -> int:
        return self._split_listen()[1]

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.listen_port}{self.callback_path}"

    @property
    def refresh_skew(self) -> timedelta:
        return timedelta(seconds=self.refresh_skew_seconds)

    def _split_listen(self) -> tuple[str, int]:
        parsed = urlsplit(f"//{self.listen}")
        if parsed.port is None:
            raise ValueError(f"listen address needs a port: {self.listen!r}")
        return parsed.hostname or "127.0.0.1", parsed.port
