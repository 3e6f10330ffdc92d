"""Usage and limit fetch settings."""

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USAGE_BASE_URL = "https://chatgpt.com/backend-api"


class UsageSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="OA_USAGE_",
        case_sensitive=False,
        extra="ignore",
    )

    base_url: str = Field(default=DEFAULT_USAGE_BASE_URL)
    max_concurrency: int = Field(default=5, ge=1, le=32)
    cache_ttl_seconds: int = Field(
        default=300, ge=0, description="Skip fetches captured more recently than this"
    )
    stale_after_seconds: int = Field(
        default=6 * 60 * 60, ge=0, description="Flag limit snapshots older than this"
    )
    request_timeout: float = Field(default=30.0, gt=0)
    subscription_path: str = Field(
        default="",
        description="Path below base_url for the subscription endpoint; empty disables",
    )

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_ttl_seconds)

    @property
    def stale_after(self) -> timedelta:
        return timedelta(seconds=self.stale_after_seconds)
