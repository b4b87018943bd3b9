"""Application settings using Pydantic Settings."""

from typing import Annotated

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # GitHub API configuration
    github_api_url: str = "https://api.github.com"
    github_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("github_token", "gh_api_oauth_token"),
    )
    user_agent: str = "Badge Getter"
    page_size: int = 100
    request_timeout_seconds: float = 30.0
    max_concurrent_pages: int = 8
    page_walk_timeout_seconds: float = 60.0

    # Cache configuration
    refresh_interval_seconds: int = 3600  # 1 hour
    cache_file_path: str = "badged.cache"

    # Redis configuration
    redis_host: str | None = None
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: str | None = None
    redis_url: str | None = None  # If set, overrides host/port/db/password

    # Badge configuration
    shields_uri: str = "https://img.shields.io/badge/downloads-%s-green.svg"
    badge_hosts: Annotated[list[str], NoDecode] = ["img.shields.io"]
    placeholder: str = "X"

    @field_validator("badge_hosts", mode="before")
    @classmethod
    def parse_badge_hosts(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return []
            return [item.strip().lower() for item in v.split(",")]
        return v

    # Server configuration
    server_host: str = "0.0.0.0"
    server_port: int = 4000
    dev: bool = False
    workers: int = 1
    log_level: str = "info"

    @property
    def use_redis(self) -> bool:
        """Check if Redis should be used for caching."""
        return bool(self.redis_url or self.redis_host)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


def get_settings() -> Settings:
    """Get application settings instance."""
    return Settings()
