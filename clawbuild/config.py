"""Configuration for the ClawBuild service."""

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


@dataclass(frozen=True)
class LifecycleConfig:
    """Immutable knobs of the idea lifecycle, handed to the services at construction."""

    approval_threshold: float = 10.0
    min_voters: int = 3
    voting_period: timedelta = timedelta(hours=48)
    repo_name_max_length: int = 50
    repo_description_max_length: int = 350
    comment_snippet_length: int = 200


class Settings(BaseSettings):
    """Service settings, read from CLAWBUILD_* environment variables."""

    model_config = {"env_prefix": "CLAWBUILD_", "env_file": ".env", "case_sensitive": False}

    # Database (required, no default)
    database_url: str = Field(..., description="SQLAlchemy database URL")
    database_echo: bool = False
    database_pool_size: int = 10
    database_max_overflow: int = 20
    create_schema: bool = Field(
        default=False,
        description="Create tables on startup (development only)",
    )

    # Live activity fan-out
    redis_url: str | None = None

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # Lifecycle
    approval_threshold: float = 10.0
    min_voters: int = 3
    voting_period_hours: int = 48
    auth_max_skew_seconds: int = 300

    # Repository host
    github_api_url: str = "https://api.github.com"
    github_org: str = "clawbuild"
    github_token: str | None = None
    github_app_id: str | None = None
    github_app_private_key: str | None = None
    github_app_private_key_base64: str | None = None
    github_timeout_seconds: float = 30.0
    webhook_url: str = "https://clawbuild.dev/api/webhooks/github"

    cors_origins: str = "http://localhost:3000"

    def lifecycle_config(self) -> LifecycleConfig:
        return LifecycleConfig(
            approval_threshold=self.approval_threshold,
            min_voters=self.min_voters,
            voting_period=timedelta(hours=self.voting_period_hours),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
