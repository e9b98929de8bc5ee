import os
from typing import Literal

from loguru import logger
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvironmentVariables(BaseSettings):
    """Simple primitive values loaded from environment variables and .env files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
    )

    # Environment and deployment
    app_environment: Literal["development", "production", "test"] = Field(
        default="development"
    )
    log_level: str | None = Field(default=None)
    hosted_url: str | None = Field(default=None)
    port: int | None = Field(default=None)

    # Infrastructure URLs
    database_url: str | None = Field(default=None)
    redis_enabled: bool | None = Field(default=None)
    redis_url: str | None = Field(default=None)

    # Provider credentials
    google_client_id: str | None = Field(default=None)
    google_client_secret: str | None = Field(default=None)
    google_redirect_uri: str | None = Field(default=None)

    # Test automation
    auth_bypass_token: str | None = Field(default=None)

    def export(self) -> None:
        """Seed the process environment with values that only live in .env.

        Variables already present in the environment always win.
        """
        for name, value in self.model_dump().items():
            if value is None:
                continue
            env_name = name.upper()
            if env_name not in os.environ:
                os.environ[env_name] = str(value)
                logger.debug("Loaded {} from .env", env_name)
