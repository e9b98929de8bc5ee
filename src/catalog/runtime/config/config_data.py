"""Pydantic models for parsing the config.yaml configuration file.

This module contains Pydantic models that correspond to the structure of config.yaml.
These models handle validation and type conversion of the YAML configuration data.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, computed_field

# Values shipped in sample .env files; treated the same as "not configured".
PLACEHOLDER_CREDENTIALS = (
    "your_actual_google_client_id",
    "your_actual_google_client_secret",
)


class CORSConfig(BaseModel):
    """CORS configuration for the application."""

    origins: list[str] = Field(
        default=["http://localhost:3000", "https://localhost:3000"]
    )
    allow_credentials: bool = True
    allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"]
    )
    allow_headers: list[str] = Field(
        default=[
            "Content-Type",
            "Authorization",
            "X-Requested-With",
            "X-API-Token",
            "Cookie",
        ]
    )


class RedisConfig(BaseModel):
    """Redis configuration model."""

    enabled: bool = Field(default=False, description="Enable Redis session store")
    url: str = Field(default="", description="Redis connection URL")
    password: str | None = Field(
        default=None, description="Password for Redis authentication"
    )
    decode_responses: bool = Field(
        default=True, description="Decode Redis responses to strings"
    )

    @computed_field
    @property
    def connection_string(self) -> str:
        """Construct the Redis connection string with password if provided."""
        if self.password:
            if "@" in self.url:
                # URL already has auth info
                return self.url
            parts = self.url.split("://", 1)
            if len(parts) == 2:
                scheme, rest = parts
                return f"{scheme}://:{self.password}@{rest}"
        return self.url


class ProviderConfig(BaseModel):
    """OAuth identity provider configuration model."""

    client_id: str | None = Field(default=None, description="OAuth client ID")
    client_secret: str | None = Field(default=None, description="OAuth client secret")
    authorization_endpoint: str = Field(
        default="https://accounts.google.com/o/oauth2/v2/auth",
        description="Authorization endpoint URL",
    )
    token_endpoint: str = Field(
        default="https://oauth2.googleapis.com/token",
        description="Token endpoint URL",
    )
    userinfo_endpoint: str = Field(
        default="https://openidconnect.googleapis.com/v1/userinfo",
        description="Userinfo endpoint URL",
    )
    scopes: list[str] = Field(
        default_factory=lambda: ["openid", "email", "profile"],
        description="Scopes requested during authentication",
    )
    registered_redirect_uri: str | None = Field(
        default=None,
        description="Callback URL registered with the provider; must match the computed one",
    )
    timeout_seconds: float = Field(
        default=10.0, description="Timeout for token and userinfo requests"
    )

    @property
    def has_credentials(self) -> bool:
        """Whether a usable client id and secret are configured."""
        values = [(self.client_id or "").strip(), (self.client_secret or "").strip()]
        if not all(values):
            return False
        return not any(
            placeholder in value
            for value in values
            for placeholder in PLACEHOLDER_CREDENTIALS
        )


class AuthConfig(BaseModel):
    """Authentication gate configuration."""

    bypass_token: str | None = Field(
        default=None,
        description="Static token accepted in lieu of a session (test automation only)",
    )
    bypass_header: str = Field(default="X-API-Token", description="Bypass token header")
    bypass_query_param: str = Field(
        default="apiToken", description="Bypass token query parameter"
    )
    default_provider: str = Field(default="google", description="Provider used in login hints")
    degraded_session_decode: bool = Field(
        default=True,
        description="Reconstruct the current user from the session id when storage is down",
    )
    auth_session_ttl_seconds: int = Field(
        default=600, description="Lifetime of the state/PKCE record of a login attempt"
    )
    success_path: str = Field(default="/auth/success")
    failure_path: str = Field(default="/auth/failure")


class LoggingConfig(BaseModel):
    """Logging configuration model."""

    level: str = Field(default="INFO", description="Logging level")
    format: Literal["json", "plain"] = Field(default="json", description="Log format")
    file: str | None = Field(default=None, description="Log file path")
    max_size_mb: int = Field(default=10, description="Maximum log file size in MB")
    backup_count: int = Field(
        default=5, description="Number of backup log files to keep"
    )


class DatabaseConfig(BaseModel):
    """Database configuration model."""

    url: str = Field(
        default="sqlite:///./catalog.db",
        description="Database connection URL",
    )
    pool_size: int = Field(default=20, description="Connection pool size")
    max_overflow: int = Field(default=10, description="Maximum pool overflow")
    pool_timeout: int = Field(default=30, description="Pool timeout in seconds")
    pool_recycle: int = Field(default=1800, description="Pool recycle time in seconds")


class AppConfig(BaseModel):
    """Application configuration model."""

    environment: Literal["development", "production", "test"] = Field(
        default="development", description="Application environment"
    )
    host: str = Field(default="localhost", description="Application host")
    port: int = Field(default=3000, description="Application port")
    hosted_url: str | None = Field(
        default=None, description="Public base URL of the hosted deployment"
    )
    session_max_age: int = Field(
        default=24 * 60 * 60, description="Session maximum age in seconds"
    )
    session_cookie_name: str = Field(
        default="catalog_session", description="Name of the session cookie"
    )
    cors: CORSConfig = Field(
        default_factory=CORSConfig, description="CORS configuration"
    )

    @property
    def base_url(self) -> str:
        """Public base URL for the current deployment (hosted vs. local)."""
        if self.environment == "production" and self.hosted_url:
            return self.hosted_url.rstrip("/")
        return f"http://{self.host}:{self.port}"


class ConfigData(BaseModel):
    """Root configuration model that matches the config.yaml structure."""

    app: AppConfig = Field(
        default_factory=AppConfig, description="Application configuration"
    )
    auth: AuthConfig = Field(
        default_factory=AuthConfig, description="Authentication configuration"
    )
    providers: dict[str, ProviderConfig] = Field(
        default_factory=lambda: {"google": ProviderConfig()},
        description="OAuth provider configurations keyed by provider name",
    )
    redis: RedisConfig = Field(
        default_factory=RedisConfig, description="Redis configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    database: DatabaseConfig = Field(
        default_factory=DatabaseConfig, description="Database configuration"
    )
