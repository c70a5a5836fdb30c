# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the nursery
tenant isolation core. Settings are loaded from environment variables with
sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from nursery_isolation.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.tenancy.session_variable)
    'app.current_tenant'
"""

import re
from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Custom GUC names must be qualified ("prefix.name") to be settable by
# non-superuser roles.
_SESSION_VARIABLE_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*\.[a-z_][a-z0-9_]*$")
_ROLE_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")

DEFAULT_JWT_SECRET = "nursery-secret-key-change-in-production"
DEFAULT_DATABASE_PASSWORD = "nursery_app_password"


class DatabaseSettings(BaseSettings):
    """Platform database configuration.

    All tenants share one PostgreSQL database; isolation is enforced by
    row-level security policies rather than by separate databases.

    Attributes:
        user: PostgreSQL username the application connects as.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        pool_recycle: Seconds after which pooled connections are recycled.
    """

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        extra="ignore",
    )

    user: str = "nursery_app"
    password: SecretStr = SecretStr(DEFAULT_DATABASE_PASSWORD)
    host: str = "localhost"
    port: int = 5432
    database: str = "nursery"
    pool_size: int = 10
    max_overflow: int = 20
    pool_recycle: int = 1800

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"

    @property
    def sync_url(self) -> str:
        """Build the sync database URL for offline migrations."""
        pwd = self.password.get_secret_value()
        return f"postgresql://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class TenancySettings(BaseSettings):
    """Tenant isolation configuration.

    Attributes:
        session_variable: Session configuration key read by the RLS policies.
        tenant_claim: JWT claim that carries the tenant identifier.
        app_role: Non-privileged database role used by the application.
        app_role_password: Password assigned when provisioning app_role.
        schema_name: Schema holding the tenant-scoped tables.
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANCY_",
        extra="ignore",
    )

    session_variable: str = "app.current_tenant"
    tenant_claim: str = "tenant_id"
    app_role: str = "nursery_app"
    app_role_password: SecretStr = SecretStr(DEFAULT_DATABASE_PASSWORD)
    schema_name: str = "public"

    @field_validator("session_variable")
    @classmethod
    def validate_session_variable(cls, value: str) -> str:
        """Require a qualified, lowercase custom setting name."""
        if not _SESSION_VARIABLE_PATTERN.match(value):
            raise ValueError(
                f"Invalid session variable {value!r}: expected 'prefix.name'"
            )
        return value

    @field_validator("app_role", "schema_name")
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        """Require a plain lowercase SQL identifier."""
        if not _ROLE_NAME_PATTERN.match(value):
            raise ValueError(f"Invalid SQL identifier: {value!r}")
        return value


class JWTSettings(BaseSettings):
    """JWT authentication configuration.

    Attributes:
        secret_key: Secret key for signing tokens.
        algorithm: JWT signing algorithm.
        access_token_expire_minutes: Access token expiration time.
        magic_link_expire_minutes: Passwordless login link expiration time.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        extra="ignore",
    )

    secret_key: SecretStr = SecretStr(DEFAULT_JWT_SECRET)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(
        default=30,
        validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    magic_link_expire_minutes: int = Field(
        default=15,
        validation_alias="MAGIC_LINK_EXPIRE_MINUTES",
    )


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment.
        debug: Enable debug mode.
        log_level: Logging level.
        database: Database settings.
        tenancy: Tenant isolation settings.
        jwt: JWT authentication settings.
        cors: CORS settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    tenancy: TenancySettings = Field(default_factory=TenancySettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            if self.jwt.secret_key.get_secret_value() == DEFAULT_JWT_SECRET:
                raise ValueError(
                    "JWT secret key must be changed from default in production. "
                    "Set JWT_SECRET_KEY environment variable."
                )
            if self.database.password.get_secret_value() == DEFAULT_DATABASE_PASSWORD:
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DATABASE_PASSWORD environment variable."
                )
            if self.tenancy.app_role_password.get_secret_value() == DEFAULT_DATABASE_PASSWORD:
                raise ValueError(
                    "App role password must be changed from default in production. "
                    "Set TENANCY_APP_ROLE_PASSWORD environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
