# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the admin
console services. Settings are loaded from environment variables with
sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.backend)
    'memory'
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.models.session import Role


class DatabaseSettings(BaseSettings):
    """Database configuration for the SQL backend gateway.

    Attributes:
        user: PostgreSQL username.
        password: PostgreSQL password.
        host: Database host address.
        port: Database port number.
        database: Database name.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
        echo: Log every SQL statement.
        password_rounds: bcrypt rounds for identity passwords.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    user: str = "console"
    password: SecretStr = SecretStr("console_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "school_console"
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False
    password_rounds: int = Field(default=12, ge=4, le=31)

    @property
    def url(self) -> str:
        """Build the async database URL from components."""
        pwd = self.password.get_secret_value()
        return f"postgresql+asyncpg://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class SessionSettings(BaseSettings):
    """Session and profile resolution configuration.

    The login flow and the background session resolver auto-create missing
    profiles with different default roles. Both are kept configurable.

    Attributes:
        profile_retries: Profile lookup rounds before giving up.
        retry_delay: Seconds between a profile insert and its re-read.
        safety_timeout: Seconds after which the loading state is released.
        login_default_role: Role for profiles auto-created at login.
        resolver_default_role: Role for profiles auto-created on page load.
        console_roles: Roles allowed to sign in to the console.
    """

    model_config = SettingsConfigDict(
        env_prefix="SESSION_",
        extra="ignore",
    )

    profile_retries: int = Field(default=3, ge=1, le=10)
    retry_delay: float = Field(default=0.5, ge=0.0)
    safety_timeout: float = Field(default=6.0, ge=5.0, le=8.0)
    login_default_role: Role = Role.ADMIN
    resolver_default_role: Role = Role.STUDENT
    console_roles: list[Role] = Field(
        default_factory=lambda: [Role.ADMIN, Role.INSTRUCTOR, Role.TUTOR]
    )


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        backend: Which gateway adapter to build (memory or sql).
        database: Database settings for the sql backend.
        session: Session resolution settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"
    backend: Literal["memory", "sql"] = "memory"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production on the in-memory backend
                or with the default database password.
        """
        if self.environment == "production":
            if self.backend == "memory":
                raise ValueError(
                    "The in-memory backend cannot be used in production. "
                    "Set BACKEND=sql."
                )
            if self.database.password.get_secret_value() == "console_password":
                raise ValueError(
                    "Database password must be changed from default in production. "
                    "Set DB_PASSWORD environment variable."
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

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
