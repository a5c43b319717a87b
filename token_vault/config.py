"""
Runtime configuration read from the environment.

Values are captured when a model is built and get_config() caches one
AppConfig per process. Components receive their settings (the cipher key, the
database URL, the log queue) from this object rather than reading the
environment themselves.
"""

import os
from typing import Callable, Optional

from pydantic import BaseModel, Field, field_validator

from .constants import EnvironmentVariable, LogLevel, QueueName


def _from_env(variable: EnvironmentVariable, default: Optional[str] = None) -> Callable[[], Optional[str]]:
    """Default factory reading `variable`; unset and empty both give `default`."""
    return lambda: os.getenv(variable.value) or default


class DatabaseConfig(BaseModel):
    """SQLAlchemy engine settings."""

    connection_string: str = Field(
        default_factory=_from_env(EnvironmentVariable.DATABASE_URL, "sqlite:///./token_vault.db"),
        description="SQLAlchemy database URL",
        repr=False,
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    pool_size: int = Field(default=5, description="Connection pool size (server databases)")
    max_overflow: int = Field(default=10, description="Connections allowed above pool_size")
    pool_timeout: int = Field(default=30, description="Seconds to wait for a pooled connection")


class QueueConfig(BaseModel):
    """Azure Storage Queue used as the optional log sink."""

    connection_string: str = Field(
        default_factory=_from_env(EnvironmentVariable.AZURE_STORAGE_CONNECTION, ""),
        description="Azure Storage connection string",
        repr=False,
    )
    logs_queue_name: str = Field(default=QueueName.LOGS.value, description="Logs queue name")


class LoggingConfig(BaseModel):
    level: str = Field(
        default_factory=_from_env(EnvironmentVariable.LOG_LEVEL, LogLevel.INFO.value),
        description="Logging level name",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Console log format",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LogLevel.__members__:
            raise ValueError(f"Invalid log level: {v}. Must be one of {list(LogLevel.__members__)}")
        return level


class FeatureFlags(BaseModel):
    """Runtime switches."""

    enable_logs_queue: bool = Field(
        default=False, description="Ship structured logs to an Azure Storage Queue"
    )
    allow_legacy_plaintext_tokens: bool = Field(
        default=True,
        description="Return stored tokens that were written before encryption as-is",
    )


class SecurityConfig(BaseModel):
    encryption_key: Optional[str] = Field(
        default_factory=_from_env(EnvironmentVariable.ENCRYPTION_KEY),
        description="AES-256 key: exactly 32 bytes when UTF-8 encoded",
        repr=False,
    )


class AppConfig(BaseModel):
    """Root of the configuration tree."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    security: SecurityConfig = Field(default_factory=SecurityConfig)


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Process-wide configuration, built from the environment on first use."""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() re-reads the environment."""
    global _config
    _config = None
