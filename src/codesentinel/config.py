"""Configuration management for CodeSentinel.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to CodeSentinelConfig constructor)
2. Environment variables (CODESENTINEL_* prefix)
3. TOML configuration file
4. Default values defined in this module

Example TOML configuration:
    [analyzer]
    provider = "gemini"
    model = "gemini-3-pro-preview"

    [marathon]
    breather_seconds = 2.5

Example environment variable override:
    CODESENTINEL_ANALYZER__API_KEY="..."
    CODESENTINEL_MARATHON__MAX_PHASE_RETRIES=5
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomli
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseSettings):
    """Session persistence configuration.

    Attributes:
        url: SQLAlchemy database URL with an async driver
        echo: Enable SQL query logging
        session_key: Fixed key the review session is stored under
    """

    model_config = SettingsConfigDict(
        env_prefix="CODESENTINEL_DATABASE__",
        extra="forbid",
    )

    url: str = Field(
        default="sqlite+aiosqlite:///codesentinel.db",
        description="Async SQLAlchemy connection URL",
    )
    echo: bool = Field(default=False)
    session_key: str = Field(default="codesentinel_session_v1", min_length=1)


class AnalyzerConfig(BaseSettings):
    """External analyzer configuration.

    Attributes:
        provider: Analyzer backend ("gemini" or "scripted")
        api_key: Credential passed to the analyzer on every call
        model: Model identifier requested from the provider
        max_output_tokens: Upper bound on generated tokens per call
        thinking_budget: Reasoning token budget granted to the model
        timeout_seconds: Per-call timeout; None waits indefinitely
    """

    model_config = SettingsConfigDict(
        env_prefix="CODESENTINEL_ANALYZER__",
        extra="forbid",
    )

    provider: str = Field(default="gemini")
    api_key: str | None = Field(default=None)
    model: str = Field(default="gemini-3-pro-preview")
    max_output_tokens: int = Field(default=20000, ge=256, le=65536)
    thinking_budget: int = Field(default=16384, ge=0, le=32768)
    timeout_seconds: int | None = Field(default=None, ge=1, le=3600)

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Validate analyzer provider is recognized."""
        valid_providers = {"gemini", "scripted"}
        v_lower = v.lower()
        if v_lower not in valid_providers:
            raise ValueError(
                f"Invalid analyzer provider: {v}. Must be one of {valid_providers}"
            )
        return v_lower


class MarathonConfig(BaseSettings):
    """Orchestration loop configuration.

    Attributes:
        breather_seconds: Pause between a merged phase and the next phase
        default_phase_minutes: Simulated minutes credited when the analyzer
            does not report its own duration
        log_capacity: Maximum number of activity log entries retained
        decision_capacity: Maximum number of thought-signature decisions retained
        max_phase_retries: Consecutive failures tolerated per phase; None retries forever
        retry_delay_seconds: Pause before re-attempting a failed phase
    """

    model_config = SettingsConfigDict(
        env_prefix="CODESENTINEL_MARATHON__",
        extra="forbid",
    )

    breather_seconds: float = Field(default=2.5, ge=0.0, le=600.0)
    default_phase_minutes: int = Field(default=45, ge=0, le=10000)
    log_capacity: int = Field(default=100, ge=1, le=10000)
    decision_capacity: int = Field(default=20, ge=1, le=1000)
    max_phase_retries: int | None = Field(default=None, ge=0, le=1000)
    retry_delay_seconds: float = Field(default=2.5, ge=0.0, le=600.0)


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stdout only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="CODESENTINEL_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="INFO")
    format: str = Field(default="json")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=50, ge=1, le=1000)
    retention_count: int = Field(default=10, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class WebConfig(BaseSettings):
    """Dashboard API configuration.

    Attributes:
        host: Bind host address
        port: Bind port number
        cors_origins: Allowed CORS origins
    """

    model_config = SettingsConfigDict(
        env_prefix="CODESENTINEL_WEB__",
        extra="forbid",
    )

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class CodeSentinelConfig(BaseSettings):
    """Root configuration for CodeSentinel.

    Aggregates all subsystem configurations. Configuration can be loaded from:
    1. TOML files (using load_config function)
    2. Environment variables (CODESENTINEL_* prefix)
    3. Direct instantiation with keyword arguments

    Environment variable format for nested config:
        CODESENTINEL_<SECTION>__<KEY>=value

    Example:
        CODESENTINEL_DATABASE__URL="sqlite+aiosqlite:////var/lib/codesentinel.db"
        CODESENTINEL_MARATHON__BREATHER_SECONDS=0
    """

    model_config = SettingsConfigDict(
        env_prefix="CODESENTINEL_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    marathon: MarathonConfig = Field(default_factory=MarathonConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    web: WebConfig = Field(default_factory=WebConfig)


def load_config(config_path: Path | None = None) -> CodeSentinelConfig:
    """Load configuration from TOML file with environment variable overrides.

    Configuration search order (first found is used):
    1. config_path if explicitly provided
    2. ./codesentinel.toml (current directory)
    3. ~/.config/codesentinel/config.toml (user config directory)

    Args:
        config_path: Explicit path to TOML config file. If None, searches
                    default locations.

    Returns:
        CodeSentinelConfig: Fully resolved configuration instance.

    Raises:
        FileNotFoundError: If config_path is explicitly provided but doesn't exist.
        ValueError: If TOML file contains invalid configuration.
    """
    toml_data: dict[str, Any] = {}

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        selected_path = config_path
    else:
        search_paths = [
            Path.cwd() / "codesentinel.toml",
            Path.home() / ".config" / "codesentinel" / "config.toml",
        ]
        selected_path = None
        for path in search_paths:
            if path.exists():
                selected_path = path
                break

    if selected_path is not None:
        with open(selected_path, "rb") as f:
            toml_data = tomli.load(f)

    # Pydantic overlays environment variables on top of the TOML data
    try:
        return CodeSentinelConfig(**toml_data)
    except Exception as e:
        if selected_path:
            raise ValueError(
                f"Invalid configuration in {selected_path}: {e}"
            ) from e
        else:
            raise ValueError(f"Invalid configuration: {e}") from e
