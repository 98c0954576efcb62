"""Unit tests for configuration management.

Tests cover:
- Default configuration values
- TOML file loading
- Environment variable overrides
- Validation errors for invalid configurations
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from codesentinel.config import (
    AnalyzerConfig,
    CodeSentinelConfig,
    DatabaseConfig,
    LoggingConfig,
    MarathonConfig,
    WebConfig,
    load_config,
)


class TestDatabaseConfig:
    """Test DatabaseConfig defaults and validation."""

    def test_default_values(self) -> None:
        """Test that default database configuration values are correct."""
        config = DatabaseConfig()
        assert config.url == "sqlite+aiosqlite:///codesentinel.db"
        assert config.echo is False
        assert config.session_key == "codesentinel_session_v1"

    def test_session_key_cannot_be_empty(self) -> None:
        """Test that an empty session key is rejected."""
        with pytest.raises(ValidationError):
            DatabaseConfig(session_key="")


class TestAnalyzerConfig:
    """Test AnalyzerConfig defaults and validation."""

    def test_default_values(self) -> None:
        """Test that default analyzer configuration values are correct."""
        config = AnalyzerConfig()
        assert config.provider == "gemini"
        assert config.api_key is None
        assert config.model == "gemini-3-pro-preview"
        assert config.max_output_tokens == 20000
        assert config.thinking_budget == 16384
        assert config.timeout_seconds is None

    def test_provider_is_normalised(self) -> None:
        """Test that provider names are case insensitive."""
        assert AnalyzerConfig(provider="SCRIPTED").provider == "scripted"

    def test_unknown_provider_rejected(self) -> None:
        """Test that an unknown provider raises a validation error."""
        with pytest.raises(ValidationError, match="Invalid analyzer provider"):
            AnalyzerConfig(provider="openai")

    def test_token_budget_validation(self) -> None:
        """Test that token budgets are validated within range."""
        with pytest.raises(ValidationError):
            AnalyzerConfig(max_output_tokens=10)
        with pytest.raises(ValidationError):
            AnalyzerConfig(thinking_budget=-1)


class TestMarathonConfig:
    """Test MarathonConfig defaults and validation."""

    def test_default_values(self) -> None:
        """Test that default marathon configuration values are correct."""
        config = MarathonConfig()
        assert config.breather_seconds == 2.5
        assert config.default_phase_minutes == 45
        assert config.log_capacity == 100
        assert config.decision_capacity == 20
        assert config.max_phase_retries is None
        assert config.retry_delay_seconds == 2.5

    def test_zero_breather_allowed(self) -> None:
        """Test that the breather can be disabled."""
        assert MarathonConfig(breather_seconds=0).breather_seconds == 0

    def test_capacity_validation(self) -> None:
        """Test that capacities must be positive."""
        with pytest.raises(ValidationError):
            MarathonConfig(log_capacity=0)
        with pytest.raises(ValidationError):
            MarathonConfig(decision_capacity=0)


class TestLoggingConfig:
    """Test LoggingConfig validation."""

    def test_level_is_upper_cased(self) -> None:
        assert LoggingConfig(level="debug").level == "DEBUG"

    def test_invalid_format_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid log format"):
            LoggingConfig(format="xml")


class TestCodeSentinelConfig:
    """Test root configuration aggregation."""

    def test_default_subsections(self) -> None:
        """Test that all subsections are populated with defaults."""
        config = CodeSentinelConfig()
        assert isinstance(config.database, DatabaseConfig)
        assert isinstance(config.analyzer, AnalyzerConfig)
        assert isinstance(config.marathon, MarathonConfig)
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.web, WebConfig)

    def test_nested_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that nested environment variables override defaults."""
        monkeypatch.setenv("CODESENTINEL_ANALYZER__API_KEY", "env-key")
        monkeypatch.setenv("CODESENTINEL_MARATHON__MAX_PHASE_RETRIES", "3")

        config = CodeSentinelConfig()
        assert config.analyzer.api_key == "env-key"
        assert config.marathon.max_phase_retries == 3

    def test_extra_fields_forbidden(self) -> None:
        """Test that unknown top-level sections are rejected."""
        with pytest.raises(ValidationError):
            CodeSentinelConfig(unknown={"a": 1})


class TestLoadConfig:
    """Test TOML configuration loading."""

    def test_load_from_explicit_path(self, tmp_path: Path) -> None:
        """Test loading values from an explicit TOML file."""
        config_file = tmp_path / "codesentinel.toml"
        config_file.write_text(
            "[analyzer]\n"
            'provider = "scripted"\n'
            "\n"
            "[marathon]\n"
            "breather_seconds = 0\n"
            "max_phase_retries = 2\n"
        )

        config = load_config(config_file)
        assert config.analyzer.provider == "scripted"
        assert config.marathon.breather_seconds == 0
        assert config.marathon.max_phase_retries == 2

    def test_missing_explicit_path_raises(self, tmp_path: Path) -> None:
        """Test that an explicit but missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.toml")

    def test_invalid_values_raise_value_error(self, tmp_path: Path) -> None:
        """Test that invalid TOML values surface as ValueError with the path."""
        config_file = tmp_path / "bad.toml"
        config_file.write_text("[marathon]\nlog_capacity = 0\n")

        with pytest.raises(ValueError, match="Invalid configuration in"):
            load_config(config_file)

    def test_defaults_when_no_file_found(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that defaults apply when no config file exists."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))

        config = load_config()
        assert config.analyzer.provider == "gemini"

    def test_discovers_file_in_working_directory(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that ./codesentinel.toml is picked up automatically."""
        (tmp_path / "codesentinel.toml").write_text('[database]\nsession_key = "alt"\n')
        monkeypatch.chdir(tmp_path)

        config = load_config()
        assert config.database.session_key == "alt"
