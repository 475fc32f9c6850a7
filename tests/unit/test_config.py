"""
Unit tests for configuration module

These tests validate the store settings: defaults, environment overrides,
identifier validation and keyword overrides.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from sqlsession.core.config import DEFAULT_DATABASE_URL, StoreSettings, build_settings

# Mark all tests in this module as unit tests
pytestmark = pytest.mark.unit


def _clean_env():
    return {k: v for k, v in os.environ.items() if not k.startswith("SESSION_STORE_")}


class TestStoreSettings:
    """Test store settings configuration"""

    def test_default_settings(self):
        """Test default configuration values"""
        with patch.dict(os.environ, _clean_env(), clear=True):
            settings = StoreSettings(_env_file=None)

        assert settings.database_url == DEFAULT_DATABASE_URL
        assert settings.table_name == "sessions"
        assert settings.sid_column == "sid"
        assert settings.create_table is True
        assert settings.cleanup_interval == 60000
        assert settings.disable_cleanup is False
        assert settings.cleanup_enabled is True
        assert settings.cleanup_interval_seconds == 60.0
        assert settings.log_level == "INFO"

    def test_environment_variable_override(self):
        """Test that prefixed environment variables override defaults"""
        env = {
            **_clean_env(),
            "SESSION_STORE_TABLE_NAME": "web_sessions",
            "SESSION_STORE_CLEANUP_INTERVAL": "0",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = StoreSettings(_env_file=None)

        assert settings.table_name == "web_sessions"
        assert settings.cleanup_interval == 0
        assert settings.cleanup_enabled is False

    def test_disable_flag_turns_cleanup_off(self):
        """Test that the disable flag wins over a positive interval"""
        settings = StoreSettings(_env_file=None, disable_cleanup=True, cleanup_interval=1000)
        assert settings.cleanup_enabled is False

    @pytest.mark.parametrize("name", ["sessions; DROP TABLE users", "1sessions", "web-sessions", ""])
    def test_invalid_identifiers_rejected(self, name):
        """Test that table names must be plain SQL identifiers"""
        with pytest.raises(ValidationError):
            StoreSettings(_env_file=None, table_name=name)

    def test_negative_interval_rejected(self):
        """Test that the cleanup interval cannot be negative"""
        with pytest.raises(ValidationError):
            StoreSettings(_env_file=None, cleanup_interval=-1)


class TestBuildSettings:
    """Test keyword overrides on top of a base configuration"""

    def test_overrides_applied(self):
        """Test that overrides replace base values"""
        base = StoreSettings(_env_file=None)
        settings = build_settings(base, table_name="other", sid_column="session_id")

        assert settings.table_name == "other"
        assert settings.sid_column == "session_id"
        assert base.table_name == "sessions"

    def test_no_overrides_returns_base(self):
        """Test that the base object is reused untouched"""
        base = StoreSettings(_env_file=None)
        assert build_settings(base) is base

    def test_overrides_validated(self):
        """Test that overrides go through the same validation"""
        with pytest.raises(ValidationError):
            build_settings(StoreSettings(_env_file=None), sid_column="bad column")

    def test_unknown_option_rejected(self):
        """Test that misspelled options are reported"""
        with pytest.raises(TypeError, match="tablename"):
            build_settings(StoreSettings(_env_file=None), tablename="sessions")
