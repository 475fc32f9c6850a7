"""
Session store configuration using Pydantic Settings.

Configuration values can be set via environment variables (prefixed with
``SESSION_STORE_``), a .env file, or keyword overrides passed to the store.
"""

import re
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Table and column names are interpolated into SQL and must be plain identifiers
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./sessions.sqlite"


class StoreSettings(BaseSettings):
    """Session store settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="SESSION_STORE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Connection used when no engine is handed to the store
    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False

    # Table layout
    table_name: str = "sessions"
    sid_column: str = "sid"
    create_table: bool = True

    # Expiration sweep, in milliseconds; 0 turns the sweeper off
    cleanup_interval: int = Field(default=60000, ge=0)
    disable_cleanup: bool = False

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    structured_logging: bool = False

    @field_validator("table_name", "sid_column")
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        """Reject names that are not plain SQL identifiers"""
        if not _IDENTIFIER_RE.match(value):
            raise ValueError(f"'{value}' is not a valid SQL identifier")
        return value

    @property
    def cleanup_enabled(self) -> bool:
        return not self.disable_cleanup and self.cleanup_interval > 0

    @property
    def cleanup_interval_seconds(self) -> float:
        return self.cleanup_interval / 1000.0


def build_settings(base: Optional[StoreSettings] = None, **overrides) -> StoreSettings:
    """
    Merge keyword overrides into a settings object.

    Overrides are validated the same way as environment values.

    Args:
        base: Settings to start from; a fresh ``StoreSettings()`` when omitted
        **overrides: Field values that take precedence over ``base``

    Returns:
        A validated settings object
    """
    settings = base or StoreSettings()
    if not overrides:
        return settings
    unknown = set(overrides) - set(StoreSettings.model_fields)
    if unknown:
        raise TypeError(f"Unknown store option(s): {', '.join(sorted(unknown))}")
    return StoreSettings.model_validate({**settings.model_dump(), **overrides})
