"""SQL-backed server-side session store."""

from sqlsession.core.config import StoreSettings
from sqlsession.core.errors import (
    MalformedPayloadError,
    SchemaMissingError,
    SessionStoreError,
)
from sqlsession.db.dialects import DialectFamily, DialectProfile
from sqlsession.protocol import SessionStoreProtocol
from sqlsession.store import SQLSessionStore
from sqlsession.sweeper import ExpirationSweeper, SweeperState

__all__ = [
    "SQLSessionStore",
    "StoreSettings",
    "SessionStoreProtocol",
    "SessionStoreError",
    "SchemaMissingError",
    "MalformedPayloadError",
    "DialectFamily",
    "DialectProfile",
    "ExpirationSweeper",
    "SweeperState",
]
