"""Exceptions raised by the session store."""

from typing import Optional


class SessionStoreError(Exception):
    """Base class for session store failures"""
    pass


class SchemaMissingError(SessionStoreError):
    """Raised when the session table is absent and auto-creation is disabled"""

    def __init__(self, table_name: str):
        self.table_name = table_name
        super().__init__(
            f"Session table '{table_name}' does not exist and table creation is disabled"
        )


class MalformedPayloadError(SessionStoreError, ValueError):
    """Raised when a stored session payload cannot be decoded as JSON"""

    def __init__(self, sid: Optional[str], reason: str):
        self.sid = sid
        super().__init__(f"Stored session payload is not valid JSON: {reason}")
