from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sqlsession.core.config import StoreSettings


def get_connect_args(database_url: str) -> Dict[str, Any]:
    """Get database-specific connection arguments"""
    if database_url.startswith("sqlite"):
        # Concurrent writers wait on the file lock instead of failing at once
        return {"timeout": 30}
    return {}


def create_engine_from_settings(settings: Optional[StoreSettings] = None) -> AsyncEngine:
    """Create the async engine used when the caller does not supply one"""
    settings = settings or StoreSettings()
    return create_async_engine(
        settings.database_url,
        echo=settings.echo_sql,
        connect_args=get_connect_args(settings.database_url),
    )
