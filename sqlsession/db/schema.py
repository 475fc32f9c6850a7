"""Session table bootstrap."""

import logging

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncConnection

from sqlsession.core.errors import SchemaMissingError
from sqlsession.db.base import build_session_table, force_quotes, identifier
from sqlsession.db.dialects import DialectProfile, supports_json

logger = logging.getLogger(__name__)


async def table_exists(conn: AsyncConnection, table_name: str) -> bool:
    return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(table_name))


async def ensure_schema(
    conn: AsyncConnection,
    profile: DialectProfile,
    table_name: str,
    sid_column: str,
    create_table: bool = True,
) -> bool:
    """
    Make sure the session table exists.

    Args:
        conn: Open connection; the caller commits
        profile: Dialect profile of the connection
        table_name: Name of the session table
        sid_column: Name of the primary key column
        create_table: Whether a missing table may be created

    Returns:
        True if the table already existed, False if it was just created

    Raises:
        SchemaMissingError: If the table is missing and creation is disabled
    """
    if await table_exists(conn, identifier(table_name, force_quotes(profile))):
        logger.debug(f"Session table '{table_name}' found")
        return True

    if not create_table:
        logger.error(f"Session table '{table_name}' is missing and table creation is disabled")
        raise SchemaMissingError(table_name)

    json_supported = await supports_json(conn, profile.family)
    session_table = build_session_table(table_name, sid_column, profile, json_supported)
    # checkfirst narrows, but does not close, the window for two stores
    # creating the table at the same moment
    await conn.run_sync(
        lambda sync_conn: session_table.metadata.create_all(
            sync_conn, tables=[session_table], checkfirst=True
        )
    )
    logger.info(
        f"Created session table '{table_name}' "
        f"(payload column: {'JSON' if json_supported else 'text'}, "
        f"expiry column: {profile.timestamp_type_name()})"
    )
    return False
