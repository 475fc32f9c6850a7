"""
Atomic insert-or-update of session rows.

Each dialect with a native upsert gets a single parameterised statement.
Everything else goes through a transaction that locks the row with
``SELECT ... FOR UPDATE`` before deciding between INSERT and UPDATE.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Union

from sqlalchemy import String, Text, bindparam, insert, select, text, update
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine
from sqlalchemy.sql.elements import TextClause

from sqlsession.db.base import EXPIRED_COLUMN, SESS_COLUMN, session_table_clause
from sqlsession.db.dialects import DialectFamily, DialectProfile, timestamp_bind

logger = logging.getLogger(__name__)

FALLBACK_STRATEGY = "transaction"

SQLITE_UPSERT = (
    "INSERT OR REPLACE INTO {table} ({sid}, expired, sess) "
    "VALUES (:sid, :expired, :sess)"
)

POSTGRES_UPSERT = (
    "WITH new_values ({sid}, expired, sess) AS ("
    "VALUES (:sid, CAST(:expired AS timestamp with time zone), CAST(:sess AS json))"
    "), "
    "upsert AS ("
    "UPDATE {table} cs SET {sid} = nv.{sid}, expired = nv.expired, sess = nv.sess "
    "FROM new_values nv "
    "WHERE cs.{sid} = nv.{sid} "
    "RETURNING cs.*"
    ") "
    "INSERT INTO {table} ({sid}, expired, sess) "
    "SELECT {sid}, expired, sess FROM new_values "
    "WHERE NOT EXISTS (SELECT 1 FROM upsert up WHERE up.{sid} = new_values.{sid})"
)

MYSQL_UPSERT = (
    "INSERT INTO {table} ({sid}, expired, sess) VALUES (:sid, :expired, :sess) "
    "ON DUPLICATE KEY UPDATE expired = VALUES(expired), sess = VALUES(sess)"
)

MSSQL_UPSERT = (
    "MERGE {table} AS T "
    "USING (VALUES (:sid, :expired, :sess)) AS S ({sid}, expired, sess) "
    "ON (T.{sid} = S.{sid}) "
    "WHEN MATCHED THEN "
    "UPDATE SET expired = S.expired, sess = S.sess "
    "WHEN NOT MATCHED BY TARGET THEN "
    "INSERT ({sid}, expired, sess) VALUES (S.{sid}, S.expired, S.sess) "
    "OUTPUT INSERTED.*;"
)

UPSERT_TEMPLATES: Dict[DialectFamily, str] = {
    DialectFamily.SQLITE: SQLITE_UPSERT,
    DialectFamily.POSTGRES: POSTGRES_UPSERT,
    DialectFamily.MYSQL: MYSQL_UPSERT,
    DialectFamily.MSSQL: MSSQL_UPSERT,
}


@dataclass(frozen=True)
class UpsertResult:
    """Which write path ran and how many rows the driver reported"""

    strategy: str
    rowcount: int


def upsert_strategy(profile: DialectProfile) -> str:
    if profile.native_upsert and profile.family in UPSERT_TEMPLATES:
        return profile.family.value
    return FALLBACK_STRATEGY


def render_upsert(
    dialect: Dialect,
    profile: DialectProfile,
    table_name: str,
    sid_column: str,
    sid: str,
    payload_text: str,
    expires: Union[str, datetime],
) -> TextClause:
    """
    Build the native upsert statement for a dialect with its values bound.

    Args:
        dialect: SQLAlchemy dialect, used to quote identifiers
        profile: Dialect profile; must have a native upsert
        table_name: Session table
        sid_column: Primary key column
        sid: Session id
        payload_text: Serialized payload
        expires: Expiry time, anything ``format_timestamp`` accepts

    Returns:
        A ``text()`` clause ready to execute
    """
    template = UPSERT_TEMPLATES[profile.family]
    quote = dialect.identifier_preparer.quote
    statement = template.format(table=quote(table_name), sid=quote(sid_column))
    return text(statement).bindparams(
        bindparam("sid", sid, type_=String()),
        timestamp_bind(profile.family, "expired", expires),
        bindparam("sess", payload_text, type_=Text()),
    )


async def _transactional_upsert(
    conn: AsyncConnection,
    profile: DialectProfile,
    table_name: str,
    sid_column: str,
    sid: str,
    payload_text: str,
    expires: Union[str, datetime],
) -> int:
    sessions = session_table_clause(table_name, sid_column, profile)
    sid_col = sessions.c[sid_column]
    values = {
        EXPIRED_COLUMN: profile.format_timestamp(expires),
        SESS_COLUMN: payload_text,
    }

    # The row lock makes a concurrent writer for the same id wait here until
    # this transaction commits, so it sees the row and updates instead
    found = await conn.execute(select(sid_col).where(sid_col == sid).with_for_update())
    if found.first() is None:
        result = await conn.execute(insert(sessions).values({sid_column: sid, **values}))
    else:
        result = await conn.execute(update(sessions).where(sid_col == sid).values(values))
    return result.rowcount


async def upsert(
    engine: AsyncEngine,
    profile: DialectProfile,
    table_name: str,
    sid_column: str,
    sid: str,
    payload_text: str,
    expires: Union[str, datetime],
) -> UpsertResult:
    """
    Insert or update the row for ``sid``.

    Integrity errors are not caught; on the fallback path they can only occur
    when the row lock was not honoured and are surfaced to the caller.
    """
    strategy = upsert_strategy(profile)
    async with engine.begin() as conn:
        if strategy == FALLBACK_STRATEGY:
            rowcount = await _transactional_upsert(
                conn, profile, table_name, sid_column, sid, payload_text, expires
            )
        else:
            statement = render_upsert(
                conn.dialect, profile, table_name, sid_column, sid, payload_text, expires
            )
            result = await conn.execute(statement)
            # MERGE ... OUTPUT hands back the written row
            rowcount = len(result.fetchall()) if result.returns_rows else result.rowcount
    return UpsertResult(strategy=strategy, rowcount=rowcount)
