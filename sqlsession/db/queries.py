"""
Read, count and delete queries against the session table.

Every read applies the dialect's "still valid" predicate so expired rows stay
invisible until the sweeper removes them.
"""

from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from sqlsession.core.payload import SessionPayload, TimestampInput, decode_payload
from sqlsession.db.base import EXPIRED_COLUMN, SESS_COLUMN, session_table_clause
from sqlsession.db.dialects import DialectProfile


class SessionQueries:
    """Query engine bound to one engine, table and dialect profile"""

    def __init__(
        self,
        engine: AsyncEngine,
        profile: DialectProfile,
        table_name: str,
        sid_column: str,
    ):
        self.engine = engine
        self.profile = profile
        self.table = session_table_clause(table_name, sid_column, profile)
        self.sid = self.table.c[sid_column]
        self.sess = self.table.c[SESS_COLUMN]
        self.expired = self.table.c[EXPIRED_COLUMN]

    async def fetch_one(self, sid: str) -> Optional[SessionPayload]:
        """Payload of a non-expired session, or None"""
        stmt = (
            select(self.sess)
            .where(self.sid == sid)
            .where(self.profile.valid_clause())
        )
        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        if row is None:
            return None
        return decode_payload(row[0], sid)

    async def fetch_all(self) -> List[SessionPayload]:
        """Payloads of every non-expired session, in no particular order"""
        stmt = select(self.sid, self.sess).where(self.profile.valid_clause())
        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [decode_payload(value, sid) for sid, value in rows]

    async def count(self, include_expired: bool = False) -> int:
        stmt = select(func.count()).select_from(self.table)
        if not include_expired:
            stmt = stmt.where(self.profile.valid_clause())
        async with self.engine.connect() as conn:
            value = (await conn.execute(stmt)).scalar()
        return int(value or 0)

    async def touch_expiry(self, sid: str, expires: TimestampInput) -> int:
        """Move the expiry of a non-expired session; the payload is left alone"""
        stmt = (
            update(self.table)
            .where(self.sid == sid)
            .where(self.profile.valid_clause())
            .values({EXPIRED_COLUMN: self.profile.format_timestamp(expires)})
        )
        async with self.engine.begin() as conn:
            result = await conn.execute(stmt)
        return result.rowcount

    async def delete_one(self, sid: str) -> int:
        async with self.engine.begin() as conn:
            result = await conn.execute(delete(self.table).where(self.sid == sid))
        return result.rowcount

    async def delete_all(self) -> int:
        async with self.engine.begin() as conn:
            result = await conn.execute(delete(self.table))
        return result.rowcount

    async def delete_expired(self, now: TimestampInput = None) -> int:
        """Physically remove every row whose expiry has passed"""
        async with self.engine.begin() as conn:
            result = await conn.execute(
                delete(self.table).where(self.profile.expired_clause(now))
            )
        return result.rowcount
