"""
Server-side session storage on a relational database.

The store keeps one row per session id with the JSON-encoded payload and a
derived expiry. Schema bootstrap runs once, lazily, and every operation waits
for it through the ``ready`` task.
"""

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from sqlsession.core.callbacks import callback_compatible
from sqlsession.core.config import StoreSettings, build_settings
from sqlsession.core.payload import (
    SessionPayload,
    compute_expiry,
    cookie_options,
    encode_payload,
)
from sqlsession.db.dialects import DialectProfile, probe_dialect
from sqlsession.db.queries import SessionQueries
from sqlsession.db.schema import ensure_schema
from sqlsession.db.session import create_engine_from_settings
from sqlsession.db.upsert import UpsertResult, upsert
from sqlsession.sweeper import (
    ErrorCallback,
    ExpirationSweeper,
    SweeperState,
    log_sweep_error,
)

logger = logging.getLogger(__name__)


class SQLSessionStore:
    """
    Session store backed by any database SQLAlchemy can reach asynchronously.

    Args:
        engine: Async engine to use; when omitted one is created from
            ``settings.database_url`` (an SQLite file by default) and disposed
            by ``close()``
        settings: Base configuration, defaults to ``StoreSettings()``
        on_cleanup_error: Called with any exception raised by a background
            sweep; defaults to logging it
        **options: Overrides for individual ``StoreSettings`` fields, e.g.
            ``table_name="web_sessions"`` or ``cleanup_interval=0``
    """

    def __init__(
        self,
        engine: Optional[AsyncEngine] = None,
        settings: Optional[StoreSettings] = None,
        on_cleanup_error: Optional[ErrorCallback] = None,
        **options: Any,
    ):
        self.settings = build_settings(settings, **options)
        self._owns_engine = engine is None
        self.engine = engine or create_engine_from_settings(self.settings)
        self.profile: Optional[DialectProfile] = None
        self._queries: Optional[SessionQueries] = None
        self._ready: Optional[asyncio.Task] = None
        interval = self.settings.cleanup_interval_seconds if self.settings.cleanup_enabled else 0
        self._sweeper = ExpirationSweeper(
            self._sweep_expired,
            interval,
            on_cleanup_error or log_sweep_error,
        )

    @property
    def table_name(self) -> str:
        return self.settings.table_name

    @property
    def sid_column(self) -> str:
        return self.settings.sid_column

    @property
    def ready(self) -> "asyncio.Task[None]":
        """
        Task that finishes once the table is in place and cleanup is armed.

        Created on first access, so it must be touched from inside a running
        event loop. A bootstrap failure is re-raised to every awaiter.
        """
        if self._ready is None:
            self._ready = asyncio.get_running_loop().create_task(self._bootstrap())
        return self._ready

    async def _bootstrap(self) -> None:
        try:
            async with self.engine.begin() as conn:
                profile = await probe_dialect(conn)
                existed = await ensure_schema(
                    conn,
                    profile,
                    self.table_name,
                    self.sid_column,
                    create_table=self.settings.create_table,
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to initialize session store table: {e}")
            raise

        self.profile = profile
        self._queries = SessionQueries(self.engine, profile, self.table_name, self.sid_column)
        logger.debug(f"Session store ready on table '{self.table_name}' ({profile.family.value})")

        if self.settings.cleanup_enabled:
            # A table created just now holds nothing to sweep yet
            self._sweeper.start(immediate=existed)

    async def _query_engine(self) -> SessionQueries:
        await self.ready
        assert self._queries is not None
        return self._queries

    @contextmanager
    def _database_errors(self, action: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"Database operation failed while trying to {action}: {e}")
            raise

    @callback_compatible
    async def get(self, sid: str) -> Optional[SessionPayload]:
        """Return the payload of a live session, or None if absent or expired"""
        queries = await self._query_engine()
        with self._database_errors("load a session"):
            return await queries.fetch_one(sid)

    @callback_compatible
    async def set(self, sid: str, session: SessionPayload) -> UpsertResult:
        """
        Store a session, creating or replacing its row.

        The expiry is ``cookie.maxAge`` milliseconds from now, or one day
        when the cookie carries no maxAge.
        """
        expires = compute_expiry(session)
        payload_text = encode_payload(session)
        await self.ready
        assert self.profile is not None
        with self._database_errors("store a session"):
            result = await upsert(
                self.engine,
                self.profile,
                self.table_name,
                self.sid_column,
                sid,
                payload_text,
                expires,
            )
        logger.debug(f"Stored session {sid} via {result.strategy} upsert")
        return result

    @callback_compatible
    async def touch(self, sid: str, session: SessionPayload) -> Optional[int]:
        """
        Push back the expiry of a live session to ``cookie.expires``.

        Nothing happens when the cookie has no ``expires``. The stored payload
        is not rewritten.

        Returns:
            Rows updated, or None when there was nothing to do
        """
        expires = cookie_options(session).expires
        queries = await self._query_engine()
        if expires is None:
            return None
        with self._database_errors("refresh a session"):
            return await queries.touch_expiry(sid, expires)

    @callback_compatible
    async def destroy(self, sid: str) -> int:
        """Delete a session whether or not it has expired; returns rows removed"""
        queries = await self._query_engine()
        with self._database_errors("delete a session"):
            return await queries.delete_one(sid)

    @callback_compatible
    async def length(self, include_expired: bool = False) -> int:
        """
        Count sessions.

        Expired rows the sweeper has not removed yet are skipped, matching
        ``get`` and ``all``, unless ``include_expired`` is set.
        """
        queries = await self._query_engine()
        with self._database_errors("count sessions"):
            return await queries.count(include_expired=include_expired)

    @callback_compatible
    async def clear(self) -> int:
        """Delete every session; returns rows removed"""
        queries = await self._query_engine()
        with self._database_errors("clear sessions"):
            return await queries.delete_all()

    @callback_compatible
    async def all(self) -> List[SessionPayload]:
        """Payloads of all live sessions, unordered"""
        queries = await self._query_engine()
        with self._database_errors("list sessions"):
            return await queries.fetch_all()

    async def _sweep_expired(self) -> int:
        queries = await self._query_engine()
        return await queries.delete_expired()

    async def sweep(self) -> int:
        """Delete expired rows now; returns rows removed"""
        return await self._sweeper.run_once()

    def start_cleanup(self) -> None:
        """Arm the background sweep if it is configured and not running"""
        self._sweeper.start()

    def stop_cleanup(self) -> None:
        """Cancel the background sweep; safe to call repeatedly"""
        self._sweeper.stop()

    @property
    def cleanup_state(self) -> SweeperState:
        return self._sweeper.state

    @property
    def next_cleanup(self) -> Optional[float]:
        """Event loop time of the next scheduled sweep, if one is armed"""
        return self._sweeper.next_run

    async def close(self) -> None:
        """Stop sweeping and release the engine if this store created it"""
        self.stop_cleanup()
        running = self._sweeper.current_task
        if running is not None:
            await asyncio.gather(running, return_exceptions=True)
        if self._owns_engine:
            await self.engine.dispose()

    async def __aenter__(self) -> "SQLSessionStore":
        await self.ready
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
