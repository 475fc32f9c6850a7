"""
Dialect capability probing.

Classifies a database connection into a small closed set of families and
maps each family to the SQL details the store needs: timestamp type name,
timestamp bind format, expiration predicates and native upsert support.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from sqlalchemy import DateTime, String, bindparam, text
from sqlalchemy.ext.asyncio import AsyncConnection
from sqlalchemy.sql.elements import BindParameter, TextClause

from sqlsession.core.payload import TimestampInput, to_utc_datetime

logger = logging.getLogger(__name__)


class DialectFamily(str, Enum):
    """Database families with distinct SQL behaviour"""

    SQLITE = "sqlite"
    MYSQL = "mysql"
    MSSQL = "mssql"
    POSTGRES = "postgres"
    ORACLE = "oracle"
    UNKNOWN = "unknown"


class TimestampFormat(str, Enum):
    """How a point in time is bound as a query parameter"""

    ISO = "iso"  # 2024-01-31T12:00:00.000Z
    TRUNCATED = "truncated"  # 2024-01-31 12:00:00
    NATIVE = "native"  # datetime object


# Dialect identifiers, matched exactly
_IDENTIFIERS: Dict[str, DialectFamily] = {
    "sqlite": DialectFamily.SQLITE,
    "sqlite3": DialectFamily.SQLITE,
    "mysql": DialectFamily.MYSQL,
    "mariadb": DialectFamily.MYSQL,
    "mariasql": DialectFamily.MYSQL,
    "mssql": DialectFamily.MSSQL,
    "postgresql": DialectFamily.POSTGRES,
    "postgres": DialectFamily.POSTGRES,
    "oracle": DialectFamily.ORACLE,
    "oracledb": DialectFamily.ORACLE,
}

# JSON columns arrived in MySQL 5.7.8
MYSQL_JSON_MIN_VERSION = (5, 7, 8)
# Oracle gained a JSON column type in 21c
ORACLE_JSON_MIN_VERSION = (21,)
# Writable CTEs (used by the single-statement upsert) need PostgreSQL 9.2
POSTGRES_UPSERT_MIN_VERSION = (9, 2)


@dataclass(frozen=True)
class DialectTraits:
    """Static SQL details for one dialect family"""

    timestamp_type: str
    timestamp_format: TimestampFormat
    valid_condition: str
    expired_condition: str
    json_capable: Optional[bool]  # None: depends on the server version
    native_upsert: bool


def _cast_conditions(type_name: str, column: str = "expired") -> Tuple[str, str]:
    return (
        f"CAST(:now AS {type_name}) <= {column}",
        f"{column} < CAST(:now AS {type_name})",
    )


def _traits(
    timestamp_type: str,
    timestamp_format: TimestampFormat,
    json_capable: Optional[bool],
    native_upsert: bool,
    conditions: Optional[Tuple[str, str]] = None,
) -> DialectTraits:
    valid, expired = conditions or _cast_conditions(timestamp_type)
    return DialectTraits(
        timestamp_type=timestamp_type,
        timestamp_format=timestamp_format,
        valid_condition=valid,
        expired_condition=expired,
        json_capable=json_capable,
        native_upsert=native_upsert,
    )


DIALECT_TRAITS: Dict[DialectFamily, DialectTraits] = {
    DialectFamily.SQLITE: _traits(
        "timestamp",
        TimestampFormat.ISO,
        True,
        True,
        # sqlite stores timestamps as text, datetime() normalises both sides
        ("datetime(:now) <= datetime(expired)", "datetime(expired) < datetime(:now)"),
    ),
    DialectFamily.MYSQL: _traits("DATETIME", TimestampFormat.TRUNCATED, None, True),
    DialectFamily.MSSQL: _traits("DATETIME", TimestampFormat.TRUNCATED, False, True),
    DialectFamily.POSTGRES: _traits(
        "timestamp with time zone", TimestampFormat.ISO, True, True
    ),
    DialectFamily.ORACLE: _traits(
        "timestamp",
        TimestampFormat.NATIVE,
        None,
        False,
        _cast_conditions("timestamp", column='"expired"'),
    ),
    DialectFamily.UNKNOWN: _traits("timestamp", TimestampFormat.ISO, False, False),
}


def classify(identifier: Optional[str]) -> DialectFamily:
    """Map a dialect identifier such as ``postgresql`` to its family"""
    if identifier is None:
        return DialectFamily.UNKNOWN
    return _IDENTIFIERS.get(identifier, DialectFamily.UNKNOWN)


def parse_version(version: Union[str, Tuple[Any, ...], None]) -> Optional[Tuple[int, ...]]:
    """
    Parse a server version into a tuple of integers.

    Handles strings like ``8.0.36``, ``5.7.8-log`` or ``10.6.12-MariaDB`` and
    SQLAlchemy's ``server_version_info`` tuples (non-numeric parts dropped).
    """
    if version is None:
        return None
    if isinstance(version, tuple):
        numbers = tuple(part for part in version if isinstance(part, int))
        return numbers or None
    numbers = []
    for part in str(version).strip().split("."):
        match = re.match(r"\d+", part)
        if not match:
            break
        numbers.append(int(match.group()))
    return tuple(numbers) or None


def format_timestamp(family: DialectFamily, value: TimestampInput = None) -> Union[str, datetime]:
    """
    Render a point in time the way the dialect expects it as a bound parameter.

    Args:
        family: Dialect family of the connection
        value: Point in time, defaults to now

    Returns:
        ISO-8601 string, ``YYYY-MM-DD HH:MM:SS`` string, or a naive UTC
        datetime for Oracle
    """
    moment = to_utc_datetime(value)
    fmt = DIALECT_TRAITS[family].timestamp_format
    if fmt is TimestampFormat.NATIVE:
        return moment.replace(tzinfo=None)
    if fmt is TimestampFormat.TRUNCATED:
        return moment.strftime("%Y-%m-%d %H:%M:%S")
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def timestamp_bind(family: DialectFamily, key: str, value: TimestampInput = None) -> BindParameter:
    """Bound parameter for a formatted timestamp, typed so drivers accept it"""
    formatted = format_timestamp(family, value)
    type_ = DateTime() if isinstance(formatted, datetime) else String()
    return bindparam(key, formatted, type_=type_)


async def fetch_server_version(conn: AsyncConnection) -> Optional[Tuple[int, ...]]:
    """Ask the server for its version with ``SELECT version()``"""
    result = await conn.execute(text("SELECT version() AS version"))
    return parse_version(result.scalar())


async def supports_json(conn: AsyncConnection, family: DialectFamily) -> bool:
    """
    Check whether the database offers a native JSON column type.

    MySQL-family servers are asked for their version. Oracle has no
    ``SELECT version()``, so the version the driver reported on connect is
    used instead. The other families are answered from the traits table.
    """
    capable = DIALECT_TRAITS[family].json_capable
    if capable is not None:
        return capable
    if family is DialectFamily.ORACLE:
        version = parse_version(getattr(conn.dialect, "server_version_info", None))
        minimum = ORACLE_JSON_MIN_VERSION
    else:
        version = await fetch_server_version(conn)
        minimum = MYSQL_JSON_MIN_VERSION
    if version is None:
        logger.warning("Could not determine server version, storing sessions as text")
        return False
    return version >= minimum


@dataclass(frozen=True)
class DialectProfile:
    """Classification of one connection, computed once per store"""

    family: DialectFamily
    name: str
    server_version: Optional[Tuple[int, ...]] = None

    @classmethod
    def for_dialect(cls, dialect: Any) -> "DialectProfile":
        """Build a profile from a SQLAlchemy dialect object"""
        name = getattr(dialect, "name", None)
        return cls(
            family=classify(name),
            name=name or "unknown",
            server_version=parse_version(getattr(dialect, "server_version_info", None)),
        )

    @property
    def traits(self) -> DialectTraits:
        return DIALECT_TRAITS[self.family]

    @property
    def native_upsert(self) -> bool:
        if not self.traits.native_upsert:
            return False
        if self.family is DialectFamily.POSTGRES and self.server_version is not None:
            return self.server_version[:2] >= POSTGRES_UPSERT_MIN_VERSION
        return True

    def timestamp_type_name(self) -> str:
        return self.traits.timestamp_type

    def format_timestamp(self, value: TimestampInput = None) -> Union[str, datetime]:
        return format_timestamp(self.family, value)

    def valid_clause(self, now: TimestampInput = None) -> TextClause:
        """``expired >= now`` in this dialect, with ``now`` bound"""
        return text(self.traits.valid_condition).bindparams(
            timestamp_bind(self.family, "now", now)
        )

    def expired_clause(self, now: TimestampInput = None) -> TextClause:
        """``expired < now`` in this dialect, with ``now`` bound"""
        return text(self.traits.expired_condition).bindparams(
            timestamp_bind(self.family, "now", now)
        )


async def probe_dialect(conn: AsyncConnection) -> DialectProfile:
    """Classify an open connection"""
    profile = DialectProfile.for_dialect(conn.dialect)
    logger.debug(
        f"Detected dialect {profile.name} ({profile.family.value}), "
        f"server version {profile.server_version}"
    )
    return profile
