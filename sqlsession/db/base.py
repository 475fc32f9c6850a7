from sqlalchemy import TIMESTAMP, Column, DateTime, MetaData, String, Table, Text
from sqlalchemy.sql import column, table
from sqlalchemy.sql.elements import quoted_name
from sqlalchemy.sql.selectable import TableClause
from sqlalchemy.types import UserDefinedType

from sqlsession.db.dialects import DialectFamily, DialectProfile

# Define naming convention for constraints
convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "pk": "pk_%(table_name)s",
}

SESS_COLUMN = "sess"
EXPIRED_COLUMN = "expired"


class JSONDocument(UserDefinedType):
    """A column declared as ``JSON``; values are bound and fetched as JSON text.

    Only emitted where the server has the type: MySQL 5.7.8+, Oracle 21c+,
    PostgreSQL and SQLite.
    """

    cache_ok = True

    def get_col_spec(self, **kw) -> str:
        return "JSON"


def force_quotes(profile: DialectProfile) -> bool:
    # Oracle folds unquoted names to upper case; its predicates use "expired"
    return profile.family is DialectFamily.ORACLE


def identifier(name: str, quote: bool) -> str:
    return quoted_name(name, True) if quote else name


def timestamp_type(profile: DialectProfile):
    """Column type for the expiration timestamp"""
    if profile.family in (DialectFamily.MYSQL, DialectFamily.MSSQL):
        return DateTime()
    if profile.family is DialectFamily.POSTGRES:
        return DateTime(timezone=True)
    return TIMESTAMP()


def build_session_table(
    table_name: str,
    sid_column: str,
    profile: DialectProfile,
    json_supported: bool,
) -> Table:
    """
    Declare the session table on its own metadata.

    Each store gets a fresh ``MetaData`` so several stores with different
    table names can live in one process.
    """
    quote = force_quotes(profile)
    metadata = MetaData(naming_convention=convention)
    return Table(
        identifier(table_name, quote),
        metadata,
        Column(identifier(sid_column, quote), String(255), primary_key=True),
        Column(
            identifier(SESS_COLUMN, quote),
            JSONDocument() if json_supported else Text(),
            nullable=False,
        ),
        Column(
            identifier(EXPIRED_COLUMN, quote),
            timestamp_type(profile),
            nullable=False,
            index=True,
        ),
    )


def session_table_clause(table_name: str, sid_column: str, profile: DialectProfile) -> TableClause:
    """Lightweight table reference for DML; untyped, so values pass through as bound"""
    quote = force_quotes(profile)
    return table(
        identifier(table_name, quote),
        column(identifier(sid_column, quote)),
        column(identifier(SESS_COLUMN, quote)),
        column(identifier(EXPIRED_COLUMN, quote)),
    )
