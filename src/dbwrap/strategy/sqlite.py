"""
SQLite-specific strategy implementation.

This module implements the DatabaseStrategy interface with SQLite-specific operations.
It handles SQLite's limitations such as:
- No driver string-escaping routine (quotes are doubled)
- No file-based bulk import (the staging file is replayed through executemany)
- Autocommit expressed through `isolation_level`
"""
import logging
import pathlib
import sqlite3
from typing import TYPE_CHECKING, Any

import dateutil.parser
import sqlalchemy as sa
from dbwrap.bulk import read_staging_file
from dbwrap.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbwrap.connection import Database
    from dbwrap.options import DatabaseOptions

logger = logging.getLogger(__name__)

# Messages of sqlite3.OperationalError raised while compiling a statement
PREPARE_MESSAGES = ('syntax error', 'no such table', 'no such column',
                    'incomplete input', 'unrecognized token')


def convert_date(val: bytes):
    """Convert ISO 8601 date string to date object."""
    return dateutil.parser.isoparse(val.decode()).date()


def convert_datetime(val: bytes):
    """Convert ISO 8601 datetime string to datetime object."""
    return dateutil.parser.isoparse(val.decode())


@register_strategy('sqlite')
class SQLiteStrategy(DatabaseStrategy):
    """SQLite-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for SQLite."""
        return 'sqlite'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for SQLite."""
        return sa.URL.create(drivername='sqlite', database=options.database)

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for SQLite."""
        return {
            'connect_args': {
                'detect_types': sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES
            }
        }

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for SQLite connections."""
        return ['database']

    def configure_connection(self, raw_conn: Any, options: 'DatabaseOptions') -> None:
        """Configure connection settings for SQLite.

        Registers date/datetime converters for declared column types.
        """
        sqlite3.register_converter('date', convert_date)
        sqlite3.register_converter('datetime', convert_datetime)
        raw_conn.execute('PRAGMA foreign_keys = ON')
        self.enable_autocommit(raw_conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = None

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for SQLite.
        """
        raw_conn.isolation_level = 'DEFERRED'

    def get_autocommit(self, raw_conn: Any) -> bool:
        return raw_conn.isolation_level is None

    def escape_string(self, raw_conn: Any, value: str) -> str:
        return value.replace("'", "''")

    def binary_literal(self, value: bytes) -> str:
        return f"X'{value.hex()}'"

    def last_insert_id(self, raw_conn: Any) -> int | None:
        return self._select_scalar_raw(raw_conn, 'SELECT last_insert_rowid()')

    def error_code(self, exc: BaseException) -> int | str | None:
        return getattr(exc, 'sqlite_errorname', None)

    def is_prepare_error(self, exc: BaseException) -> bool:
        """Binding mismatches and compile-time OperationalErrors.
        """
        if isinstance(exc, sqlite3.ProgrammingError):
            return True
        if isinstance(exc, sqlite3.OperationalError):
            message = str(exc).lower()
            return any(m in message for m in PREPARE_MESSAGES)
        return False

    def bulk_import(self, cn: 'Database', path: pathlib.Path, table: str,
                    columns: list[str]) -> int:
        """Replay the staging file through executemany.
        """
        records = read_staging_file(path)
        placeholders = ', '.join(['?'] * len(columns))
        sql = f'INSERT INTO {self.quote_identifier(table)} ({self._column_list(columns)}) VALUES ({placeholders})'
        logger.debug(f'Bulk import:\n{sql}')
        cursor = cn.driver_connection.cursor()
        try:
            cursor.executemany(sql, records)
        finally:
            cursor.close()
        return len(records)
