"""
Base strategy interface for database operations.

Defines the abstract base class that all database-specific strategy implementations
must inherit from. The strategy pattern keeps driver-specific behaviors (URLs,
autocommit switches, string escaping, error classification, bulk import) out of
the `Database` wrapper, which works with any dialect through this interface.
"""
import logging
import pathlib
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import sqlalchemy as sa
from dbwrap.sql import quote_identifier as sql_quote_identifier
from dbwrap.sql import standardize_placeholders

if TYPE_CHECKING:
    from dbwrap.connection import Database
    from dbwrap.options import DatabaseOptions

logger = logging.getLogger(__name__)

# Registry of dialect name -> strategy class
# Defined here to avoid circular imports (concrete strategies import from base)
_STRATEGY_REGISTRY: dict[str, type['DatabaseStrategy']] = {}


def register_strategy(dialect: str):
    """Decorator to register a strategy class for a dialect.

    Usage:
        @register_strategy('mysql')
        class MySQLStrategy(DatabaseStrategy):
            ...
    """
    def decorator(cls: type['DatabaseStrategy']) -> type['DatabaseStrategy']:
        _STRATEGY_REGISTRY[dialect] = cls
        return cls
    return decorator


class DatabaseStrategy(ABC):
    """Base class for database-specific operations.
    """

    @contextmanager
    def _cursor(self, raw_conn: Any, sql: str, params: tuple | None = None):
        """Context manager for cursor lifecycle.

        Handles cursor creation, SQL execution, and cleanup.
        """
        cursor = raw_conn.cursor()
        try:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)
            yield cursor
        finally:
            cursor.close()

    def _execute_raw(self, raw_conn: Any, sql: str, params: tuple | None = None) -> int:
        """Execute SQL and return rowcount.
        """
        with self._cursor(raw_conn, sql, params) as cursor:
            return cursor.rowcount

    def _select_raw(self, raw_conn: Any, sql: str, params: tuple | None = None) -> list[dict]:
        """Execute SQL and return results as list of dicts.
        """
        with self._cursor(raw_conn, sql, params) as cursor:
            if cursor.description is None:
                return []
            columns = [desc[0] for desc in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def _select_scalar_raw(self, raw_conn: Any, sql: str, params: tuple | None = None) -> Any:
        """Execute SQL and return the first column of the first row.
        """
        with self._cursor(raw_conn, sql, params) as cursor:
            row = cursor.fetchone()
            return row[0] if row else None

    @property
    @abstractmethod
    def dialect_name(self) -> str:
        """Return the dialect identifier (e.g., 'mysql', 'sqlite')."""

    @abstractmethod
    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for this dialect.

        Args:
            options: DatabaseOptions containing connection parameters
        """

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for this dialect.
        """
        return {}

    @classmethod
    @abstractmethod
    def get_required_options(cls) -> list[str]:
        """Return list of required option field names for this dialect.
        """

    @classmethod
    def validate_options(cls, options: 'DatabaseOptions') -> None:
        """Validate options for this dialect.

        Raises
            ValueError: If any required field is None or empty
        """
        for field in cls.get_required_options():
            if not getattr(options, field):
                raise ValueError(f'field {field} cannot be None or empty')

    @abstractmethod
    def configure_connection(self, raw_conn: Any, options: 'DatabaseOptions') -> None:
        """Apply session settings right after connecting.

        Every dialect leaves the connection in autocommit mode.
        """

    @abstractmethod
    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode on a raw database connection.
        """

    @abstractmethod
    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode on a raw database connection.
        """

    @abstractmethod
    def get_autocommit(self, raw_conn: Any) -> bool:
        """Report the auto-commit mode of a raw database connection.
        """

    @abstractmethod
    def escape_string(self, raw_conn: Any, value: str) -> str:
        """Escape a string for inclusion between single quotes.

        Uses the driver's native routine where the driver has one.
        """

    @abstractmethod
    def binary_literal(self, value: bytes) -> str:
        """Render bytes as a dialect binary literal."""

    def create_cursor(self, raw_conn: Any, buffered: bool = True) -> Any:
        """Create a cursor returning positional rows.

        Dialects without a streaming cursor ignore `buffered`.
        """
        return raw_conn.cursor()

    @abstractmethod
    def last_insert_id(self, raw_conn: Any) -> int | None:
        """Return the id generated by the last insert on this connection."""

    def get_warnings(self, raw_conn: Any) -> list[dict]:
        """Return warnings raised by the last statement.
        """
        return []

    def ping(self, raw_conn: Any) -> bool:
        """Check the connection is alive."""
        return self._select_scalar_raw(raw_conn, 'SELECT 1') == 1

    def error_code(self, exc: BaseException) -> int | str | None:
        """Extract the driver error code from a driver exception."""
        return None

    @abstractmethod
    def is_prepare_error(self, exc: BaseException) -> bool:
        """Whether a driver exception means the statement could not be prepared.
        """

    @abstractmethod
    def bulk_import(self, cn: 'Database', path: pathlib.Path, table: str,
                    columns: list[str]) -> int:
        """Load a staging file into a table in one driver-level operation.

        Args:
            cn: Database wrapper owning the connection
            path: Staging file written by `dbwrap.bulk.staging_file`
            table: Target table name (may be schema-qualified)
            columns: Column list matching the staged field order

        Returns
            Number of rows loaded
        """

    def quote_identifier(self, identifier: str) -> str:
        """Quote a database identifier for this dialect.
        """
        return sql_quote_identifier(identifier, self.dialect_name)

    def standardize_sql(self, sql: str) -> str:
        """Convert `?` placeholders to this dialect's style.
        """
        return standardize_placeholders(sql, self.dialect_name)

    def _column_list(self, columns: list[str]) -> str:
        return ', '.join(self.quote_identifier(col) for col in columns)
