"""
PostgreSQL-specific strategy implementation (psycopg 3 driver).

This module implements the DatabaseStrategy interface with PostgreSQL-specific operations:
- String escaping through libpq (PQescapeStringConn)
- bytea literals
- COPY FROM STDIN bulk import fed from the staging file, since COPY only
  accepts single-character delimiters
"""
import logging
import pathlib
from typing import TYPE_CHECKING, Any

import psycopg
import sqlalchemy as sa
from dbwrap.bulk import read_staging_file
from dbwrap.strategy.base import DatabaseStrategy, register_strategy
from psycopg.pq import Escaping

if TYPE_CHECKING:
    from dbwrap.connection import Database
    from dbwrap.options import DatabaseOptions

logger = logging.getLogger(__name__)


@register_strategy('postgresql')
class PostgresStrategy(DatabaseStrategy):
    """PostgreSQL-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for PostgreSQL."""
        return 'postgresql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for PostgreSQL."""
        query = {'application_name': options.appname}
        if options.timeout:
            query['connect_timeout'] = str(options.timeout)

        return sa.URL.create(
            drivername='postgresql+psycopg',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query=query,
        )

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for PostgreSQL connections."""
        return ['hostname', 'database']

    def configure_connection(self, raw_conn: Any, options: 'DatabaseOptions') -> None:
        """Configure connection settings for PostgreSQL.
        """
        self.enable_autocommit(raw_conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        raw_conn.autocommit = True

    def disable_autocommit(self, raw_conn: Any) -> None:
        raw_conn.autocommit = False

    def get_autocommit(self, raw_conn: Any) -> bool:
        return bool(raw_conn.autocommit)

    def escape_string(self, raw_conn: Any, value: str) -> str:
        """Escape with libpq, using the connection encoding.
        """
        encoding = raw_conn.info.encoding
        escaped = Escaping(raw_conn.pgconn).escape_string(value.encode(encoding))
        return escaped.decode(encoding)

    def binary_literal(self, value: bytes) -> str:
        return f"'\\x{value.hex()}'::bytea"

    def last_insert_id(self, raw_conn: Any) -> int | None:
        """Return lastval() of the session.

        Raises a driver error when no sequence was used in this session.
        """
        return self._select_scalar_raw(raw_conn, 'SELECT lastval()')

    def error_code(self, exc: BaseException) -> int | str | None:
        return getattr(exc, 'sqlstate', None)

    def is_prepare_error(self, exc: BaseException) -> bool:
        """Syntax errors and undefined objects are ProgrammingErrors in psycopg.
        """
        return isinstance(exc, psycopg.ProgrammingError)

    def bulk_import(self, cn: 'Database', path: pathlib.Path, table: str,
                    columns: list[str]) -> int:
        """Stream the staging file through COPY FROM STDIN.
        """
        records = read_staging_file(path)
        sql = f'COPY {self.quote_identifier(table)} ({self._column_list(columns)}) FROM STDIN'
        logger.debug(f'Bulk import:\n{sql}')
        with cn.driver_connection.cursor() as cursor:
            with cursor.copy(sql) as copy:
                for record in records:
                    copy.write_row(record)
        return len(records)
