"""
MySQL-specific strategy implementation (PyMySQL driver).

This module implements the DatabaseStrategy interface with MySQL-specific operations:
- utf8mb4 connections with strict sql_mode
- Native string escaping through the driver connection
- Streaming (unbuffered) cursors
- LOAD DATA INFILE bulk import
"""
import logging
import pathlib
from typing import TYPE_CHECKING, Any

import pymysql
import pymysql.cursors
import sqlalchemy as sa
from dbwrap.bulk import FIELD_DELIMITER, LINE_TERMINATOR
from dbwrap.strategy.base import DatabaseStrategy, register_strategy

if TYPE_CHECKING:
    from dbwrap.connection import Database
    from dbwrap.options import DatabaseOptions

logger = logging.getLogger(__name__)

STRICT_MODE = 'STRICT_ALL_TABLES'


@register_strategy('mysql')
class MySQLStrategy(DatabaseStrategy):
    """MySQL-specific operations.
    """

    @property
    def dialect_name(self) -> str:
        """Return the dialect identifier for MySQL."""
        return 'mysql'

    def build_connection_url(self, options: 'DatabaseOptions') -> sa.URL:
        """Build the SQLAlchemy connection URL for MySQL."""
        return sa.URL.create(
            drivername='mysql+pymysql',
            username=options.username,
            password=options.password,
            host=options.hostname,
            port=options.port,
            database=options.database,
            query={'charset': options.charset},
        )

    def get_engine_kwargs(self, options: 'DatabaseOptions') -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for MySQL."""
        connect_args: dict[str, Any] = {
            'local_infile': options.local_infile,
            'program_name': options.appname,
        }
        if options.timeout:
            connect_args['connect_timeout'] = options.timeout
        return {'connect_args': connect_args}

    @classmethod
    def get_required_options(cls) -> list[str]:
        """Return required options for MySQL connections."""
        return ['hostname', 'database']

    def configure_connection(self, raw_conn: Any, options: 'DatabaseOptions') -> None:
        """Configure connection settings for MySQL.

        Strict mode turns data truncation warnings into errors.
        """
        if options.strict:
            self._execute_raw(
                raw_conn,
                f"SET SESSION sql_mode = CONCAT_WS(',', @@SESSION.sql_mode, '{STRICT_MODE}')")
        self.enable_autocommit(raw_conn)

    def enable_autocommit(self, raw_conn: Any) -> None:
        """Enable auto-commit mode for MySQL.
        """
        raw_conn.autocommit(True)

    def disable_autocommit(self, raw_conn: Any) -> None:
        """Disable auto-commit mode for MySQL.
        """
        raw_conn.autocommit(False)

    def get_autocommit(self, raw_conn: Any) -> bool:
        """Report the server-side auto-commit mode.
        """
        return bool(raw_conn.get_autocommit())

    def escape_string(self, raw_conn: Any, value: str) -> str:
        """Escape with the driver, honouring NO_BACKSLASH_ESCAPES.
        """
        return raw_conn.escape_string(value)

    def binary_literal(self, value: bytes) -> str:
        return f"X'{value.hex()}'"

    def create_cursor(self, raw_conn: Any, buffered: bool = True) -> Any:
        """Create a buffered or streaming cursor.

        The streaming cursor releases table locks as soon as the first row is read,
        rows are pulled from the server one at a time.
        """
        if buffered:
            return raw_conn.cursor(pymysql.cursors.Cursor)
        return raw_conn.cursor(pymysql.cursors.SSCursor)

    def last_insert_id(self, raw_conn: Any) -> int | None:
        return raw_conn.insert_id()

    def get_warnings(self, raw_conn: Any) -> list[dict]:
        """Return the result of SHOW WARNINGS.
        """
        return self._select_raw(raw_conn, 'SHOW WARNINGS')

    def ping(self, raw_conn: Any) -> bool:
        """Check the connection is alive without reconnecting."""
        raw_conn.ping(reconnect=False)
        return True

    def error_code(self, exc: BaseException) -> int | str | None:
        """PyMySQL errors carry (errno, message) in args."""
        if isinstance(exc, pymysql.Error) and exc.args and isinstance(exc.args[0], int):
            return exc.args[0]
        return None

    def is_prepare_error(self, exc: BaseException) -> bool:
        """Syntax errors and unknown tables/columns are ProgrammingErrors in PyMySQL.
        """
        return isinstance(exc, pymysql.ProgrammingError)

    def build_bulk_import_sql(self, raw_conn: Any, path: pathlib.Path, table: str,
                              columns: list[str], local: bool = True) -> str:
        """Generate the LOAD DATA statement for a staging file.
        """
        def literal(text: str) -> str:
            return "'" + self.escape_string(raw_conn, text) + "'"

        return (f"LOAD DATA {'LOCAL ' if local else ''}INFILE {literal(str(path))} "
                f'INTO TABLE {self.quote_identifier(table)} '
                f"CHARACTER SET utf8mb4 "
                f'FIELDS TERMINATED BY {literal(FIELD_DELIMITER)} '
                f'LINES TERMINATED BY {literal(LINE_TERMINATOR)} '
                f'({self._column_list(columns)})')

    def bulk_import(self, cn: 'Database', path: pathlib.Path, table: str,
                    columns: list[str]) -> int:
        """Load the staging file with LOAD DATA [LOCAL] INFILE.
        """
        sql = self.build_bulk_import_sql(cn.driver_connection, path, table, columns,
                                         local=cn.options.local_infile)
        logger.debug(f'Bulk import:\n{sql}')
        return self._execute_raw(cn.driver_connection, sql)
