"""
Database connection handling.

This module provides:
1. The `connect()` function for opening a connection from options
2. The `Database` class that owns one connection and runs queries on it

SQLAlchemy builds the connection URL and opens the single DBAPI connection
(NullPool, no pooling). Queries go straight to the DBAPI cursor:

- run_query(sql, *args) - Inline `?` parameters as escaped literals and execute
- run_bound(sql, *args) - Bind `?` parameters with inferred types and execute
- bulk_load(table, records) - Stage records in a file and bulk import them
- wait_for_commit()/commit() - Simple manual-transaction mode

A Database is not thread-safe: use one instance per thread or synchronize
access externally.
"""
import logging
import time
import weakref
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import fields
from functools import wraps
from typing import Any, Self

import sqlalchemy as sa
from dbwrap.bulk import record_columns, staging_file, validate_bulk_args
from dbwrap.exceptions import ConnectionFailure, DriverError, ExecutionError
from dbwrap.exceptions import PrepareError
from dbwrap.options import DatabaseOptions
from dbwrap.result import ResultSet
from dbwrap.sql import check_placeholder_count, count_placeholders
from dbwrap.sql import render_literal, substitute_placeholders
from dbwrap.strategy import get_strategy
from dbwrap.types import bind_params
from dbwrap.utils import get_raw_connection
from sqlalchemy.pool import NullPool

from libb import load_options

__all__ = [
    'Database',
    'connect',
]

logger = logging.getLogger(__name__)


def dumpsql(func):
    """Decorator for logging SQL statements, timing them and translating driver errors.

    Driver exceptions are logged with their code and re-raised as PrepareError
    or ExecutionError chained to the original.
    """
    @wraps(func)
    def wrapper(self, sql: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nargs: {args}')
        try:
            result = func(self, sql, *args, **kwargs)
            self.last_error = None
            return result
        except DriverError as exc:
            raise self.translate_error(exc, sql, args) from exc
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


class Database:
    """Owns one database connection and runs queries on it.

    Created by `connect()` or `Database.open()`. Supports the context manager
    protocol; the connection is also released when the instance is garbage
    collected.
    """

    def __init__(self, sa_connection: sa.engine.Connection, options: DatabaseOptions) -> None:
        """Wrap an open SQLAlchemy connection.
        """
        self.sa_connection = sa_connection
        self.engine = sa_connection.engine
        self.options = options
        self.driver_connection = get_raw_connection(sa_connection)
        self.strategy = get_strategy(options.drivername)
        self.calls = 0
        self.time = 0
        self.affected_rows = 0
        self.last_error: ExecutionError | None = None
        self._wait_for_commit = False
        self._finalizer = weakref.finalize(self, _release, sa_connection, self.engine)

    @classmethod
    def open(cls, host: str, database: str, user: str | None = None,
             password: str | None = None, port: int | None = None,
             drivername: str = 'mysql', **kw: Any) -> Self:
        """Open a connection from positional connection parameters.
        """
        return connect(drivername=drivername, hostname=host, database=database,
                       username=user, password=password, port=port, **kw)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __repr__(self) -> str:
        state = 'closed' if self.closed else 'open'
        return f'<Database {self.dialect} {self.options.database!r} {state}>'

    @property
    def dialect(self) -> str:
        """Return the dialect name ('mysql', 'postgresql' or 'sqlite')."""
        return self.strategy.dialect_name

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    @property
    def auto_commit(self) -> bool:
        """Current driver auto-commit mode."""
        return self.strategy.get_autocommit(self.driver_connection)

    @property
    def pending_commit(self) -> bool:
        """Whether `wait_for_commit` is waiting for a `commit()`."""
        return self._wait_for_commit

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def translate_error(self, exc: BaseException, sql: str | None,
                        args: tuple = ()) -> ExecutionError:
        """Log a driver exception and build the matching ExecutionError.

        The error is also kept as `last_error`.
        """
        code = self.strategy.error_code(exc)
        logger.error(f'Error with query ({code}): {exc}\nSQL:\n{sql}\nargs: {args}')
        error_cls = PrepareError if self.strategy.is_prepare_error(exc) else ExecutionError
        self.last_error = error_cls(str(exc), code=code, sql=sql)
        return self.last_error

    def close(self) -> None:
        """Close the connection. Safe to call more than once.

        A pending `wait_for_commit` transaction is not committed; the driver
        rolls it back.
        """
        if self.closed:
            return
        if self._wait_for_commit:
            logger.warning('Closing connection with uncommitted changes; they will be rolled back')
            self._wait_for_commit = False
        self._finalizer()
        logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s (avg: {self.time/max(1,self.calls):.3f}s per query)')

    def ping(self) -> bool:
        """Check the connection is alive."""
        return self.strategy.ping(self.driver_connection)

    # -- escaping and rendering ----------------------------------------------

    def escape_string(self, value: str) -> str:
        """Escape a string with the connection's native routine.
        """
        return self.strategy.escape_string(self.driver_connection, value)

    escape = escape_string

    def render_literal(self, value: Any) -> str:
        """Render a value as it would be inlined by `run_query`.
        """
        return render_literal(value, self.escape_string, self.strategy.binary_literal)

    def render_query(self, sql: str, *args: Any) -> str:
        """Substitute `?` placeholders with escaped literals without executing.

        SQL containing a literal `?` operator (e.g. PostgreSQL `jsonb ? key`)
        must go through `query`, which runs the text as written.

        Raises
            ArgumentError: If the number of args differs from the number of placeholders
        """
        return substitute_placeholders(sql, args, self.render_literal, self.dialect)

    # -- execution ------------------------------------------------------------

    def _result(self, cursor: Any, sql: str, buffered: bool = True) -> ResultSet:
        result = ResultSet(cursor, sql, buffered=buffered, default_mode=self.options.fetch_mode)
        self.affected_rows = result.affected_rows
        return result

    @dumpsql
    def _execute(self, sql: str, *args: Any, buffered: bool = True) -> ResultSet:
        cursor = self.strategy.create_cursor(self.driver_connection, buffered=buffered)
        try:
            if args:
                cursor.execute(sql, args)
            else:
                cursor.execute(sql)
        except Exception:
            cursor.close()
            raise
        return self._result(cursor, sql, buffered=buffered)

    def query(self, sql: str) -> ResultSet:
        """Execute literal SQL and return a buffered result.
        """
        return self._execute(sql)

    def query_unbuffered(self, sql: str) -> ResultSet:
        """Execute literal SQL and stream rows as they are fetched.

        On MySQL table locks are released once the first row has been read.
        """
        return self._execute(sql, buffered=False)

    def query_async(self, sql: str) -> ResultSet:
        """Execute with deferred result materialization.

        This is a buffering mode, not asynchrony: the call still blocks until
        the statement has run. Equivalent to `query_unbuffered`.
        """
        return self.query_unbuffered(sql)

    def run_query(self, sql: str, *args: Any) -> ResultSet:
        """Inline each `?` with a literal and execute.

        Integers are inlined unescaped; None and empty strings become `null`;
        everything else is escaped with the connection routine and quoted.

        Raises
            ArgumentError: If the number of args differs from the number of placeholders
            ExecutionError: If the driver rejects the statement
        """
        return self.query(self.render_query(sql, *args))

    def run_bound(self, sql: str, *args: Any) -> ResultSet:
        """Bind each `?` as a typed parameter and execute.

        Bind types are inferred per value (see `dbwrap.types.infer_bind_type`)
        unless passed as `Param`. Without arguments the placeholder count is
        still checked and the SQL then runs as `query(sql)`.

        Raises
            ArgumentError: On placeholder mismatch or unsupported parameter type
            PrepareError: If the statement cannot be prepared
            ExecutionError: If execution fails
        """
        values, _ = bind_params(args)
        check_placeholder_count(count_placeholders(sql, self.dialect), len(values))
        if not values:
            return self.query(sql)
        return self._execute(self.strategy.standardize_sql(sql), *values)

    def last_insert_id(self) -> int | None:
        """Return the id generated by the last insert on this connection."""
        return self.strategy.last_insert_id(self.driver_connection)

    def warnings(self) -> list[dict]:
        """Return warnings raised by the last statement (MySQL only)."""
        return self.strategy.get_warnings(self.driver_connection)

    # -- autocommit / transactions ---------------------------------------------

    def set_auto_commit(self, enabled: bool = True) -> None:
        """Toggle driver auto-commit.
        """
        if enabled:
            self.strategy.enable_autocommit(self.driver_connection)
        else:
            self.strategy.disable_autocommit(self.driver_connection)
        logger.debug(f'Auto-commit {"enabled" if enabled else "disabled"}')

    def wait_for_commit(self, enabled: bool = True) -> None:
        """Hold writes until `commit()`, which then restores auto-commit.

        Use with run_query()/run_bound() and commit().
        """
        self.set_auto_commit(not enabled)
        self._wait_for_commit = enabled

    def _end_transaction(self) -> None:
        if self._wait_for_commit:
            self._wait_for_commit = False
            self.set_auto_commit(True)

    def commit(self) -> None:
        """Commit pending writes.

        Restores auto-commit only when `wait_for_commit(True)` was called;
        otherwise the auto-commit mode is left as it is.
        """
        self.driver_connection.commit()
        logger.debug(f'Committed connection {id(self)}')
        self._end_transaction()

    def rollback(self) -> None:
        """Discard pending writes, with the same auto-commit handling as `commit()`.
        """
        self.driver_connection.rollback()
        logger.warning('Rolling back the current transaction')
        self._end_transaction()

    @contextmanager
    def transaction(self) -> Iterator[Self]:
        """Run a block in manual-transaction mode.

        Commits on normal exit, rolls back if the block raises.

        Examples
            with db.transaction():
                db.run_query('delete from ...', args)
                db.run_query('update ...', args)
        """
        if self._wait_for_commit:
            raise RuntimeError('Nested transactions are not supported')
        self.wait_for_commit(True)
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    # -- bulk load --------------------------------------------------------------

    def bulk_load(self, table: str, records: Sequence[Mapping[str, Any]],
                  staging_dir: str | None = None) -> int:
        """Load records into a table through a staging file.

        Every record must have the same keys as the first one; values are
        written in that column order. The staging file is removed whether or
        not the import succeeds. A failing import may leave the table partially
        loaded: atomicity is up to the database.

        Returns
            Number of rows loaded; 0 when there are no records

        Raises
            ArgumentError: If records is not a sequence or table is empty
            StagingError: If the staging file cannot be written
            ExecutionError: If the database rejects the import
        """
        validate_bulk_args(table, records)
        if not records:
            logger.debug('Skipping bulk load of empty records')
            return 0

        columns = record_columns(records)
        directory = staging_dir or self.options.staging_dir
        start = time.time()
        with staging_file(records, columns, directory) as path:
            try:
                rowcount = self.strategy.bulk_import(self, path, table, columns)
            except DriverError as exc:
                raise self.translate_error(exc, f'bulk load into {table} from {path}') from exc
            finally:
                self.addcall(time.time() - start)
        self.affected_rows = rowcount
        self.last_error = None
        logger.debug(f'Bulk loaded {rowcount} rows into {table}')
        return rowcount


def _release(sa_connection: sa.engine.Connection, engine: sa.engine.Engine) -> None:
    """Close the connection and dispose its engine."""
    try:
        sa_connection.close()
    finally:
        engine.dispose()


def configure_connection(raw_conn: Any, options: DatabaseOptions) -> None:
    """Apply dialect session settings to a freshly opened connection.
    """
    strategy = get_strategy(options.drivername)
    strategy.configure_connection(raw_conn, options)


def create_engine(options: DatabaseOptions) -> sa.engine.Engine:
    """Create a non-pooling SQLAlchemy engine for the given options.
    """
    strategy = get_strategy(options.drivername)
    url = strategy.build_connection_url(options)
    engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
    engine_kwargs.update(strategy.get_engine_kwargs(options))
    return sa.create_engine(url, **engine_kwargs)


@load_options(cls=DatabaseOptions)
def connect(options: DatabaseOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> Database:
    """Open a database connection.

    Args:
        options: Can be:
                - DatabaseOptions object
                - String name of a section in `config`
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        Database owning the new connection, in auto-commit mode

    Raises
        ConnectionFailure: If the connection cannot be established
    """
    if isinstance(options, DatabaseOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=DatabaseOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    engine = create_engine(options)
    try:
        sa_connection = engine.connect()
    except (sa.exc.DBAPIError, *DriverError) as exc:
        engine.dispose()
        logger.error(f'Could not connect to {options.drivername} database {options.database!r}: {exc}')
        raise ConnectionFailure(f'Could not connect to {options.database!r}: {exc}') from exc

    try:
        configure_connection(get_raw_connection(sa_connection), options)
    except DriverError as exc:
        _release(sa_connection, engine)
        raise ConnectionFailure(f'Could not configure connection: {exc}') from exc

    logger.debug(f'Connected to {options.drivername} database {options.database!r}')
    return Database(sa_connection, options)
