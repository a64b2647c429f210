"""
Single-connection database wrapper for MySQL, PostgreSQL, and SQLite.

All query/data operations can be called either as:
- Module functions: db.run_query(cn, sql, *args)
- Database methods: cn.run_query(sql, *args)

The module functions are facades over the methods.
"""
__version__ = '0.1.0'

from collections.abc import Mapping, Sequence
from typing import Any

from dbwrap.connection import Database, connect
from dbwrap.exceptions import ArgumentError, ConnectionFailure, DatabaseError
from dbwrap.exceptions import DbConnectionError, ExecutionError, IntegrityError
from dbwrap.exceptions import PrepareError, ProgrammingError, StagingError
from dbwrap.options import DatabaseOptions
from dbwrap.result import FetchMode, ResultSet, fetch, fetch_all, on_fetch
from dbwrap.result import to_json
from dbwrap.types import BindType, Param


def query(cn: Database, sql: str) -> ResultSet:
    """Execute literal SQL and return a buffered result.
    """
    return cn.query(sql)


def run_query(cn: Database, sql: str, *args: Any) -> ResultSet:
    """Inline `?` parameters as escaped literals and execute.
    """
    return cn.run_query(sql, *args)


def run_bound(cn: Database, sql: str, *args: Any) -> ResultSet:
    """Bind `?` parameters with inferred types and execute.
    """
    return cn.run_bound(sql, *args)


def render_query(cn: Database, sql: str, *args: Any) -> str:
    """Return the SQL `run_query` would execute.
    """
    return cn.render_query(sql, *args)


def bulk_load(cn: Database, table: str, records: Sequence[Mapping[str, Any]],
              staging_dir: str | None = None) -> int:
    """Load records into a table through a staging file.
    """
    return cn.bulk_load(table, records, staging_dir=staging_dir)


def escape(cn: Database, value: str) -> str:
    """Escape a string with the connection's native routine.
    """
    return cn.escape_string(value)


def commit(cn: Database) -> None:
    """Commit pending writes on the connection.
    """
    cn.commit()


__all__ = [
    '__version__',
    'Database',
    'DatabaseOptions',
    'connect',
    'query',
    'run_query',
    'run_bound',
    'render_query',
    'bulk_load',
    'escape',
    'commit',
    'fetch',
    'fetch_all',
    'to_json',
    'on_fetch',
    'FetchMode',
    'ResultSet',
    'BindType',
    'Param',
    'DatabaseError',
    'ConnectionFailure',
    'ExecutionError',
    'PrepareError',
    'ArgumentError',
    'StagingError',
    'DbConnectionError',
    'IntegrityError',
    'ProgrammingError',
    ]
