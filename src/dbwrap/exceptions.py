"""
Database-specific exception classes.
"""
import sqlite3

import psycopg
import pymysql


class DatabaseError(Exception):
    """Base class for all dbwrap errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing or maintaining the database connection.
    """


class ExecutionError(DatabaseError):
    """Error executing a query or statement.

    Carries the driver error code (when the driver reports one), the driver
    message and the SQL that failed.
    """

    def __init__(self, message: str, code: int | str | None = None,
                 sql: str | None = None) -> None:
        super().__init__(f'{message} ({code})' if code is not None else message)
        self.message = message
        self.code = code
        self.sql = sql


class PrepareError(ExecutionError):
    """Statement could not be prepared (malformed template or SQL syntax).
    """


class ArgumentError(DatabaseError, ValueError):
    """Invalid arguments: placeholder mismatch, unsupported parameter type,
    bulk-load precondition violations.
    """


class StagingError(DatabaseError, OSError):
    """Bulk-load staging file could not be written.
    """


DbConnectionError = (
    pymysql.OperationalError,
    pymysql.InterfaceError,
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlite3.OperationalError,
    sqlite3.InterfaceError,
    ConnectionFailure,
    )

IntegrityError = (
    pymysql.IntegrityError,
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
    )

ProgrammingError = (
    pymysql.ProgrammingError,
    psycopg.ProgrammingError,
    sqlite3.ProgrammingError,
    PrepareError,
    )

DriverError = (
    pymysql.Error,
    psycopg.Error,
    sqlite3.Error,
    )
