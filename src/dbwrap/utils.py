"""Low-level connection utilities with no internal dependencies.

Imports nothing from the rest of the package, so it is safe to import from
anywhere.
"""
from typing import Any


def get_raw_connection(connection: Any) -> Any:
    """Extract the raw DBAPI connection from a SQLAlchemy connection."""
    raw_conn = connection
    if hasattr(connection, 'connection'):
        raw_conn = connection.connection
    if hasattr(raw_conn, 'driver_connection'):
        raw_conn = raw_conn.driver_connection
    return raw_conn
