"""
Mock driver connections for unit tests.

Provides mock PyMySQL and psycopg raw connections so strategy behavior can be
tested without a running server.

Usage:
    def test_escape(mock_mysql_conn):
        strategy.escape_string(mock_mysql_conn, "it's")
"""
import pytest


@pytest.fixture
def mock_mysql_conn(mocker):
    """Mock PyMySQL connection with escaping and autocommit tracking."""
    conn = mocker.Mock()
    state = {'autocommit': True}

    def autocommit(value):
        state['autocommit'] = bool(value)

    conn.autocommit.side_effect = autocommit
    conn.get_autocommit.side_effect = lambda: state['autocommit']
    conn.escape_string.side_effect = lambda s: s.replace('\\', '\\\\').replace("'", "\\'")
    conn.insert_id.return_value = 7

    cursor = mocker.Mock()
    cursor.rowcount = 3
    cursor.description = None
    conn.cursor.return_value = cursor
    return conn


@pytest.fixture
def mock_postgres_conn(mocker):
    """Mock psycopg connection with an autocommit attribute."""
    conn = mocker.Mock()
    conn.autocommit = False
    return conn
