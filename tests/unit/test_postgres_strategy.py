"""
Unit tests for PostgreSQL strategy operations against a mocked psycopg connection.
"""
import psycopg
import pytest
from dbwrap.options import DatabaseOptions
from dbwrap.strategy.postgres import PostgresStrategy


@pytest.fixture
def strategy():
    return PostgresStrategy()


def test_url():
    """Test the psycopg 3 connection URL"""
    options = DatabaseOptions(drivername='postgresql', hostname='pg.local',
                              username='postgres', database='appdb',
                              timeout=10, appname='loader')
    url = PostgresStrategy().build_connection_url(options)
    assert url.drivername == 'postgresql+psycopg'
    assert url.port is None
    assert url.query['application_name'] == 'loader'
    assert url.query['connect_timeout'] == '10'


def test_autocommit_attribute(strategy, mock_postgres_conn):
    strategy.configure_connection(mock_postgres_conn, None)
    assert mock_postgres_conn.autocommit is True
    strategy.disable_autocommit(mock_postgres_conn)
    assert strategy.get_autocommit(mock_postgres_conn) is False


def test_escape_through_libpq(strategy, mock_postgres_conn, mocker):
    """Escaping goes through libpq with the connection encoding"""
    mock_postgres_conn.info.encoding = 'utf-8'
    escaping = mocker.patch('dbwrap.strategy.postgres.Escaping')
    escaping.return_value.escape_string.return_value = b"it''s"

    assert strategy.escape_string(mock_postgres_conn, "it's") == "it''s"
    escaping.assert_called_once_with(mock_postgres_conn.pgconn)
    escaping.return_value.escape_string.assert_called_once_with(b"it's")


def test_bytea_literal(strategy):
    assert strategy.binary_literal(b'\x01\x02') == "'\\x0102'::bytea"


def test_error_classification(strategy):
    assert strategy.is_prepare_error(psycopg.errors.SyntaxError('syntax error'))
    assert not strategy.is_prepare_error(psycopg.errors.UniqueViolation('duplicate'))


def test_bulk_import_copy(strategy, tmp_path, mocker):
    """The staging file is replayed through COPY FROM STDIN"""
    path = tmp_path / 'stage.txt'
    path.write_text('1:::,a^^^\n2:::,\\N^^^\n', encoding='utf-8')

    cn = mocker.MagicMock()
    cursor = cn.driver_connection.cursor.return_value.__enter__.return_value
    copy = cursor.copy.return_value.__enter__.return_value

    assert strategy.bulk_import(cn, path, 'public.items', ['id', 'name']) == 2
    cursor.copy.assert_called_once_with('COPY "public"."items" ("id", "name") FROM STDIN')
    assert copy.write_row.call_args_list == [mocker.call(['1', 'a']), mocker.call(['2', None])]
