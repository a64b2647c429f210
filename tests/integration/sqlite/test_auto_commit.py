"""
Integration tests for auto-commit and manual transactions with SQLite.

Uses sqlite_file_conn (file-based SQLite) so a second connection can check
what has actually been committed.
"""
import logging

import dbwrap as db
import pytest

logger = logging.getLogger(__name__)


@pytest.fixture
def reader(sqlite_file_conn):
    """Second connection to the same database file."""
    cn = db.connect({
        'drivername': 'sqlite',
        'database': sqlite_file_conn.options.database
    })
    yield cn
    cn.close()


def committed_count(reader):
    return db.query(reader, 'SELECT COUNT(*) AS n FROM test_table').fetch().n


class TestAutoCommit:
    """Test auto-commit toggling"""

    def test_enabled_on_open(self, sqlite_file_conn):
        assert sqlite_file_conn.auto_commit is True
        assert sqlite_file_conn.pending_commit is False

    def test_changes_visible_without_commit(self, sqlite_file_conn, reader):
        db.run_query(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'a', 1)
        assert committed_count(reader) == 1

    def test_set_auto_commit(self, sqlite_file_conn):
        sqlite_file_conn.set_auto_commit(False)
        assert sqlite_file_conn.auto_commit is False
        sqlite_file_conn.set_auto_commit(True)
        assert sqlite_file_conn.auto_commit is True

    def test_commit_without_wait_leaves_mode(self, sqlite_file_conn, reader):
        """commit() alone does not touch the auto-commit mode"""
        sqlite_file_conn.set_auto_commit(False)
        db.run_query(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'a', 1)
        db.commit(sqlite_file_conn)
        assert sqlite_file_conn.auto_commit is False
        assert committed_count(reader) == 1
        sqlite_file_conn.set_auto_commit(True)

    def test_commit_in_auto_commit_mode(self, sqlite_file_conn):
        sqlite_file_conn.commit()
        assert sqlite_file_conn.auto_commit is True


class TestWaitForCommit:
    """Test the wait_for_commit / commit cycle"""

    def test_writes_held_until_commit(self, sqlite_file_conn, reader):
        sqlite_file_conn.wait_for_commit()
        assert sqlite_file_conn.auto_commit is False
        assert sqlite_file_conn.pending_commit is True

        db.run_query(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'a', 1)
        db.run_bound(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'b', 2)
        assert committed_count(reader) == 0

        sqlite_file_conn.commit()
        assert committed_count(reader) == 2
        assert sqlite_file_conn.auto_commit is True
        assert sqlite_file_conn.pending_commit is False

    def test_wait_for_commit_false(self, sqlite_file_conn):
        sqlite_file_conn.wait_for_commit(False)
        assert sqlite_file_conn.auto_commit is True
        assert sqlite_file_conn.pending_commit is False

    def test_rollback(self, sqlite_file_conn):
        sqlite_file_conn.wait_for_commit()
        db.run_query(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'a', 1)
        sqlite_file_conn.rollback()
        assert db.query(sqlite_file_conn, 'SELECT COUNT(*) AS n FROM test_table').fetch().n == 0
        assert sqlite_file_conn.auto_commit is True

    def test_close_with_pending_commit(self, sqlite_file_conn, reader, caplog):
        """Closing with uncommitted writes warns and loses them"""
        sqlite_file_conn.wait_for_commit()
        db.run_query(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'a', 1)
        with caplog.at_level(logging.WARNING):
            sqlite_file_conn.close()
        assert 'uncommitted changes' in caplog.text
        assert committed_count(reader) == 0


class TestTransaction:
    """Test the transaction() context manager"""

    def test_commits_on_exit(self, sqlite_file_conn, reader):
        with sqlite_file_conn.transaction():
            db.run_query(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'a', 1)
            assert committed_count(reader) == 0
        assert committed_count(reader) == 1
        assert sqlite_file_conn.auto_commit is True

    def test_rolls_back_on_error(self, sqlite_file_conn, reader):
        with pytest.raises(db.ExecutionError):
            with sqlite_file_conn.transaction():
                db.run_query(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'a', 1)
                db.run_query(sqlite_file_conn, 'INSERT INTO test_table (name, value) VALUES (?, ?)', 'a', 2)
        assert committed_count(reader) == 0
        assert sqlite_file_conn.auto_commit is True
        assert sqlite_file_conn.pending_commit is False

    def test_nested_not_supported(self, sqlite_file_conn):
        with sqlite_file_conn.transaction():
            with pytest.raises(RuntimeError, match='Nested'):
                with sqlite_file_conn.transaction():
                    pass
