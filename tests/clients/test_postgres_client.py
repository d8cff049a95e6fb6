"""Tests for PostgresClient - pooled psycopg2 access returning dict rows."""

from unittest.mock import MagicMock, Mock
from uuid import UUID

import psycopg2
import pytest

import clients.postgres_client as postgres_module
from clients.postgres_client import PostgresClient

DATABASE_URL = "postgresql://auth@localhost/auth_test"
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")


@pytest.fixture
def pool(monkeypatch):
    """Replace the connection pool so no server is needed."""
    monkeypatch.setattr(PostgresClient, "_connection_pools", {})
    monkeypatch.setattr(postgres_module, "_jsonb_registered", True)

    pool = Mock()
    conn = MagicMock()
    pool.getconn.return_value = conn
    monkeypatch.setattr(postgres_module.psycopg2.pool, "ThreadedConnectionPool", Mock(return_value=pool))
    return pool


@pytest.fixture
def cursor(pool):
    return pool.getconn.return_value.cursor.return_value.__enter__.return_value


@pytest.fixture
def db(pool):
    return PostgresClient(DATABASE_URL)


class TestPostgresClientInit:
    """Connection pool initialization."""

    def test_pool_is_shared_per_url(self, pool):
        PostgresClient(DATABASE_URL)
        PostgresClient(DATABASE_URL)

        postgres_module.psycopg2.pool.ThreadedConnectionPool.assert_called_once()

    def test_close_releases_pool(self, db, pool):
        db.close()

        pool.closeall.assert_called_once()
        assert DATABASE_URL not in PostgresClient._connection_pools


class TestExecuteMethods:
    """Query execution methods."""

    def test_execute_returns_list_of_dicts(self, db, cursor):
        cursor.description = [("num",), ("word",)]
        cursor.fetchall.return_value = [{"num": 1, "word": "hello"}]

        assert db.execute("SELECT 1 as num, 'hello' as word") == [{"num": 1, "word": "hello"}]

    def test_statement_without_result_returns_empty_list(self, db, cursor):
        """UPDATE without RETURNING has no description and is not fetched."""
        cursor.description = None

        assert db.execute("UPDATE user_2fa SET is_enabled = false") == []
        cursor.fetchall.assert_not_called()

    def test_execute_single_no_rows_returns_none(self, db, cursor):
        cursor.description = [("answer",)]
        cursor.fetchall.return_value = []

        assert db.execute_single("SELECT 1 WHERE false") is None

    def test_uuid_params_are_stringified(self, db, cursor):
        cursor.description = None

        db.execute("SELECT %s, %s", (TEST_USER_ID, [TEST_USER_ID]))

        assert cursor.execute.call_args.args[1] == (str(TEST_USER_ID), [str(TEST_USER_ID)])

    def test_commits_and_returns_connection(self, db, pool, cursor):
        cursor.description = None

        db.execute_returning("DELETE FROM security_events")

        conn = pool.getconn.return_value
        conn.commit.assert_called_once()
        pool.putconn.assert_called_once_with(conn)

    def test_error_rolls_back(self, db, pool, cursor):
        cursor.execute.side_effect = psycopg2.errors.UniqueViolation("duplicate key")

        with pytest.raises(psycopg2.errors.UniqueViolation):
            db.execute("INSERT INTO identities (email) VALUES (%s)", ("a@x.com",))

        conn = pool.getconn.return_value
        conn.rollback.assert_called_once()
        pool.putconn.assert_called_once_with(conn)
