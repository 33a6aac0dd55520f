"""Tests for database layer."""

import os
from unittest.mock import MagicMock, patch

import pytest

from fincas.infra.db import get_conn, txn


class TestGetConn:
    def test_requires_database_url(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()

    def test_connects_with_timeout(self):
        env = {"DATABASE_URL": "postgres://u:p@h/db", "DATABASE_CONNECT_TIMEOUT": "3"}
        with patch.dict(os.environ, env, clear=True), \
             patch("fincas.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
            get_conn()
            mock_connect.assert_called_once_with("postgres://u:p@h/db", connect_timeout=3)


class TestTxn:
    def test_commits_on_success(self):
        conn = MagicMock()
        with txn(conn) as cur:
            cur.execute("SELECT 1")
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        conn.close.assert_not_called()

    def test_rolls_back_on_error(self):
        conn = MagicMock()
        with pytest.raises(ValueError):
            with txn(conn):
                raise ValueError("boom")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_closes_owned_connection(self):
        conn = MagicMock()
        with patch("fincas.infra.db.get_conn", return_value=conn):
            with txn():
                pass
        conn.commit.assert_called_once()
        conn.close.assert_called_once()


_skip_no_db = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping DB integration tests",
)


@_skip_no_db
class TestTxnIntegration:
    def test_select_one(self):
        with txn() as cur:
            cur.execute("SELECT 1")
            assert cur.fetchone()[0] == 1


def test_statement_timeout_option():
    env = {"DATABASE_URL": "postgres://u:p@h/db", "DATABASE_STATEMENT_TIMEOUT_MS": "2500"}
    with patch.dict(os.environ, env, clear=True), \
         patch("fincas.infra.db.psycopg2.connect", return_value=MagicMock()) as mock_connect:
        get_conn()
    assert mock_connect.call_args.kwargs["options"] == "-c statement_timeout=2500"
