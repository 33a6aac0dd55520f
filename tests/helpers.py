"""Shared test helpers (not fixtures)."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any
from unittest.mock import MagicMock


def make_cursor(
    fetchone: list[Any] | None = None,
    fetchall: list[Any] | None = None,
    rowcount: int = 1,
) -> MagicMock:
    """MagicMock cursor returning queued fetchone/fetchall results in order."""
    cur = MagicMock()
    cur.fetchone.side_effect = list(fetchone or [])
    cur.fetchall.side_effect = list(fetchall or [])
    cur.rowcount = rowcount
    return cur


def fake_txn(cur: MagicMock):
    """Replacement for infra.db.txn yielding the same cursor every time."""

    @contextmanager
    def _txn(conn=None):
        yield cur

    return _txn


def executed_sql(cur: MagicMock) -> list[str]:
    """SQL strings passed to cur.execute, whitespace-collapsed."""
    return [" ".join(call.args[0].split()) for call in cur.execute.call_args_list]


def catalog_row(
    id: str,
    name: str,
    external_id: str,
    is_default: bool = False,
    keyword: str | None = None,
    order: int | None = None,
) -> tuple:
    """Row shaped like whatsapp_catalogs SELECT columns."""
    return (id, name, external_id, is_default, keyword, order)
