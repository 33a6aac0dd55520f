"""Postgres access with psycopg2 (raw SQL, no ORM).

Domain functions take a cursor and never commit; the caller picks the
transaction boundary with `txn()`:

    with txn() as cur:
        if record_processed_event(cur, SOURCE_YCLOUD, event_id):
            ...
"""

import os
from contextlib import contextmanager
from typing import Iterator

import psycopg2
from psycopg2.extensions import connection as PgConnection, cursor as PgCursor

# Seconds; the webhook must acknowledge even when the database is unreachable
DEFAULT_CONNECT_TIMEOUT = 5


def get_conn() -> PgConnection:
    """Open a connection to DATABASE_URL.

    DATABASE_CONNECT_TIMEOUT overrides the connect timeout (seconds);
    DATABASE_STATEMENT_TIMEOUT_MS, when set, caps every statement.

    Raises:
        RuntimeError: If DATABASE_URL is not set.
        psycopg2.Error: On connection failure.
    """
    dsn = os.environ.get("DATABASE_URL")
    if not dsn:
        raise RuntimeError("DATABASE_URL environment variable not set")

    kwargs = {
        "connect_timeout": int(os.environ.get("DATABASE_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT)),
    }
    statement_timeout = os.environ.get("DATABASE_STATEMENT_TIMEOUT_MS")
    if statement_timeout:
        kwargs["options"] = f"-c statement_timeout={int(statement_timeout)}"
    return psycopg2.connect(dsn, **kwargs)


@contextmanager
def txn(conn: PgConnection | None = None) -> Iterator[PgCursor]:
    """Yield a cursor inside one transaction.

    Commit on normal exit, rollback on any exception (re-raised). A
    connection opened here is closed here; a passed-in one is left open.
    """
    owned = conn is None
    if conn is None:
        conn = get_conn()

    try:
        with conn.cursor() as cur:
            yield cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        if owned:
            conn.close()
