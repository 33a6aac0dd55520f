"""Database URL helpers for Alembic migrations.

Kept apart from env.py so they can be tested without an alembic context.
"""

from __future__ import annotations

import os

from psycopg2.extensions import parse_dsn
from sqlalchemy.engine import URL, make_url

DRIVER = "postgresql+psycopg2"


def libpq_dsn_to_url(dsn: str) -> str:
    """Convert a libpq key=value DSN to a SQLAlchemy URL.

    A host starting with "/" is a unix socket directory (Cloud SQL) and is
    passed as the `host` query parameter.
    """
    params = parse_dsn(dsn)
    password = params.get("password") or os.environ.get("DB_PASSWORD") or None
    host = params.get("host", "localhost")

    if host.startswith("/"):
        url = URL.create(
            DRIVER,
            username=params.get("user"),
            password=password,
            database=params.get("dbname"),
            query={"host": host},
        )
    else:
        url = URL.create(
            DRIVER,
            username=params.get("user"),
            password=password,
            host=host,
            port=int(params.get("port", 5432)),
            database=params.get("dbname"),
        )
    return url.render_as_string(hide_password=False)


def get_database_url() -> str:
    """SQLAlchemy URL from DATABASE_URL (URL or libpq DSN form).

    DB_PASSWORD fills in a missing password.
    """
    raw = os.environ.get("DATABASE_URL")
    if not raw:
        raise RuntimeError("DATABASE_URL is required to run migrations")

    if "://" not in raw:
        return libpq_dsn_to_url(raw)

    url = make_url(raw.replace("postgres://", "postgresql://", 1))
    if url.drivername == "postgresql":
        url = url.set(drivername=DRIVER)

    db_password = os.environ.get("DB_PASSWORD")
    if db_password and not url.password:
        url = url.set(password=db_password)
    return url.render_as_string(hide_password=False)
