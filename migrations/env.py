"""Alembic environment for the fincas schema.

Revisions execute plain SQL files from migrations/sql; there is no ORM
metadata, so autogenerate is unavailable by construction.
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from migrations.env_helpers import get_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

VERSION_TABLE = "alembic_version"


def _configure(**kwargs) -> None:
    context.configure(target_metadata=None, version_table=VERSION_TABLE, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_offline() -> None:
    """Emit the SQL script instead of executing it (`alembic upgrade --sql`)."""
    _configure(
        url=get_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )


def run_online() -> None:
    engine = create_engine(get_database_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            _configure(connection=connection)
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
