"""Fincas schema: listings, conversations, idempotency receipts, catalogs.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op

revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

SQL_FILE = Path(__file__).resolve().parents[1] / "sql" / "001_initial.sql"

# Children before parents
_TABLES = (
    "property_catalog_links",
    "whatsapp_catalogs",
    "processed_events",
    "messages",
    "conversations",
    "contacts",
    "knowledge_chunks",
    "bookings",
    "fincas",
)


def upgrade() -> None:
    op.execute(SQL_FILE.read_text(encoding="utf-8"))


def downgrade() -> None:
    for table in _TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table}")
