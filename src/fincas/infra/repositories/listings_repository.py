"""Listings repository - read-only access to fincas for the conversation flow.

Uses raw SQL with psycopg2 (no ORM).
Search is Postgres full-text (spanish config) plus a title ILIKE so short
names ("villa green") still match.
"""

from datetime import datetime
from typing import Any

from psycopg2.extensions import cursor as PgCursor

_LISTING_COLUMNS = """
    f.id, f.title, f.description, f.location, f.capacity, f.type,
    f.price_base, f.price_baja, f.images, f.video
"""

# OR-combine the words of the query instead of plainto_tsquery's AND
_ANY_WORD_TSQUERY = "replace(plainto_tsquery('spanish', %s)::text, '&', '|')::tsquery"


def _row_to_listing(row: tuple) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "title": row[1],
        "description": row[2],
        "location": row[3],
        "capacity": row[4],
        "type": row[5],
        "price_base": row[6],
        "price_baja": row[7],
        "images": list(row[8] or []),
        "video": row[9],
    }


def get_listing(cur: PgCursor, listing_id: str) -> dict[str, Any] | None:
    """Get an active or inactive listing by id."""
    cur.execute(
        f"SELECT {_LISTING_COLUMNS} FROM fincas f WHERE f.id = %s",
        (listing_id,),
    )
    row = cur.fetchone()
    return _row_to_listing(row) if row else None


def search_listings(cur: PgCursor, query: str, limit: int = 8) -> list[dict[str, Any]]:
    """Active listings matching a free-text query, best match first.

    Title substring matches rank above plain full-text hits.
    """
    query = query.strip()
    if not query:
        return []

    cur.execute(
        f"""
        SELECT {_LISTING_COLUMNS}
        FROM fincas f
        WHERE f.active
          AND (
            f.title ILIKE %s
            OR to_tsvector('spanish', coalesce(f.title, '') || ' ' ||
                           coalesce(f.location, '') || ' ' ||
                           coalesce(f.description, '')) @@ {_ANY_WORD_TSQUERY}
          )
        ORDER BY
            (f.title ILIKE %s) DESC,
            ts_rank(
                to_tsvector('spanish', coalesce(f.title, '') || ' ' ||
                            coalesce(f.location, '') || ' ' ||
                            coalesce(f.description, '')),
                {_ANY_WORD_TSQUERY}
            ) DESC,
            f.title
        LIMIT %s
        """,
        (f"%{query}%", query, f"%{query}%", query, limit),
    )
    return [_row_to_listing(row) for row in cur.fetchall()]


def search_available_by_location_and_dates(
    cur: PgCursor,
    *,
    location: str,
    entry: datetime,
    exit: datetime,
    limit: int = 4,
) -> list[dict[str, Any]]:
    """Active listings in `location` with no overlapping booking.

    A booking overlaps [entry, exit) when it starts before `exit` and ends
    after `entry`. Cancelled bookings never block.
    """
    cur.execute(
        f"""
        SELECT {_LISTING_COLUMNS}
        FROM fincas f
        WHERE f.active
          AND f.location ILIKE %s
          AND NOT EXISTS (
            SELECT 1 FROM bookings b
            WHERE b.finca_id = f.id
              AND b.status <> 'CANCELLED'
              AND b.fecha_entrada < %s
              AND b.fecha_salida > %s
          )
        ORDER BY f.price_base NULLS LAST, f.title
        LIMIT %s
        """,
        (f"%{location.strip()}%", exit, entry, limit),
    )
    return [_row_to_listing(row) for row in cur.fetchall()]
