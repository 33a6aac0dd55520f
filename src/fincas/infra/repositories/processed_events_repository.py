"""Processed events repository - idempotency receipts.

Uses raw SQL with psycopg2 (no ORM).
"""

from psycopg2.extensions import cursor as PgCursor

from fincas.infra.time import utc_now

# Webhook deliveries from YCloud
SOURCE_YCLOUD = "ycloud"
# Worker executions of the inbound-message task
SOURCE_HANDLE_MESSAGE_TASK = "tasks.whatsapp.handle_message"


def record_processed_event(cur: PgCursor, source: str, external_id: str) -> bool:
    """Record an event id, atomically per (source, external_id).

    Returns:
        True if this is the first time the id is seen, False for a duplicate.
    """
    cur.execute(
        """
        INSERT INTO processed_events (source, external_id, received_at)
        VALUES (%s, %s, %s)
        ON CONFLICT (source, external_id) DO NOTHING
        """,
        (source, external_id, utc_now()),
    )
    return cur.rowcount == 1
