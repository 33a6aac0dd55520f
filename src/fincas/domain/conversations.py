"""Conversation domain logic - contacts, messages and status transitions.

Status machine:

    ai ──escalate──▶ human ──return_to_ai──▶ ai
    ai/human ──resolve──▶ resolved ──(next inbound message)──▶ ai

At most one conversation per contact is active (ai or human). A resolved
conversation is reused when the contact writes again; only a contact's very
first conversation is seeded with the welcome message.

Security: NEVER log phones or message content.
"""

from typing import Any, Literal

from psycopg2.extensions import cursor as PgCursor

from fincas.infra.time import utc_now
from fincas.whatsapp.templates import WELCOME_MESSAGE

ConversationStatus = Literal["ai", "human", "resolved"]
MessageSender = Literal["user", "assistant"]

ACTIVE_STATUSES: tuple[str, ...] = ("ai", "human")

DEFAULT_HISTORY_LIMIT = 10


class ConversationNotFoundError(Exception):
    """Raised when a transition targets an unknown conversation."""

    pass


class InvalidTransitionError(Exception):
    """Raised when a transition is not allowed from the current status."""

    def __init__(self, conversation_id: str, from_status: str, to_status: str) -> None:
        self.conversation_id = conversation_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"cannot move conversation from {from_status} to {to_status}")


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


def get_or_create_contact(cur: PgCursor, phone: str, name: str) -> str:
    """Return the contact id for `phone`, creating the contact if unseen.

    Existing contacts keep their stored name.
    """
    cur.execute(
        """
        INSERT INTO contacts (phone, name, created_at)
        VALUES (%s, %s, %s)
        ON CONFLICT (phone) DO NOTHING
        RETURNING id
        """,
        (phone, name or phone, utc_now()),
    )
    row = cur.fetchone()
    if row is not None:
        return str(row[0])

    cur.execute("SELECT id FROM contacts WHERE phone = %s", (phone,))
    return str(cur.fetchone()[0])


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


def get_or_create_conversation(cur: PgCursor, contact_id: str) -> tuple[str, bool]:
    """Resolve the conversation for an inbound message.

    - Active conversation: returned unchanged.
    - Otherwise the most recent resolved one is reactivated to "ai".
    - Otherwise a new "ai" conversation is created and seeded with the
      welcome message.

    Locks the contact row so concurrent messages from the same contact
    resolve to the same conversation.

    Args:
        cur: Database cursor (within transaction).
        contact_id: Contact UUID as string.

    Returns:
        Tuple of (conversation_id, is_new).
    """
    cur.execute("SELECT id FROM contacts WHERE id = %s FOR UPDATE", (contact_id,))

    cur.execute(
        """
        SELECT id, status FROM conversations
        WHERE contact_id = %s
        ORDER BY created_at DESC
        """,
        (contact_id,),
    )
    rows = cur.fetchall()

    for conv_id, status in rows:
        if status in ACTIVE_STATUSES:
            return (str(conv_id), False)

    now = utc_now()

    for conv_id, status in rows:
        if status == "resolved":
            cur.execute(
                """
                UPDATE conversations
                SET status = 'ai', updated_at = %s
                WHERE id = %s
                """,
                (now, conv_id),
            )
            return (str(conv_id), False)

    cur.execute(
        """
        INSERT INTO conversations (contact_id, channel, status, last_message_at, created_at, updated_at)
        VALUES (%s, 'whatsapp', 'ai', %s, %s, %s)
        RETURNING id
        """,
        (contact_id, now, now, now),
    )
    conv_id = str(cur.fetchone()[0])
    insert_message(cur, conv_id, "assistant", WELCOME_MESSAGE, created_at=now)
    return (conv_id, True)


def get_conversation(cur: PgCursor, conversation_id: str) -> dict[str, Any] | None:
    """Get conversation by ID, with the contact's phone.

    Returns:
        Dict with conversation data or None if not found.
    """
    cur.execute(
        """
        SELECT c.id, c.contact_id, c.channel, c.status, c.last_message_at,
               c.created_at, c.updated_at, ct.phone
        FROM conversations c
        JOIN contacts ct ON ct.id = c.contact_id
        WHERE c.id = %s
        """,
        (conversation_id,),
    )
    row = cur.fetchone()
    if row is None:
        return None

    return {
        "id": str(row[0]),
        "contact_id": str(row[1]),
        "channel": row[2],
        "status": row[3],
        "last_message_at": row[4],
        "created_at": row[5],
        "updated_at": row[6],
        "phone": row[7],
    }


def get_status(cur: PgCursor, conversation_id: str) -> str | None:
    """Current status, read fresh from the database."""
    cur.execute("SELECT status FROM conversations WHERE id = %s", (conversation_id,))
    row = cur.fetchone()
    return row[0] if row else None


def _lock_status(cur: PgCursor, conversation_id: str) -> str:
    cur.execute(
        "SELECT status FROM conversations WHERE id = %s FOR UPDATE",
        (conversation_id,),
    )
    row = cur.fetchone()
    if row is None:
        raise ConversationNotFoundError(conversation_id)
    return row[0]


def _set_status(cur: PgCursor, conversation_id: str, status: ConversationStatus) -> None:
    cur.execute(
        "UPDATE conversations SET status = %s, updated_at = %s WHERE id = %s",
        (status, utc_now(), conversation_id),
    )


def escalate_to_human(cur: PgCursor, conversation_id: str) -> str:
    """ai/human -> human. Idempotent.

    Raises:
        ConversationNotFoundError: Unknown conversation.
        InvalidTransitionError: Conversation is resolved.
    """
    current = _lock_status(cur, conversation_id)
    if current == "resolved":
        raise InvalidTransitionError(conversation_id, current, "human")
    if current != "human":
        _set_status(cur, conversation_id, "human")
    return "human"


def return_to_ai(cur: PgCursor, conversation_id: str) -> str:
    """any -> ai. Idempotent.

    Raises:
        ConversationNotFoundError: Unknown conversation.
    """
    if _lock_status(cur, conversation_id) != "ai":
        _set_status(cur, conversation_id, "ai")
    return "ai"


def resolve(cur: PgCursor, conversation_id: str) -> str:
    """any -> resolved. Idempotent.

    Raises:
        ConversationNotFoundError: Unknown conversation.
    """
    if _lock_status(cur, conversation_id) != "resolved":
        _set_status(cur, conversation_id, "resolved")
    return "resolved"


def mark_human_on_outbound(cur: PgCursor, phone: str) -> bool:
    """Hand the contact's latest conversation to a human.

    Called when the business answered from the provider dashboard. Resolved
    conversations are left alone; unknown phones are a no-op.

    Returns:
        True if a conversation was moved to "human".
    """
    cur.execute(
        """
        SELECT c.id, c.status
        FROM conversations c
        JOIN contacts ct ON ct.id = c.contact_id
        WHERE ct.phone = %s
        ORDER BY c.created_at DESC
        LIMIT 1
        FOR UPDATE OF c
        """,
        (phone,),
    )
    row = cur.fetchone()
    if row is None:
        return False

    conv_id, status = row
    if status not in ACTIVE_STATUSES:
        return False
    if status != "human":
        _set_status(cur, str(conv_id), "human")
    return True


def touch_last_message_at(cur: PgCursor, conversation_id: str) -> None:
    now = utc_now()
    cur.execute(
        """
        UPDATE conversations
        SET last_message_at = %s, updated_at = %s
        WHERE id = %s
        """,
        (now, now, conversation_id),
    )


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def insert_message(
    cur: PgCursor,
    conversation_id: str,
    sender: MessageSender,
    content: str,
    *,
    created_at=None,
) -> str:
    """Append a message to a conversation. Returns the message id."""
    cur.execute(
        """
        INSERT INTO messages (conversation_id, sender, content, created_at)
        VALUES (%s, %s, %s, %s)
        RETURNING id
        """,
        (conversation_id, sender, content, created_at or utc_now()),
    )
    return str(cur.fetchone()[0])


def list_recent_messages(
    cur: PgCursor,
    conversation_id: str,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[dict[str, str]]:
    """Last `limit` messages of a conversation, oldest first."""
    cur.execute(
        """
        SELECT sender, content FROM (
            SELECT sender, content, created_at, id
            FROM messages
            WHERE conversation_id = %s
            ORDER BY created_at DESC, id DESC
            LIMIT %s
        ) recent
        ORDER BY created_at ASC, id ASC
        """,
        (conversation_id, limit),
    )
    return [{"sender": row[0], "content": row[1]} for row in cur.fetchall()]
