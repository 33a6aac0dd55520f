"""Inbound event processing.

Webhook side (`ingest_event`): dedupe by provider event id and hand the
message to the worker; outbound business messages switch the conversation
to human.

Worker side (`process_inbound_message`): store the message, re-read the
conversation status and run the reply pipeline only when it is "ai".

Security: NEVER log phones or message text.
"""

from dataclasses import dataclass
from typing import Any, Literal

from fincas.domain import conversations
from fincas.domain.reply_composer import ReplyComposer, ReplyOutcome
from fincas.infra.db import txn
from fincas.infra.repositories.processed_events_repository import (
    SOURCE_HANDLE_MESSAGE_TASK,
    SOURCE_YCLOUD,
    record_processed_event,
)
from fincas.observability.logging import get_logger
from fincas.observability.redaction import phone_fingerprint, safe_log_context
from fincas.tasks.client import TaskEnqueueError, get_tasks_client
from fincas.whatsapp.models import InboundMessageEvent, OutboundMessageEvent, WebhookEvent

logger = get_logger(__name__)

HANDLE_MESSAGE_PATH = "/tasks/whatsapp/handle-message"

IngestStatus = Literal["enqueued", "duplicate", "marked_human", "no_active_conversation"]


def handle_message_task_id(event_id: str) -> str:
    """Deterministic task id, so queue-level dedup also applies."""
    return f"ycloud:{event_id}"


def build_task_payload(event: InboundMessageEvent) -> dict[str, Any]:
    return {
        "task_id": handle_message_task_id(event.event_id),
        "event_id": event.event_id,
        "phone": event.phone,
        "name": event.name,
        "text": event.text,
        "kind": event.content.kind,
        "media_url": event.content.media_url,
        "wamid": event.wamid,
    }


def ingest_event(event: WebhookEvent, correlation_id: str | None = None) -> IngestStatus:
    """Apply a normalized webhook event.

    Inbound: the dedup receipt and the task enqueue share one transaction.
    A task the backend refused raises TaskEnqueueError inside it, so the
    receipt is rolled back and a redelivery of the event is processed
    instead of being dropped as a duplicate.
    """
    if isinstance(event, OutboundMessageEvent):
        with txn() as cur:
            marked = conversations.mark_human_on_outbound(cur, event.to_phone)
        logger.info(
            "outbound message seen",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    to_hash=phone_fingerprint(event.to_phone),
                    marked_human=marked,
                )
            },
        )
        return "marked_human" if marked else "no_active_conversation"

    with txn() as cur:
        if not record_processed_event(cur, SOURCE_YCLOUD, event.event_id):
            logger.info(
                "duplicate event ignored",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )
            return "duplicate"

        client = get_tasks_client()
        task_id = handle_message_task_id(event.event_id)
        enqueued = client.enqueue_http(
            task_id=task_id,
            url_path=HANDLE_MESSAGE_PATH,
            payload=build_task_payload(event),
            correlation_id=correlation_id,
        )
        # False is also returned for a task_id accepted earlier in this process
        if not enqueued and not client.was_executed(task_id):
            raise TaskEnqueueError(f"handle-message task not enqueued: {task_id}")

    logger.info(
        "inbound message enqueued",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                from_hash=phone_fingerprint(event.phone),
                kind=event.content.kind,
                text_len=len(event.text),
            )
        },
    )
    return "enqueued"


@dataclass
class InboundResult:
    status: Literal["duplicate", "processed"]
    conversation_id: str | None = None
    is_new: bool = False
    conversation_status: str | None = None
    outcome: ReplyOutcome | None = None


def process_inbound_message(
    *,
    task_id: str,
    phone: str,
    name: str,
    text: str,
    wamid: str | None = None,
    composer: ReplyComposer | None = None,
    correlation_id: str | None = None,
) -> InboundResult:
    """Store one customer message and reply when the conversation is "ai".

    The user message is always stored and `last_message_at` always bumped,
    whatever happens to the reply.

    Args:
        task_id: Task identifier used as idempotency key.
        phone: Customer phone (E.164). NEVER logged.
        name: Customer display name.
        text: Display text of the message. NEVER logged.
        wamid: WhatsApp message id to thread replies to.
        composer: Reply pipeline (default ReplyComposer()).
        correlation_id: Request correlation ID.
    """
    with txn() as cur:
        if not record_processed_event(cur, SOURCE_HANDLE_MESSAGE_TASK, task_id):
            return InboundResult(status="duplicate")

        contact_id = conversations.get_or_create_contact(cur, phone, name)
        conv_id, is_new = conversations.get_or_create_conversation(cur, contact_id)
        conversations.insert_message(cur, conv_id, "user", text)

    # Re-read after commit: an agent may have taken over meanwhile
    with txn() as cur:
        status = conversations.get_status(cur, conv_id)

    logger.info(
        "inbound message stored",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                conversation_id=conv_id,
                is_new=is_new,
                status=status,
            )
        },
    )

    outcome: ReplyOutcome | None = None
    if status == "ai":
        composer = composer or ReplyComposer()
        outcome = composer.reply(
            conversation_id=conv_id,
            phone=phone,
            text=text,
            wamid=wamid,
            is_new=is_new,
        )

    with txn() as cur:
        conversations.touch_last_message_at(cur, conv_id)

    return InboundResult(
        status="processed",
        conversation_id=conv_id,
        is_new=is_new,
        conversation_status=status,
        outcome=outcome,
    )
