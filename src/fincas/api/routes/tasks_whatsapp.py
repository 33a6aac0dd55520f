"""Worker route for inbound WhatsApp messages.

Security: payload carries the phone and text, so neither is ever logged.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response

from fincas.api.task_auth import verify_task_auth
from fincas.domain.inbound import process_inbound_message
from fincas.domain.reply_composer import ReplyComposer
from fincas.observability.correlation import get_correlation_id
from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/whatsapp", tags=["tasks"])

logger = get_logger(__name__)

# Module-level composer (lazy init, can be overridden for tests)
_composer: ReplyComposer | None = None


def _get_composer() -> ReplyComposer:
    global _composer
    if _composer is None:
        _composer = ReplyComposer()
    return _composer


def _set_composer(composer: ReplyComposer | None) -> None:
    """Set reply composer (for tests)."""
    global _composer
    _composer = composer


@router.post("/handle-message")
async def handle_message(request: Request) -> Response:
    """Store an inbound message and reply if the conversation is on "ai".

    Dedupe via processed_events:
    - task_id already processed: 200 "duplicate"
    - new: 200 "ok"; 500 only when storing the message failed (retried)

    Expected payload:
    - task_id, phone, text (required)
    - name, wamid, event_id, kind, media_url (optional)
    """
    correlation_id = get_correlation_id()

    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload: dict[str, Any] = await request.json()
    except Exception:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid json")

    if not isinstance(payload, dict):
        logger.warning(
            "task payload is not an object",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=400, content="invalid json")

    task_id = payload.get("task_id", "")
    phone = payload.get("phone", "")
    text = payload.get("text", "")

    if not task_id or not phone or not text:
        logger.warning(
            "missing required fields",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    has_task_id=bool(task_id),
                    has_phone=bool(phone),
                    has_text=bool(text),
                )
            },
        )
        return Response(status_code=400, content="missing required fields")

    try:
        result = process_inbound_message(
            task_id=task_id,
            phone=phone,
            name=payload.get("name") or phone,
            text=text,
            wamid=payload.get("wamid"),
            composer=_get_composer(),
            correlation_id=correlation_id,
        )
    except Exception:
        logger.exception(
            "handle-message task failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="processing failed")

    if result.status == "duplicate":
        logger.info(
            "duplicate task ignored",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=200, content="duplicate")

    return Response(status_code=200, content="ok")
