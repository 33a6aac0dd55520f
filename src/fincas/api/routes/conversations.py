"""Conversation status endpoints for the agent dashboard.

Agents take a conversation over (escalate), hand it back to the automation
(return-to-ai) or close it (resolve).
"""

from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Path
from psycopg2.extensions import cursor as PgCursor

from fincas.api.task_auth import require_admin_key
from fincas.domain.conversations import (
    ConversationNotFoundError,
    InvalidTransitionError,
    escalate_to_human,
    get_conversation,
    resolve,
    return_to_ai,
)
from fincas.infra.db import txn
from fincas.observability.correlation import get_correlation_id
from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context

router = APIRouter(
    prefix="/conversations",
    tags=["conversations"],
    dependencies=[Depends(require_admin_key)],
)

logger = get_logger(__name__)


def _transition(
    conversation_id: str,
    action: str,
    apply: Callable[[PgCursor, str], str],
) -> dict:
    try:
        with txn() as cur:
            status = apply(cur, conversation_id)
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))

    logger.info(
        "conversation status changed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=get_correlation_id(),
                conversation_id=conversation_id,
                action=action,
                status=status,
            )
        },
    )
    return {"id": conversation_id, "status": status}


@router.get("/{conversation_id}")
def read_conversation(conversation_id: str = Path(..., description="Conversation ID")) -> dict:
    """Conversation status and timestamps (no phone)."""
    with txn() as cur:
        conv = get_conversation(cur, conversation_id)
    if conv is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    return {
        "id": conv["id"],
        "status": conv["status"],
        "channel": conv["channel"],
        "last_message_at": conv["last_message_at"].isoformat() if conv["last_message_at"] else None,
        "created_at": conv["created_at"].isoformat() if conv["created_at"] else None,
    }


@router.post("/{conversation_id}/escalate")
def escalate(conversation_id: str = Path(..., description="Conversation ID")) -> dict:
    return _transition(conversation_id, "escalate", escalate_to_human)


@router.post("/{conversation_id}/return-to-ai")
def hand_back_to_ai(conversation_id: str = Path(..., description="Conversation ID")) -> dict:
    return _transition(conversation_id, "return_to_ai", return_to_ai)


@router.post("/{conversation_id}/resolve")
def resolve_conversation(conversation_id: str = Path(..., description="Conversation ID")) -> dict:
    return _transition(conversation_id, "resolve", resolve)
