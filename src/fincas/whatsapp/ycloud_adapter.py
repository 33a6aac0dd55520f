"""YCloud webhook adapter - validate and normalize webhook payloads.

Payload shapes handled:

    {"id": "evt_...", "type": "whatsapp.inbound_message.received",
     "whatsappInboundMessage": {"id": "...", "wamid": "wamid...",
        "from": "+57300...", "customerProfile": {"name": "Ana"},
        "type": "text", "text": {"body": "hola"}}}

    {"id": "evt_...", "type": "whatsapp.outbound_message.sent",
     "whatsappOutboundMessage": {"to": "+57300..."}}

Anything else normalizes to None and is acknowledged without processing.
"""

import time
from typing import Any

from fincas.infra.time import utc_now

from .models import (
    InboundMessageEvent,
    MediaContent,
    MessageContent,
    OutboundMessageEvent,
    TextContent,
    WebhookEvent,
)

INBOUND_EVENT_TYPE = "whatsapp.inbound_message.received"
OUTBOUND_EVENT_TYPE = "whatsapp.outbound_message.sent"

_MEDIA_KINDS = ("image", "audio", "video", "document")


class InvalidPayloadError(Exception):
    """Raised when a YCloud payload is not a JSON object."""

    pass


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _clean(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def _event_id(payload: dict[str, Any]) -> str:
    event_id = _clean(payload.get("id"))
    if event_id:
        return event_id
    # No id means no retry dedup is possible; synthesize one like the provider does
    return f"evt_{int(time.time() * 1000)}"


def extract_content(message: dict[str, Any]) -> MessageContent | None:
    """Extract the content variant of an inbound message.

    Returns None when the message has neither text nor a media link.
    """
    msg_type = message.get("type")

    if msg_type == "text":
        body = _clean(_as_dict(message.get("text")).get("body"))
        return TextContent(body=body) if body else None

    if msg_type in _MEDIA_KINDS:
        media = _as_dict(message.get(msg_type))
        link = _clean(media.get("link"))
        if not link:
            return None
        caption = _clean(media.get("caption"))
        if msg_type == "document" and not caption:
            caption = _clean(media.get("filename"))
        return MediaContent(media_kind=msg_type, link=link, caption=caption)

    return None


def normalize(payload: Any) -> WebhookEvent | None:
    """Normalize a YCloud webhook payload into a typed event.

    Args:
        payload: Parsed JSON body.

    Returns:
        InboundMessageEvent, OutboundMessageEvent, or None when the payload
        is a different event type or carries nothing processable.

    Raises:
        InvalidPayloadError: If payload is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError("payload must be a JSON object")

    event_type = payload.get("type")

    if event_type == INBOUND_EVENT_TYPE:
        message = payload.get("whatsappInboundMessage")
        if not isinstance(message, dict):
            return None

        phone = _clean(message.get("from"))
        content = extract_content(message)
        if not phone or content is None:
            return None

        name = _clean(_as_dict(message.get("customerProfile")).get("name")) or phone
        wamid = _clean(message.get("wamid")) or _clean(message.get("id")) or None

        return InboundMessageEvent(
            event_id=_event_id(payload),
            phone=phone,
            name=name,
            content=content,
            wamid=wamid,
            received_at=utc_now(),
        )

    if event_type == OUTBOUND_EVENT_TYPE:
        to_phone = _clean(_as_dict(payload.get("whatsappOutboundMessage")).get("to"))
        if not to_phone:
            return None
        return OutboundMessageEvent(event_id=_event_id(payload), to_phone=to_phone)

    return None
