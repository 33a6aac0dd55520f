"""YCloud WhatsApp webhook.

ACK policy: once the body parsed as JSON the response is always 200, even
if processing failed. Retries are the provider's job and must not be
triggered by application errors; failures are logged.
Security: NEVER log phones or message text.
"""

import hmac
import json
import os
from typing import Any

from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse

from fincas.domain.inbound import ingest_event
from fincas.infra.time import utc_now
from fincas.observability.correlation import get_correlation_id
from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context
from fincas.whatsapp.ycloud_adapter import InvalidPayloadError, normalize

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

logger = get_logger(__name__)

WEBHOOK_PATH = "/webhooks/ycloud"


def _ack(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=200,
        content={"ok": True, "receivedAt": utc_now().isoformat(), "message": message},
    )


@router.get("/ycloud")
def ycloud_webhook_status(request: Request) -> dict[str, Any]:
    """Static liveness answer used by the provider when registering the URL."""
    return {
        "message": "Webhook YCloud activo",
        "webhookUrl": str(request.base_url).rstrip("/") + WEBHOOK_PATH,
    }


@router.post("/ycloud")
async def ycloud_webhook(
    request: Request,
    x_webhook_secret: str | None = Header(None, alias="X-Webhook-Secret"),
) -> JSONResponse:
    """Receive a YCloud webhook event.

    Returns:
        200 {ok, receivedAt, message} for any JSON body.
        400 {error: "Invalid JSON"} for an unparseable body.
        401 if YCLOUD_WEBHOOK_SECRET is set and the header does not match.
    """
    correlation_id = get_correlation_id()

    expected_secret = os.environ.get("YCLOUD_WEBHOOK_SECRET", "")
    if expected_secret and (
        not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, expected_secret)
    ):
        logger.warning(
            "ycloud webhook secret mismatch",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    raw = await request.body()
    try:
        payload: Any = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    try:
        event = normalize(payload)
        if event is None:
            logger.info(
                "ycloud event ignored",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=correlation_id,
                        event_type=payload.get("type"),
                    )
                },
            )
            return _ack("ignored")

        status = ingest_event(event, correlation_id=correlation_id)
        return _ack(status)

    except InvalidPayloadError:
        logger.warning(
            "invalid ycloud payload shape",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _ack("ignored")
    except Exception:
        logger.exception(
            "ycloud webhook processing failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return _ack("error")
