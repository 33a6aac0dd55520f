"""Outbound WhatsApp messaging via the YCloud API.

Two message shapes are sent: plain text replies and interactive catalog
cards (`product` for one item, `product_list` for several).

Security: NEVER log the destination phone or the text. Only log
fingerprints and lengths.
"""

import os
import time
from typing import Any

import requests

from fincas.observability.logging import get_logger
from fincas.observability.redaction import phone_fingerprint, safe_log_context

from .templates import render

logger = get_logger(__name__)

YCLOUD_MESSAGES_URL = "https://api.ycloud.com/v2/whatsapp/messages"
YCLOUD_SEND_DIRECTLY_URL = "https://api.ycloud.com/v2/whatsapp/messages/sendDirectly"

# Timeout for HTTP requests (seconds)
HTTP_TIMEOUT = 10

# Network errors only; a 5xx may already have delivered the message
MAX_RETRIES = 1
RETRY_DELAY = 0.2

CATALOG_FOOTER = "FincasYa"
CATALOG_LIST_HEADER = "Fincas"
CATALOG_SECTION_TITLE = "Fincas disponibles"
DEFAULT_CATALOG_BODY = render("available_listings_card")


class YCloudApiError(Exception):
    """Non-2xx response from the YCloud API."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"YCloud API error: {status_code} - {body}")


def _get_config() -> dict[str, str]:
    """Get YCloud config from environment.

    Required env vars:
    - YCLOUD_API_KEY: API key sent as X-API-Key
    - YCLOUD_WABA_NUMBER: E.164 business number used as sender
    """
    api_key = os.environ.get("YCLOUD_API_KEY", "")
    waba_number = os.environ.get("YCLOUD_WABA_NUMBER", "")

    if not api_key or not waba_number:
        raise RuntimeError(
            "Missing YCloud config: YCLOUD_API_KEY and YCLOUD_WABA_NUMBER required"
        )

    return {"api_key": api_key, "waba_number": waba_number}


def _post(url: str, body: dict[str, Any], api_key: str, log_ctx: dict[str, str]) -> dict[str, Any]:
    """POST to YCloud, retrying once on network errors. Raises on non-2xx."""
    headers = {"Content-Type": "application/json", "X-API-Key": api_key}

    for attempt in range(MAX_RETRIES + 1):
        try:
            response = requests.post(url, json=body, headers=headers, timeout=HTTP_TIMEOUT)
        except (requests.ConnectionError, requests.Timeout) as e:
            if attempt < MAX_RETRIES:
                logger.warning(
                    "ycloud request failed, retrying",
                    extra={
                        "extra_fields": {
                            **log_ctx,
                            **safe_log_context(attempt=attempt, error_type=type(e).__name__),
                        }
                    },
                )
                time.sleep(RETRY_DELAY)
                continue
            logger.error(
                "ycloud request failed",
                extra={
                    "extra_fields": {
                        **log_ctx,
                        **safe_log_context(attempt=attempt, error_type=type(e).__name__),
                    }
                },
            )
            raise

        if not response.ok:
            logger.error(
                "ycloud api returned error",
                extra={"extra_fields": {**log_ctx, **safe_log_context(status=response.status_code)}},
            )
            raise YCloudApiError(response.status_code, response.text)

        logger.info(
            "ycloud message sent",
            extra={"extra_fields": {**log_ctx, **safe_log_context(attempt=attempt)}},
        )
        return response.json() if response.content else {}

    # Unreachable: the loop either returns or raises
    raise RuntimeError("ycloud send loop exited without result")


def send_text(
    *,
    to: str,
    text: str,
    wamid: str | None = None,
    send_directly: bool = False,
) -> dict[str, Any]:
    """Send a text message.

    Args:
        to: Destination phone (E.164). NEVER logged.
        text: Message text. NEVER logged.
        wamid: Inbound message id to reply to (threads the reply).
        send_directly: Use the synchronous sendDirectly endpoint.

    Returns:
        Parsed YCloud response.

    Raises:
        RuntimeError: If config is missing.
        YCloudApiError: On non-2xx responses.
        requests.RequestException: On network errors after retry.
    """
    config = _get_config()

    body: dict[str, Any] = {
        "from": config["waba_number"],
        "to": to,
        "type": "text",
        "text": {"body": text},
    }
    if wamid:
        body["context"] = {"message_id": wamid}

    url = YCLOUD_SEND_DIRECTLY_URL if send_directly else YCLOUD_MESSAGES_URL
    log_ctx = safe_log_context(
        to_hash=phone_fingerprint(to),
        text_len=len(text),
        message_type="text",
        threaded=bool(wamid),
    )
    return _post(url, body, config["api_key"], log_ctx)


def build_catalog_message(
    *,
    waba_number: str,
    to: str,
    product_ids: list[str],
    body_text: str,
    catalog_id: str,
) -> dict[str, Any]:
    """Build the interactive catalog message body.

    One product id yields a single `product` card; more yield a
    `product_list` with one section.
    """
    if len(product_ids) == 1:
        interactive: dict[str, Any] = {
            "type": "product",
            "body": {"text": body_text},
            "footer": {"text": CATALOG_FOOTER},
            "action": {
                "catalog_id": catalog_id,
                "product_retailer_id": product_ids[0],
            },
        }
    else:
        interactive = {
            "type": "product_list",
            "header": {"type": "text", "text": CATALOG_LIST_HEADER},
            "body": {"text": body_text},
            "footer": {"text": CATALOG_FOOTER},
            "action": {
                "catalog_id": catalog_id,
                "sections": [
                    {
                        "title": CATALOG_SECTION_TITLE,
                        "product_items": [
                            {"product_retailer_id": pid} for pid in product_ids
                        ],
                    }
                ],
            },
        }

    return {
        "from": waba_number,
        "to": to,
        "type": "interactive",
        "interactive": interactive,
    }


def send_catalog(
    *,
    to: str,
    product_ids: list[str],
    catalog_id: str,
    body_text: str = DEFAULT_CATALOG_BODY,
    wamid: str | None = None,
) -> dict[str, Any] | None:
    """Send a catalog card (one product) or product list (several).

    Returns:
        Parsed YCloud response, or None when there is nothing to send.

    Raises:
        RuntimeError: If config is missing or catalog_id is empty.
        YCloudApiError: On non-2xx responses.
    """
    if not product_ids:
        return None

    config = _get_config()
    if not catalog_id:
        raise RuntimeError("catalog_id is required to send a catalog message")

    body = build_catalog_message(
        waba_number=config["waba_number"],
        to=to,
        product_ids=product_ids,
        body_text=body_text,
        catalog_id=catalog_id,
    )
    if wamid:
        body["context"] = {"message_id": wamid}

    log_ctx = safe_log_context(
        to_hash=phone_fingerprint(to),
        message_type=body["interactive"]["type"],
        product_count=len(product_ids),
        threaded=bool(wamid),
    )
    return _post(YCLOUD_SEND_DIRECTLY_URL, body, config["api_key"], log_ctx)
