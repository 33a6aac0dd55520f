"""HTTP tasks backend: POST the task straight to the worker.

For docker-compose and staging setups where the webhook service and the
worker share a network and there is no queue in between. Delivery is
best-effort: a failed POST is logged and reported as not enqueued. Callers
that must not lose the task (the webhook) turn that into an exception
inside their transaction.
"""

import os
from datetime import datetime

import requests
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Must match task_auth.LOCAL_DEV_AUDIENCE
LOCAL_DEV_AUDIENCE = "fincas-tasks-local"

DEFAULT_WORKER_BASE_URL = "http://worker:8000"
DEFAULT_TIMEOUT_SECONDS = 30


def _fetch_oidc_token(audience: str) -> str | None:
    """ID token for `audience` from the metadata server or ADC; None on failure."""
    try:
        return fetch_id_token(GoogleRequest(), audience)
    except Exception as e:
        logger.error(
            "failed to fetch OIDC ID token",
            extra={"extra_fields": safe_log_context(audience=audience, error=str(e))},
        )
        return None


def _auth_headers(base_url: str) -> dict[str, str] | None:
    """Worker auth headers, or None when no credential could be obtained.

    The local dev audience uses the shared INTERNAL_TASK_SECRET; any other
    setup gets a Google-signed ID token (audience defaults to the worker URL).
    """
    audience = os.environ.get("TASKS_OIDC_AUDIENCE", "")
    if audience == LOCAL_DEV_AUDIENCE:
        secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        return {"X-Internal-Task-Secret": secret} if secret else {}

    token = _fetch_oidc_token(audience or base_url)
    if not token:
        return None
    return {"Authorization": f"Bearer {token}"}


def enqueue_http(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """Deliver the task synchronously to WORKER_BASE_URL + url_path.

    Scheduled tasks cannot be honoured without a queue; they are dropped
    with a warning (and reported as enqueued so callers don't retry).

    Returns:
        True on a 2xx response, False otherwise.
    """
    log_ctx = safe_log_context(task_id=task_id, url_path=url_path)

    if schedule_time is not None:
        logger.warning("HTTP backend does not support scheduled tasks", extra={"extra_fields": log_ctx})
        return True

    base_url = os.environ.get("WORKER_BASE_URL", DEFAULT_WORKER_BASE_URL)
    auth = _auth_headers(base_url)
    if auth is None:
        logger.error(
            "HTTP task enqueue aborted: OIDC token unavailable",
            extra={"extra_fields": log_ctx},
        )
        return False

    headers = {
        "Content-Type": "application/json",
        "X-Correlation-ID": correlation_id or "",
        "X-Task-Id": task_id,
        **auth,
    }
    timeout = int(os.environ.get("TASKS_HTTP_TIMEOUT", DEFAULT_TIMEOUT_SECONDS))

    try:
        response = requests.post(f"{base_url}{url_path}", json=payload, headers=headers, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(
            "HTTP task enqueue failed",
            extra={"extra_fields": {**log_ctx, **safe_log_context(error=str(e))}},
        )
        return False

    logger.info("HTTP task enqueued", extra={"extra_fields": log_ctx})
    return True
