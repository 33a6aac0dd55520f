"""Authentication for worker task endpoints and admin endpoints.

Task endpoints accept Cloud Tasks OIDC tokens (or the internal shared
secret in local dev). Admin endpoints (conversation status, catalog links)
accept a static API key. Both fail closed when unconfigured.
"""

from __future__ import annotations

import hmac
import os

from fastapi import Header, HTTPException, Request
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from fincas.observability.logging import get_logger
from fincas.observability.redaction import safe_log_context

logger = get_logger(__name__)

# Local dev audience - enables X-Internal-Task-Secret fallback
LOCAL_DEV_AUDIENCE = "fincas-tasks-local"


def extract_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:]


def verify_task_oidc(token: str) -> bool:
    """Verify a Cloud Tasks OIDC token.

    Uses TASKS_OIDC_AUDIENCE for audience verification and, when set,
    TASKS_OIDC_SERVICE_ACCOUNT for the token email. Returns False if the
    audience is not configured.
    """
    if not token:
        return False

    audience = os.environ.get("TASKS_OIDC_AUDIENCE")
    if not audience:
        logger.error(
            "TASKS_OIDC_AUDIENCE not configured - fail closed",
            extra={"extra_fields": safe_log_context(reason="missing_audience_env")},
        )
        return False

    try:
        claims = id_token.verify_oauth2_token(token, google_requests.Request(), audience=audience)
    except ValueError as e:
        logger.warning(
            "OIDC token verification failed",
            extra={"extra_fields": safe_log_context(error=str(e), expected_audience=audience)},
        )
        return False

    expected_email = os.environ.get("TASKS_OIDC_SERVICE_ACCOUNT")
    if expected_email and claims.get("email", "") != expected_email:
        logger.warning(
            "OIDC service account mismatch",
            extra={"extra_fields": safe_log_context(reason="service_account_mismatch")},
        )
        return False

    return True


def verify_task_auth(request: Request) -> bool:
    """Verify task authentication via OIDC or internal secret (local dev only)."""
    audience = os.environ.get("TASKS_OIDC_AUDIENCE", "")

    if audience == LOCAL_DEV_AUDIENCE:
        internal_secret = os.environ.get("INTERNAL_TASK_SECRET", "")
        request_secret = request.headers.get("X-Internal-Task-Secret", "")
        if internal_secret and hmac.compare_digest(request_secret, internal_secret):
            return True

    token = extract_bearer_token(request)
    if not token:
        logger.warning(
            "task auth failed: missing Bearer token",
            extra={"extra_fields": safe_log_context(reason="missing_bearer_token")},
        )
        return False
    return verify_task_oidc(token)


def require_admin_key(x_admin_key: str | None = Header(None, alias="X-Admin-Key")) -> None:
    """FastAPI dependency guarding admin endpoints with ADMIN_API_KEY."""
    expected = os.environ.get("ADMIN_API_KEY", "")
    if not expected:
        logger.error(
            "ADMIN_API_KEY not configured - rejecting admin request (fail-closed)",
            extra={"extra_fields": safe_log_context(reason="missing_admin_key_env")},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
