"""Correlation IDs tying a webhook delivery to the worker task it spawned.

The webhook binds an id per request; the tasks client forwards it in the
`X-Correlation-ID` header so the worker logs under the same id.
"""

import re
import uuid
from contextvars import ContextVar, Token

CORRELATION_ID_HEADER = "X-Correlation-ID"

# Incoming ids are echoed into logs and response headers
_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

_current_id: ContextVar[str] = ContextVar("fincas_correlation_id", default="")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex


def resolve_correlation_id(header_value: str | None) -> str:
    """Reuse a well-formed incoming id, otherwise mint a new one."""
    candidate = (header_value or "").strip()
    if candidate and _ACCEPTED_ID.match(candidate):
        return candidate
    return generate_correlation_id()


def get_correlation_id() -> str:
    """Id bound to the current request or task ("" outside of one)."""
    return _current_id.get()


def set_correlation_id(cid: str) -> Token[str]:
    return _current_id.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    _current_id.reset(token)
