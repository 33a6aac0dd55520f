"""Log redaction for WhatsApp traffic.

Phones and message text must never reach the logs. `safe_log_context`
applies two layers: fields whose *name* marks them as a phone or message
body are replaced outright, and every other string is scrubbed of anything
that looks like a phone number or e-mail address.
"""

import hashlib
import re
from typing import Any

_PHONE_PATTERN = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_REDACTED = "[REDACTED]"

# Context keys that always carry a phone number
PHONE_KEYS = frozenset({"phone", "to", "from", "to_phone", "from_phone"})
# Context keys that always carry customer-written or generated text
TEXT_KEYS = frozenset({"text", "body", "content", "reply", "message_text", "caption"})


def redact_string(value: str) -> str:
    """Scrub phone numbers and e-mail addresses from free text."""
    return _EMAIL_PATTERN.sub(_REDACTED, _PHONE_PATTERN.sub(_REDACTED, value))


def redact_value(value: Any) -> str:
    """String form of `value` that is safe to log.

    Containers are summarized by shape only (dict keys, sequence length).
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return f"dict(keys={list(value.keys())})"
    if isinstance(value, (list, tuple, set)):
        return f"list(len={len(value)})"
    return f"<{type(value).__name__}>"


def phone_fingerprint(phone: str) -> str:
    """12-hex-char digest of the phone's digits.

    Formatting does not matter ("+57 300 ..." and "57300..." match), so log
    lines of one contact can be grouped without exposing the number.
    """
    digits = re.sub(r"\D", "", phone or "")
    return hashlib.sha256(digits.encode()).hexdigest()[:12]


def _redact_field(key: str, value: Any) -> str:
    if value is not None and key in PHONE_KEYS:
        return f"phone#{phone_fingerprint(str(value))}"
    if value is not None and key in TEXT_KEYS:
        return f"{_REDACTED} len={len(str(value))}"
    return redact_value(value)


def safe_log_context(**kwargs: Any) -> dict[str, str]:
    """Build the `extra_fields` dict for a log call."""
    return {key: _redact_field(key, value) for key, value in kwargs.items()}
