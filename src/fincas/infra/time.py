"""Time utilities for consistent timestamp handling."""

import os
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

# Listings are in Colombia; day numbers typed by customers refer to local days
DEFAULT_LOCAL_TIMEZONE = "America/Bogota"


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def local_timezone() -> ZoneInfo:
    """Timezone used to interpret day numbers in customer messages."""
    return ZoneInfo(os.environ.get("LOCAL_TIMEZONE", DEFAULT_LOCAL_TIMEZONE))


def local_now() -> datetime:
    """Current time in the local business timezone."""
    return datetime.now(local_timezone())
