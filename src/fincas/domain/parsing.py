"""Deterministic intent parsing from customer messages.

NO LLM. Uses regex only.
Security: NEVER log raw text (PII).
"""

import re
from datetime import date, datetime, timedelta, tzinfo

from fincas.domain.intents import LocationDatesRequest, SingleListingRequest
from fincas.infra.time import local_timezone

# Listing name characters (spanish letters, digits, spaces, '#')
_TERM = r"([a-záéíóúñ0-9\s#]+)"

# Priority order: the first pattern yielding an acceptable term wins
_SINGLE_LISTING_PATTERNS = [
    re.compile(
        rf"(?:quiero\s+)?(?:ver|mostrar)\s+(?:la\s+)?(?:finca\s+)?(?:de\s+)?{_TERM}",
        re.IGNORECASE,
    ),
    re.compile(rf"(?:la\s+)?finca\s+(?:de\s+)?{_TERM}", re.IGNORECASE),
    re.compile(rf"(?:ver|mostrar)\s+{_TERM}", re.IGNORECASE),
]

# Captures that are just a leftover article, not a name
_STRAY_WORDS = {"la", "el", "de", "un", "una"}

_MIN_MESSAGE_LENGTH = 4
_MIN_TERM_LENGTH = 2

# "para restrepo del ..." / "en girardot 20 al 22"
_LOCATION_PATTERN = re.compile(
    r"\b(?:para|en)\s+([a-záéíóúñ\s]+?)(?:\s+del\s|\s+para\s|\s+\d|$)",
    re.IGNORECASE,
)

# "del 20 al 21" / "20 al 21"
_DAY_RANGE_PATTERN = re.compile(r"(?:del\s+)?(\d{1,2})\s*al\s*(\d{1,2})", re.IGNORECASE)


def parse_single_listing_request(text: str) -> SingleListingRequest | None:
    """Detect a request to see one listing by name.

    Args:
        text: Customer message. NEVER logged.

    Returns:
        SingleListingRequest with the trimmed search term, or None.
    """
    msg = text.strip()
    if len(msg) < _MIN_MESSAGE_LENGTH:
        return None

    for pattern in _SINGLE_LISTING_PATTERNS:
        match = pattern.search(msg)
        if not match:
            continue
        term = match.group(1).strip()
        if len(term) >= _MIN_TERM_LENGTH and term.lower() not in _STRAY_WORDS:
            return SingleListingRequest(term=term)

    return None


def _day_start(year: int, month: int, day: int, tz: tzinfo) -> datetime:
    # Offsets from day 1 so that e.g. day 31 of a 30-day month lands on the 1st
    return datetime(year, month, 1, tzinfo=tz) + timedelta(days=day - 1)


def parse_location_and_dates(
    text: str,
    *,
    reference_date: date | None = None,
    tz: tzinfo | None = None,
) -> LocationDatesRequest | None:
    """Extract a location and a day range within the current month.

    Both parts are required. Days are resolved against the month and year of
    `reference_date` (default: today in the local timezone). Month rollover
    ("del 30 al 2") is not handled.

    Args:
        text: Customer message. NEVER logged.
        reference_date: Date supplying month and year.
        tz: Timezone of the resulting datetimes (default: LOCAL_TIMEZONE).

    Returns:
        LocationDatesRequest with exclusive exit, or None.
    """
    msg = text.strip().lower()

    location_match = _LOCATION_PATTERN.search(msg)
    location = " ".join(location_match.group(1).split()) if location_match else ""
    days_match = _DAY_RANGE_PATTERN.search(msg)
    if not location or not days_match:
        return None

    first_day = int(days_match.group(1))
    last_day = int(days_match.group(2))
    if not (1 <= first_day <= 31) or not (1 <= last_day <= 31):
        return None

    tz = tz or local_timezone()
    if reference_date is None:
        reference_date = datetime.now(tz).date()

    year, month = reference_date.year, reference_date.month
    return LocationDatesRequest(
        location=location,
        entry=_day_start(year, month, first_day, tz),
        exit=_day_start(year, month, last_day + 1, tz),
    )


class RegexIntentParser:
    """Default IntentParser backed by the regex functions above."""

    def __init__(self, *, tz: tzinfo | None = None) -> None:
        self._tz = tz

    def single_listing(self, text: str) -> SingleListingRequest | None:
        return parse_single_listing_request(text)

    def location_and_dates(self, text: str) -> LocationDatesRequest | None:
        return parse_location_and_dates(text, tz=self._tz)
