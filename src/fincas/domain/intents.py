"""Intent parsing result models.

NO raw message text stored. Only the extracted fields.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class SingleListingRequest:
    """Customer asked to see one listing by name ("quiero ver la finca de X")."""

    term: str


@dataclass(frozen=True)
class LocationDatesRequest:
    """Customer gave a location and a day range.

    `exit` is exclusive: midnight after the last night, so the stay is the
    half-open interval [entry, exit).
    """

    location: str
    entry: datetime
    exit: datetime

    def nights(self) -> int:
        return (self.exit - self.entry).days


class IntentParser(Protocol):
    """Strategy turning a message into structured requests (or None)."""

    def single_listing(self, text: str) -> SingleListingRequest | None: ...

    def location_and_dates(self, text: str) -> LocationDatesRequest | None: ...
