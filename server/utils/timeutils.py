# Timestamp helpers
# Documents store UTC timestamps as fixed-width ISO strings so that range
# filters compare correctly as text

from datetime import datetime, timezone
from typing import Optional

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Current UTC time (timezone aware)."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """
    Format a datetime for storage

    Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored timestamp back into an aware datetime."""
    if not value:
        return None
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)
