"""Display helpers for voicemail cards."""

from __future__ import annotations

import re
from datetime import datetime, timezone

_CALLER_DISPLAY_LIMIT = 15

_PHONE_RE = re.compile(r"\+?\d[\d\s\-()]+")
_PHONE_PUNCTUATION_RE = re.compile(r"[\s\-()]")


def format_duration(duration_seconds: int | None) -> str:
    """Render a duration as ``m:ss``."""
    if not duration_seconds:
        return "0:00"
    minutes, seconds = divmod(int(duration_seconds), 60)
    return f"{minutes}:{seconds:02d}"


def format_date(value: datetime | None) -> str:
    """Render a timestamp in local time, e.g. ``3/14/2025, 9:05:00 AM``."""
    if value is None:
        return ""
    local = _aware(value).astimezone()
    hour = local.hour % 12 or 12
    meridiem = "AM" if local.hour < 12 else "PM"
    return (
        f"{local.month}/{local.day}/{local.year}, "
        f"{hour}:{local.minute:02d}:{local.second:02d} {meridiem}"
    )


def relative_time(value: datetime | None, now: datetime | None = None) -> str:
    """Render the age of ``value`` as ``Just now``, ``5 minutes ago``, ``2 days ago``..."""
    if value is None:
        return ""
    now = _aware(now or datetime.now(timezone.utc))
    diff_seconds = (now - _aware(value)).total_seconds()

    minutes = int(diff_seconds // 60)
    if minutes < 1:
        return "Just now"
    hours = minutes // 60
    if hours < 1:
        return _plural(minutes, "minute")
    if hours < 24:
        return _plural(hours, "hour")
    return _plural(hours // 24, "day")


def caller_display(caller_address: str | None) -> str:
    """Truncate long caller addresses for the card header."""
    caller_address = caller_address or ""
    if len(caller_address) > _CALLER_DISPLAY_LIMIT:
        return caller_address[:_CALLER_DISPLAY_LIMIT] + "..."
    return caller_address


def extract_phone_number(caller_address: str | None) -> str | None:
    """Pull a dialable number out of a caller address such as ``tel:+1 (555) 010-9999``."""
    if not caller_address:
        return None
    match = _PHONE_RE.search(caller_address)
    if match is None:
        return None
    return _PHONE_PUNCTUATION_RE.sub("", match.group(0))


def card_class(is_read: bool, is_expanded: bool) -> str:
    classes = ["slds-card slds-m-bottom_small", "read-card" if is_read else "unread-card"]
    if is_expanded:
        classes.append("expanded-card")
    return " ".join(classes)


def parse_value_between_colons(value: str | None) -> str | None:
    """Return the text between the first and second ``:`` of ``value``.

    Vendor call keys look like ``<prefix>:<conversationId>:<suffix>``.
    """
    if not value:
        return None
    first = value.find(":")
    if first == -1:
        return None
    second = value.find(":", first + 1)
    if second == -1:
        return None
    return value[first + 1 : second]


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''} ago"


def _aware(value: datetime) -> datetime:
    # Naive timestamps from the platform are UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
