# exam_portal/utils/dates.py
from datetime import datetime, timezone


def utcnow():
    """Naive UTC now, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value):
    """Parse an ISO-8601 string into a naive UTC datetime.

    Raises ValueError for anything that is not a valid timestamp.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("timestamp must be an ISO-8601 string")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def isoformat(value):
    return value.isoformat() if value else None
