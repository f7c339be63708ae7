"""
Helper functions shared by the models and the client
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

# Python only parses up to microseconds; the API sends nanoseconds
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse an API timestamp

    Accepts datetimes, ISO 8601 strings (with a trailing "Z" and up to
    nanosecond precision) and None. Naive values are treated as UTC.

    Args:
        value: Raw value from a payload

    Returns:
        Aware datetime or None if the value is empty or unparsable
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION_RE.sub(r".\1", text)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime the way the API sends them"""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def encode_uri_component(value: Any) -> str:
    """JSON-encode a value and percent-encode it for use in a query string"""
    return quote(json.dumps(value, separators=(",", ":")), safe="~()*!.'")
