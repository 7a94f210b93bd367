from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

from chatroom.core.config import MESSAGE_TIME_FORMAT


def now_ms() -> int:
    """Return wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def ensure_aware_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure the given datetime is timezone-aware in UTC.

    - If dt is None, returns None.
    - If dt is naive, interpret it as local time and convert to UTC.
    - If dt has a timezone, convert to UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        # Treat naive timestamps as local time, then convert to UTC
        try:
            local_tz = datetime.now().astimezone().tzinfo
            return dt.replace(tzinfo=local_tz).astimezone(timezone.utc)
        except Exception:
            # Fallback: assume UTC if local tz resolution fails
            return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339/ISO8601 string with 'Z' suffix for UTC.

    Returns None if dt is None.
    """
    if dt is None:
        return None
    s = ensure_aware_utc(dt).isoformat()
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s


def format_clock(epoch_ms: Optional[int] = None) -> str:
    """Format epoch milliseconds (default: now) as a local ``HH:MM:SS`` clock string."""
    if epoch_ms is None:
        epoch_ms = now_ms()
    return datetime.fromtimestamp(epoch_ms / 1000.0).strftime(MESSAGE_TIME_FORMAT)


__all__ = [
    "now_ms",
    "ensure_aware_utc",
    "isoformat_utc",
    "format_clock",
]
