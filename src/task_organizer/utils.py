"""Provide utility helpers for timestamps."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


def _parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 value; naive timestamps are kept naive (local time)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        # Epoch milliseconds, as emitted by browser clients.
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    try:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _format_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None
