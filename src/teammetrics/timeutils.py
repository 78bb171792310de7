"""Timestamp parsing and lookback-window helpers shared by clients and aggregation."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from .errors import DataValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse ISO8601 API timestamps into timezone-aware UTC datetimes.

    Accepts a trailing ``Z`` and Jira's colon-less offsets (``+0000``).

    Raises:
        DataValidationError: If ``value`` is not an ISO8601 timestamp.
    """
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    if len(normalized) >= 5 and normalized[-5] in "+-" and normalized[-4:].isdigit() and "T" in normalized:
        normalized = f"{normalized[:-2]}:{normalized[-2:]}"

    try:
        parsed = datetime.fromisoformat(normalized)
    except (TypeError, ValueError) as exc:
        raise DataValidationError(f"Invalid timestamp: {value!r}") from exc

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def window_dates(window_days: int, now: Optional[datetime] = None) -> List[date]:
    """Return one UTC calendar date per day of the window, oldest first, ending today."""
    today = (now or utc_now()).astimezone(timezone.utc).date()
    return [today - timedelta(days=offset) for offset in range(window_days - 1, -1, -1)]


def window_start(window_days: int, now: Optional[datetime] = None) -> datetime:
    """Return midnight UTC of the window's first day.

    Fetch filters and timelines then cover the same ``window_days`` calendar days.
    """
    return datetime.combine(window_dates(window_days, now)[0], time.min, tzinfo=timezone.utc)
