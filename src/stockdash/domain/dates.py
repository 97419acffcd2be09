from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from stockdash.domain.errors import ValidationError

PERIODS = ("all", "today", "week", "month", "custom")


def normalize_date(value, default_today: bool = True) -> str:
    """'YYYY-MM-DD' from a date, datetime or ISO string (time part ignored)."""
    if value in (None, ""):
        if default_today:
            return date.today().isoformat()
        raise ValidationError("Date is required.")
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()[:10]
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value!r}. Use YYYY-MM-DD.") from exc


def date_window(
    period: str = "all",
    start=None,
    end=None,
    today: Optional[date] = None,
) -> tuple[Optional[str], Optional[str]]:
    """Inclusive (start, end) bounds for a report period; (None, None) means unbounded."""
    today = today or date.today()
    if period == "all":
        return None, None
    if period == "today":
        return today.isoformat(), today.isoformat()
    if period == "week":
        return (today - timedelta(days=7)).isoformat(), today.isoformat()
    if period == "month":
        return today.replace(day=1).isoformat(), today.isoformat()
    if period == "custom":
        lo = normalize_date(start, default_today=False) if start else None
        hi = normalize_date(end, default_today=False) if end else None
        if lo and hi and lo > hi:
            raise ValidationError("Start date must be on or before end date.")
        return lo, hi
    raise ValidationError(f"Unknown period: {period}")


def in_window(value: str, start: Optional[str], end: Optional[str]) -> bool:
    day = (value or "")[:10]
    if start and day < start:
        return False
    if end and day > end:
        return False
    return True
