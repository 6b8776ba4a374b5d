# Overview: UTC clock and calendar helpers for order, payment and invoice timestamps.

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

"""
All stored timestamps (order confirmed_at/cancelled_at, payment_date,
verification_date, invoice due_date, stock adjusted_at) are UTC-naive.
API output carries them with a trailing 'Z'.
"""

PERIODS = ("today", "week", "month", "quarter")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse client-supplied datetimes (invoice due_date, CLI --as-of) to
    UTC-naive.

    "" and None give None. Values without an offset are taken as UTC; "Z" and
    "+HH:MM" offsets are converted. Raises ValueError on anything else.
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    parsed = datetime.fromisoformat(s)
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Whole-second ISO-8601 with 'Z'; naive values are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def period_start(period: str, now: datetime) -> datetime:
    """
    Start of the calendar period containing now: midnight today, Monday of
    this week, the 1st of this month, or the 1st of this quarter's first month.
    """
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "today":
        return today
    if period == "week":
        return today - timedelta(days=today.weekday())
    if period == "month":
        return today.replace(day=1)
    if period == "quarter":
        return today.replace(month=3 * ((today.month - 1) // 3) + 1, day=1)
    raise ValueError(f"Unknown period {period!r}")


def invoice_due_date(days: int, issued_at: Optional[datetime] = None) -> datetime:
    """issued_at (default now) plus the payment-terms days."""
    return (issued_at or utcnow()) + timedelta(days=days)
