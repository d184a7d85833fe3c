"""Date and urgency utilities.

Objective:
    Centralize the due-date arithmetic used by every categorization in the
    system (email buckets, dashboard stats, alerts). All functions truncate
    both sides to the calendar date before comparing, so the time of day of
    either the due date or the reference time never changes a result, and a
    communication can never be both overdue and due soon.

High-level call tree:
    - :func:`days_until_due`
        - :func:`to_calendar_date`
            - :func:`to_local_naive`
    - :func:`is_overdue` / :func:`is_due_soon` -> :func:`days_until_due`
    - :func:`resolve_date_range` (composed email date filters)
    - :func:`same_local_day` / :func:`within_last` (timestamp buckets)
    - :func:`format_long_date` / :func:`format_short_date` (email text)

Operational notes:
    - Aware datetimes are converted to the server's local time before
      truncation; naive datetimes are assumed to already be local.
    - ISO strings are accepted everywhere a date is expected since stored
      records are JSON.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional, Union

DateLike = Union[date, datetime, str, None]

DATE_RANGE_SELECTORS = ("today", "yesterday", "this-week", "last-week")


def to_local_naive(value: datetime) -> datetime:
    """Return ``value`` as a naive datetime in local time.

    Args:
        value: Naive (assumed local) or aware datetime.

    Returns:
        datetime: Naive local datetime.
    """
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def parse_timestamp(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into a naive local datetime.

    A trailing ``Z`` is accepted. Blank values return None.

    Args:
        value: Datetime, ISO string or None.

    Returns:
        Optional[datetime]: Naive local datetime, or None.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local_naive(value)
    text = str(value).strip()
    if not text:
        return None
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    return to_local_naive(parsed)


def to_calendar_date(value: DateLike) -> Optional[date]:
    """Truncate a date-like value to its calendar date.

    Args:
        value: ``date``, ``datetime``, ISO date/datetime string, or None.

    Returns:
        Optional[date]: Calendar date, or None when absent/blank.

    Raises:
        ValueError: If a string cannot be parsed as an ISO date or datetime.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_local_naive(value).date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if len(text) == 10:
        return date.fromisoformat(text)
    parsed = parse_timestamp(text)
    return parsed.date() if parsed else None


def days_until_due(due_date: DateLike, today: Union[date, datetime]) -> Optional[int]:
    """Count calendar days from ``today`` to ``due_date``.

    Examples:
        - due yesterday -> ``-1``
        - due today (any time) -> ``0``
        - due in three days -> ``3``

    Args:
        due_date: Due date (optional).
        today: Reference date or datetime.

    Returns:
        Optional[int]: Day difference, or None when there is no due date.
    """
    due = to_calendar_date(due_date)
    if due is None:
        return None
    reference = to_calendar_date(today)
    return (due - reference).days


def is_overdue(due_date: DateLike, today: Union[date, datetime]) -> bool:
    """Return True when the due date is before ``today``'s calendar date."""
    days = days_until_due(due_date, today)
    return days is not None and days < 0


def is_due_soon(
    due_date: DateLike,
    today: Union[date, datetime],
    window_days: int = 7,
) -> bool:
    """Return True when the due date falls within ``[today, today + window_days]``."""
    days = days_until_due(due_date, today)
    return days is not None and 0 <= days <= window_days


def describe_due(days: int) -> str:
    """Render a non-negative day count as ``today``/``tomorrow``/``in N days``."""
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    return f"in {days} days"


def start_of_day(value: datetime) -> datetime:
    """Return local midnight of ``value``'s calendar day."""
    return datetime.combine(to_local_naive(value).date(), time.min)


def resolve_date_range(
    selector: Optional[str], now: datetime
) -> Optional[tuple[datetime, datetime]]:
    """Resolve a named date range into a half-open ``[start, end)`` window.

    Fixed table:
        - ``today``: [midnight today, next midnight)
        - ``yesterday``: the previous day
        - ``this-week``: [most recent Sunday midnight, +7 days)
        - ``last-week``: the ``this-week`` window shifted back 7 days

    Unrecognized selectors (including ``all``) disable range filtering.

    Args:
        selector: Range name.
        now: Reference time.

    Returns:
        Optional[tuple[datetime, datetime]]: Window, or None for no filtering.
    """
    midnight = start_of_day(now)
    if selector == "today":
        return midnight, midnight + timedelta(days=1)
    if selector == "yesterday":
        start = midnight - timedelta(days=1)
        return start, midnight
    if selector in ("this-week", "last-week"):
        # Python weekday(): Monday=0 .. Sunday=6; days since Sunday:
        since_sunday = (midnight.weekday() + 1) % 7
        start = midnight - timedelta(days=since_sunday)
        if selector == "last-week":
            start -= timedelta(days=7)
        return start, start + timedelta(days=7)
    return None


def same_local_day(value: Union[datetime, str, None], now: datetime) -> bool:
    """Return True when the timestamp falls on ``now``'s local calendar day."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return False
    return parsed.date() == to_local_naive(now).date()


def within_last(value: Union[datetime, str, None], now: datetime, delta: timedelta) -> bool:
    """Return True when ``now - delta <= value <= now``."""
    parsed = parse_timestamp(value)
    if parsed is None:
        return False
    reference = to_local_naive(now)
    return reference - delta <= parsed <= reference


def format_long_date(value: Union[date, datetime]) -> str:
    """Format as ``Sunday, October 18, 2026``."""
    day = to_calendar_date(value)
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"


def format_short_date(value: Union[date, datetime]) -> str:
    """Format as ``10/18/2026`` (no zero padding)."""
    day = to_calendar_date(value)
    return f"{day.month}/{day.day}/{day.year}"
