from datetime import date, datetime, timedelta, timezone

import pytest

from construction_dashboard.dates import (
    days_until_due,
    describe_due,
    format_long_date,
    format_short_date,
    is_due_soon,
    is_overdue,
    parse_timestamp,
    resolve_date_range,
    same_local_day,
    to_calendar_date,
    within_last,
)

# Wednesday
NOW = datetime(2026, 10, 14, 9, 30)


def test_days_until_due_counts_calendar_days() -> None:
    """Yesterday, today and three days out map to -1, 0 and 3."""

    assert days_until_due(date(2026, 10, 13), NOW) == -1
    assert days_until_due(date(2026, 10, 14), NOW) == 0
    assert days_until_due(date(2026, 10, 17), NOW) == 3
    assert days_until_due(None, NOW) is None


@pytest.mark.parametrize("hour", [0, 6, 12, 23])
def test_days_until_due_ignores_time_of_day(hour: int) -> None:
    """Changing the time of day of either side never changes the result."""

    due = datetime(2026, 10, 16, hour, 59)
    reference = NOW.replace(hour=23 - hour, minute=1)

    assert days_until_due(due, reference) == 2
    assert days_until_due("2026-10-16", reference) == 2
    assert days_until_due(f"2026-10-16T{hour:02d}:15:00", NOW) == 2


@pytest.mark.parametrize("offset", range(-10, 11))
@pytest.mark.parametrize("window", [0, 1, 7])
def test_overdue_and_due_soon_are_mutually_exclusive(offset: int, window: int) -> None:
    """No due date is ever both overdue and due soon."""

    due = (NOW + timedelta(days=offset)).date()

    assert not (is_overdue(due, NOW) and is_due_soon(due, NOW, window))


def test_due_soon_window_bounds() -> None:
    """The due-soon window is inclusive on both ends."""

    assert is_due_soon(date(2026, 10, 14), NOW, 7)
    assert is_due_soon(date(2026, 10, 21), NOW, 7)
    assert not is_due_soon(date(2026, 10, 22), NOW, 7)
    assert not is_due_soon(date(2026, 10, 13), NOW, 7)
    assert not is_due_soon(None, NOW)


def test_is_overdue_requires_due_date() -> None:
    """Items without a due date are never overdue."""

    assert is_overdue(date(2026, 10, 13), NOW)
    assert not is_overdue(date(2026, 10, 14), NOW)
    assert not is_overdue(None, NOW)


def test_describe_due() -> None:
    """Near days get words, later days get a count."""

    assert describe_due(0) == "today"
    assert describe_due(1) == "tomorrow"
    assert describe_due(3) == "in 3 days"


def test_to_calendar_date_handles_strings_and_blanks() -> None:
    """ISO strings are parsed; blank values map to None."""

    assert to_calendar_date("2026-10-14") == date(2026, 10, 14)
    assert to_calendar_date("2026-10-14T18:00:00") == date(2026, 10, 14)
    assert to_calendar_date("") is None
    assert to_calendar_date(None) is None

    with pytest.raises(ValueError):
        to_calendar_date("not a date")


def test_parse_timestamp_returns_naive_local_time() -> None:
    """Aware timestamps are converted to naive local datetimes."""

    parsed = parse_timestamp("2026-10-14T12:00:00Z")
    expected = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc).astimezone().replace(
        tzinfo=None
    )

    assert parsed == expected
    assert parsed.tzinfo is None
    assert parse_timestamp("  ") is None


def test_resolve_date_range_today_and_yesterday() -> None:
    """Day ranges are half-open windows starting at local midnight."""

    assert resolve_date_range("today", NOW) == (
        datetime(2026, 10, 14),
        datetime(2026, 10, 15),
    )
    assert resolve_date_range("yesterday", NOW) == (
        datetime(2026, 10, 13),
        datetime(2026, 10, 14),
    )


def test_resolve_date_range_weeks_start_on_sunday() -> None:
    """Week ranges start on the most recent Sunday."""

    assert resolve_date_range("this-week", NOW) == (
        datetime(2026, 10, 11),
        datetime(2026, 10, 18),
    )
    assert resolve_date_range("last-week", NOW) == (
        datetime(2026, 10, 4),
        datetime(2026, 10, 11),
    )

    sunday = datetime(2026, 10, 18, 8, 0)
    assert resolve_date_range("this-week", sunday)[0] == datetime(2026, 10, 18)


def test_resolve_date_range_unknown_selector_disables_filtering() -> None:
    """Unrecognized selectors return None."""

    assert resolve_date_range("all", NOW) is None
    assert resolve_date_range(None, NOW) is None


def test_timestamp_buckets() -> None:
    """same_local_day and within_last compare against the reference time."""

    assert same_local_day("2026-10-14T00:05:00", NOW)
    assert not same_local_day("2026-10-13T23:55:00", NOW)
    assert not same_local_day(None, NOW)

    assert within_last(NOW - timedelta(hours=23), NOW, timedelta(hours=24))
    assert not within_last(NOW - timedelta(hours=25), NOW, timedelta(hours=24))
    assert not within_last(NOW + timedelta(minutes=1), NOW, timedelta(hours=24))


def test_date_formatting() -> None:
    """Long and short formats used in email text."""

    assert format_long_date(NOW) == "Wednesday, October 14, 2026"
    assert format_short_date(date(2026, 3, 5)) == "3/5/2026"
