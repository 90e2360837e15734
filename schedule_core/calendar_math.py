from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta
from typing import Any

WEEKDAY_TO_INT = {
    "Sun": 0,
    "Mon": 1,
    "Tue": 2,
    "Wed": 3,
    "Thu": 4,
    "Fri": 5,
    "Sat": 6,
}

DATE_KEY_FORMAT = "%Y-%m-%d"


def parse_date(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO date string, got: {value!r}")
    return datetime.strptime(value.strip(), DATE_KEY_FORMAT).date()


def parse_hhmm(value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        # YAML 1.1 reads an unquoted 8:00 as sexagesimal minutes (480).
        if not 0 <= value < 24 * 60:
            raise ValueError(f"Expected time in HH:MM format, got: {value!r}")
        return f"{value // 60:02d}:{value % 60:02d}"
    text = str(value or "").strip()
    try:
        parsed = datetime.strptime(text, "%H:%M").time()
    except ValueError as exc:
        raise ValueError(f"Expected time in HH:MM format, got: {value!r}") from exc
    return parsed.strftime("%H:%M")


def time_from_hhmm(value: str) -> time:
    return datetime.strptime(value, "%H:%M").time()


def date_key(value: date) -> str:
    return value.strftime(DATE_KEY_FORMAT)


def add_days(value: date, n: int) -> date:
    return value + timedelta(days=n)


def date_range(start: date, end: date) -> list[date]:
    if end < start:
        return []
    days = (end - start).days
    return [start + timedelta(days=i) for i in range(days + 1)]


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(value: date, n: int, *, day: int | None = None) -> date:
    """Shift ``value`` by ``n`` months, clamping the day to the target month.

    ``day`` overrides the nominal day of month (e.g. a rule's ``day_of_month``),
    which is clamped the same way.
    """
    month_index = value.month - 1 + n
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    target_day = value.day if day is None else day
    return date(year, month, min(target_day, days_in_month(year, month)))


def month_diff(start: date, end: date) -> int:
    return (end.year - start.year) * 12 + (end.month - start.month)


def start_of_week(value: date) -> date:
    return value - timedelta(days=value.weekday())


def iso_week(value: date) -> tuple[int, int]:
    """(week-year, week); the week belongs to the year holding its Thursday."""
    week_year, week, _ = value.isocalendar()
    return week_year, week


def iso_weekday(value: date) -> int:
    """Monday=1 .. Sunday=7, the numbering used by timetable courses."""
    return value.isoweekday()


def rule_weekday(value: date) -> int:
    """Sunday=0 .. Saturday=6, the numbering used by recurrence rule ``days``."""
    return value.isoweekday() % 7


def iso_to_rule_weekday(weekday: int) -> int:
    return weekday % 7


def weekday_from_name(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Unknown weekday: {value!r}")
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise ValueError(f"Weekday must be 0-6 (Sun-Sat), got {value}")
    text = str(value or "").strip()
    if text.isdigit():
        return weekday_from_name(int(text))
    key = text[:3].capitalize()
    if key not in WEEKDAY_TO_INT:
        raise ValueError(f"Unknown weekday: {value!r}")
    return WEEKDAY_TO_INT[key]


def week_index(value: date, anchor: date) -> int:
    return (value - anchor).days // 7


def teaching_week(value: date, semester: Any) -> int | None:
    start = semester.start_date
    end = semester.end_date
    if value < start or value > end:
        return None
    return (value - start).days // 7 + 1
