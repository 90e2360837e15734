from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from itertools import islice
from typing import Any, Iterator, Mapping

from schedule_core.calendar_math import (
    add_months,
    date_key,
    month_diff,
    parse_date,
    rule_weekday,
    week_index,
)
from schedule_core.rules import (
    CUSTOM_COUNT,
    ONCE,
    UNIT_DAY,
    UNIT_MONTH,
    UNIT_WEEK,
    RecurrenceRule,
    normalize_rule,
)

log = logging.getLogger(__name__)

# Span used when a window carries no end date.
DEFAULT_SPAN_DAYS = 365
# Hard horizon after the anchor; no series is expanded past it.
MAX_SERIES_DAYS = 366 * 50


@dataclass(frozen=True)
class DateWindow:
    start_date: date
    end_date: date | None = None
    anchor_date: date | None = None

    @property
    def anchor(self) -> date:
        return self.anchor_date or self.start_date

    @property
    def horizon(self) -> date:
        return self.anchor + timedelta(days=MAX_SERIES_DAYS)

    @property
    def resolved_end(self) -> date:
        if self.end_date is not None:
            return self.end_date
        return self.start_date + timedelta(days=DEFAULT_SPAN_DAYS - 1)


@dataclass(frozen=True)
class Occurrence:
    date: date
    content: str = ""
    time: str | None = None
    end_time: str | None = None
    priority: str = "medium"
    course_type: str | None = None

    @property
    def date_key(self) -> str:
        return date_key(self.date)


def make_window(
    start_date: str | date,
    end_date: str | date | None = None,
    anchor_date: str | date | None = None,
) -> DateWindow:
    return DateWindow(
        start_date=parse_date(start_date),
        end_date=parse_date(end_date) if end_date is not None else None,
        anchor_date=parse_date(anchor_date) if anchor_date is not None else None,
    )


def as_window(value: Any) -> DateWindow:
    if isinstance(value, DateWindow):
        return value
    if isinstance(value, Mapping):
        return make_window(
            value.get("start_date", value.get("startDate")),
            value.get("end_date", value.get("endDate")),
            value.get("anchor_date", value.get("anchorDate")),
        )
    if isinstance(value, (tuple, list)) and len(value) in {2, 3}:
        return make_window(*value)
    raise TypeError(f"Expected a DateWindow, mapping or (start, end) pair, got {value!r}")


def _ceil_div(numerator: int, denominator: int) -> int:
    return -(-numerator // denominator)


def _step_days(rule: RecurrenceRule) -> int | None:
    unit = rule.step_unit
    if unit == UNIT_DAY:
        return rule.interval
    if unit == UNIT_WEEK:
        return rule.interval * 7
    return None


def _month_target(rule: RecurrenceRule, anchor: date, months: int) -> date:
    day = rule.day_of_month or anchor.day
    return add_months(anchor.replace(day=1), months, day=day)


def _matches_week(rule: RecurrenceRule, anchor: date, day: date) -> bool:
    index = week_index(day, anchor)
    if index < 0 or index % rule.effective_interval != 0:
        return False
    parity = rule.parity
    if parity is not None and index % 2 != parity:
        return False
    return rule_weekday(day) in rule.days


def _series(rule: RecurrenceRule, anchor: date, first: date, limit: date) -> Iterator[date]:
    """Ascending dates of ``rule`` in ``[first, limit]``; ``first`` is never before ``anchor``."""
    if rule.type == ONCE:
        if first <= anchor <= limit:
            yield anchor
        return

    if rule.is_weekly_family:
        day = first
        while day <= limit:
            if _matches_week(rule, anchor, day):
                yield day
            day += timedelta(days=1)
        return

    step = _step_days(rule)
    if step is not None:
        offset = _ceil_div((first - anchor).days, step) * step
        day = anchor + timedelta(days=offset)
        while day <= limit:
            yield day
            day += timedelta(days=step)
        return

    if rule.step_unit == UNIT_MONTH:
        months = (month_diff(anchor, first) // rule.interval) * rule.interval
        while True:
            target = _month_target(rule, anchor, months)
            if target > limit:
                return
            if target >= first:
                yield target
            months += rule.interval

    log.warning("Recurrence rule %r has no stepping; producing no occurrences", rule)


def generate(rule: Any, window: Any) -> list[date]:
    rule = normalize_rule(rule)
    if not rule.is_valid:
        return []
    window = as_window(window)
    anchor = window.anchor
    start = window.start_date

    if rule.type == CUSTOM_COUNT:
        series = islice(_series(rule, anchor, anchor, window.horizon), rule.count)
        return [day for day in series if day >= start]

    end = min(window.resolved_end, window.horizon)
    if end < start:
        return []
    return list(_series(rule, anchor, max(start, anchor), end))


def _series_ordinal(rule: RecurrenceRule, anchor: date, day: date) -> int | None:
    """1-based position of ``day`` in the series from ``anchor``, or None if it is not a member."""
    delta = (day - anchor).days
    if rule.type == ONCE:
        return 1 if delta == 0 else None

    if rule.is_weekly_family:
        if not _matches_week(rule, anchor, day):
            return None
        index = delta // 7
        earlier_weeks = _ceil_div(index, rule.effective_interval)
        block_start = anchor + timedelta(days=index * 7)
        in_block = sum(
            1
            for offset in range((day - block_start).days + 1)
            if rule_weekday(block_start + timedelta(days=offset)) in rule.days
        )
        return earlier_weeks * len(rule.days) + in_block

    step = _step_days(rule)
    if step is not None:
        if delta % step != 0:
            return None
        return delta // step + 1

    if rule.step_unit == UNIT_MONTH:
        months = month_diff(anchor, day)
        if months < 0 or months % rule.interval != 0:
            return None
        if _month_target(rule, anchor, months) != day:
            return None
        skipped_first = 1 if _month_target(rule, anchor, 0) < anchor else 0
        return months // rule.interval + 1 - skipped_first

    return None


def is_active(rule: Any, window: Any, day: str | date) -> bool:
    rule = normalize_rule(rule)
    if not rule.is_valid:
        return False
    window = as_window(window)
    day = parse_date(day)
    anchor = window.anchor
    if day < window.start_date or day < anchor or day > window.horizon:
        return False
    if rule.type != CUSTOM_COUNT and day > window.resolved_end:
        return False

    ordinal = _series_ordinal(rule, anchor, day)
    if ordinal is None:
        return False
    if rule.type == CUSTOM_COUNT:
        return ordinal <= rule.count
    return True
