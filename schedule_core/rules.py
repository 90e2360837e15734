"""Recurrence rule model.

Rules arrive as loosely shaped mappings (``{"type": "weekly", "interval": 1,
"days": [1, 3]}``) from stored plans and forms. ``normalize_rule`` turns them
into a frozen :class:`RecurrenceRule`; anything that fails validation decodes
to ``INVALID_RULE`` so callers can expand it without special-casing.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from schedule_core.calendar_math import weekday_from_name
from schedule_core.schemas import RECURRENCE_RULE_SCHEMA, validation_messages

log = logging.getLogger(__name__)

ONCE = "once"
DAILY = "daily"
WEEKLY = "weekly"
MONTHLY = "monthly"
SINGLE_WEEK = "single_week"
DOUBLE_WEEK = "double_week"
CUSTOM = "custom"
CUSTOM_COUNT = "custom-count"
INVALID = "invalid"

RULE_TYPES = frozenset(
    {ONCE, DAILY, WEEKLY, MONTHLY, SINGLE_WEEK, DOUBLE_WEEK, CUSTOM, CUSTOM_COUNT}
)
WEEKLY_FAMILY = frozenset({WEEKLY, SINGLE_WEEK, DOUBLE_WEEK})

UNIT_DAY = "day"
UNIT_WEEK = "week"
UNIT_MONTH = "month"

# single_week fires in odd teaching weeks (week index 0, 2, ...), double_week in even ones.
PARITY_BY_TYPE = {SINGLE_WEEK: 0, DOUBLE_WEEK: 1}

_KEY_ALIASES = {
    "dayOfMonth": "day_of_month",
    "weekdays": "days",
}

_INT_TEXT = re.compile(r"^\s*\d+\s*$")


@dataclass(frozen=True)
class RecurrenceRule:
    type: str
    interval: int = 1
    days: frozenset[int] = field(default_factory=frozenset)
    day_of_month: int | None = None
    unit: str | None = None
    count: int | None = None

    @property
    def is_valid(self) -> bool:
        return self.type != INVALID

    @property
    def parity(self) -> int | None:
        return PARITY_BY_TYPE.get(self.type)

    @property
    def effective_interval(self) -> int:
        if self.type in PARITY_BY_TYPE:
            return 1
        return self.interval

    @property
    def is_weekly_family(self) -> bool:
        if self.type in WEEKLY_FAMILY:
            return True
        return self.type in {CUSTOM, CUSTOM_COUNT} and bool(self.days)

    @property
    def step_unit(self) -> str | None:
        if self.type == DAILY:
            return UNIT_DAY
        if self.type == MONTHLY:
            return UNIT_MONTH
        if self.type in {CUSTOM, CUSTOM_COUNT} and not self.days:
            return self.unit
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type}
        if self.type in {DAILY, WEEKLY, MONTHLY, CUSTOM, CUSTOM_COUNT}:
            data["interval"] = self.interval
        if self.days:
            data["days"] = sorted(self.days)
        if self.day_of_month is not None:
            data["day_of_month"] = self.day_of_month
        if self.unit is not None:
            data["unit"] = self.unit
        if self.count is not None:
            data["count"] = self.count
        return data


INVALID_RULE = RecurrenceRule(type=INVALID)


def _coerce_int(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and _INT_TEXT.match(value):
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _prepare_rule_mapping(raw: Mapping[str, Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for key, value in raw.items():
        data[_KEY_ALIASES.get(key, key)] = value

    for key in ("interval", "day_of_month", "count"):
        if key in data:
            data[key] = _coerce_int(data[key])

    if "days" in data and data["days"] is not None:
        days_raw = data["days"]
        if isinstance(days_raw, (str, int)):
            days_raw = [days_raw]
        try:
            data["days"] = sorted({weekday_from_name(value) for value in days_raw})
        except (TypeError, ValueError):
            pass  # left as-is so schema validation reports it
    elif "days" in data:
        data.pop("days")

    # Forms store "no weekdays" as []; a custom rule then steps by its unit.
    if data.get("days") == [] and data.get("type") in {CUSTOM, CUSTOM_COUNT}:
        data.pop("days")

    if data.get("type") in PARITY_BY_TYPE:
        data.pop("interval", None)
    return data


def rule_errors(raw: Any) -> list[str]:
    if not isinstance(raw, Mapping):
        return [f"$: rule must be a mapping, got {type(raw).__name__}"]
    return validation_messages(RECURRENCE_RULE_SCHEMA, _prepare_rule_mapping(raw))


def normalize_rule(raw: Any) -> RecurrenceRule:
    if isinstance(raw, RecurrenceRule):
        return raw
    if not isinstance(raw, Mapping):
        log.warning("Ignoring recurrence rule that is not a mapping: %r", raw)
        return INVALID_RULE

    data = _prepare_rule_mapping(raw)
    errors = validation_messages(RECURRENCE_RULE_SCHEMA, data)
    if errors:
        log.warning("Ignoring invalid recurrence rule %r: %s", dict(raw), "; ".join(errors))
        return INVALID_RULE

    rule_type = data["type"]
    days = frozenset(data.get("days") or [])
    if rule_type in {ONCE, DAILY, MONTHLY}:
        days = frozenset()
    return RecurrenceRule(
        type=rule_type,
        interval=int(data.get("interval", 1)),
        days=days,
        day_of_month=data.get("day_of_month") if rule_type in {MONTHLY, CUSTOM, CUSTOM_COUNT} else None,
        unit=data.get("unit") if rule_type in {CUSTOM, CUSTOM_COUNT} else None,
        count=data.get("count") if rule_type == CUSTOM_COUNT else None,
    )


def weekly_rule_for_parity(weekday: int, parity: str) -> RecurrenceRule:
    """Weekly rule for a 0=Sunday weekday restricted to ``all``/``odd``/``even`` weeks."""
    rule_type = {"odd": SINGLE_WEEK, "even": DOUBLE_WEEK}.get(parity, WEEKLY)
    return RecurrenceRule(type=rule_type, interval=1, days=frozenset({weekday}))
