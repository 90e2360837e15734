from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping

from schedule_core.calendar_math import parse_date, parse_hhmm
from schedule_core.occurrences import DateWindow, Occurrence, generate, is_active
from schedule_core.rules import (
    CUSTOM_COUNT,
    ONCE,
    UNIT_DAY,
    RecurrenceRule,
    normalize_rule,
)

log = logging.getLogger(__name__)

LEARNING_PLAN = "learning_plan"
READING_PLAN = "reading_plan"
PRIORITIES = ("low", "medium", "high")


@dataclass(frozen=True)
class Plan:
    id: str
    title: str
    start_date: date
    end_date: date | None
    rule: RecurrenceRule
    source_type: str = LEARNING_PLAN
    time: str | None = None
    priority: str = "medium"
    anchor_date: date | None = None

    @property
    def window(self) -> DateWindow:
        return DateWindow(self.start_date, self.end_date, anchor_date=self.anchor_date)


def _reading_rule_default(raw: Mapping[str, Any]) -> dict[str, Any]:
    # A reading plan without an end date reads one chunk a day until its chunks run out.
    chunks = raw.get("total_chunks", raw.get("totalChunks"))
    if chunks:
        return {"type": CUSTOM_COUNT, "interval": 1, "unit": UNIT_DAY, "count": chunks}
    return {"type": ONCE}


def normalize_plan(raw: Mapping[str, Any], *, source_type: str = LEARNING_PLAN) -> Plan:
    plan_id = str(raw.get("id") or "").strip()
    if not plan_id:
        raise ValueError("Each plan requires an `id`.")
    start_raw = raw.get("start_date", raw.get("startDate"))
    if start_raw is None:
        raise ValueError(f"Plan '{plan_id}' requires a `start_date`.")
    start_date = parse_date(start_raw)
    end_raw = raw.get("end_date", raw.get("endDate"))
    end_date = parse_date(end_raw) if end_raw is not None else None
    if end_date is not None and end_date < start_date:
        raise ValueError(f"Plan '{plan_id}' ends ({end_date}) before it starts ({start_date}).")

    rule_raw = raw.get("rule", raw.get("repeat"))
    if rule_raw is None and source_type == READING_PLAN and end_date is None:
        rule_raw = _reading_rule_default(raw)
    rule = normalize_rule(rule_raw if rule_raw is not None else {"type": ONCE})

    priority = str(raw.get("priority") or "medium").strip().lower()
    if priority not in PRIORITIES:
        raise ValueError(f"Plan '{plan_id}' priority must be one of {PRIORITIES}, got {priority!r}")
    time_raw = raw.get("time")
    anchor_raw = raw.get("anchor_date", raw.get("anchorDate"))
    return Plan(
        id=plan_id,
        title=str(raw.get("title") or plan_id),
        start_date=start_date,
        end_date=end_date,
        rule=rule,
        source_type=source_type,
        time=parse_hhmm(time_raw) if time_raw is not None else None,
        priority=priority,
        anchor_date=parse_date(anchor_raw) if anchor_raw is not None else None,
    )


def plan_occurrences(plan: Plan) -> list[Occurrence]:
    if not plan.rule.is_valid:
        log.warning("Plan '%s' has an invalid rule; it produces no occurrences", plan.id)
    return [
        Occurrence(
            date=day,
            content=plan.title,
            time=plan.time,
            priority=plan.priority,
        )
        for day in generate(plan.rule, plan.window)
    ]


def due_today(plans: Iterable[Plan], today: date | str) -> list[Plan]:
    today = parse_date(today)
    return [plan for plan in plans if is_active(plan.rule, plan.window, today)]


def count_due(plans: Iterable[Plan], today: date | str) -> int:
    return len(due_today(plans, today))
