from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Mapping

from schedule_core.calendar_math import iso_weekday, teaching_week, time_from_hhmm
from schedule_core.timetable import (
    Course,
    TimetableSemester,
    normalize_course,
    resolve_time_range,
)

log = logging.getLogger(__name__)

ISO_WEEKDAY_NAMES = {
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
    7: "Sunday",
}


def _as_course(value: Course | Mapping[str, Any]) -> Course:
    if isinstance(value, Course):
        return value
    return normalize_course(value)


def _parities_can_coincide(a: str, b: str) -> bool:
    return a == "all" or b == "all" or a == b


def _regular_meets_on(
    course: Course,
    day: date,
    semester: TimetableSemester | None,
) -> bool:
    if iso_weekday(day) != course.weekday:
        return False
    if semester is None:
        return True
    week = teaching_week(day, semester)
    if week is None:
        return False
    if course.parity == "odd":
        return week % 2 == 1
    if course.parity == "even":
        return week % 2 == 0
    return True


def _share_a_date(a: Course, b: Course, semester: TimetableSemester | None) -> bool:
    if a.is_exam and b.is_exam:
        return a.exam_date is not None and a.exam_date == b.exam_date
    if a.is_exam or b.is_exam:
        exam, regular = (a, b) if a.is_exam else (b, a)
        if exam.exam_date is None:
            return False
        return _regular_meets_on(regular, exam.exam_date, semester)
    return a.weekday == b.weekday and _parities_can_coincide(a.parity, b.parity)


def _times_overlap(a: tuple[str, str] | None, b: tuple[str, str] | None) -> bool:
    if a is None or b is None:
        return False
    a_start, a_end = (time_from_hhmm(value) for value in a)
    b_start, b_end = (time_from_hhmm(value) for value in b)
    return a_start < b_end and b_start < a_end


def _periods_overlap(a: tuple[int, int] | None, b: tuple[int, int] | None) -> bool:
    if a is None or b is None:
        return False
    return a[0] <= b[1] and b[0] <= a[1]


def find_conflicts(
    candidate: Course | Mapping[str, Any],
    existing: Iterable[Course | Mapping[str, Any]],
    lookup: Any = None,
) -> list[Course]:
    candidate = _as_course(candidate)
    semester = lookup.get_semester(candidate.semester_id) if lookup is not None else None
    scheme = lookup.get_active_scheme(semester) if lookup is not None else None
    candidate_range = resolve_time_range(candidate, scheme)
    candidate_periods = candidate.period_range

    conflicts: list[Course] = []
    for raw_other in existing:
        if raw_other is candidate:
            continue
        other = _as_course(raw_other)
        if other.id == candidate.id:
            continue
        if other.semester_id != candidate.semester_id:
            continue
        if not _share_a_date(candidate, other, semester):
            continue
        if _times_overlap(candidate_range, resolve_time_range(other, scheme)) or _periods_overlap(
            candidate_periods, other.period_range
        ):
            conflicts.append(other)

    if conflicts:
        log.warning(
            "Course '%s' conflicts with %s",
            candidate.id,
            ", ".join(f"'{course.id}'" for course in conflicts),
        )
    return conflicts


def _describe_slot(course: Course, scheme: Any) -> str:
    if course.is_exam and course.exam_date is not None:
        when = course.exam_date.isoformat()
    else:
        when = ISO_WEEKDAY_NAMES.get(course.weekday, f"weekday {course.weekday}")
        if course.parity != "all":
            when = f"{when} ({course.parity} weeks)"
    period_range = course.period_range
    if period_range is not None:
        start, end = period_range
        when = f"{when}, period {start}" if start == end else f"{when}, periods {start}-{end}"
    time_range = resolve_time_range(course, scheme)
    if time_range is not None:
        when = f"{when} ({time_range[0]}-{time_range[1]})"
    return when


def conflict_reason(
    candidate: Course | Mapping[str, Any],
    conflicts: list[Course],
    lookup: Any = None,
) -> str | None:
    if not conflicts:
        return None
    candidate = _as_course(candidate)
    first = conflicts[0]
    scheme = None
    if lookup is not None:
        scheme = lookup.get_active_scheme(lookup.get_semester(first.semester_id))
    reason = (
        f"'{candidate.name or candidate.id}' overlaps "
        f"'{first.name or first.id}' on {_describe_slot(first, scheme)}"
    )
    if len(conflicts) > 1:
        reason = f"{reason} and {len(conflicts) - 1} more"
    return reason
