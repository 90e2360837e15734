from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Mapping

from schedule_core.calendar_math import (
    iso_to_rule_weekday,
    iso_weekday,
    parse_date,
    parse_hhmm,
    teaching_week,
    time_from_hhmm,
)
from schedule_core.occurrences import DateWindow, Occurrence, generate
from schedule_core.rules import weekly_rule_for_parity

log = logging.getLogger(__name__)

EXAM = "exam"
PARITIES = ("all", "odd", "even")
EXAM_CONTENT_PREFIX = "[Exam] "


@dataclass(frozen=True)
class Period:
    index: int
    start: str
    end: str


@dataclass(frozen=True)
class TimeScheme:
    id: str
    name: str
    periods: tuple[Period, ...]

    def period(self, index: int | None) -> Period | None:
        if index is None:
            return None
        for period in self.periods:
            if period.index == index:
                return period
        return None

    def time_range(self, start_index: int | None, end_index: int | None) -> tuple[str, str] | None:
        first = self.period(start_index)
        last = self.period(end_index if end_index is not None else start_index)
        if first is None or last is None:
            return None
        if time_from_hhmm(first.start) >= time_from_hhmm(last.end):
            return None
        return first.start, last.end


@dataclass(frozen=True)
class TimetableSemester:
    id: str
    academic_year: str
    term: str
    start_date: date
    end_date: date
    scheme_id: str | None = None

    @property
    def window(self) -> DateWindow:
        return DateWindow(self.start_date, self.end_date, anchor_date=self.start_date)

    def contains(self, value: date) -> bool:
        return self.start_date <= value <= self.end_date


@dataclass(frozen=True)
class Course:
    id: str
    semester_id: str
    type: str = "lecture"
    name: str = ""
    location: str = ""
    color: str | None = None
    weekday: int | None = None
    period_index: int | None = None
    period_end_index: int | None = None
    parity: str = "all"
    exam_date: date | None = None
    exam_start_period_index: int | None = None
    exam_end_period_index: int | None = None
    exam_start_time: str | None = None
    exam_end_time: str | None = None

    @property
    def is_exam(self) -> bool:
        return self.type == EXAM

    @property
    def effective_weekday(self) -> int | None:
        if self.is_exam:
            return iso_weekday(self.exam_date) if self.exam_date else None
        return self.weekday

    @property
    def period_range(self) -> tuple[int, int] | None:
        if self.is_exam:
            start, end = self.exam_start_period_index, self.exam_end_period_index
        else:
            start, end = self.period_index, self.period_end_index
        if start is None:
            return None
        if end is None:
            end = start
        return (start, end) if start <= end else (end, start)


@dataclass(frozen=True)
class CourseOccurrence:
    course_id: str
    date: date
    weekday: int
    teaching_week: int | None
    period_start: int | None
    period_end: int | None
    start_time: str | None
    end_time: str | None

    @property
    def time_range(self) -> tuple[str, str] | None:
        if self.start_time is None or self.end_time is None:
            return None
        return self.start_time, self.end_time


class TimetableDirectory:
    """Read-only semester and scheme lookup over normalized timetable config."""

    def __init__(
        self,
        semesters: Iterable[TimetableSemester],
        schemes: Iterable[TimeScheme],
    ) -> None:
        self._semesters = {semester.id: semester for semester in semesters}
        self._schemes = {scheme.id: scheme for scheme in schemes}

    @property
    def semesters(self) -> list[TimetableSemester]:
        return list(self._semesters.values())

    @property
    def schemes(self) -> list[TimeScheme]:
        return list(self._schemes.values())

    def get_semester(self, semester_id: str | None) -> TimetableSemester | None:
        if semester_id is None:
            return None
        return self._semesters.get(str(semester_id))

    def get_active_scheme(self, semester: TimetableSemester | None) -> TimeScheme | None:
        if semester is None or semester.scheme_id is None:
            return None
        return self._schemes.get(semester.scheme_id)


def _pick(raw: Mapping[str, Any], key: str, *aliases: str, default: Any = None) -> Any:
    for candidate in (key, *aliases):
        if candidate in raw and raw[candidate] is not None:
            return raw[candidate]
    return default


def _optional_int(value: Any, *, label: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} must be an integer, got {value!r}") from exc


def normalize_scheme(raw: Mapping[str, Any]) -> TimeScheme:
    scheme_id = str(_pick(raw, "id", default="")).strip()
    if not scheme_id:
        raise ValueError("Each time scheme requires an `id`.")
    periods: list[Period] = []
    seen: set[int] = set()
    for period_raw in raw.get("periods", []) or []:
        index = _optional_int(period_raw.get("index"), label=f"Scheme '{scheme_id}' period index")
        if index is None:
            raise ValueError(f"Scheme '{scheme_id}' has a period without `index`.")
        if index in seen:
            raise ValueError(f"Scheme '{scheme_id}' defines period {index} more than once.")
        seen.add(index)
        periods.append(
            Period(
                index=index,
                start=parse_hhmm(period_raw.get("start")),
                end=parse_hhmm(period_raw.get("end")),
            )
        )
    return TimeScheme(
        id=scheme_id,
        name=str(raw.get("name") or scheme_id),
        periods=tuple(sorted(periods, key=lambda period: period.index)),
    )


def normalize_semester(raw: Mapping[str, Any]) -> TimetableSemester:
    semester_id = str(_pick(raw, "id", default="")).strip()
    if not semester_id:
        raise ValueError("Each semester requires an `id`.")
    start_date = parse_date(_pick(raw, "start_date", "startDate"))
    end_date = parse_date(_pick(raw, "end_date", "endDate"))
    if end_date < start_date:
        raise ValueError(
            f"Semester '{semester_id}' ends ({end_date}) before it starts ({start_date})."
        )
    scheme_id = _pick(raw, "scheme_id", "schemeId")
    return TimetableSemester(
        id=semester_id,
        academic_year=str(_pick(raw, "academic_year", "academicYear", default="")),
        term=str(_pick(raw, "term", default="")),
        start_date=start_date,
        end_date=end_date,
        scheme_id=str(scheme_id) if scheme_id is not None else None,
    )


def normalize_course(raw: Mapping[str, Any]) -> Course:
    course_id = str(_pick(raw, "id", default="")).strip()
    if not course_id:
        raise ValueError("Each course requires an `id`.")
    semester_id = _pick(raw, "semester_id", "semesterId")
    if semester_id is None:
        raise ValueError(f"Course '{course_id}' requires a `semester_id`.")
    course_type = str(_pick(raw, "type", default="lecture")).strip() or "lecture"
    common = {
        "id": course_id,
        "semester_id": str(semester_id),
        "type": course_type,
        "name": str(_pick(raw, "name", default=course_id)),
        "location": str(_pick(raw, "location", default="")),
        "color": _pick(raw, "color"),
    }

    if course_type == EXAM:
        exam_date_raw = _pick(raw, "exam_date", "examDate")
        if exam_date_raw is None:
            raise ValueError(f"Exam '{course_id}' requires an `exam_date`.")
        start_time = _pick(raw, "exam_start_time", "examStartTime")
        end_time = _pick(raw, "exam_end_time", "examEndTime")
        return Course(
            **common,
            exam_date=parse_date(exam_date_raw),
            exam_start_period_index=_optional_int(
                _pick(raw, "exam_start_period_index", "examStartPeriodIndex"),
                label=f"Exam '{course_id}' start period",
            ),
            exam_end_period_index=_optional_int(
                _pick(raw, "exam_end_period_index", "examEndPeriodIndex"),
                label=f"Exam '{course_id}' end period",
            ),
            exam_start_time=parse_hhmm(start_time) if start_time is not None else None,
            exam_end_time=parse_hhmm(end_time) if end_time is not None else None,
        )

    weekday = _optional_int(_pick(raw, "weekday"), label=f"Course '{course_id}' weekday")
    if weekday is None or not 1 <= weekday <= 7:
        raise ValueError(f"Course '{course_id}' weekday must be 1-7 (Mon-Sun), got {weekday!r}")
    parity = str(_pick(raw, "parity", default="all")).strip().lower()
    if parity not in PARITIES:
        raise ValueError(f"Course '{course_id}' parity must be one of {PARITIES}, got {parity!r}")
    return Course(
        **common,
        weekday=weekday,
        period_index=_optional_int(
            _pick(raw, "period_index", "periodIndex"),
            label=f"Course '{course_id}' period",
        ),
        period_end_index=_optional_int(
            _pick(raw, "period_end_index", "periodEndIndex"),
            label=f"Course '{course_id}' end period",
        ),
        parity=parity,
    )


def resolve_time_range(course: Course, scheme: TimeScheme | None) -> tuple[str, str] | None:
    if course.is_exam and course.exam_start_time and course.exam_end_time:
        if time_from_hhmm(course.exam_start_time) < time_from_hhmm(course.exam_end_time):
            return course.exam_start_time, course.exam_end_time
        return None
    if scheme is None:
        return None
    period_range = course.period_range
    if period_range is None:
        return None
    return scheme.time_range(*period_range)


def expand_course(
    course: Course,
    semester: TimetableSemester | None,
    scheme: TimeScheme | None,
) -> list[CourseOccurrence]:
    if semester is None:
        log.debug("Course '%s' has no semester; nothing to expand", course.id)
        return []
    time_range = resolve_time_range(course, scheme)
    start_time, end_time = time_range if time_range else (None, None)
    period_range = course.period_range
    period_start, period_end = period_range if period_range else (None, None)

    if course.is_exam:
        if course.exam_date is None:
            return []
        dates = [course.exam_date]
    else:
        if course.weekday is None:
            return []
        rule = weekly_rule_for_parity(iso_to_rule_weekday(course.weekday), course.parity)
        dates = generate(rule, semester.window)

    log.debug("Course '%s' expands to %d occurrence(s)", course.id, len(dates))
    return [
        CourseOccurrence(
            course_id=course.id,
            date=day,
            weekday=iso_weekday(day),
            teaching_week=teaching_week(day, semester),
            period_start=period_start,
            period_end=period_end,
            start_time=start_time,
            end_time=end_time,
        )
        for day in dates
    ]


def course_occurrences(course: Course, lookup: Any) -> list[Occurrence]:
    """Agenda-ready occurrences for ``course`` using a semester/scheme lookup."""
    semester = lookup.get_semester(course.semester_id)
    scheme = lookup.get_active_scheme(semester)
    label = course.name or course.id
    if course.location:
        label = f"{label} @ {course.location}"
    if course.is_exam:
        label = f"{EXAM_CONTENT_PREFIX}{label}"
    return [
        Occurrence(
            date=occurrence.date,
            content=label,
            time=occurrence.start_time,
            end_time=occurrence.end_time,
            priority="high" if course.is_exam else "medium",
            course_type=course.type,
        )
        for occurrence in expand_course(course, semester, scheme)
    ]
