from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from schedule_core.agenda import AgendaStore, InMemoryAgendaStore, project, remove_source, source_ids
from schedule_core.conflicts import conflict_reason, find_conflicts
from schedule_core.plans import LEARNING_PLAN, READING_PLAN, Plan, normalize_plan, plan_occurrences
from schedule_core.schemas import SCHEDULE_CONFIG_SCHEMA, load_yaml_module, validation_messages
from schedule_core.timetable import (
    Course,
    TimetableDirectory,
    course_occurrences,
    normalize_course,
    normalize_scheme,
    normalize_semester,
)

log = logging.getLogger(__name__)

COURSE_SOURCE = "course"


@dataclass
class ScheduleConfig:
    directory: TimetableDirectory
    courses: list[Course] = field(default_factory=list)
    learning_plans: list[Plan] = field(default_factory=list)
    reading_plans: list[Plan] = field(default_factory=list)

    @property
    def plans(self) -> list[Plan]:
        return [*self.learning_plans, *self.reading_plans]


@dataclass
class AgendaBuildResult:
    config: ScheduleConfig
    agenda: dict[str, list[dict[str, Any]]]
    warnings: list[str]
    conflicts: dict[str, list[str]]
    output_paths: dict[str, Path]
    publish_actions: list[str] | None = None


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    return value


def load_schedule_config(config_path: str | Path) -> dict[str, Any]:
    yaml = load_yaml_module()
    raw = yaml.safe_load(Path(config_path).read_text(encoding="utf-8"))
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("Schedule config must be a mapping/object at the top level.")
    return raw


def config_errors(raw: dict[str, Any]) -> list[str]:
    return validation_messages(SCHEDULE_CONFIG_SCHEMA, _jsonable(raw))


def load_valid_schedule_config(config_path: str | Path) -> dict[str, Any]:
    raw = load_schedule_config(config_path)
    schema_errors = config_errors(raw)
    if schema_errors:
        raise ValueError(
            "Schedule config does not match the schema:\n" + "\n".join(schema_errors)
        )
    return raw


def _as_list(raw: dict[str, Any], key: str) -> list[Any]:
    value = raw.get(key) or []
    if not isinstance(value, list):
        raise ValueError(f"`{key}` must be a list when provided.")
    return value


def normalize_schedule_config(raw: dict[str, Any]) -> ScheduleConfig:
    schemes = [normalize_scheme(item) for item in _as_list(raw, "schemes")]
    semesters = [normalize_semester(item) for item in _as_list(raw, "semesters")]
    directory = TimetableDirectory(semesters, schemes)

    scheme_ids = {scheme.id for scheme in schemes}
    for semester in semesters:
        if semester.scheme_id is not None and semester.scheme_id not in scheme_ids:
            raise ValueError(
                f"Semester '{semester.id}' references unknown scheme '{semester.scheme_id}'."
            )

    courses = [normalize_course(item) for item in _as_list(raw, "courses")]
    for course in courses:
        if directory.get_semester(course.semester_id) is None:
            raise ValueError(
                f"Course '{course.id}' references unknown semester '{course.semester_id}'."
            )

    seen_ids: dict[str, str] = {}
    for course in courses:
        if course.id in seen_ids:
            raise ValueError(f"Duplicate course id '{course.id}'.")
        seen_ids[course.id] = "course"

    learning_plans = [
        normalize_plan(item, source_type=LEARNING_PLAN)
        for item in _as_list(raw, "learning_plans")
    ]
    reading_plans = [
        normalize_plan(item, source_type=READING_PLAN)
        for item in _as_list(raw, "reading_plans")
    ]
    for plan in (*learning_plans, *reading_plans):
        if plan.id in seen_ids:
            raise ValueError(
                f"Plan id '{plan.id}' is already used by a {seen_ids[plan.id]}; "
                "agenda entries are tagged by id, so ids must be unique."
            )
        seen_ids[plan.id] = plan.source_type

    return ScheduleConfig(
        directory=directory,
        courses=courses,
        learning_plans=learning_plans,
        reading_plans=reading_plans,
    )


def check_timetable(config: ScheduleConfig) -> tuple[dict[str, list[str]], list[str]]:
    conflicts_by_course: dict[str, list[str]] = {}
    warnings: list[str] = []
    position = {course.id: idx for idx, course in enumerate(config.courses)}
    for idx, course in enumerate(config.courses):
        conflicts = find_conflicts(course, config.courses, config.directory)
        if not conflicts:
            continue
        conflicts_by_course[course.id] = [other.id for other in conflicts]
        # Each pair is reported once, from the later course's point of view.
        earlier = [other for other in conflicts if position[other.id] < idx]
        if earlier:
            reason = conflict_reason(course, earlier, config.directory)
            warnings.append(f"Timetable conflict: {reason}.")
    return conflicts_by_course, warnings


def sync_schedule(config: ScheduleConfig, store: AgendaStore) -> dict[str, int]:
    counts: dict[str, int] = {}
    active_ids: set[str] = set()
    for course in config.courses:
        active_ids.add(course.id)
        counts[course.id] = project(
            store,
            course.id,
            course_occurrences(course, config.directory),
            source_type=COURSE_SOURCE,
        )
    for plan in config.plans:
        active_ids.add(plan.id)
        counts[plan.id] = project(
            store,
            plan.id,
            plan_occurrences(plan),
            source_type=plan.source_type,
        )
    for stale_id in sorted(source_ids(store) - active_ids):
        log.info("Source '%s' is no longer configured; removing its entries", stale_id)
        remove_source(store, stale_id)
    return counts


def dump_normalized_config(config: ScheduleConfig) -> dict[str, Any]:
    return {
        "schemes": [
            {
                "id": scheme.id,
                "name": scheme.name,
                "periods": [
                    {"index": period.index, "start": period.start, "end": period.end}
                    for period in scheme.periods
                ],
            }
            for scheme in config.directory.schemes
        ],
        "semesters": [
            {
                "id": semester.id,
                "academic_year": semester.academic_year,
                "term": semester.term,
                "start_date": semester.start_date.isoformat(),
                "end_date": semester.end_date.isoformat(),
                "scheme_id": semester.scheme_id,
            }
            for semester in config.directory.semesters
        ],
        "courses": [
            _jsonable({key: value for key, value in vars(course).items() if value is not None})
            for course in config.courses
        ],
        "plans": [
            {
                "id": plan.id,
                "title": plan.title,
                "source_type": plan.source_type,
                "start_date": plan.start_date.isoformat(),
                "end_date": plan.end_date.isoformat() if plan.end_date else None,
                "rule": plan.rule.to_dict(),
                "time": plan.time,
                "priority": plan.priority,
            }
            for plan in config.plans
        ],
    }


def build_agenda(
    *,
    config_path: str | Path,
    output_dir: str | Path,
    store: AgendaStore | None = None,
    existing_agenda: dict[str, list[dict[str, Any]]] | None = None,
) -> AgendaBuildResult:
    config = normalize_schedule_config(load_valid_schedule_config(config_path))
    conflicts, warnings = check_timetable(config)
    for plan in config.plans:
        if not plan.rule.is_valid:
            warnings.append(f"Plan '{plan.id}' has an invalid recurrence rule and was skipped.")

    local_store = InMemoryAgendaStore(existing_agenda)
    sync_schedule(config, local_store)
    publish_actions = None
    if store is not None:
        sync_schedule(config, store)
        publish_actions = list(getattr(store, "actions", []))

    agenda = local_store.to_dict()
    output_root = Path(output_dir)
    output_root.mkdir(parents=True, exist_ok=True)
    agenda_path = output_root / "agenda.json"
    warnings_path = output_root / "warnings.json"
    normalized_path = output_root / "normalized_schedule.yaml"

    yaml = load_yaml_module()
    agenda_path.write_text(json.dumps(agenda, indent=2) + "\n", encoding="utf-8")
    warnings_path.write_text(
        json.dumps({"warnings": warnings, "conflicts": conflicts}, indent=2) + "\n",
        encoding="utf-8",
    )
    normalized_path.write_text(
        yaml.safe_dump(dump_normalized_config(config), sort_keys=False, allow_unicode=False),
        encoding="utf-8",
    )

    return AgendaBuildResult(
        config=config,
        agenda=agenda,
        warnings=warnings,
        conflicts=conflicts,
        output_paths={
            "agenda": agenda_path,
            "warnings": warnings_path,
            "normalized_schedule": normalized_path,
        },
        publish_actions=publish_actions,
    )
