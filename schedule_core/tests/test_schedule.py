from __future__ import annotations

import json
import textwrap

import pytest
import yaml

from schedule_core.agenda import InMemoryAgendaStore
from schedule_core.schedule import (
    build_agenda,
    load_schedule_config,
    load_valid_schedule_config,
    normalize_schedule_config,
)

CONFIG = textwrap.dedent(
    """
    version: "1"
    schemes:
      - id: default
        name: Default periods
        periods:
          - {index: 1, start: "08:00", end: "08:45"}
          - {index: 2, start: "08:55", end: "09:40"}
          - {index: 3, start: 10:00, end: 10:45}
    semesters:
      - id: "2024-spring"
        academic_year: "2023-2024"
        term: "2"
        start_date: 2024-02-26
        end_date: 2024-04-21
        scheme_id: default
    courses:
      - id: algebra
        semester_id: "2024-spring"
        name: Linear Algebra
        location: Room 101
        weekday: 3
        period_index: 1
        period_end_index: 2
        parity: odd
      - id: algebra-final
        semester_id: "2024-spring"
        type: exam
        name: Algebra Final
        exam_date: 2024-03-13
        exam_start_period_index: 2
        exam_end_period_index: 3
    learning_plans:
      - id: flashcards
        title: Flashcards
        start_date: "2024-03-01"
        end_date: "2024-03-10"
        time: "07:30"
        rule: {type: daily, interval: 2}
    reading_plans:
      - id: novel
        title: Read novel
        start_date: "2024-03-01"
        total_chunks: 3
    """
)


def _write_config(tmp_path, text=CONFIG):
    path = tmp_path / "schedule.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def _ids(agenda, key):
    return [entry["id"] for entry in agenda[key]]


def test_build_agenda_expands_courses_exams_and_plans(tmp_path):
    result = build_agenda(config_path=_write_config(tmp_path), output_dir=tmp_path / "out")
    agenda = result.agenda

    assert sorted(agenda) == [
        "2024-02-28",
        "2024-03-01",
        "2024-03-02",
        "2024-03-03",
        "2024-03-05",
        "2024-03-07",
        "2024-03-09",
        "2024-03-13",
        "2024-03-27",
        "2024-04-10",
    ]
    assert sum(len(entries) for entries in agenda.values()) == 13
    assert _ids(agenda, "2024-03-01") == ["flashcards-2024-03-01", "novel-2024-03-01"]
    assert _ids(agenda, "2024-03-13") == ["algebra-2024-03-13", "algebra-final-2024-03-13"]

    lecture, exam = agenda["2024-03-13"]
    assert lecture["content"] == "Linear Algebra @ Room 101"
    assert (lecture["time"], lecture["end_time"]) == ("08:00", "09:40")
    assert lecture["source_type"] == "course"
    assert exam["content"] == "[Exam] Algebra Final"
    assert (exam["time"], exam["end_time"]) == ("08:55", "10:45")
    assert exam["priority"] == "high"
    assert exam["course_type"] == "exam"
    assert agenda["2024-03-02"][0]["source_type"] == "reading_plan"


def test_build_agenda_reports_conflicts_once(tmp_path):
    result = build_agenda(config_path=_write_config(tmp_path), output_dir=tmp_path / "out")

    assert result.conflicts == {"algebra": ["algebra-final"], "algebra-final": ["algebra"]}
    assert result.warnings == [
        "Timetable conflict: 'Algebra Final' overlaps 'Linear Algebra' on "
        "Wednesday (odd weeks), periods 1-2 (08:00-09:40)."
    ]


def test_build_agenda_writes_outputs(tmp_path):
    result = build_agenda(config_path=_write_config(tmp_path), output_dir=tmp_path / "out")

    agenda_on_disk = json.loads(result.output_paths["agenda"].read_text(encoding="utf-8"))
    assert agenda_on_disk == result.agenda
    warnings_on_disk = json.loads(result.output_paths["warnings"].read_text(encoding="utf-8"))
    assert warnings_on_disk["warnings"] == result.warnings
    assert warnings_on_disk["conflicts"]["algebra"] == ["algebra-final"]

    normalized = yaml.safe_load(result.output_paths["normalized_schedule"].read_text(encoding="utf-8"))
    assert normalized["schemes"][0]["periods"][2] == {"index": 3, "start": "10:00", "end": "10:45"}
    assert normalized["semesters"][0]["start_date"] == "2024-02-26"
    assert normalized["courses"][1]["exam_date"] == "2024-03-13"
    reading = normalized["plans"][1]
    assert reading["rule"] == {"type": "custom-count", "interval": 1, "unit": "day", "count": 3}
    assert reading["source_type"] == "reading_plan"


def test_rebuild_from_existing_agenda_is_stable(tmp_path):
    config_path = _write_config(tmp_path)
    first = build_agenda(config_path=config_path, output_dir=tmp_path / "first")
    second = build_agenda(
        config_path=config_path,
        output_dir=tmp_path / "second",
        existing_agenda=first.agenda,
    )
    assert second.agenda == first.agenda


def test_rebuild_keeps_manual_entries_and_drops_stale_sources(tmp_path):
    config_path = _write_config(tmp_path)
    first = build_agenda(config_path=config_path, output_dir=tmp_path / "first")

    existing = {key: list(entries) for key, entries in first.agenda.items()}
    manual = {"id": "manual-1", "time": "15:00", "content": "Dentist", "priority": "medium"}
    existing["2024-03-01"].append(manual)
    existing["2024-03-04"] = [
        {"id": "old-2024-03-04", "content": "Old plan", "source_id": "old", "source_type": "learning_plan"}
    ]

    result = build_agenda(config_path=config_path, output_dir=tmp_path / "again", existing_agenda=existing)

    assert manual in result.agenda["2024-03-01"]
    assert "2024-03-04" not in result.agenda
    assert sum(len(entries) for entries in result.agenda.values()) == 14


def test_build_agenda_mirrors_into_extra_store(tmp_path):
    mirror = InMemoryAgendaStore()
    result = build_agenda(config_path=_write_config(tmp_path), output_dir=tmp_path / "out", store=mirror)

    assert mirror.to_dict() == result.agenda
    assert result.publish_actions == []


def test_build_agenda_warns_about_invalid_plan_rule(tmp_path):
    text = CONFIG.replace("rule: {type: daily, interval: 2}", "rule: {type: daily, interval: 0}")
    result = build_agenda(config_path=_write_config(tmp_path, text), output_dir=tmp_path / "out")

    assert "Plan 'flashcards' has an invalid recurrence rule and was skipped." in result.warnings
    assert not any(entry["source_id"] == "flashcards" for entries in result.agenda.values() for entry in entries)


def test_schema_errors_are_reported_with_paths(tmp_path):
    text = CONFIG.replace("weekday: 3", "weekday: 9")
    with pytest.raises(ValueError, match=r"\$\.courses\[0\]\.weekday"):
        build_agenda(config_path=_write_config(tmp_path, text), output_dir=tmp_path / "out")


def test_top_level_must_be_a_mapping(tmp_path):
    with pytest.raises(ValueError, match="mapping"):
        load_schedule_config(_write_config(tmp_path, "- just\n- a list\n"))
    assert load_schedule_config(_write_config(tmp_path, "")) == {}


def test_normalize_rejects_unknown_references_and_duplicate_ids():
    semester = {"id": "s1", "start_date": "2024-02-26", "end_date": "2024-04-21", "scheme_id": "missing"}
    with pytest.raises(ValueError, match="unknown scheme"):
        normalize_schedule_config({"semesters": [semester]})

    semester["scheme_id"] = None
    course = {"id": "c1", "semester_id": "s2", "weekday": 1, "period_index": 1}
    with pytest.raises(ValueError, match="unknown semester"):
        normalize_schedule_config({"semesters": [semester], "courses": [course]})

    course["semester_id"] = "s1"
    with pytest.raises(ValueError, match="Duplicate course id"):
        normalize_schedule_config({"semesters": [semester], "courses": [course, dict(course)]})

    plan = {"id": "c1", "start_date": "2024-03-01"}
    with pytest.raises(ValueError, match="already used"):
        normalize_schedule_config({"semesters": [semester], "courses": [course], "learning_plans": [plan]})


def test_schema_check_runs_before_normalization(tmp_path):
    text = CONFIG.replace("weekday: 3", "weekday: Wednesday")
    with pytest.raises(ValueError, match=r"does not match the schema(.|\n)*\$\.courses\[0\]\.weekday"):
        load_valid_schedule_config(_write_config(tmp_path, text))
    assert load_valid_schedule_config(_write_config(tmp_path))["courses"][0]["id"] == "algebra"
