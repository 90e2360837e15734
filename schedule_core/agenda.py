"""Date-keyed agenda store and the occurrence projector.

The projector never diffs: every sync removes all entries tagged with a
source id and reinserts the freshly generated ones, so repeated syncs with
unchanged inputs leave the store unchanged.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Iterable

from schedule_core.calendar_math import date_key, parse_date
from schedule_core.occurrences import Occurrence

log = logging.getLogger(__name__)

EXAM = "exam"


class AgendaStore(ABC):
    @abstractmethod
    def keys(self) -> list[str]:
        pass

    @abstractmethod
    def get(self, key: str) -> list[dict[str, Any]]:
        pass

    @abstractmethod
    def set(self, key: str, entries: list[dict[str, Any]]) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class InMemoryAgendaStore(AgendaStore):
    def __init__(self, data: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._data: dict[str, list[dict[str, Any]]] = {}
        for key, entries in (data or {}).items():
            if isinstance(entries, list):
                self._data[key] = copy.deepcopy(entries)
            elif isinstance(entries, dict):
                # Older exports stored a bucket as an id -> entry mapping.
                self._data[key] = [dict(entry) for entry in entries.values() if entry]
            else:
                self._data[key] = []

    def keys(self) -> list[str]:
        return list(self._data.keys())

    def get(self, key: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self._data.get(key, []))

    def set(self, key: str, entries: list[dict[str, Any]]) -> None:
        self._data[key] = copy.deepcopy(list(entries))

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {key: copy.deepcopy(self._data[key]) for key in sorted(self._data)}


def entry_id(source_id: str, day: date | str) -> str:
    key = day if isinstance(day, str) else date_key(day)
    return f"{source_id}-{key}"


def build_entry(occurrence: Occurrence, *, source_id: str, source_type: str) -> dict[str, Any]:
    entry: dict[str, Any] = {
        "id": entry_id(source_id, occurrence.date),
        "time": occurrence.time or "",
        "content": occurrence.content,
        "priority": occurrence.priority,
        "source_id": source_id,
        "source_type": source_type,
    }
    if occurrence.end_time:
        entry["end_time"] = occurrence.end_time
    if occurrence.course_type:
        entry["course_type"] = occurrence.course_type
    return entry


def _strip_source(
    store: AgendaStore,
    source_id: str,
) -> tuple[dict[str, list[dict[str, Any]]], dict[str, int]]:
    """Buckets that held ``source_id`` entries, minus those entries.

    Also returns, per bucket, where the first removed entry sat so a
    re-projection can put fresh entries back in the same place.
    """
    remaining: dict[str, list[dict[str, Any]]] = {}
    insert_at: dict[str, int] = {}
    for key in store.keys():
        entries = store.get(key)
        kept: list[dict[str, Any]] = []
        for entry in entries:
            if entry.get("source_id") == source_id:
                insert_at.setdefault(key, len(kept))
            else:
                kept.append(entry)
        if key in insert_at:
            remaining[key] = kept
    return remaining, insert_at


def _write_buckets(store: AgendaStore, buckets: dict[str, list[dict[str, Any]]]) -> None:
    for key, entries in buckets.items():
        if entries:
            store.set(key, entries)
        else:
            store.delete(key)


def project(
    store: AgendaStore,
    source_id: str,
    occurrences: list[Occurrence] | tuple[Occurrence, ...],
    *,
    source_type: str = "plan",
) -> int:
    if not isinstance(occurrences, (list, tuple)):
        raise TypeError(
            f"occurrences must be a list of Occurrence, got {type(occurrences).__name__}"
        )
    source_id = str(source_id)
    touched, insert_at = _strip_source(store, source_id)
    removed_from = len(touched)

    new_by_key: dict[str, list[dict[str, Any]]] = {}
    seen_ids: set[str] = set()
    for occurrence in occurrences:
        if not isinstance(occurrence, Occurrence):
            raise TypeError(f"Expected Occurrence, got {type(occurrence).__name__}")
        entry = build_entry(occurrence, source_id=source_id, source_type=source_type)
        if entry["id"] in seen_ids:
            continue
        seen_ids.add(entry["id"])
        new_by_key.setdefault(occurrence.date_key, []).append(entry)

    for key, entries in new_by_key.items():
        if key in touched:
            position = insert_at[key]
            base = touched[key]
            touched[key] = base[:position] + entries + base[position:]
        else:
            touched[key] = store.get(key) + entries

    _write_buckets(store, touched)
    log.info(
        "Projected %d entr%s for %s '%s' (%d bucket(s) cleared)",
        len(seen_ids),
        "y" if len(seen_ids) == 1 else "ies",
        source_type,
        source_id,
        removed_from,
    )
    return len(seen_ids)


def remove_source(store: AgendaStore, source_id: str) -> int:
    touched, _ = _strip_source(store, str(source_id))
    _write_buckets(store, touched)
    log.info("Removed source '%s' from %d bucket(s)", source_id, len(touched))
    return len(touched)


def source_ids(store: AgendaStore) -> set[str]:
    found: set[str] = set()
    for key in store.keys():
        for entry in store.get(key):
            if entry.get("source_id"):
                found.add(str(entry["source_id"]))
    return found


def _is_exam_entry(entry: dict[str, Any]) -> bool:
    if entry.get("course_type") == EXAM:
        return True
    return str(entry.get("content") or "").startswith("[Exam]")


def visible_entries(
    entries: Iterable[dict[str, Any]],
    day: date | str,
    now: datetime | None = None,
) -> list[dict[str, Any]]:
    """Hide exams that are already over; every other entry stays visible."""
    day = parse_date(day)
    now = now or datetime.now()
    today = now.date()
    now_hhmm = now.strftime("%H:%M")

    visible: list[dict[str, Any]] = []
    for entry in entries:
        if not _is_exam_entry(entry):
            visible.append(entry)
            continue
        if day < today:
            continue
        if day == today:
            compare_time = str(entry.get("end_time") or entry.get("time") or "")
            if compare_time and compare_time < now_hhmm:
                continue
        visible.append(entry)
    return visible
