from __future__ import annotations

import copy
import html
import json
import logging
import os
import re
from datetime import date
from typing import Any

import canvasapi

from schedule_core.agenda import AgendaStore

log = logging.getLogger(__name__)

ENTRY_MARKER_PREFIX = "schedule-core:entry"
_ENTRY_MARKER = re.compile(r"<!--\s*schedule-core:entry\s+(?P<payload>\{.*?\})\s*-->", re.S)


def canvas_from_env(
    *,
    url_env: str = "CANVAS_API_URL",
    key_env: str = "CANVAS_API_KEY",
) -> canvasapi.Canvas:
    base_url = str(os.environ.get(url_env, "")).strip()
    api_key = str(os.environ.get(key_env, "")).strip()
    missing = [name for name, value in ((url_env, base_url), (key_env, api_key)) if not value]
    if missing:
        raise RuntimeError(
            f"Canvas publishing requires environment variable(s): {', '.join(missing)}"
        )
    return canvasapi.Canvas(base_url, api_key)


def _entry_description(key: str, entry: dict[str, Any]) -> str:
    # Canvas reports start_at in UTC, so the bucket key travels in the marker.
    payload = json.dumps({"date": key, "entry": entry}, sort_keys=True)
    payload = payload.replace("--", "\\u002d\\u002d")
    visible = html.escape(str(entry.get("content") or ""))
    return f"<p>{visible}</p>\n<!-- {ENTRY_MARKER_PREFIX} {payload} -->"


def _entry_from_event(event: Any) -> tuple[str, dict[str, Any]] | None:
    description = str(getattr(event, "description", "") or "")
    match = _ENTRY_MARKER.search(description)
    if match is None:
        return None
    try:
        payload = json.loads(match.group("payload"))
    except json.JSONDecodeError:
        log.warning("Skipping calendar event %s with unreadable entry marker", getattr(event, "id", "?"))
        return None
    if not isinstance(payload, dict) or not isinstance(payload.get("entry"), dict):
        return None
    key = str(payload.get("date") or "")
    if not key:
        return None
    return key, payload["entry"]


def _event_payload(key: str, entry: dict[str, Any], context_code: str) -> dict[str, Any]:
    start_time = str(entry.get("time") or "").strip()
    end_time = str(entry.get("end_time") or "").strip()
    payload: dict[str, Any] = {
        "context_code": context_code,
        "title": str(entry.get("content") or entry.get("id")),
        "description": _entry_description(key, entry),
        "start_at": f"{key}T{start_time}:00" if start_time else key,
    }
    if start_time and end_time:
        payload["end_at"] = f"{key}T{end_time}:00"
    return payload


class CanvasAgendaStore(AgendaStore):
    """Agenda buckets kept as Canvas calendar events inside one course context.

    Only events carrying a schedule-core entry marker are managed; events
    created by hand in Canvas are never read or touched.
    """

    def __init__(
        self,
        canvas: Any,
        *,
        context_code: str,
        start_date: date,
        end_date: date,
        dry_run: bool = True,
    ) -> None:
        self._canvas = canvas
        self._context_code = context_code
        self._start_date = start_date
        self._end_date = end_date
        self._dry_run = dry_run
        self._buckets: dict[str, list[tuple[dict[str, Any], Any]]] | None = None
        self.actions: list[str] = []

    def _load(self) -> dict[str, list[tuple[dict[str, Any], Any]]]:
        if self._buckets is not None:
            return self._buckets
        buckets: dict[str, list[tuple[dict[str, Any], Any]]] = {}
        events = self._canvas.get_calendar_events(
            context_codes=[self._context_code],
            start_date=self._start_date.isoformat(),
            end_date=self._end_date.isoformat(),
        )
        for event in events:
            marker = _entry_from_event(event)
            if marker is None:
                continue
            key, entry = marker
            buckets.setdefault(key, []).append((entry, event))
        log.info(
            "Loaded %d managed calendar event(s) for %s",
            sum(len(items) for items in buckets.values()),
            self._context_code,
        )
        self._buckets = buckets
        return buckets

    def keys(self) -> list[str]:
        return list(self._load().keys())

    def get(self, key: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(entry) for entry, _ in self._load().get(key, [])]

    def set(self, key: str, entries: list[dict[str, Any]]) -> None:
        buckets = self._load()
        existing = {entry.get("id"): (entry, event) for entry, event in buckets.get(key, [])}
        updated: list[tuple[dict[str, Any], Any]] = []

        for entry in entries:
            entry_id = entry.get("id")
            current = existing.pop(entry_id, None)
            if current is None:
                self.actions.append(f"create-event:{entry_id}")
                log.info("Creating calendar event '%s'", entry_id)
                event = None
                if not self._dry_run:
                    event = self._canvas.create_calendar_event(
                        calendar_event=_event_payload(key, entry, self._context_code)
                    )
                updated.append((copy.deepcopy(entry), event))
                continue

            current_entry, event = current
            if current_entry != entry:
                self.actions.append(f"update-event:{entry_id}")
                log.info("Updating calendar event '%s'", entry_id)
                if not self._dry_run and event is not None:
                    event.edit(calendar_event=_event_payload(key, entry, self._context_code))
            updated.append((copy.deepcopy(entry), event))

        for entry_id, (_, event) in existing.items():
            self._delete_event(entry_id, event)

        if updated:
            buckets[key] = updated
        else:
            buckets.pop(key, None)

    def delete(self, key: str) -> None:
        buckets = self._load()
        for entry, event in buckets.pop(key, []):
            self._delete_event(entry.get("id"), event)

    def _delete_event(self, entry_id: Any, event: Any) -> None:
        self.actions.append(f"delete-event:{entry_id}")
        log.info("Deleting calendar event '%s'", entry_id)
        if not self._dry_run and event is not None:
            event.delete()
