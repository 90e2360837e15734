#!/usr/bin/env python3
"""Expand a schedule config into agenda buckets, optionally mirroring them to Canvas."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from schedule_core.calendar_math import parse_date
from schedule_core.canvas_store import CanvasAgendaStore, canvas_from_env
from schedule_core.schedule import build_agenda, load_valid_schedule_config, normalize_schedule_config

logging.basicConfig(format="%(levelname)s %(name)s: %(message)s")
log = logging.getLogger("build_agenda")


def _canvas_store(args: argparse.Namespace, config_path: Path) -> CanvasAgendaStore:
    config = normalize_schedule_config(load_valid_schedule_config(config_path))
    semesters = config.directory.semesters
    if args.start_date and args.end_date:
        start_date, end_date = parse_date(args.start_date), parse_date(args.end_date)
    elif semesters:
        start_date = min(semester.start_date for semester in semesters)
        end_date = max(semester.end_date for semester in semesters)
    else:
        raise ValueError("--start-date and --end-date are required when no semester is configured.")
    return CanvasAgendaStore(
        canvas_from_env(url_env=args.canvas_url_env, key_env=args.canvas_key_env),
        context_code=f"course_{args.canvas_course_id}",
        start_date=start_date,
        end_date=end_date,
        dry_run=not args.apply,
    )


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("config", help="Schedule config YAML file")
    parser.add_argument(
        "-o", "--output-dir",
        default="agenda_out",
        help="Directory for agenda.json, warnings.json and normalized_schedule.yaml",
    )
    parser.add_argument(
        "--existing-agenda",
        help="agenda.json from a previous run; manual entries in it are preserved",
    )
    parser.add_argument("--canvas-course-id", type=int, help="Mirror the agenda into this Canvas course calendar")
    parser.add_argument("--canvas-url-env", default="CANVAS_API_URL")
    parser.add_argument("--canvas-key-env", default="CANVAS_API_KEY")
    parser.add_argument("--start-date", help="First day of the Canvas sync range (YYYY-MM-DD)")
    parser.add_argument("--end-date", help="Last day of the Canvas sync range (YYYY-MM-DD)")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Actually write to Canvas (default is a dry run that only lists actions)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.getLogger().setLevel(logging.DEBUG if args.verbose else logging.INFO)
    config_path = Path(args.config)

    try:
        existing = None
        if args.existing_agenda:
            existing = json.loads(Path(args.existing_agenda).read_text(encoding="utf-8"))
        store = _canvas_store(args, config_path) if args.canvas_course_id else None
        result = build_agenda(
            config_path=config_path,
            output_dir=args.output_dir,
            store=store,
            existing_agenda=existing,
        )
    except (ValueError, RuntimeError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    entry_count = sum(len(entries) for entries in result.agenda.values())
    log.info("Wrote %d entries across %d day(s) to %s", entry_count, len(result.agenda), result.output_paths["agenda"])
    for warning in result.warnings:
        log.warning(warning)
    if result.publish_actions is not None:
        log.info("Canvas actions (%s): %d", "applied" if args.apply else "dry run", len(result.publish_actions))
        for action in result.publish_actions:
            log.info("  %s", action)
    return 1 if result.conflicts else 0


if __name__ == "__main__":
    raise SystemExit(main())
