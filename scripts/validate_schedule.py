#!/usr/bin/env python3
"""Validate a schedule config YAML/JSON file against the bundled schema."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from schedule_core.rules import rule_errors
from schedule_core.schedule import config_errors


def _load_yaml_or_json(path: Path):
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)

    from schedule_core.schemas import load_yaml_module

    return load_yaml_module().safe_load(text)


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Validate a schedule config against schedule_core/schemas/schedule_config.schema.yaml."
    )
    parser.add_argument("config", help="Path to schedule YAML/JSON file to validate.")
    args = parser.parse_args()

    config_path = Path(args.config)
    try:
        document = _load_yaml_or_json(config_path)
    except json.JSONDecodeError as exc:
        print(f"JSON parse error: {exc}", file=sys.stderr)
        return 2
    except FileNotFoundError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except Exception as exc:
        print(f"Failed to load input file: {exc}", file=sys.stderr)
        return 2

    if not isinstance(document, dict):
        print(f"INVALID: {config_path} must contain a mapping at the top level")
        return 1

    errors = config_errors(document)
    for section in ("learning_plans", "reading_plans"):
        for idx, plan in enumerate(document.get(section) or []):
            if not isinstance(plan, dict) or plan.get("rule") is None:
                continue
            for message in rule_errors(plan["rule"]):
                errors.append(f"$.{section}[{idx}].rule{message[1:]}")

    if not errors:
        print(f"VALID: {config_path}")
        return 0

    print(f"INVALID: {config_path}")
    print(f"{len(errors)} validation error(s):")
    for message in errors:
        print(f"- {message}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
