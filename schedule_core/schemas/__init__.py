from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

SCHEMA_DIR = Path(__file__).resolve().parent

RECURRENCE_RULE_SCHEMA = "recurrence_rule.schema.yaml"
SCHEDULE_CONFIG_SCHEMA = "schedule_config.schema.yaml"


def load_yaml_module():
    try:
        import yaml
    except ModuleNotFoundError as exc:
        raise RuntimeError(
            "PyYAML is required for schedule config workflows. "
            "Install dependencies (e.g., `pip install -e .[test]`)."
        ) from exc
    return yaml


@lru_cache(maxsize=None)
def load_schema(name: str) -> dict[str, Any]:
    yaml = load_yaml_module()
    schema = yaml.safe_load((SCHEMA_DIR / name).read_text(encoding="utf-8"))
    if not isinstance(schema, dict):
        raise ValueError(f"Schema {name} must be a mapping at the top level.")
    return schema


@lru_cache(maxsize=None)
def schema_validator(name: str) -> Draft202012Validator:
    schema = load_schema(name)
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def path_to_string(error_path) -> str:
    parts = []
    for part in error_path:
        if isinstance(part, int):
            parts.append(f"[{part}]")
        else:
            parts.append(f".{part}")
    if not parts:
        return "$"
    return "$" + "".join(parts)


def validation_messages(name: str, document: Any) -> list[str]:
    validator = schema_validator(name)
    errors = sorted(validator.iter_errors(document), key=lambda e: list(e.path))
    return [f"{path_to_string(err.path)}: {err.message}" for err in errors]
