from __future__ import annotations

from importlib import resources
import json
from typing import Any

from jsonschema import Draft202012Validator

SCHEMA_RESOURCE = "schemas/record.schema.json"


def load_schema() -> dict[str, Any]:
    schema_path = resources.files("pi_stats").joinpath(SCHEMA_RESOURCE)
    return json.loads(schema_path.read_text(encoding="utf-8"))


def get_validator() -> Draft202012Validator:
    return Draft202012Validator(schema=load_schema())


def validate_record(record_json: dict[str, Any]) -> list[str]:
    """Return schema violations of a record's JSON view, empty when valid."""
    validator = get_validator()
    errors = sorted(validator.iter_errors(record_json), key=lambda e: list(e.path))
    return [error.message for error in errors]
