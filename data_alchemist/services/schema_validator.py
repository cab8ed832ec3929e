from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import ValidationError

from ..models.entity import EntityKind, parse_entity
from ..models.records import INVALID, FieldErrors, is_nan

"""Per-row schema validation backed by JSON Schema contracts.

Each entity kind has a declarative schema in data_alchemist/contracts/. A row
is validated in isolation: the result depends only on the row's own values,
never on its position or on sibling rows, which keeps single-row
re-validation after an edit exact.

All problems are collected in one pass (iter_errors), then reduced to one
message per top-level field. Keys of the returned map are the record's column
names so callers can index directly by column.
"""

__all__ = [
    "CONTRACTS_DIR",
    "load_entity_schema",
    "validate_row",
]

CONTRACTS_DIR = Path(__file__).resolve().parent.parent / "contracts"

_TYPE_NAMES = {
    "string": "a string",
    "integer": "an integer",
    "number": "a number",
    "array": "a list",
    "object": "an object",
}

_format_checker = FormatChecker(formats=())


@_format_checker.checks("json", raises=ValueError)
def _is_json_text(instance: Any) -> bool:
    if not isinstance(instance, str):
        return True
    json.loads(instance)
    return True


@lru_cache(maxsize=None)
def load_entity_schema(entity: EntityKind) -> dict[str, Any]:
    path = CONTRACTS_DIR / f"{entity.value}.schema.json"
    schema = json.loads(path.read_text(encoding="utf-8"))
    Draft202012Validator.check_schema(schema)
    return schema


@lru_cache(maxsize=None)
def _validator_for(entity: EntityKind) -> Draft202012Validator:
    return Draft202012Validator(load_entity_schema(entity), format_checker=_format_checker)


def _describe_type(expected: Any) -> str:
    if isinstance(expected, list):
        return " or ".join(_TYPE_NAMES.get(t, t) for t in expected)
    return _TYPE_NAMES.get(expected, str(expected))


def _field_message(field: str, error: ValidationError, prop_schema: dict[str, Any]) -> str:
    """Turn a jsonschema error on a property (or one of its items) into a UI message."""
    custom = prop_schema.get("errorMessages", {})
    path = list(error.absolute_path)
    keyword = error.validator

    if len(path) > 1:
        # 配列要素のエラー: RequestedTaskIDs[0] など
        label = f"{field}[{path[1]}]"
        if keyword == "type":
            return f"{label} must be {_describe_type(error.validator_value)}"
        if keyword == "minLength":
            return f"{label} must not be empty"
        if keyword == "minimum":
            return f"{label} must be at least {error.validator_value}"
        return f"{label}: {error.message}"

    if keyword in custom:
        return custom[keyword]
    if keyword == "type":
        if error.instance is None or error.instance == "":
            return f"{field} is required"
        return f"{field} must be {_describe_type(error.validator_value)}"
    if keyword == "minLength":
        return f"{field} is required"
    if keyword in ("minimum", "maximum"):
        lo = prop_schema.get("minimum")
        hi = prop_schema.get("maximum")
        if lo is not None and hi is not None:
            return f"{field} must be between {lo} and {hi}"
        if lo is not None:
            return f"{field} must be at least {lo}"
        return f"{field} must be at most {hi}"
    if keyword == "minItems":
        return f"{field} must contain at least {error.validator_value} item(s)"
    return error.message


def validate_row(entity: EntityKind | str, record: dict[str, Any]) -> FieldErrors:
    """Validate one normalized record. Empty dict means no errors.

    Never raises for malformed data; only an unknown entity kind raises.
    """
    kind = parse_entity(entity)
    schema = load_entity_schema(kind)
    properties: dict[str, Any] = schema.get("properties", {})
    errors: FieldErrors = {}

    # 正規化で落ちた値 (INVALID / NaN) は jsonschema より先に確定させる
    for field in properties:
        if field not in record:
            continue
        value = record[field]
        if value is INVALID:
            errors[field] = f"{field} could not be parsed"
        elif is_nan(value):
            errors[field] = f"{field} must be a number"

    for error in _validator_for(kind).iter_errors(record):
        if error.validator == "required" and not error.absolute_path:
            for missing in error.validator_value:
                if missing not in record:
                    errors.setdefault(missing, f"{missing} is required")
            continue
        if not error.absolute_path:
            # ルート型エラー (dict 以外) は呼び出し側のバグ
            raise TypeError(f"record for {kind.value} must be a mapping, got {type(record).__name__}")
        field = str(error.absolute_path[0])
        if field in errors:
            continue
        errors[field] = _field_message(field, error, properties.get(field, {}))
    return errors
