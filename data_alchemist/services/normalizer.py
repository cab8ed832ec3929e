from __future__ import annotations

import json
import math
import numbers
from collections.abc import Callable, Iterable
from typing import Any

from ..models.entity import EntityKind, parse_entity
from ..models.records import INVALID, NAN, RawRecord

"""Type normalizer: spreadsheet cell values -> canonical typed fields.

Coercion table per entity:
- numbers   : PriorityLevel / MaxLoadPerPhase / QualificationLevel / Duration / MaxConcurrent
- str lists : RequestedTaskIDs / Skills / RequiredSkills ("a, b" -> ["a", "b"])
- int lists : AvailableSlots ("[1,2]" or "1,2"), PreferredPhases ("2-4", "[2,3]", "2,3")
- JSON text : AttributesJSON (dict / list from an AI patch -> JSON string)

Rules:
- A value already in canonical shape passes through untouched, so
  normalize(kind, normalize(kind, row)) == normalize(kind, row).
- Unparsable numbers become NAN (never 0); unparsable int lists become INVALID.
- No exception for malformed data leaves normalize(); one bad field never
  prevents the other fields of the same row from being coerced.
- Fields missing from the row stay missing (the validator reports them as required).
"""

__all__ = [
    "normalize",
    "normalize_rows",
    "to_number",
    "to_string_list",
    "to_slot_list",
    "to_phase_list",
    "to_json_text",
]


def to_number(value: Any) -> Any:
    """Numeric parse. Non-numeric or non-finite input -> NAN."""
    if isinstance(value, bool):
        return NAN
    if isinstance(value, numbers.Integral):
        return int(value)
    if isinstance(value, numbers.Real):
        f = float(value)
        return f if math.isfinite(f) else NAN
    if isinstance(value, str):
        s = value.strip()
        # int()/float() は "1_000" や "inf" も通すので弾く
        if not s or "_" in s:
            return NAN
        try:
            return int(s)
        except ValueError:
            pass
        try:
            f = float(s)
        except ValueError:
            return NAN
        return f if math.isfinite(f) else NAN
    return NAN


def to_string_list(value: Any) -> Any:
    """Comma separated string -> list of trimmed pieces. Lists pass through."""
    if isinstance(value, str):
        return [piece.strip() for piece in value.split(",")]
    if isinstance(value, tuple):
        return list(value)
    return value


def _int_pieces(text: str) -> list[int]:
    return [int(piece.strip()) for piece in text.split(",")]


def _json_list(text: str) -> Any:
    parsed = json.loads(text)
    if not isinstance(parsed, list):
        return INVALID
    return parsed


def to_slot_list(value: Any) -> Any:
    """AvailableSlots: JSON array literal, else comma list of integers."""
    if isinstance(value, tuple):
        return list(value)
    if not isinstance(value, str):
        return value
    text = value.strip()
    try:
        if text.startswith("["):
            return _json_list(text)
        return _int_pieces(text)
    except (ValueError, TypeError, RecursionError):
        return INVALID


def to_phase_list(value: Any) -> Any:
    """PreferredPhases: "start-end" range, JSON array literal, else comma list."""
    if isinstance(value, tuple):
        return list(value)
    if not isinstance(value, str):
        return value
    text = value.strip()
    try:
        if "-" in text:
            parts = text.split("-")
            if len(parts) != 2:
                return INVALID
            start, end = int(parts[0].strip()), int(parts[1].strip())
            if start > end:
                # 逆順レンジは空配列ではなく INVALID 扱い
                return INVALID
            return list(range(start, end + 1))
        if text.startswith("["):
            return _json_list(text)
        return _int_pieces(text)
    except (ValueError, TypeError, RecursionError):
        return INVALID


def to_json_text(value: Any) -> Any:
    """AttributesJSON stays a string; objects from AI patches are serialized."""
    if isinstance(value, (dict, list)):
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError):
            return INVALID
    return value


_COERCIONS: dict[EntityKind, dict[str, Callable[[Any], Any]]] = {
    EntityKind.CLIENTS: {
        "PriorityLevel": to_number,
        "RequestedTaskIDs": to_string_list,
        "AttributesJSON": to_json_text,
    },
    EntityKind.WORKERS: {
        "Skills": to_string_list,
        "AvailableSlots": to_slot_list,
        "MaxLoadPerPhase": to_number,
        "QualificationLevel": to_number,
    },
    EntityKind.TASKS: {
        "Duration": to_number,
        "RequiredSkills": to_string_list,
        "PreferredPhases": to_phase_list,
        "MaxConcurrent": to_number,
    },
}

_FAILURE_VALUE: dict[Callable[[Any], Any], Any] = {
    to_number: NAN,
}


def normalize(entity: EntityKind | str, raw: RawRecord) -> dict[str, Any]:
    """Return a new record with canonical types for the given entity kind.

    Raises:
        UnknownEntityError: entity is not clients / workers / tasks
    """
    kind = parse_entity(entity)
    normalized: dict[str, Any] = dict(raw)
    for field_name, coerce in _COERCIONS[kind].items():
        if field_name not in normalized:
            continue
        try:
            normalized[field_name] = coerce(normalized[field_name])
        except Exception:  # noqa: BLE001 - 1 フィールドの失敗を行全体に波及させない
            normalized[field_name] = _FAILURE_VALUE.get(coerce, INVALID)
    return normalized


def normalize_rows(entity: EntityKind | str, rows: Iterable[RawRecord]) -> list[dict[str, Any]]:
    """Normalize every row, keeping order and length (row index is positional)."""
    kind = parse_entity(entity)
    return [normalize(kind, row) for row in rows]
