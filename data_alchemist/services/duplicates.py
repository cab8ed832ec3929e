from __future__ import annotations

from collections.abc import Hashable, Sequence
from typing import Any

from ..models.records import RowErrorMap

"""Duplicate identifier detection for one entity column.

Single pass over the column with a value -> first-seen-index map. Every member
of a duplicate group is marked, including the first occurrence; with three or
more rows sharing a value the first index stays the anchor, so all of them end
up in the result. Uniqueness is checked within one entity's own column only.
"""

__all__ = [
    "duplicate_message",
    "identifier_key",
    "find_duplicates",
]


def duplicate_message(identifier_field: str) -> str:
    return f"Duplicate {identifier_field} found"


def identifier_key(value: Any) -> Hashable | None:
    # 空セル (None / 空文字) は重複判定しない: 必須エラー側で報告される
    if value is None or (isinstance(value, str) and value == ""):
        return None
    if isinstance(value, float) and value != value:
        return None
    try:
        hash(value)
    except TypeError:
        return None
    return value


def find_duplicates(rows: Sequence[dict[str, Any]], identifier_field: str) -> RowErrorMap:
    """Return row index -> {identifier_field: message} for every duplicated identifier."""
    message = duplicate_message(identifier_field)
    first_seen: dict[Hashable, int] = {}
    duplicates: RowErrorMap = {}

    for index, row in enumerate(rows):
        key = identifier_key(row.get(identifier_field))
        if key is None:
            continue
        first_index = first_seen.get(key)
        if first_index is None:
            first_seen[key] = index
            continue
        duplicates.setdefault(first_index, {})[identifier_field] = message
        duplicates.setdefault(index, {})[identifier_field] = message
    return duplicates
