from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .entity import EntityKind

"""Record model for uploaded clients / workers / tasks rows.

Raw rows (as delivered by the file-parsing layer) and normalized rows are kept
apart: a RawRecord is an untyped bag of cell values keyed by column name, while
a TypedRecord is the normalized row tagged with its entity kind and row index.

Two sentinel values travel inside normalized rows:
- INVALID: a list-like field (AvailableSlots / PreferredPhases) that could not
  be parsed. It must fail validation on its own field and nowhere else.
- NAN: a numeric field that could not be parsed. Always the same float object
  so that normalizing twice compares equal with ``==``.
"""

__all__ = [
    "RawRecord",
    "TypedRecord",
    "InvalidValue",
    "INVALID",
    "NAN",
    "is_nan",
    "FieldErrors",
    "RowErrorMap",
    "ValidationErrors",
]

RawRecord = dict[str, Any]

# field name -> message
FieldErrors = dict[str, str]
# row index -> field errors
RowErrorMap = dict[int, FieldErrors]
# entity -> row errors (absent entity / row means clean)
ValidationErrors = dict[EntityKind, RowErrorMap]


class InvalidValue:
    """Marker for a cell that could not be coerced to its canonical shape.

    Singleton; compare with ``is INVALID``. Falsy and not a list, so neither the
    non-empty array checks nor any list-based cross check can accept it.
    """

    _instance: InvalidValue | None = None

    def __new__(cls) -> InvalidValue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<INVALID>"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:  # copy / pickle で同一インスタンスを維持
        return "INVALID"


INVALID = InvalidValue()

NAN: float = float("nan")


def is_nan(value: Any) -> bool:
    return isinstance(value, float) and value != value


@dataclass(frozen=True)
class TypedRecord:
    """Logical representation of one normalized row.

    row_index is the 0-based position inside the entity's dataset and is the
    only identity used for error and edit tracking; it is not a field value.
    """
    entity: EntityKind
    row_index: int
    values: dict[str, Any] = field(default_factory=dict)

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.values.get(field_name, default)

    @property
    def invalid_fields(self) -> list[str]:
        """Fields holding the INVALID marker after normalization."""
        return [k for k, v in self.values.items() if v is INVALID]
