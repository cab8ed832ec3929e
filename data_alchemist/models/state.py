from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from .entity import EntityKind, expected_columns, parse_entity
from .records import INVALID, NAN, is_nan

"""Application state: datasets, error map snapshot, AI-confirmed markers.

AppState is owned by one ValidationSession. Persistence is an explicit
to_json() / from_json() boundary, never a side effect of reading state.

Wire encoding:
- INVALID -> {"__invalid__": true}, NaN -> {"__nan__": true}
- row index keys are strings on the wire, ints in memory
"""

__all__ = [
    "Dataset",
    "AppState",
    "encode_value",
    "decode_value",
]

SNAPSHOT_VERSION = 1


@dataclass
class Dataset:
    """Ordered normalized rows for one entity kind.

    columns is fixed at ingestion time (schema columns first, then any extra
    header columns) and does not depend on which keys the first row has.
    Replaced wholesale on a new upload; otherwise only mutated per row.
    """
    entity: EntityKind
    rows: list[dict[str, Any]]
    columns: list[str] = field(default_factory=list)
    file_name: str | None = None

    def __post_init__(self) -> None:
        self.entity = parse_entity(self.entity)
        if not self.columns:
            self.columns = expected_columns(self.entity)

    def __len__(self) -> int:
        return len(self.rows)

    def has_row(self, row_index: int) -> bool:
        return 0 <= row_index < len(self.rows)


def encode_value(value: Any) -> Any:
    if value is INVALID:
        return {"__invalid__": True}
    if is_nan(value):
        return {"__nan__": True}
    if isinstance(value, list):
        return [encode_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if value == {"__invalid__": True}:
            return INVALID
        if value == {"__nan__": True}:
            return NAN
        return {k: decode_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [decode_value(v) for v in value]
    return value


@dataclass
class AppState:
    """Single shared store for the three datasets and their validation state."""
    datasets: dict[EntityKind, Dataset] = field(default_factory=dict)
    # ErrorMap のスナップショット (永続化境界でのみ使用)
    errors: dict[EntityKind, dict[int, dict[str, str]]] = field(default_factory=dict)
    # entity -> row -> field -> True (値が承認済み提案由来)
    ai_confirmed: dict[EntityKind, dict[int, dict[str, bool]]] = field(default_factory=dict)

    def dataset(self, entity: EntityKind | str) -> Dataset | None:
        return self.datasets.get(parse_entity(entity))

    def rows(self, entity: EntityKind | str) -> list[dict[str, Any]]:
        ds = self.dataset(entity)
        return ds.rows if ds is not None else []

    def mark_confirmed(self, entity: EntityKind | str, row_index: int, field_name: str) -> None:
        kind = parse_entity(entity)
        self.ai_confirmed.setdefault(kind, {}).setdefault(row_index, {})[field_name] = True

    def is_confirmed(self, entity: EntityKind | str, row_index: int, field_name: str) -> bool:
        return bool(self.ai_confirmed.get(parse_entity(entity), {}).get(row_index, {}).get(field_name))

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "datasets": {
                kind.value: {
                    "file_name": ds.file_name,
                    "columns": list(ds.columns),
                    "rows": [encode_value(r) for r in ds.rows],
                }
                for kind, ds in self.datasets.items()
            },
            "errors": {
                kind.value: {str(i): dict(f) for i, f in rows.items()}
                for kind, rows in self.errors.items()
            },
            "ai_confirmed": {
                kind.value: {str(i): dict(f) for i, f in rows.items()}
                for kind, rows in self.ai_confirmed.items()
            },
        }

    def to_json(self, *, indent: int | None = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AppState:
        datasets: dict[EntityKind, Dataset] = {}
        for name, raw in (data.get("datasets") or {}).items():
            kind = parse_entity(name)
            datasets[kind] = Dataset(
                entity=kind,
                rows=[decode_value(r) for r in raw.get("rows", [])],
                columns=list(raw.get("columns") or []),
                file_name=raw.get("file_name"),
            )

        def _int_keyed(section: Any) -> dict[EntityKind, dict[int, dict[str, Any]]]:
            out: dict[EntityKind, dict[int, dict[str, Any]]] = {}
            for name, rows in (section or {}).items():
                converted = {int(i): dict(f) for i, f in rows.items() if f}
                if converted:
                    out[parse_entity(name)] = converted
            return out

        return AppState(
            datasets=datasets,
            errors=_int_keyed(data.get("errors")),
            ai_confirmed=_int_keyed(data.get("ai_confirmed")),
        )

    @staticmethod
    def from_json(text: str) -> AppState:
        return AppState.from_dict(json.loads(text))
