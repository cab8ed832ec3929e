from __future__ import annotations

import copy
import threading
from collections.abc import Iterator, Mapping, Sequence

from ..models.entity import EntityKind, parse_entity
from ..models.records import FieldErrors, RowErrorMap, ValidationErrors

"""Error map reconciler: entity -> row index -> field -> message.

Absence means clean. After every mutation:
- a row with no errors has no key (never an empty dict),
- an entity with no erroneous rows has no key.

Row updates replace the row's entry wholesale so that a field error that no
longer occurs disappears. Writes for one entity are serialized by a
per-entity lock because delete-if-empty is a read-modify-write.
"""

__all__ = [
    "ErrorMap",
]


class ErrorMap:
    """Live validation error map shared by the session and the change layer."""

    def __init__(self, initial: Mapping[EntityKind | str, Mapping[int, Mapping[str, str]]] | None = None) -> None:
        self._errors: ValidationErrors = {}
        self._locks: dict[EntityKind, threading.Lock] = {e: threading.Lock() for e in EntityKind}
        for entity, rows in (initial or {}).items():
            self.replace_all(entity, rows)

    # ------------------------------------------------------------------
    # mutations
    # ------------------------------------------------------------------
    def replace_all(self, entity: EntityKind | str, row_errors: Mapping[int, Mapping[str, str]]) -> None:
        """Wholesale replacement after a full-dataset validation pass."""
        kind = parse_entity(entity)
        cleaned: RowErrorMap = {
            int(idx): dict(fields) for idx, fields in row_errors.items() if fields
        }
        with self._locks[kind]:
            if cleaned:
                self._errors[kind] = cleaned
            else:
                self._errors.pop(kind, None)

    def update_row(self, entity: EntityKind | str, row_index: int, field_errors: Mapping[str, str]) -> None:
        """Replace (or delete) one row's entry after single-row re-validation."""
        kind = parse_entity(entity)
        with self._locks[kind]:
            rows = dict(self._errors.get(kind, {}))
            self._apply(rows, row_index, field_errors)
            self._commit(kind, rows)

    def batch_update_rows(
        self,
        entity: EntityKind | str,
        row_indices: Sequence[int],
        rows: Sequence[Mapping[str, str]],
    ) -> None:
        """update_row semantics for several rows, published in one swap.

        rows[i] is the field error map for row_indices[i]. Readers never observe
        a state where only part of the batch is applied.
        """
        if len(row_indices) != len(rows):
            raise ValueError(
                f"row_indices and rows must have the same length ({len(row_indices)} != {len(rows)})"
            )
        kind = parse_entity(entity)
        with self._locks[kind]:
            staged = dict(self._errors.get(kind, {}))
            for row_index, field_errors in zip(row_indices, rows, strict=True):
                self._apply(staged, row_index, field_errors)
            self._commit(kind, staged)

    @staticmethod
    def _apply(rows: RowErrorMap, row_index: int, field_errors: Mapping[str, str]) -> None:
        if field_errors:
            rows[int(row_index)] = dict(field_errors)
        else:
            rows.pop(int(row_index), None)

    def _commit(self, kind: EntityKind, rows: RowErrorMap) -> None:
        # dict の差し替えは 1 代入で完了する
        if rows:
            self._errors[kind] = rows
        else:
            self._errors.pop(kind, None)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get_row(self, entity: EntityKind | str, row_index: int) -> FieldErrors:
        return dict(self._errors.get(parse_entity(entity), {}).get(int(row_index), {}))

    def get_entity(self, entity: EntityKind | str) -> RowErrorMap:
        return copy.deepcopy(self._errors.get(parse_entity(entity), {}))

    def has_error(self, entity: EntityKind | str, row_index: int, field: str) -> bool:
        return field in self._errors.get(parse_entity(entity), {}).get(int(row_index), {})

    def error_count(self, entity: EntityKind | str | None = None) -> int:
        kinds = [parse_entity(entity)] if entity is not None else list(EntityKind)
        return sum(len(fields) for k in kinds for fields in self._errors.get(k, {}).values())

    def row_count(self, entity: EntityKind | str) -> int:
        return len(self._errors.get(parse_entity(entity), {}))

    def is_clean(self) -> bool:
        return not self._errors

    def as_dict(self) -> ValidationErrors:
        """Deep copy of the current map."""
        return copy.deepcopy(self._errors)

    def iter_cells(self) -> Iterator[tuple[EntityKind, int, str, str]]:
        """Yield (entity, row, field, message) in entity / row order."""
        for kind in EntityKind:
            rows = self._errors.get(kind, {})
            for row_index in sorted(rows):
                for field, message in rows[row_index].items():
                    yield kind, row_index, field, message

    def __contains__(self, entity: object) -> bool:
        try:
            return parse_entity(entity) in self._errors  # type: ignore[arg-type]
        except ValueError:
            return False

    def __repr__(self) -> str:  # pragma: no cover (debug only)
        return f"ErrorMap({self._errors!r})"
