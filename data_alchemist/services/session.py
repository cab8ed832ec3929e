from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..models.entity import EntityKind, expected_columns, identifier_field, parse_entity
from ..models.records import FieldErrors, RawRecord, RowErrorMap, TypedRecord
from ..models.state import AppState, Dataset
from ..models.validation_result import EntityStat, ValidationSummary
from .changes import ChangeReconciler
from .cross_entity import (
    ReferenceSets,
    build_reference_sets,
    validate_cross_entity,
    validate_cross_entity_single_row,
)
from .debounce import RowDebouncer, TimerFactory
from .duplicates import find_duplicates, identifier_key
from .error_map import ErrorMap
from .normalizer import normalize, normalize_rows
from .schema_validator import validate_row

"""Validation session: the single coordinating service over the shared store.

Responsibilities:
- ingest (replace) one entity's dataset, normalizing every row
- full validation pass: schema -> duplicate IDs -> cross-entity, merged
- cell edits with debounced per-row re-validation
- immediate re-validation for bulk operations (accept-all / fix-all)
- readiness check and snapshot / restore at an explicit persistence boundary

Merge precedence for one cell: schema error, then duplicate ID, then
cross-entity. A later source only fills fields still clean.

All mutations run under one re-entrant lock so timer-driven re-validation
never interleaves with an edit or a bulk operation.
"""

__all__ = [
    "ValidationSession",
    "merge_field_errors",
    "DEPENDENT_FIELDS",
]

logger = logging.getLogger(__name__)

# (entity, field) edited -> entity whose rows reference that field
DEPENDENT_FIELDS: dict[tuple[EntityKind, str], EntityKind] = {
    (EntityKind.TASKS, "TaskID"): EntityKind.CLIENTS,
    (EntityKind.WORKERS, "Skills"): EntityKind.TASKS,
}

DEFAULT_DEBOUNCE_SECONDS = 0.3


def merge_field_errors(*sources: Mapping[str, str] | None) -> FieldErrors:
    """First source wins per field."""
    merged: FieldErrors = {}
    for source in sources:
        for field, message in (source or {}).items():
            merged.setdefault(field, message)
    return merged


class ValidationSession:
    """Owns AppState + ErrorMap and runs every validation entry point."""

    def __init__(
        self,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: TimerFactory | None = None,
        state: AppState | None = None,
    ) -> None:
        self.state = state or AppState()
        self.errors = ErrorMap(self.state.errors)
        self.lock = threading.RLock()
        self._debouncer = RowDebouncer(debounce_seconds, self._on_debounce, timer_factory=timer_factory)
        # (entity, row) -> fields edited since the row was last validated
        self._edited_fields: dict[tuple[EntityKind, int], set[str]] = {}
        # (entity, row) -> identifier values the row held before an edit
        self._previous_ids: dict[tuple[EntityKind, int], set[Any]] = {}
        self.changes = ChangeReconciler(self)

    # ------------------------------------------------------------------
    # datasets
    # ------------------------------------------------------------------
    def load_dataset(
        self,
        entity: EntityKind | str,
        raw_rows: Iterable[RawRecord],
        *,
        file_name: str | None = None,
        columns: Sequence[str] | None = None,
    ) -> Dataset:
        """Replace an entity's dataset wholesale (new upload).

        AI-confirmed markers and pending proposals of the previous dataset are
        dropped. Cross-entity results depend on every dataset, so the whole
        error map is recomputed before returning.
        """
        kind = parse_entity(entity)
        rows = normalize_rows(kind, raw_rows)
        schema_cols = expected_columns(kind)
        extra = [c for c in (columns or []) if c not in schema_cols]
        dataset = Dataset(entity=kind, rows=rows, columns=schema_cols + extra, file_name=file_name)
        with self.lock:
            self.state.datasets[kind] = dataset
            self.state.ai_confirmed.pop(kind, None)
            self.changes.discard(kind)
            self._full_pass()
        logger.info(f"loaded {kind} rows={len(rows)} file={file_name or '-'}")
        return dataset

    def dataset(self, entity: EntityKind | str) -> Dataset | None:
        return self.state.dataset(entity)

    def rows(self, entity: EntityKind | str) -> list[dict[str, Any]]:
        return self.state.rows(entity)

    def typed_row(self, entity: EntityKind | str, row_index: int) -> TypedRecord:
        kind = parse_entity(entity)
        return TypedRecord(entity=kind, row_index=row_index, values=dict(self._row(kind, row_index)))

    def is_ready(self) -> bool:
        """True when every entity kind has an uploaded dataset with at least one row."""
        return all(len(self.rows(kind)) > 0 for kind in EntityKind)

    def _datasets(self) -> dict[EntityKind, list[dict[str, Any]]]:
        return {kind: self.rows(kind) for kind in EntityKind}

    def _row(self, kind: EntityKind, row_index: int) -> dict[str, Any]:
        ds = self.state.dataset(kind)
        if ds is None or not ds.has_row(row_index):
            raise IndexError(f"{kind} has no row {row_index}")
        return ds.rows[row_index]

    # ------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------
    def validate_all(self) -> ValidationSummary:
        """Full pass over all three datasets; replaces the whole error map."""
        started = time.perf_counter()
        self._full_pass()
        summary = self.summary(elapsed_seconds=time.perf_counter() - started)
        logger.debug(f"validate_all errors={summary.errors} error_rows={summary.error_rows}")
        return summary

    def _full_pass(self) -> None:
        with self.lock:
            datasets = self._datasets()
            cross = validate_cross_entity(
                datasets[EntityKind.CLIENTS],
                datasets[EntityKind.WORKERS],
                datasets[EntityKind.TASKS],
            )
            for kind in EntityKind:
                rows = datasets[kind]
                duplicates = find_duplicates(rows, identifier_field(kind))
                cross_rows = cross.get(kind, {})
                entity_errors: RowErrorMap = {}
                for index, row in enumerate(rows):
                    merged = merge_field_errors(
                        validate_row(kind, row), duplicates.get(index), cross_rows.get(index)
                    )
                    if merged:
                        entity_errors[index] = merged
                self.errors.replace_all(kind, entity_errors)
            self._edited_fields.clear()
            self._previous_ids.clear()
            self._debouncer.cancel_where(lambda key: True)

    def row_errors(
        self,
        entity: EntityKind | str,
        row_index: int,
        *,
        duplicates: RowErrorMap | None = None,
        refs: ReferenceSets | None = None,
    ) -> FieldErrors:
        """Errors for one row as the full pass would compute them."""
        kind = parse_entity(entity)
        rows = self.rows(kind)
        row = self._row(kind, row_index)
        if duplicates is None:
            duplicates = find_duplicates(rows, identifier_field(kind))
        return merge_field_errors(
            validate_row(kind, row),
            duplicates.get(row_index),
            validate_cross_entity_single_row(kind, row, self._datasets(), refs=refs),
        )

    def revalidate_rows(
        self,
        entity: EntityKind | str,
        row_indices: Iterable[int],
        *,
        touched_fields: Iterable[str] | None = None,
    ) -> list[int]:
        """Immediate re-validation of rows plus the rows their change can affect.

        touched_fields=None means "unknown", which refreshes dependent entities
        as well. Returns the patched row indices of the given entity.
        """
        kind = parse_entity(entity)
        with self.lock:
            fields: set[str] | None = None if touched_fields is None else set(touched_fields)
            ds = self.state.dataset(kind)
            indices = sorted({i for i in row_indices if ds is not None and ds.has_row(i)})
            for index in indices:
                # 同じ行のデバウンス待ちはここで吸収する
                self._debouncer.cancel((kind, index))
                pending_fields = self._edited_fields.pop((kind, index), set())
                if fields is not None:
                    fields |= pending_fields
            return self._revalidate(kind, indices, fields)

    def _revalidate(self, kind: EntityKind, indices: list[int], fields: set[str] | None) -> list[int]:
        rows = self.rows(kind)
        id_field = identifier_field(kind)
        targets = set(indices)

        ids_of_interest: set[Any] = set()
        for index in indices:
            ids_of_interest |= self._previous_ids.pop((kind, index), set())
            key = identifier_key(rows[index].get(id_field))
            if key is not None:
                ids_of_interest.add(key)
        if ids_of_interest:
            targets |= {
                i for i, r in enumerate(rows) if identifier_key(r.get(id_field)) in ids_of_interest
            }

        refs = build_reference_sets(self.rows(EntityKind.TASKS), self.rows(EntityKind.WORKERS))
        patched = sorted(targets)
        if patched:
            duplicates = find_duplicates(rows, id_field)
            self.errors.batch_update_rows(
                kind, patched, [self.row_errors(kind, i, duplicates=duplicates, refs=refs) for i in patched]
            )

        for (source, field), dependent in DEPENDENT_FIELDS.items():
            if source is not kind or not indices:
                continue
            if fields is not None and field not in fields:
                continue
            self._refresh_entity(dependent, refs)
        return patched

    def _refresh_entity(self, kind: EntityKind, refs: ReferenceSets) -> None:
        rows = self.rows(kind)
        if not rows:
            return
        duplicates = find_duplicates(rows, identifier_field(kind))
        indices = list(range(len(rows)))
        self.errors.batch_update_rows(
            kind, indices, [self.row_errors(kind, i, duplicates=duplicates, refs=refs) for i in indices]
        )

    # ------------------------------------------------------------------
    # edits
    # ------------------------------------------------------------------
    def apply_values(
        self,
        entity: EntityKind | str,
        row_index: int,
        values: Mapping[str, Any],
        *,
        confirmed: bool = False,
    ) -> dict[str, Any]:
        """Merge values into the row's *current* state and re-normalize it.

        Does not validate. confirmed=True marks each field AI-confirmed;
        otherwise (manual edit) any existing mark on those fields is cleared.
        """
        kind = parse_entity(entity)
        with self.lock:
            current = self._row(kind, row_index)
            id_field = identifier_field(kind)
            if id_field in values:
                old = identifier_key(current.get(id_field))
                if old is not None:
                    self._previous_ids.setdefault((kind, row_index), set()).add(old)
            merged = dict(current)
            merged.update(values)
            normalized = normalize(kind, merged)
            self.state.datasets[kind].rows[row_index] = normalized
            marks = self.state.ai_confirmed.get(kind, {})
            for field in values:
                if confirmed:
                    self.state.mark_confirmed(kind, row_index, field)
                elif field in marks.get(row_index, {}):
                    del marks[row_index][field]
                    if not marks[row_index]:
                        del marks[row_index]
            if kind in self.state.ai_confirmed and not self.state.ai_confirmed[kind]:
                del self.state.ai_confirmed[kind]
            return normalized

    def edit_cell(
        self,
        entity: EntityKind | str,
        row_index: int,
        field: str,
        value: Any,
        *,
        immediate: bool = False,
    ) -> dict[str, Any]:
        """Manual single-cell edit.

        Re-validation is debounced per row unless immediate=True.
        """
        kind = parse_entity(entity)
        with self.lock:
            normalized = self.apply_values(kind, row_index, {field: value})
            self._edited_fields.setdefault((kind, row_index), set()).add(field)
            if immediate:
                self.revalidate_rows(kind, [row_index], touched_fields=[field])
                return normalized
        self._debouncer.schedule((kind, row_index))
        return normalized

    def _on_debounce(self, key: tuple[EntityKind, int]) -> None:
        kind, row_index = key
        with self.lock:
            fields = self._edited_fields.pop(key, set())
            ds = self.state.dataset(kind)
            if ds is None or not ds.has_row(row_index):
                logger.debug(f"debounced row gone: {kind}[{row_index}]")
                return
            self._revalidate(kind, [row_index], fields)

    def flush_pending(self) -> int:
        """Run every debounced re-validation now. Returns how many rows ran."""
        return len(self._debouncer.flush())

    def pending_revalidations(self) -> list[tuple[EntityKind, int]]:
        return list(self._debouncer.pending())  # type: ignore[arg-type]

    # ------------------------------------------------------------------
    # reporting / persistence
    # ------------------------------------------------------------------
    def summary(self, elapsed_seconds: float = 0.0) -> ValidationSummary:
        stats = [
            EntityStat(
                entity=kind.value,
                rows=len(self.rows(kind)),
                error_rows=self.errors.row_count(kind),
                errors=self.errors.error_count(kind),
            )
            for kind in EntityKind
        ]
        return ValidationSummary(entity_stats=stats, ready=self.is_ready(), elapsed_seconds=elapsed_seconds)

    def snapshot(self) -> AppState:
        """Deep copy of the current store including the error map."""
        with self.lock:
            return AppState(
                datasets=copy.deepcopy(self.state.datasets),
                errors=self.errors.as_dict(),
                ai_confirmed=copy.deepcopy(self.state.ai_confirmed),
            )

    @classmethod
    def restore(cls, state: AppState, **kwargs: Any) -> ValidationSession:
        return cls(state=state, **kwargs)
