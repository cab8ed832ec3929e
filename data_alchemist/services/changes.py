from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from ..models.entity import EntityKind, UnknownEntityError, parse_entity
from ..models.validation_result import BulkFixResult

if TYPE_CHECKING:
    from .session import ValidationSession

"""Change reconciliation between suggestion producers and the validation state.

Producers (AI modify / AI fix-all / anything else the host wires in) are
opaque. Their output reaches this module as plain data:

- modification proposal: {"message": str, "changes": {row: {field: value}}}
- bulk fix map:          {entity: {row: {field: value}}}

Both may be None, empty or partly malformed; anything that cannot be read is
treated as "nothing to apply". Row keys may arrive as strings ("0").

Per (row, field) lifecycle:
    clean -> pending (propose) -> confirmed (accept)
    pending -> clean (reject)
    clean -> confirmed (bulk fix)
A confirmed cell never goes back to pending; a new proposal on it simply
overwrites the value when accepted.

Accepting always merges into the row as it is *now*, not as it was when the
proposal was produced.
"""

__all__ = [
    "CellState",
    "PendingChangeSet",
    "ChangeReconciler",
    "parse_row_changes",
]

logger = logging.getLogger(__name__)


class CellState(Enum):
    CLEAN = "clean"
    PENDING = "pending"
    CONFIRMED = "confirmed"


@dataclass
class PendingChangeSet:
    """Proposal held apart from the dataset until accepted or rejected."""
    entity: EntityKind
    message: str
    changes: dict[int, dict[str, Any]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not self.changes

    def cell_count(self) -> int:
        return sum(len(f) for f in self.changes.values())


def _row_index(key: Any) -> int | None:
    if isinstance(key, bool):
        return None
    if isinstance(key, int):
        return key if key >= 0 else None
    if isinstance(key, str) and key.strip().isdigit():
        return int(key.strip())
    return None


def parse_row_changes(raw: Any) -> dict[int, dict[str, Any]]:
    """{row: {field: value}} with every unreadable entry dropped."""
    if not isinstance(raw, Mapping):
        return {}
    parsed: dict[int, dict[str, Any]] = {}
    for key, fields in raw.items():
        index = _row_index(key)
        if index is None or not isinstance(fields, Mapping):
            logger.debug(f"ignoring malformed change entry: {key!r}")
            continue
        values = {str(f): v for f, v in fields.items()}
        if values:
            parsed.setdefault(index, {}).update(values)
    return parsed


class ChangeReconciler:
    """Propose / accept / reject / bulk-fix against one ValidationSession."""

    def __init__(self, session: ValidationSession) -> None:
        self._session = session
        self._pending: dict[EntityKind, PendingChangeSet] = {}

    # ------------------------------------------------------------------
    # proposal lifecycle
    # ------------------------------------------------------------------
    def propose(self, entity: EntityKind | str, response: Any) -> PendingChangeSet | None:
        """Store a producer response as the entity's pending change set.

        A newer proposal for the same entity supersedes the outstanding one.
        None / empty / malformed responses are a no-op and return None.
        """
        kind = parse_entity(entity)
        if not isinstance(response, Mapping):
            logger.debug(f"propose({kind}): no usable response")
            return None
        changes = parse_row_changes(response.get("changes"))
        if not changes:
            logger.debug(f"propose({kind}): response carried no changes")
            return None
        message = response.get("message")
        pending = PendingChangeSet(
            entity=kind,
            message=message if isinstance(message, str) else "",
            changes=changes,
        )
        with self._session.lock:
            if kind in self._pending:
                logger.info(f"proposal for {kind} superseded by a newer one")
            self._pending[kind] = pending
        return pending

    def pending(self, entity: EntityKind | str) -> PendingChangeSet | None:
        return self._pending.get(parse_entity(entity))

    def has_pending(self, entity: EntityKind | str) -> bool:
        return parse_entity(entity) in self._pending

    def cell_state(self, entity: EntityKind | str, row_index: int, field_name: str) -> CellState:
        kind = parse_entity(entity)
        if self._session.state.is_confirmed(kind, row_index, field_name):
            return CellState.CONFIRMED
        pending = self._pending.get(kind)
        if pending is not None and field_name in pending.changes.get(row_index, {}):
            return CellState.PENDING
        return CellState.CLEAN

    def accept_all(self, entity: EntityKind | str) -> list[int]:
        """Apply every pending change, re-validating row by row.

        The pending set is cleared only after all rows were processed.
        Returns the row indices that were applied.
        """
        kind = parse_entity(entity)
        session = self._session
        with session.lock:
            pending = self._pending.get(kind)
            if pending is None:
                return []
            ds = session.dataset(kind)
            applied: list[int] = []
            for row_index in sorted(pending.changes):
                fields = pending.changes[row_index]
                if ds is None or not ds.has_row(row_index):
                    logger.warning(f"accept_all({kind}): row {row_index} no longer exists, skipped")
                    continue
                session.apply_values(kind, row_index, fields, confirmed=True)
                session.revalidate_rows(kind, [row_index], touched_fields=fields.keys())
                applied.append(row_index)
            del self._pending[kind]
        logger.info(f"accepted {len(applied)} row change(s) for {kind}")
        return applied

    def accept_cell(self, entity: EntityKind | str, row_index: int, field_name: str) -> bool:
        """Apply one pending (row, field) pair. False when nothing was pending there."""
        kind = parse_entity(entity)
        session = self._session
        with session.lock:
            pending = self._pending.get(kind)
            if pending is None or field_name not in pending.changes.get(row_index, {}):
                return False
            ds = session.dataset(kind)
            value = pending.changes[row_index].pop(field_name)
            if not pending.changes[row_index]:
                del pending.changes[row_index]
            if pending.is_empty():
                del self._pending[kind]
            if ds is None or not ds.has_row(row_index):
                logger.warning(f"accept_cell({kind}): row {row_index} no longer exists, skipped")
                return False
            session.apply_values(kind, row_index, {field_name: value}, confirmed=True)
            session.revalidate_rows(kind, [row_index], touched_fields=[field_name])
        return True

    def reject(self, entity: EntityKind | str) -> bool:
        """Drop the pending set without touching dataset or error map."""
        with self._session.lock:
            return self._pending.pop(parse_entity(entity), None) is not None

    def discard(self, entity: EntityKind | str) -> None:
        """Forget pending changes because the dataset they refer to was replaced."""
        self._pending.pop(parse_entity(entity), None)

    # ------------------------------------------------------------------
    # bulk fix
    # ------------------------------------------------------------------
    def apply_bulk_fix(self, fixes: Any) -> BulkFixResult:
        """Apply a fix map, but only to cells that currently carry an error.

        Eligibility is decided against the error map as it was before any fix
        of this batch is written. Each entity gets one batched re-validation.
        """
        result = BulkFixResult()
        if not isinstance(fixes, Mapping):
            logger.debug("apply_bulk_fix: no usable fix map")
            return result

        session = self._session
        with session.lock:
            staged: dict[EntityKind, dict[int, dict[str, Any]]] = {}
            for raw_entity, raw_rows in fixes.items():
                try:
                    kind = parse_entity(raw_entity)
                except UnknownEntityError:
                    logger.warning(f"apply_bulk_fix: unknown entity {raw_entity!r} ignored")
                    continue
                ds = session.dataset(kind)
                for row_index, fields in parse_row_changes(raw_rows).items():
                    for field_name, value in fields.items():
                        target = (kind.value, row_index, field_name)
                        if ds is None or not ds.has_row(row_index):
                            result.skipped.append(target)
                            continue
                        if not session.errors.has_error(kind, row_index, field_name):
                            # 既に直っているセルへの古い修正は捨てる
                            result.skipped.append(target)
                            continue
                        staged.setdefault(kind, {}).setdefault(row_index, {})[field_name] = value
                        result.applied.append(target)

            for kind, rows in staged.items():
                touched: set[str] = set()
                for row_index, fields in rows.items():
                    session.apply_values(kind, row_index, fields, confirmed=True)
                    touched.update(fields)
                session.revalidate_rows(kind, list(rows), touched_fields=touched)

        if result.skipped:
            logger.info(f"bulk fix skipped {len(result.skipped)} stale fix(es)")
        logger.info(f"bulk fix applied {result.applied_count} fix(es)")
        return result
