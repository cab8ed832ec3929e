from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..models.entity import PHASE_DOMAIN, EntityKind, parse_entity
from ..models.records import FieldErrors, RowErrorMap, ValidationErrors, is_nan

"""Cross-entity integrity checks over clients / workers / tasks.

Checks (all evaluated, none short-circuits another):
1. clients.RequestedTaskIDs must reference existing tasks.TaskID values
   (first missing ID reported).
2. tasks.RequiredSkills must each be offered by at least one worker
   (all missing skills reported).
3. workers.AvailableSlots must lie in the phase domain 1..6
   (all out-of-domain values reported).
4. workers: len(AvailableSlots) < MaxLoadPerPhase is an overload.

The reference sets are built once per pass from the current datasets;
datasets are spreadsheet-sized and a new upload replaces them wholesale.
The full pass and the single-row variant share the per-row check functions,
so a row's single-row result always equals its slice of the full result.
"""

__all__ = [
    "ReferenceSets",
    "build_reference_sets",
    "check_client_row",
    "check_task_row",
    "check_worker_row",
    "validate_cross_entity",
    "validate_cross_entity_single_row",
]

Rows = Sequence[Mapping[str, Any]]


@dataclass(frozen=True)
class ReferenceSets:
    """Lookup sets derived from the tasks and workers datasets."""
    task_ids: frozenset[str]
    worker_skills: frozenset[str]


def _task_ids(tasks: Rows) -> frozenset[str]:
    return frozenset(t.get("TaskID") for t in tasks if isinstance(t.get("TaskID"), str))


def _worker_skills(workers: Rows) -> frozenset[str]:
    skills: set[str] = set()
    for w in workers:
        value = w.get("Skills")
        if not isinstance(value, list):
            continue
        skills.update(s.strip() for s in value if isinstance(s, str))
    return frozenset(skills)


def build_reference_sets(tasks: Rows, workers: Rows) -> ReferenceSets:
    return ReferenceSets(task_ids=_task_ids(tasks), worker_skills=_worker_skills(workers))


def check_client_row(row: Mapping[str, Any], task_ids: frozenset[str]) -> FieldErrors:
    requested = row.get("RequestedTaskIDs")
    if not isinstance(requested, list):
        return {}
    for task_id in requested:
        if not isinstance(task_id, str) or task_id not in task_ids:
            return {"RequestedTaskIDs": f'Task ID "{task_id}" not found in tasks'}
    return {}


def check_task_row(row: Mapping[str, Any], worker_skills: frozenset[str]) -> FieldErrors:
    required = row.get("RequiredSkills")
    if not isinstance(required, list):
        return {}
    missing: list[str] = []
    for skill in required:
        name = skill.strip() if isinstance(skill, str) else skill
        if (not isinstance(name, str) or name not in worker_skills) and name not in missing:
            missing.append(name)
    if not missing:
        return {}
    return {
        "RequiredSkills": f"No available worker for skill(s): {', '.join(str(s) for s in missing)}"
    }


def _in_phase_domain(slot: Any) -> bool:
    if isinstance(slot, bool):
        return False
    if isinstance(slot, float):
        return slot.is_integer() and int(slot) in PHASE_DOMAIN
    return isinstance(slot, int) and slot in PHASE_DOMAIN


def check_worker_row(row: Mapping[str, Any]) -> FieldErrors:
    errors: FieldErrors = {}
    slots = row.get("AvailableSlots")
    if not isinstance(slots, list):
        return errors

    invalid = [s for s in slots if not _in_phase_domain(s)]
    if invalid:
        errors["AvailableSlots"] = f"Invalid phase(s): {', '.join(str(s) for s in invalid)}"

    max_load = row.get("MaxLoadPerPhase")
    if (
        isinstance(max_load, (int, float))
        and not isinstance(max_load, bool)
        and not is_nan(max_load)
        and len(slots) < max_load
    ):
        errors["MaxLoadPerPhase"] = (
            f"Worker overloaded: {len(slots)} available slot(s) < MaxLoadPerPhase {max_load}"
        )
    return errors


def validate_cross_entity(clients: Rows, workers: Rows, tasks: Rows) -> ValidationErrors:
    """Full-dataset pass. Entities / rows without findings are absent from the result."""
    refs = build_reference_sets(tasks, workers)
    result: ValidationErrors = {}

    def _collect(entity: EntityKind, rows: Rows, check) -> None:
        entity_errors: RowErrorMap = {}
        for index, row in enumerate(rows):
            found = check(row)
            if found:
                entity_errors[index] = found
        if entity_errors:
            result[entity] = entity_errors

    _collect(EntityKind.CLIENTS, clients, lambda r: check_client_row(r, refs.task_ids))
    _collect(EntityKind.TASKS, tasks, lambda r: check_task_row(r, refs.worker_skills))
    _collect(EntityKind.WORKERS, workers, check_worker_row)
    return result


def validate_cross_entity_single_row(
    entity: EntityKind | str,
    row: Mapping[str, Any],
    datasets: Mapping[EntityKind, Rows],
    *,
    refs: ReferenceSets | None = None,
) -> FieldErrors:
    """Cross-entity findings for one row, against the current datasets.

    Callers checking many rows pass refs built once with build_reference_sets().
    """
    kind = parse_entity(entity)
    if kind is EntityKind.CLIENTS:
        task_ids = refs.task_ids if refs is not None else _task_ids(datasets.get(EntityKind.TASKS, ()))
        return check_client_row(row, task_ids)
    if kind is EntityKind.TASKS:
        skills = refs.worker_skills if refs is not None else _worker_skills(datasets.get(EntityKind.WORKERS, ()))
        return check_task_row(row, skills)
    return check_worker_row(row)
