from __future__ import annotations

from enum import Enum

"""Entity kinds for the clients / workers / tasks datasets.

The set of entity kinds is closed: every dataset, error map entry and pending
change is addressed by one of the three members below. Column lists are the
canonical field names after header remapping; tables derive their columns from
here instead of from the first row's keys.
"""

__all__ = [
    "EntityKind",
    "UnknownEntityError",
    "IDENTIFIER_FIELDS",
    "EXPECTED_COLUMNS",
    "PHASE_DOMAIN",
    "parse_entity",
    "expected_columns",
    "identifier_field",
]


class UnknownEntityError(ValueError):
    """Raised when a caller passes something that is not one of the three entity kinds."""


class EntityKind(str, Enum):
    """Closed set of uploaded table kinds.

    Values match the keys used by the error map and snapshot files.
    """
    CLIENTS = "clients"
    WORKERS = "workers"
    TASKS = "tasks"

    def __str__(self) -> str:  # "clients" のままログ出力
        return self.value


IDENTIFIER_FIELDS: dict[EntityKind, str] = {
    EntityKind.CLIENTS: "ClientID",
    EntityKind.WORKERS: "WorkerID",
    EntityKind.TASKS: "TaskID",
}

EXPECTED_COLUMNS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.CLIENTS: (
        "ClientID",
        "ClientName",
        "PriorityLevel",
        "RequestedTaskIDs",
        "GroupTag",
        "AttributesJSON",
    ),
    EntityKind.WORKERS: (
        "WorkerID",
        "WorkerName",
        "Skills",
        "AvailableSlots",
        "MaxLoadPerPhase",
        "WorkerGroup",
        "QualificationLevel",
    ),
    EntityKind.TASKS: (
        "TaskID",
        "TaskName",
        "Category",
        "Duration",
        "RequiredSkills",
        "PreferredPhases",
        "MaxConcurrent",
    ),
}

# Valid phase numbers for worker AvailableSlots
PHASE_DOMAIN: frozenset[int] = frozenset(range(1, 7))


def parse_entity(value: EntityKind | str) -> EntityKind:
    """Coerce a string or EntityKind into EntityKind.

    Raises:
        UnknownEntityError: if the value does not name one of the three kinds
    """
    if isinstance(value, EntityKind):
        return value
    try:
        return EntityKind(str(value).strip().lower())
    except ValueError:
        raise UnknownEntityError(
            f"unknown entity kind: {value!r} (expected one of {[e.value for e in EntityKind]})"
        ) from None


def expected_columns(entity: EntityKind | str) -> list[str]:
    return list(EXPECTED_COLUMNS[parse_entity(entity)])


def identifier_field(entity: EntityKind | str) -> str:
    return IDENTIFIER_FIELDS[parse_entity(entity)]
