"""Domain models for clients / workers / tasks validation.

Entity kinds and their column schemas, normalized records and sentinels,
error records, validation summaries, rule configuration and the
persistable application state.
"""

from .entity import EntityKind, UnknownEntityError, parse_entity
from .error_record import ErrorRecord
from .records import INVALID, NAN, TypedRecord, is_nan
from .rules import PrioritizationWeights, RulesConfig
from .state import AppState, Dataset
from .validation_result import BulkFixResult, EntityStat, ValidationSummary

__all__ = [
    # Entities
    "EntityKind",
    "UnknownEntityError",
    "parse_entity",
    # Records
    "INVALID",
    "NAN",
    "TypedRecord",
    "is_nan",
    # Results
    "ErrorRecord",
    "EntityStat",
    "ValidationSummary",
    "BulkFixResult",
    # Rules / state
    "PrioritizationWeights",
    "RulesConfig",
    "AppState",
    "Dataset",
]
