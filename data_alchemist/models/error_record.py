from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the validation error log.

One ErrorRecord is one cell-level finding taken from the error map: which
entity, which 0-based row, which field and the message shown to the user.

The ErrorRecord adheres to the JSON schema contract in
data_alchemist/contracts/error_log_schema.json (fixed key set).
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        entity: Entity kind value ("clients" / "workers" / "tasks")
        row: 0-based row index inside the entity's dataset
        field: Column name carrying the error
        message: Human-readable validation message
    """
    timestamp: str  # ISO8601 UTC
    entity: str
    row: int  # 0 始まりの行インデックス
    field: str
    message: str

    @staticmethod
    def create(entity: str, row: int, field: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord with current UTC timestamp."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            entity=str(entity),
            row=row,
            field=field,
            message=message,
        )

    def to_json_line(self) -> str:
        """Serialize ErrorRecord to JSON Lines format.

        Returns:
            JSON string representation without extra keys (contract enforced)
        """
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
