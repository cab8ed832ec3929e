from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

from data_alchemist.logging.error_log import ErrorLogBuffer, records_from_cells
from data_alchemist.models.error_record import ErrorRecord

"""Contract: every JSON Lines error log entry follows contracts/error_log_schema.json."""

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "data_alchemist" / "contracts" / "error_log_schema.json"


@pytest.fixture(scope="module")
def error_log_schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


def test_record_matches_schema(error_log_schema):
    rec = ErrorRecord.create("clients", 0, "RequestedTaskIDs", 'Task ID "T9" not found in tasks')
    jsonschema.validate(json.loads(rec.to_json_line()), error_log_schema)


def test_extra_keys_are_rejected_by_schema(error_log_schema):
    data = json.loads(ErrorRecord.create("tasks", 1, "Duration", "x").to_json_line())
    data["sheet"] = "Tasks"
    with pytest.raises(jsonschema.ValidationError):
        jsonschema.validate(data, error_log_schema)


def test_unknown_entity_is_rejected_by_schema(error_log_schema):
    data = json.loads(ErrorRecord.create("projects", 1, "X", "x").to_json_line())
    with pytest.raises(jsonschema.ValidationError):
        jsonschema.validate(data, error_log_schema)


def test_flushed_log_lines_match_schema(error_log_schema, loaded_session, tmp_path: Path):
    loaded_session.edit_cell("clients", 0, "PriorityLevel", "9", immediate=True)
    loaded_session.edit_cell("workers", 1, "AvailableSlots", "0,7", immediate=True)
    buf = ErrorLogBuffer(tmp_path)
    buf.extend(records_from_cells(loaded_session.errors.iter_cells()))
    lines = buf.flush().read_text(encoding="utf-8").splitlines()
    assert len(lines) == loaded_session.errors.error_count()
    for line in lines:
        jsonschema.validate(json.loads(line), error_log_schema)
