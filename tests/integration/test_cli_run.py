from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from data_alchemist.cli import main as cli_main
from data_alchemist.models.entity import EntityKind
from data_alchemist.models.records import INVALID
from data_alchemist.models.state import AppState

"""End-to-end CLI runs over real CSV / XLSX files written with pandas + openpyxl."""


@pytest.fixture
def dirty_inputs(write_config, clean_input_files, table_writer) -> dict[str, Path]:
    """Clients with a missing task reference, workers with a broken slot list, tasks with a bad phase range."""
    table_writer(
        clean_input_files["clients"],
        [
            {"ClientID": "C1", "ClientName": "Acme", "PriorityLevel": "3", "RequestedTaskIDs": "T1,T9",
             "GroupTag": "GroupA", "AttributesJSON": "{}"},
            {"ClientID": "C2", "ClientName": "Globex", "PriorityLevel": "2", "RequestedTaskIDs": "T2",
             "GroupTag": "GroupB", "AttributesJSON": "{bad"},
        ],
    )
    table_writer(
        clean_input_files["workers"],
        [
            {"WorkerID": "W1", "WorkerName": "Alice", "Skills": "coding,testing", "AvailableSlots": "not-json-[",
             "MaxLoadPerPhase": "1", "WorkerGroup": "GroupA", "QualificationLevel": "4"},
            {"WorkerID": "W2", "WorkerName": "Bob", "Skills": "design", "AvailableSlots": "2,4",
             "MaxLoadPerPhase": "1", "WorkerGroup": "GroupB", "QualificationLevel": "2"},
        ],
    )
    table_writer(
        clean_input_files["tasks"],
        [
            {"TaskID": "T1", "TaskName": "Build", "Category": "Dev", "Duration": "2", "RequiredSkills": "coding",
             "PreferredPhases": "2-4", "MaxConcurrent": "2"},
            {"TaskID": "T2", "TaskName": "Review", "Category": "QA", "Duration": "1",
             "RequiredSkills": "testing", "PreferredPhases": "4-2", "MaxConcurrent": "1"},
        ],
    )
    return clean_input_files


def _log_lines(workdir: Path) -> list[dict[str, Any]]:
    files = list((workdir / "logs").glob("validation-*.log"))
    assert len(files) == 1
    return [json.loads(line) for line in files[0].read_text(encoding="utf-8").splitlines()]


def test_clean_run_writes_no_error_log(write_config, clean_input_files, temp_workdir: Path, capsys):
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 0
    assert "INFO loaded clients rows=2 file=clients.csv" in out
    assert "INFO loaded tasks rows=2 file=tasks.xlsx" in out
    assert list((temp_workdir / "logs").glob("*.log")) == []


def test_dirty_run_logs_every_cell_error(dirty_inputs, temp_workdir: Path, capsys):
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 2
    records = _log_lines(temp_workdir)
    found = {(r["entity"], r["row"], r["field"]): r["message"] for r in records}
    assert found == {
        ("clients", 0, "RequestedTaskIDs"): 'Task ID "T9" not found in tasks',
        ("clients", 1, "AttributesJSON"): "Invalid JSON",
        ("workers", 0, "AvailableSlots"): "AvailableSlots could not be parsed",
        ("tasks", 1, "PreferredPhases"): "PreferredPhases could not be parsed",
    }
    assert "SUMMARY entities=3/3 rows=6 error_rows=4 errors=4 clean=no" in out


def test_bulk_fix_file_cleans_the_run(dirty_inputs, temp_workdir: Path, capsys):
    fixes = temp_workdir / "fixes.json"
    fixes.write_text(
        json.dumps(
            {
                "clients": {"0": {"RequestedTaskIDs": ["T1"]}, "1": {"AttributesJSON": {"tier": "gold"}}},
                "workers": {"0": {"AvailableSlots": [1, 2, 3]}},
                "tasks": {"1": {"PreferredPhases": "2-4", "Duration": 99}},
            }
        ),
        encoding="utf-8",
    )
    snapshot = temp_workdir / "out" / "state.json"
    code = cli_main(["--fixes", str(fixes), "--snapshot", str(snapshot)])
    out = capsys.readouterr().out
    assert code == 0
    assert "bulk fix skipped 1 stale fix(es)" in out
    assert "SUMMARY entities=3/3 rows=6 error_rows=0 errors=0 clean=yes" in out

    state = AppState.from_json(snapshot.read_text(encoding="utf-8"))
    assert state.rows("tasks")[1]["PreferredPhases"] == [2, 3, 4]
    # エラーのなかった Duration は書き換えない
    assert state.rows("tasks")[1]["Duration"] == 1
    assert state.rows("clients")[1]["AttributesJSON"] == '{"tier": "gold"}'
    assert state.is_confirmed("workers", 0, "AvailableSlots")
    assert state.errors == {}


def test_snapshot_keeps_invalid_marker(dirty_inputs, temp_workdir: Path, capsys):
    snapshot = temp_workdir / "state.json"
    assert cli_main(["--snapshot", str(snapshot)]) == 2
    state = AppState.from_json(snapshot.read_text(encoding="utf-8"))
    assert state.rows("workers")[0]["AvailableSlots"] is INVALID
    assert state.errors[EntityKind.WORKERS] == {0: {"AvailableSlots": "AvailableSlots could not be parsed"}}


def test_broken_fixes_file_is_fatal(dirty_inputs, temp_workdir: Path, capsys):
    fixes = temp_workdir / "fixes.json"
    fixes.write_text("{not json", encoding="utf-8")
    assert cli_main(["--fixes", str(fixes)]) == 1
    assert "ERROR fixes: invalid fixes file" in capsys.readouterr().out


def test_rules_file_with_unbalanced_weights_warns(write_config, clean_input_files, temp_workdir: Path, capsys):
    rules = temp_workdir / "config" / "rules.json"
    rules.write_text(
        json.dumps({"coRun": [{"tasks": ["T1", "T2"]}], "prioritization": {"PriorityLevel": 0.7, "Fairness": 0.7}}),
        encoding="utf-8",
    )
    write_config.write_text(
        write_config.read_text(encoding="utf-8") + f"rules_file: {rules.as_posix()}\n", encoding="utf-8"
    )
    code = cli_main([])
    out = capsys.readouterr().out
    assert code == 0
    assert "INFO rules: coRun=1" in out
    assert "WARN prioritization weights sum to 1.40, expected 1.00" in out


def test_config_from_env_var(temp_workdir: Path, sample_config_yaml: str, clean_input_files, monkeypatch, capsys):
    cfg = temp_workdir / "elsewhere.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    monkeypatch.setenv("DATA_ALCHEMIST_CONFIG", str(cfg))
    assert cli_main([]) == 0


def test_config_from_dotenv(temp_workdir: Path, sample_config_yaml: str, clean_input_files, monkeypatch, capsys):
    cfg = temp_workdir / "from-dotenv.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    (temp_workdir / ".env").write_text(f"DATA_ALCHEMIST_CONFIG={cfg.as_posix()}\n", encoding="utf-8")
    monkeypatch.delenv("DATA_ALCHEMIST_CONFIG", raising=False)
    try:
        assert cli_main([]) == 0
    finally:
        # load_dotenv は os.environ に直接書くので後始末
        monkeypatch.delenv("DATA_ALCHEMIST_CONFIG", raising=False)


def test_inspect_data_prints_headers(write_config, clean_input_files, capsys):
    code = cli_main(["--inspect-data"])
    out = capsys.readouterr().out
    assert code == 0
    assert "FILE: clients clients.csv" in out
    assert "FILE: tasks tasks.xlsx" in out
    assert "'ClientID'" in out
    assert "SUMMARY" not in out


def test_debug_flag_enables_debug_lines(write_config, clean_input_files, capsys):
    assert cli_main(["--debug"]) == 0
    assert "DEBUG debug mode enabled" in capsys.readouterr().out


def test_keep_na_strings_from_config(write_config, clean_input_files, table_writer, capsys):
    rows = [
        {"ClientID": "C1", "ClientName": "Acme", "PriorityLevel": "3", "RequestedTaskIDs": "T1",
         "GroupTag": "NA", "AttributesJSON": "{}"},
    ]
    table_writer(clean_input_files["clients"], rows)
    # 既定では "NA" は欠損扱い -> GroupTag 必須エラー
    assert cli_main([]) == 2
    write_config.write_text(
        write_config.read_text(encoding="utf-8") + "keep_na_strings: [\"NA\"]\n", encoding="utf-8"
    )
    assert cli_main([]) == 0
