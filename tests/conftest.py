# Shared pytest fixtures
from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from data_alchemist.logging.init import LOGGER_NAME, reset_logging


@pytest.fixture(autouse=True)
def _reset_app_logging():
    # 各テストで stdout (capsys) を取り直す
    reset_logging()
    yield
    reset_logging()
    app_logger = logging.getLogger(LOGGER_NAME)
    for h in app_logger.handlers[:]:
        app_logger.removeHandler(h)
    app_logger.propagate = True
    app_logger.setLevel(logging.NOTSET)


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        monkeypatch.delenv("DATA_ALCHEMIST_CONFIG", raising=False)
        yield p


def clean_clients() -> list[dict[str, Any]]:
    return [
        {
            "ClientID": "C1",
            "ClientName": "Acme",
            "PriorityLevel": "3",
            "RequestedTaskIDs": "T1,T2",
            "GroupTag": "GroupA",
            "AttributesJSON": '{"location": "Tokyo"}',
        },
        {
            "ClientID": "C2",
            "ClientName": "Globex",
            "PriorityLevel": "5",
            "RequestedTaskIDs": "T2",
            "GroupTag": "GroupB",
            "AttributesJSON": "{}",
        },
    ]


def clean_workers() -> list[dict[str, Any]]:
    return [
        {
            "WorkerID": "W1",
            "WorkerName": "Alice",
            "Skills": "coding,testing",
            "AvailableSlots": "[1,2,3]",
            "MaxLoadPerPhase": "2",
            "WorkerGroup": "GroupA",
            "QualificationLevel": "4",
        },
        {
            "WorkerID": "W2",
            "WorkerName": "Bob",
            "Skills": "design",
            "AvailableSlots": "2,4",
            "MaxLoadPerPhase": "1",
            "WorkerGroup": "GroupB",
            "QualificationLevel": "2",
        },
    ]


def clean_tasks() -> list[dict[str, Any]]:
    return [
        {
            "TaskID": "T1",
            "TaskName": "Build",
            "Category": "Dev",
            "Duration": "2",
            "RequiredSkills": "coding",
            "PreferredPhases": "1-3",
            "MaxConcurrent": "2",
        },
        {
            "TaskID": "T2",
            "TaskName": "Review",
            "Category": "QA",
            "Duration": "1",
            "RequiredSkills": "testing, design",
            "PreferredPhases": "[2,4]",
            "MaxConcurrent": "1",
        },
    ]


@pytest.fixture()
def clients_rows() -> list[dict[str, Any]]:
    return clean_clients()


@pytest.fixture()
def workers_rows() -> list[dict[str, Any]]:
    return clean_workers()


@pytest.fixture()
def tasks_rows() -> list[dict[str, Any]]:
    return clean_tasks()


@pytest.fixture()
def loaded_session(clients_rows, workers_rows, tasks_rows, fake_timers):
    """Session with three clean datasets loaded and validated (debounce timers are fakes)."""
    from data_alchemist.services.session import ValidationSession

    session = ValidationSession(debounce_seconds=0.3, timer_factory=fake_timers)
    session.load_dataset("clients", clients_rows)
    session.load_dataset("workers", workers_rows)
    session.load_dataset("tasks", tasks_rows)
    session.validate_all()
    return session


class FakeTimer:
    def __init__(self, delay: float, fn) -> None:
        self.delay = delay
        self.fn = fn
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        # threading.Timer と同じく cancel 済みなら何もしない
        if not self.cancelled:
            self.fn()


class FakeTimerFactory:
    """Records every timer created; tests fire them by hand."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, fn) -> FakeTimer:
        timer = FakeTimer(delay, fn)
        self.timers.append(timer)
        return timer

    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_all(self) -> None:
        for t in list(self.live()):
            t.fire()


@pytest.fixture()
def fake_timers() -> FakeTimerFactory:
    return FakeTimerFactory()


def write_table(path: Path, rows: list[dict[str, Any]]) -> Path:
    """Write rows as CSV or XLSX depending on the suffix (pandas + openpyxl)."""
    df = pd.DataFrame(rows)
    if path.suffix == ".csv":
        df.to_csv(path, index=False)
    else:
        df.to_excel(path, index=False, engine="openpyxl")
    return path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """inputs:
  clients: ./data/clients.csv
  workers: ./data/workers.csv
  tasks: ./data/tasks.xlsx
debounce_seconds: 0.3
logs_directory: ./logs
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "alchemist.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def table_writer():
    return write_table


@pytest.fixture()
def clean_input_files(temp_workdir: Path) -> dict[str, Path]:
    data = temp_workdir / "data"
    return {
        "clients": write_table(data / "clients.csv", clean_clients()),
        "workers": write_table(data / "workers.csv", clean_workers()),
        "tasks": write_table(data / "tasks.xlsx", clean_tasks()),
    }
