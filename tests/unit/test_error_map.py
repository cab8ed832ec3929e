from __future__ import annotations

import threading

import pytest

from data_alchemist.models.entity import EntityKind
from data_alchemist.services.error_map import ErrorMap


def test_replace_all_drops_empty_rows_and_entities():
    em = ErrorMap()
    em.replace_all("clients", {0: {"ClientID": "x"}, 1: {}})
    assert em.as_dict() == {EntityKind.CLIENTS: {0: {"ClientID": "x"}}}
    em.replace_all("clients", {})
    assert "clients" not in em
    assert em.is_clean()


def test_update_row_with_no_errors_removes_row_and_entity():
    em = ErrorMap({"workers": {2: {"Skills": "At least one skill is required"}}})
    em.update_row("workers", 2, {})
    assert em.as_dict() == {}


def test_update_row_replaces_fields_wholesale():
    em = ErrorMap({"tasks": {0: {"Duration": "a", "TaskName": "b"}}})
    em.update_row("tasks", 0, {"TaskName": "c"})
    assert em.get_row("tasks", 0) == {"TaskName": "c"}
    assert not em.has_error("tasks", 0, "Duration")


def test_batch_update_rows_applies_all_rows():
    em = ErrorMap({"clients": {0: {"ClientID": "dup"}, 1: {"ClientID": "dup"}}})
    em.batch_update_rows("clients", [0, 1, 4], [{}, {"ClientName": "req"}, {"GroupTag": "req"}])
    assert em.get_entity("clients") == {1: {"ClientName": "req"}, 4: {"GroupTag": "req"}}


def test_batch_update_rows_length_mismatch_raises_and_changes_nothing():
    em = ErrorMap({"clients": {0: {"ClientID": "dup"}}})
    with pytest.raises(ValueError):
        em.batch_update_rows("clients", [0, 1], [{}])
    assert em.get_row("clients", 0) == {"ClientID": "dup"}


def test_counts_and_iteration_order():
    em = ErrorMap()
    em.replace_all("tasks", {3: {"Duration": "d"}})
    em.replace_all("clients", {1: {"A": "a", "B": "b"}, 0: {"C": "c"}})
    assert em.error_count() == 4
    assert em.error_count("clients") == 3
    assert em.row_count("clients") == 2
    cells = list(em.iter_cells())
    assert [(str(k), r, f) for k, r, f, _ in cells] == [
        ("clients", 0, "C"),
        ("clients", 1, "A"),
        ("clients", 1, "B"),
        ("tasks", 3, "Duration"),
    ]


def test_reads_return_copies():
    em = ErrorMap({"clients": {0: {"ClientID": "x"}}})
    em.get_row("clients", 0)["ClientID"] = "mutated"
    em.get_entity("clients")[0]["ClientID"] = "mutated"
    assert em.get_row("clients", 0) == {"ClientID": "x"}


def test_contains_ignores_unknown_entities():
    em = ErrorMap()
    assert "nonsense" not in em


def test_concurrent_row_updates_keep_absence_invariant():
    em = ErrorMap()

    def worker(offset: int) -> None:
        for i in range(200):
            em.update_row("clients", offset + i, {"ClientID": "x"})
            em.update_row("clients", offset + i, {})

    threads = [threading.Thread(target=worker, args=(n * 1000,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert em.as_dict() == {}
