from __future__ import annotations

from data_alchemist.models.records import NAN
from data_alchemist.services.duplicates import duplicate_message, find_duplicates, identifier_key


def test_two_rows_with_same_id_are_both_marked():
    rows = [{"ClientID": "C1"}, {"ClientID": "C1"}]
    result = find_duplicates(rows, "ClientID")
    assert result == {
        0: {"ClientID": "Duplicate ClientID found"},
        1: {"ClientID": "Duplicate ClientID found"},
    }


def test_three_way_group_marks_every_member():
    rows = [{"TaskID": "T1"}, {"TaskID": "T2"}, {"TaskID": "T1"}, {"TaskID": "T1"}]
    result = find_duplicates(rows, "TaskID")
    assert sorted(result) == [0, 2, 3]


def test_unique_ids_produce_nothing():
    rows = [{"WorkerID": "W1"}, {"WorkerID": "W2"}]
    assert find_duplicates(rows, "WorkerID") == {}


def test_blank_and_nan_ids_are_not_duplicates():
    rows = [{"ClientID": ""}, {"ClientID": ""}, {"ClientID": None}, {}, {"ClientID": NAN}, {"ClientID": NAN}]
    assert find_duplicates(rows, "ClientID") == {}


def test_identifier_key_ignores_unhashable():
    assert identifier_key(["a"]) is None
    assert identifier_key("C1") == "C1"


def test_duplicate_message_names_the_field():
    assert duplicate_message("WorkerID") == "Duplicate WorkerID found"
