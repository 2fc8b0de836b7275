"""
Tests for the in-memory pipeline board.
"""

import pytest

from conftest import make_client, make_stage
from crm_core.pipeline.board import PipelineBoard


@pytest.fixture
def board():
    stages = [make_stage("s2", 2), make_stage("s1", 1), make_stage("s3", 3, is_final=True)]
    clients = [
        make_client("c1", stage_id="s1"),
        make_client("c2", stage_id="s1"),
        make_client("c3", stage_id="s2"),
        make_client("orphan", stage_id="gone"),
        make_client("unstaged"),
    ]
    return PipelineBoard.from_clients(stages, clients)


def column_ids(board, stage_id):
    return [client.client_id for client in board.columns[stage_id]]


def test_stages_are_ordered_by_position(board):
    assert [stage.stage_id for stage in board.stages] == ["s1", "s2", "s3"]


def test_clients_in_unknown_stages_are_left_off(board):
    assert board.total_clients() == 3
    assert board.find_client("orphan") is None
    assert board.find_client("unstaged") is None


def test_resolve_target_by_stage_or_client(board):
    assert board.resolve_target_stage("s3") == "s3"
    assert board.resolve_target_stage("c3") == "s2"
    assert board.resolve_target_stage("nowhere") is None


def test_move_client_appends_to_target(board):
    assert board.move_client("c1", "s1", "s2")

    assert column_ids(board, "s1") == ["c2"]
    assert column_ids(board, "s2") == ["c3", "c1"]
    assert board.find_client("c1").stage_id == "s2"


def test_move_client_from_wrong_column(board):
    assert not board.move_client("c3", "s1", "s2")
    assert not board.move_client("c1", "s1", "nowhere")
    assert column_ids(board, "s1") == ["c1", "c2"]


def test_add_client_goes_first(board):
    assert board.add_client(make_client("c4", stage_id="s1"))
    assert column_ids(board, "s1") == ["c4", "c1", "c2"]
    assert not board.add_client(make_client("c5", stage_id="gone"))


def test_update_client_in_place(board):
    renamed = board.find_client("c2").model_copy(update={"name": "Renomeado"})

    assert board.update_client(renamed)

    assert column_ids(board, "s1") == ["c1", "c2"]
    assert board.find_client("c2").name == "Renomeado"


def test_update_client_with_new_stage_moves_it(board):
    moved = board.find_client("c2").model_copy(update={"stage_id": "s3"})

    assert board.update_client(moved)

    assert column_ids(board, "s1") == ["c1"]
    assert column_ids(board, "s3") == ["c2"]


def test_remove_client(board):
    assert board.remove_client("c3")
    assert not board.remove_client("c3")
    assert board.columns["s2"] == []
