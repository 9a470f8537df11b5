# tests/test_board_init.py

import dataclasses

import pytest

from board import Board, CellState, density_from


def test_default_board_initialization():
    """Default board should be 16x16 with 40 mines and nothing decided."""
    board = Board()

    assert board.rows == 16
    assert board.cols == 16
    assert board.mine_count == 40
    assert board.mine_probability == pytest.approx(40 / 256)

    # Every cell should be hidden, with no truth value and no clue
    for cell in board.iter_cells():
        assert cell.state == CellState.HIDDEN
        assert cell.mine is None
        assert cell.clue is None


def test_custom_board_initialization():
    """Board size and density should be configurable."""
    board = Board(rows=10, cols=12, mine_density=0.25)

    assert board.rows == 10
    assert board.cols == 12
    assert board.mine_count is None
    assert board.mine_probability == 0.25
    assert board.target_mines == 30
    assert board.committed_mines() == 0


def test_density_accepts_count_or_probability():
    assert density_from(10, 9, 9) == pytest.approx(10 / 81)
    assert density_from(0.2, 9, 9) == 0.2
    assert density_from(0, 9, 9) == 0.0


def test_invalid_board_parameters_raise_value_error():
    """Bad dimensions or densities should fail fast."""
    with pytest.raises(ValueError):
        Board(rows=0, cols=5, mine_density=1)

    with pytest.raises(ValueError):
        # Too many mines
        Board(rows=5, cols=5, mine_density=25)

    with pytest.raises(ValueError):
        Board(rows=5, cols=5, mine_density=1.5)

    with pytest.raises(ValueError):
        Board(rows=5, cols=5, mine_density=True)


def test_get_cell_out_of_bounds_raises_index_error():
    board = Board(rows=3, cols=3, mine_density=0.1)
    with pytest.raises(IndexError):
        board.get_cell(3, 0)
    with pytest.raises(IndexError):
        board.get_cell(0, -1)


def test_neighbor_counts_follow_grid_topology():
    board = Board(rows=3, cols=3, mine_density=0.1)

    assert len(list(board.neighbors(0, 0))) == 3
    assert len(list(board.neighbors(0, 1))) == 5
    assert len(list(board.neighbors(1, 1))) == 8
    assert [n.coord for n in board.neighbors(0, 0)] == [(0, 1), (1, 0), (1, 1)]


def test_display_and_snapshot_hide_truth_values():
    board = Board(rows=1, cols=3, mine_density=0.1)
    left, middle, right = board.grid[0]

    middle.state = CellState.REVEALED
    middle.mine = False
    middle.clue = 1
    left.mine = True
    right.state = CellState.FLAGGED

    assert board.to_display_grid() == [["U", "1", "F"]]
    assert board.to_display_grid(reveal_mines=True) == [["B", "1", "F"]]
    assert board.render().splitlines()[1] == "[U][1][F]"

    snapshot = board.snapshot()
    assert snapshot[(0, 0)].state == CellState.HIDDEN
    assert snapshot[(0, 0)].clue is None
    assert snapshot[(0, 1)].clue == 1
    assert snapshot.render() == "[U][1][F]"

    with pytest.raises(dataclasses.FrozenInstanceError):
        snapshot.rows = 4


def test_remaining_mines_estimate_counts_flags():
    board = Board(rows=3, cols=3, mine_density=2)
    board.get_cell(0, 0).state = CellState.FLAGGED

    assert board.count_flags() == 1
    assert board.remaining_mines_estimate() == 1
