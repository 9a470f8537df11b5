# tests/conftest.py
import pytest

from board import Board, CellState
from game import CommitmentManager


def _place_clue(game: CommitmentManager, row: int, col: int, clue: int) -> list:
    """Reveal a cell with a chosen clue, the way the engine would apply it."""
    cell = game.board.get_cell(row, col)
    forced = []
    with game.lock:
        if (row, col) in game.store:
            forced += game.store.assign((row, col), False)
        cell.mine = False
        cell.state = CellState.REVEALED
        cell.clue = clue
        forced += game.store.add_constraint((row, col))
    return forced


@pytest.fixture
def place_clue():
    return _place_clue


@pytest.fixture
def forced_game() -> CommitmentManager:
    """
    2x4 board whose top row is only decided by search:

        row 0:  a  b  c  d        a, c are mines; b, d are safe
        row 1:  1  2  1  .        (1,3) is hidden and safe

    Unit propagation alone forces nothing here.
    """
    game = CommitmentManager(Board(rows=2, cols=4, mine_density=0.3))
    _place_clue(game, 1, 0, 1)
    _place_clue(game, 1, 1, 2)
    _place_clue(game, 1, 2, 1)
    return game
