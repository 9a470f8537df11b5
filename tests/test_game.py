# tests/test_game.py

import random

import pytest

from board import Board, CellState
from game import CommitmentManager, GameState, OutcomeKind
from solver.csp_solver import Forced
from solver.utils import CancelToken

SAFE_KINDS = {OutcomeKind.REVEALED, OutcomeKind.CASCADE_REVEALED, OutcomeKind.WIN}


@pytest.mark.parametrize("mine_density", [0.3, 8])
@pytest.mark.parametrize("seed", range(5))
def test_first_open_never_loses(seed, mine_density):
    game = CommitmentManager(Board(rows=5, cols=5, mine_density=mine_density), rng=random.Random(seed))
    outcome = game.open(2, 2)

    assert outcome.kind in SAFE_KINDS
    assert outcome.revealed[0][:2] == (2, 2)
    assert game.board.get_cell(2, 2).clue == outcome.clue
    assert game.board.get_cell(2, 2).mine is False


@pytest.mark.parametrize("mine_density", [0.3, 6])
@pytest.mark.parametrize("seed", range(6))
def test_random_play_keeps_history_sound(seed, mine_density):
    """
    Play random opens to the end and check after every move that:
      - a loss happens exactly when the opened cell was forced to be a mine
      - the commitments still extend to a full minefield
      - committed values and revealed clues never change
      - every zero clue has all of its neighbors revealed
    """
    picker = random.Random(1000 + seed)
    game = CommitmentManager(Board(rows=5, cols=5, mine_density=mine_density), rng=random.Random(seed))
    committed = {}
    clues = {}

    while game.state is GameState.PLAYING:
        hidden = [cell.coord for cell in game.board.iter_cells() if cell.state == CellState.HIDDEN]
        target = picker.choice(hidden)

        forced = game.is_forced(*target)
        outcome = game.open(*target)

        if forced is Forced.MINE:
            assert outcome.kind is OutcomeKind.LOSS
            assert game.exploded == target
        else:
            assert outcome.kind in SAFE_KINDS

        assert game.check_consistency()

        for cell in game.board.iter_cells():
            if cell.coord in committed:
                assert cell.mine == committed[cell.coord]
            if cell.mine is not None:
                committed[cell.coord] = cell.mine
            if cell.is_revealed:
                assert cell.mine is False
                assert clues.setdefault(cell.coord, cell.clue) == cell.clue
                if cell.clue == 0:
                    assert all(n.is_revealed for n in game.board.neighbors(cell.row, cell.col))

        if game.board.mine_count is not None:
            assert game.board.committed_mines() <= game.board.mine_count

    if game.state is GameState.WON and game.board.mine_count is not None:
        assert game.board.committed_mines() == game.board.mine_count


def test_forced_mine_is_a_loss(forced_game):
    assert forced_game.is_forced(0, 2) is Forced.MINE

    outcome = forced_game.open(0, 2)

    assert outcome.kind is OutcomeKind.LOSS
    assert forced_game.state is GameState.LOST
    assert forced_game.exploded == (0, 2)
    assert forced_game.open(0, 1).kind is OutcomeKind.NOOP
    assert forced_game.toggle_flag(0, 1) is False


def test_undetermined_looking_cell_resolved_by_search(forced_game):
    assert forced_game.count_configurations(0, 0) == 1
    assert forced_game.is_forced(0, 3) is Forced.SAFE

    outcome = forced_game.open(0, 3)

    assert outcome.kind is OutcomeKind.REVEALED
    assert outcome.revealed == ((0, 3, 1),)
    assert forced_game.check_consistency()


def test_forced_game_can_be_won(forced_game):
    assert forced_game.open(0, 1).revealed == ((0, 1, 2),)
    # (0,1) safe makes every other cell follow by propagation
    assert forced_game.board.get_cell(0, 0).mine is True
    assert forced_game.board.get_cell(0, 2).mine is True
    assert forced_game.board.get_cell(1, 3).mine is False

    assert forced_game.open(0, 3).kind is OutcomeKind.REVEALED
    outcome = forced_game.open(1, 3)
    assert outcome.kind is OutcomeKind.WIN
    assert outcome.clue == 1
    assert forced_game.state is GameState.WON


def test_cancelled_open_applies_nothing(forced_game):
    token = CancelToken()
    token.cancel()

    outcome = forced_game.open(0, 3, cancel=token)

    assert outcome.kind is OutcomeKind.CANCELLED
    assert outcome.revealed == ()
    cell = forced_game.board.get_cell(0, 3)
    assert cell.state == CellState.HIDDEN
    assert cell.mine is None

    # the same move goes through once it is not interrupted
    assert forced_game.open(0, 3).kind is OutcomeKind.REVEALED


def test_empty_board_cascades_to_a_win():
    game = CommitmentManager(Board(rows=4, cols=4, mine_density=0.0))
    outcome = game.open(0, 0)

    assert outcome.kind is OutcomeKind.WIN
    assert len(outcome.revealed) == 16
    assert outcome.revealed[0] == (0, 0, 0)
    assert all(clue == 0 for _, _, clue in outcome.revealed)


@pytest.mark.parametrize("seed", range(20))
def test_single_mine_row_places_exactly_one_mine(seed):
    """A 1x3 board with one mine must show 1 next to the middle cell."""
    game = CommitmentManager(Board(rows=1, cols=3, mine_density=1), rng=random.Random(seed))
    outcome = game.open(0, 1)

    assert outcome.kind is OutcomeKind.REVEALED
    assert outcome.clue == 1
    assert game.is_forced(0, 0) is Forced.UNDETERMINED

    assert game.open(0, 0).kind is OutcomeKind.WIN
    assert game.board.get_cell(0, 2).mine is True
    assert game.board.committed_mines() == 1


@pytest.mark.parametrize("seed", range(6))
def test_won_game_holds_exactly_the_mine_count(seed):
    """Opening any cell that is not a provable mine always ends in a win."""
    picker = random.Random(seed)
    game = CommitmentManager(Board(rows=6, cols=6, mine_density=6), rng=random.Random(seed))

    while game.state is GameState.PLAYING:
        hidden = [cell.coord for cell in game.board.iter_cells() if cell.state == CellState.HIDDEN]
        picker.shuffle(hidden)
        target = next(coord for coord in hidden if game.is_forced(*coord) is not Forced.MINE)

        assert game.open(*target).kind in SAFE_KINDS
        assert game.board.committed_mines() <= 6

    assert game.state is GameState.WON
    assert game.board.committed_mines() == 6
    assert game.check_consistency()


def test_mine_count_can_force_cells_no_clue_touches(place_clue):
    """(0,1) is the only mine a clue needs; the count puts two more in (0,2) and (0,3)."""
    game = CommitmentManager(Board(rows=1, cols=4, mine_density=3))
    place_clue(game, 0, 0, 1)

    assert game.is_forced(0, 2) is Forced.MINE
    assert game.is_forced(0, 3) is Forced.MINE
    assert game.open(0, 3).kind is OutcomeKind.LOSS


def test_exhausted_mine_count_makes_free_cells_safe(place_clue):
    game = CommitmentManager(Board(rows=1, cols=4, mine_density=1))
    place_clue(game, 0, 0, 1)

    assert game.is_forced(0, 3) is Forced.SAFE

    outcome = game.open(0, 3)

    assert outcome.kind is OutcomeKind.WIN
    assert outcome.revealed == ((0, 3, 0), (0, 2, 1))
    assert game.board.committed_mines() == 1


def test_flags_are_annotations_only(forced_game):
    before = forced_game.store.constraints()

    assert forced_game.toggle_flag(0, 2) is True
    assert forced_game.board.get_cell(0, 2).state == CellState.FLAGGED
    assert forced_game.open(0, 2).kind is OutcomeKind.NOOP
    assert forced_game.is_forced(0, 2) is Forced.MINE

    assert forced_game.toggle_flag(0, 2) is True
    assert forced_game.board.get_cell(0, 2).state == CellState.HIDDEN
    assert forced_game.store.constraints() == before

    # revealed cells cannot be flagged
    assert forced_game.toggle_flag(1, 0) is False


def test_open_revealed_cell_is_noop(forced_game):
    outcome = forced_game.open(1, 0)
    assert outcome.kind is OutcomeKind.NOOP
    assert outcome.revealed == ()


def test_open_out_of_bounds_raises():
    game = CommitmentManager(Board(rows=3, cols=3, mine_density=0.2))
    with pytest.raises(IndexError):
        game.open(3, 3)


def test_disjoint_regions_are_independent(place_clue):
    """Losing in the left region leaves the right one exactly as it was."""
    game = CommitmentManager(Board(rows=3, cols=7, mine_density=0.2))
    place_clue(game, 1, 1, 8)
    place_clue(game, 1, 5, 1)

    right = game.component_of(0, 4)
    assert len(game.components()) == 1
    assert game.count_configurations(0, 4) == 8

    outcome = game.open(0, 0)

    assert outcome.kind is OutcomeKind.LOSS
    assert game.component_of(0, 4) == right
    assert game.count_configurations(0, 4) == 8
    assert game.is_forced(0, 4) is Forced.UNDETERMINED


def test_consistency_audit_detects_tampering(forced_game):
    assert forced_game.check_consistency()

    forced_game.board.get_cell(1, 0).clue = 3

    assert not forced_game.check_consistency()


def test_snapshot_hides_truth_values(forced_game):
    snapshot = forced_game.snapshot()

    assert snapshot[(1, 1)].clue == 2
    assert snapshot[(0, 0)].state == CellState.HIDDEN
    assert snapshot[(0, 0)].clue is None
    assert not hasattr(snapshot[(0, 0)], "mine")


def test_cell_flagged_during_search_is_a_noop(forced_game, monkeypatch):
    real_decide = forced_game._decide

    def flag_then_decide(request, cancel):
        forced_game.toggle_flag(*request.cell)
        return real_decide(request, cancel)

    monkeypatch.setattr(forced_game, "_decide", flag_then_decide)
    outcome = forced_game.open(0, 3)

    assert outcome.kind is OutcomeKind.NOOP
    assert outcome.revealed == ()
    cell = forced_game.board.get_cell(0, 3)
    assert cell.state == CellState.FLAGGED
    assert cell.mine is None
