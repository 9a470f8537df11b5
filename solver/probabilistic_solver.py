# solver/probabilistic_solver.py
from __future__ import annotations

import math
from typing import TYPE_CHECKING, Dict, List, Optional

from board import CellState, Coord
from config import MAX_ENUM_UNKNOWNS
from .csp_solver import enumerate_solutions
from .utils import BaseSolver, Component, Move

if TYPE_CHECKING:
    from game import CommitmentManager


def exact_component_probs(component: Component) -> Optional[Dict[Coord, float]]:
    """
    Mine probability of every cell of a small component, counting each
    satisfying assignment once. None when the component is too large.
    """
    if len(component) > MAX_ENUM_UNKNOWNS:
        return None

    counts = {coord: 0 for coord in component.variables}
    total = 0
    for solution in enumerate_solutions(component):
        total += 1
        for coord, mine in solution.items():
            if mine:
                counts[coord] += 1

    if total == 0:
        return None
    return {coord: counts[coord] / total for coord in component.variables}


def mine_probabilities(game: "CommitmentManager") -> Dict[Coord, float]:
    """
    Estimated mine probability of every hidden cell.

    Committed cells are 0 or 1, small frontier components are counted
    exactly, everything else falls back to the board density.
    """
    board = game.board
    with game.lock:
        components = game.store.components()
        hidden = [cell for cell in board.iter_cells() if cell.is_hidden]

    comp_probs: Dict[Coord, float] = {}
    for comp in components:
        exact = exact_component_probs(comp)
        if exact:
            comp_probs.update(exact)

    probs: Dict[Coord, float] = {}
    for cell in hidden:
        if cell.mine is not None:
            p = 1.0 if cell.mine else 0.0
        else:
            p = comp_probs.get(cell.coord, board.mine_probability)
        probs[cell.coord] = max(0.0, min(1.0, p))  # clamp
    return probs


class ProbabilisticSolver(BaseSolver):
    """
    Automatic player.

    Strategy:
      1. Open every cell already committed safe.
      2. Flag every committed or exactly-counted certain mine that is not
         flagged yet; open every exactly-counted certain safe cell.
      3. Otherwise open the hidden cell least likely to be a mine, preferring
         frontier cells over free ones when they tie.
    """

    def next_moves(self, game: "CommitmentManager") -> List[Move]:
        probs = mine_probabilities(game)
        if not probs:
            return []

        board = game.board
        to_open = sorted(c for c, p in probs.items() if p == 0.0)
        to_flag = sorted(
            c for c, p in probs.items()
            if p == 1.0 and board.get_cell(*c).state == CellState.HIDDEN
        )
        to_open = [c for c in to_open if board.get_cell(*c).state == CellState.HIDDEN]

        moves = [Move("open", r, c) for r, c in to_open]
        moves += [Move("flag", r, c) for r, c in to_flag]
        if moves:
            return moves

        candidates = {
            c: p for c, p in probs.items()
            if board.get_cell(*c).state == CellState.HIDDEN
        }
        if not candidates:
            return []

        min_p = min(candidates.values())
        best = [c for c, p in candidates.items() if math.isclose(p, min_p, rel_tol=1e-9)]
        with game.lock:
            frontier = game.store.frontier
        preferred = [c for c in best if c in frontier]
        chosen_r, chosen_c = self.rng.choice(sorted(preferred or best))
        return [Move("open", chosen_r, chosen_c)]
