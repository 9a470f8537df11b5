# solver/utils.py
from __future__ import annotations

import random
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, FrozenSet, List, Literal as TypingLiteral, Optional, Tuple

from board import Board, Coord

if TYPE_CHECKING:
    from controller import MoveController
    from game import CommitmentManager


# ---------------------------------------------------------------------------
# Core data structures
# ---------------------------------------------------------------------------

ActionType = TypingLiteral["open", "flag"]


@dataclass(frozen=True)
class Move:
    """A single player action on the board."""
    action: ActionType
    row: int
    col: int


@dataclass(frozen=True)
class Literal:
    """An assertion about one cell: mine=True or mine=False (safe)."""
    cell: Coord
    mine: bool

    def negated(self) -> "Literal":
        return Literal(self.cell, not self.mine)


@dataclass(frozen=True)
class Constraint:
    """
    Equality derived from a revealed cell.

    origin : the revealed cell
    cells  : its undecided neighbors
    mines  : how many of them are mines (clue minus committed mine neighbors)
    """
    origin: Coord
    cells: FrozenSet[Coord]
    mines: int


@dataclass(frozen=True)
class Component:
    """
    Immutable snapshot of a group of frontier cells linked by constraints.

    variables are kept in row-major order; the solver branches in that order.
    """
    variables: Tuple[Coord, ...]
    constraints: Tuple[Constraint, ...]

    def __contains__(self, cell: object) -> bool:
        return cell in self.variables

    def __len__(self) -> int:
        return len(self.variables)

    @classmethod
    def merge(cls, components: List["Component"]) -> "Component":
        variables = sorted({v for comp in components for v in comp.variables})
        constraints = sorted(
            {c for comp in components for c in comp.constraints},
            key=lambda c: c.origin,
        )
        return cls(tuple(variables), tuple(constraints))


EMPTY_COMPONENT = Component((), ())


class CancelToken:
    """Cooperative cancellation flag polled by the solver."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ---------------------------------------------------------------------------
# Base player interface
# ---------------------------------------------------------------------------

class BaseSolver(ABC):
    """
    Abstract base class for automatic players.

    Typical usage:
        player = SomeSolver()
        while controller.session_state() is GameState.PLAYING:
            player.play_step(controller)
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()

    @abstractmethod
    def next_moves(self, game: "CommitmentManager") -> List[Move]:
        """
        Compute the next moves to play.
        This method MUST NOT modify the game.
        """
        raise NotImplementedError

    def play_step(self, controller: "MoveController") -> List[Move]:
        """
        Compute moves via next_moves(...) and submit them through the controller.

        Open moves are waited for one by one, so they are applied in order.
        Returns the list of moves actually applied.
        """
        moves = self.next_moves(controller.game)

        for move in moves:
            if move.action == "open":
                controller.submit_open(move.row, move.col).result()
            elif move.action == "flag":
                controller.toggle_flag(move.row, move.col)
            else:
                raise ValueError(f"Unknown action: {move.action}")

        return moves

    def play_game(self, controller: "MoveController", max_steps: Optional[int] = None) -> None:
        """
        Let this solver play until the game is over, it gets stuck (no moves),
        or max_steps is reached (if provided).
        """
        from game import GameState

        steps = 0
        while controller.session_state() is GameState.PLAYING:
            moves = self.play_step(controller)
            if not moves:
                break
            steps += 1
            if max_steps is not None and steps >= max_steps:
                break


# ---------------------------------------------------------------------------
# From-scratch constraint extraction (used to audit the incremental store)
# ---------------------------------------------------------------------------

def build_constraints(board: Board) -> List[Constraint]:
    """
    Build every constraint implied by the board's revealed cells and
    commitments, ignoring any incremental bookkeeping.
    """
    constraints: List[Constraint] = []

    for cell in board.revealed_cells():
        undecided = []
        committed_mines = 0
        for n in board.neighbors(cell.row, cell.col):
            if n.mine is None:
                undecided.append(n.coord)
            elif n.mine:
                committed_mines += 1
        constraints.append(
            Constraint(
                origin=cell.coord,
                cells=frozenset(undecided),
                mines=(cell.clue or 0) - committed_mines,
            )
        )

    return constraints


def constraint_components(constraints: List[Constraint]) -> List[Component]:
    """Split constraints into independent components (cells shared => linked)."""
    graph: dict[int, set[int]] = {i: set() for i in range(len(constraints))}
    for i, ci in enumerate(constraints):
        for j in range(i + 1, len(constraints)):
            if ci.cells & constraints[j].cells:
                graph[i].add(j)
                graph[j].add(i)

    comps: list[Component] = []
    seen: set[int] = set()
    for i in range(len(constraints)):
        if i in seen:
            continue
        stack = [i]
        seen.add(i)
        members = []
        while stack:
            node = stack.pop()
            members.append(constraints[node])
            for nei in graph[node]:
                if nei not in seen:
                    seen.add(nei)
                    stack.append(nei)
        variables = sorted({v for c in members for v in c.cells})
        comps.append(
            Component(tuple(variables), tuple(sorted(members, key=lambda c: c.origin)))
        )
    return comps
