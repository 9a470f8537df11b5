"""
Commitment manager: the authoritative history of a lazy minesweeper session.

No minefield exists up front. When the player opens a cell, the solver looks
for one minefield consistent with every clue seen so far in which that cell is
safe. If there is none, the cell is provably a mine and the game is lost.
Otherwise that minefield (the witness) fixes the new clue, and only the values
the clues then force are committed. Undecided cells stay undecided, so a later
loss is always a logical consequence of what the player has seen.
"""

from __future__ import annotations

import random
import threading
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Deque, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from board import Board, BoardSnapshot, CellState, Coord
from logging_utils import get_logger
from solver.constraints import ConstraintStore
from solver.csp_solver import (
    UNSATISFIABLE,
    Decision,
    Forced,
    Satisfiable,
    count_solutions,
    decide,
    is_forced,
    mine_counts,
)
from solver.errors import InvariantViolation, SolveCancelled
from solver.utils import (
    CancelToken,
    Component,
    Literal,
    build_constraints,
    constraint_components,
)

logger = get_logger(__name__)

Reveal = Tuple[int, int, int]


class GameState(Enum):
    PLAYING = "playing"
    WON = "won"
    LOST = "lost"


class OutcomeKind(Enum):
    REVEALED = "revealed"
    CASCADE_REVEALED = "cascade_revealed"
    LOSS = "loss"
    WIN = "win"
    NOOP = "noop"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Outcome:
    """Result of one open move; `revealed` lists (row, col, clue)."""
    kind: OutcomeKind
    revealed: Tuple[Reveal, ...] = ()

    @property
    def clue(self) -> Optional[int]:
        return self.revealed[0][2] if self.revealed else None


def combine_totals(groups: Iterable[FrozenSet[int]]) -> FrozenSet[int]:
    """Totals reachable by picking one mine total from each group."""
    totals = frozenset({0})
    for group in groups:
        totals = frozenset(a + b for a in totals for b in group)
    return totals


@dataclass(frozen=True)
class MineBudget:
    """
    What a fixed board mine count still allows.

    remaining : mine count minus committed mines
    free      : undecided cells outside every constraint, the opened cell excluded
    totals    : mine totals the frontier outside the region can reach together
    """
    remaining: int
    free: int
    totals: FrozenSet[int]

    def fits(self, placed: int, free: int) -> bool:
        """Whether `placed` more mines leave a remainder `free` cells can hold."""
        return any(0 <= self.remaining - placed - t <= free for t in self.totals)

    def region_totals(self, size: int) -> Set[int]:
        return {m for m in range(size + 1) if self.fits(m, self.free)}


@dataclass(frozen=True)
class OpenRequest:
    """Everything the solver needs for one reveal, copied out of the game."""
    cell: Coord
    region: Component
    literal: Optional[Literal]
    seed: int
    mine_probability: float
    # Only set when the board mine count can bind this reveal.
    remaining: Optional[int] = None
    free: int = 0
    others: Tuple[Component, ...] = ()


@dataclass
class _Move:
    revealed: List[Reveal] = field(default_factory=list)


class CommitmentManager:
    """
    Owns the board, the constraint store and the game state.

    All reads and writes happen under `lock`; the solver itself runs outside
    it on immutable snapshots, so other threads can read the board while a
    long search is in progress.

    With a mine count the board ends up holding exactly that many mines:
    every witness and every clue draw must leave a remainder that the rest of
    the frontier and the free cells can still hold.
    """

    def __init__(self, board: Board, rng: Optional[random.Random] = None) -> None:
        self.board = board
        self.rng = rng or random.Random()
        self.store = ConstraintStore(board, on_commit=self._commit)
        self.state = GameState.PLAYING
        self.exploded: Optional[Coord] = None
        self.lock = threading.RLock()
        self._pending: Deque[Coord] = deque()
        self._mine_counts: Dict[Component, FrozenSet[int]] = {}

    # ------------------------------------------------------------------
    # Commitments
    # ------------------------------------------------------------------
    def _commit(self, cell: Coord, mine: bool) -> None:
        target = self.board.get_cell(*cell)
        if target.mine is not None and target.mine != mine:
            raise InvariantViolation(
                f"cell {cell} already committed as {'mine' if target.mine else 'safe'}"
            )
        target.mine = mine

    def _commit_remaining_mines(self) -> None:
        """The count leaves no room: every undecided cell is a mine."""
        for cell in self.board.iter_cells():
            if cell.mine is not None:
                continue
            if cell.coord in self.store:
                self.store.assign(cell.coord, True)
            else:
                self._commit(cell.coord, True)

    # ------------------------------------------------------------------
    # Open
    # ------------------------------------------------------------------
    def open(self, row: int, col: int, cancel: Optional[CancelToken] = None) -> Outcome:
        """
        Open (row, col), cascading through zero clues.

        A cancelled search applies nothing for the step it interrupted; cascade
        cells not yet opened are kept and opened at the start of the next move.
        """
        self.board.get_cell(row, col)
        move = _Move()

        try:
            self._drain(move, cancel)
        except SolveCancelled:
            logger.warning("open (%d, %d) cancelled while finishing a cascade", row, col)
            return Outcome(OutcomeKind.CANCELLED, tuple(move.revealed))

        with self.lock:
            if self.state is not GameState.PLAYING:
                return Outcome(OutcomeKind.NOOP, tuple(move.revealed))
            cell = self.board.get_cell(row, col)
            if cell.state != CellState.HIDDEN:
                return Outcome(OutcomeKind.NOOP, tuple(move.revealed))
            if cell.mine:
                return self._lose((row, col))
            self._pending.appendleft((row, col))

        try:
            self._drain(move, cancel)
        except SolveCancelled:
            logger.warning("open (%d, %d) cancelled", row, col)
            with self.lock:
                # the player's own cell stays undecided; cascade cells stay queued
                if self._pending and self._pending[0] == (row, col):
                    self._pending.popleft()
            return Outcome(OutcomeKind.CANCELLED, tuple(move.revealed))

        with self.lock:
            if self.state is GameState.LOST:
                return Outcome(OutcomeKind.LOSS, tuple(move.revealed))
            if not move.revealed:
                # flagged while the solver was running
                return Outcome(OutcomeKind.NOOP)
            if self._is_won():
                if self.board.mine_count is not None:
                    self._commit_remaining_mines()
                self.state = GameState.WON
                logger.info("game won after revealing (%d, %d)", row, col)
                return Outcome(OutcomeKind.WIN, tuple(move.revealed))

        kind = OutcomeKind.REVEALED if len(move.revealed) <= 1 else OutcomeKind.CASCADE_REVEALED
        return Outcome(kind, tuple(move.revealed))

    def _drain(self, move: _Move, cancel: Optional[CancelToken]) -> None:
        while True:
            with self.lock:
                request = self._next_request()
                if request is None:
                    return

            result, budget = self._decide(request, cancel)

            with self.lock:
                self._pending.popleft()
                self._apply(request, result, budget, move)

    def _next_request(self) -> Optional[OpenRequest]:
        while self._pending:
            if self.state is not GameState.PLAYING:
                self._pending.clear()
                return None
            coord = self._pending[0]
            cell = self.board.get_cell(*coord)
            if cell.state == CellState.HIDDEN:
                return self.prepare(coord)
            self._pending.popleft()
        return None

    def prepare(self, coord: Coord) -> OpenRequest:
        """Snapshot the region a reveal of `coord` depends on."""
        cell = self.board.get_cell(*coord)
        touched = [coord] + [
            n.coord for n in self.board.neighbors(*coord) if n.mine is None
        ]
        region = self.store.region(touched)
        request = OpenRequest(
            cell=coord,
            region=region,
            literal=Literal(coord, False) if cell.mine is None else None,
            seed=self.rng.getrandbits(64),
            mine_probability=self.board.mine_probability,
        )
        if self.board.mine_count is None:
            return request

        remaining = self.board.mine_count - self.board.committed_mines()
        free = self._free_cells(exclude=coord)
        draw_cells = sum(
            1 for n in self.board.neighbors(*coord)
            if n.mine is None and n.coord not in self.store
        )
        lower = self.store.mine_lower_bound(exclude=region)
        if (
            remaining >= len(self.store.frontier) + draw_cells
            and remaining - lower <= free - draw_cells
        ):
            # no witness and no draw can break the count
            return request

        others = tuple(
            c for c in self.store.components() if c.variables[0] not in region
        )
        return replace(request, remaining=remaining, free=free, others=others)

    def _free_cells(self, exclude: Optional[Coord] = None) -> int:
        """Undecided cells that no constraint mentions."""
        return sum(
            1 for cell in self.board.iter_cells()
            if cell.mine is None and cell.coord != exclude and cell.coord not in self.store
        )

    def _counts(self, component: Component, cancel: Optional[CancelToken]) -> FrozenSet[int]:
        counts = self._mine_counts.get(component)
        if counts is None:
            counts = mine_counts(component, cancel)
            if len(self._mine_counts) > 512:
                self._mine_counts.clear()
            self._mine_counts[component] = counts
        return counts

    def _totals(
        self, components: Iterable[Component], cancel: Optional[CancelToken] = None
    ) -> FrozenSet[int]:
        """Mine totals the given components can reach together."""
        return combine_totals(self._counts(c, cancel) for c in components)

    def _decide(
        self, request: OpenRequest, cancel: Optional[CancelToken]
    ) -> Tuple[Decision, Optional[MineBudget]]:
        """Find the witness for one reveal. Runs without the lock."""
        budget = None
        allowed = None
        if request.remaining is not None:
            budget = MineBudget(
                request.remaining, request.free, self._totals(request.others, cancel)
            )
            allowed = budget.region_totals(len(request.region))

        if not request.region.variables:
            if allowed is not None and 0 not in allowed:
                return UNSATISFIABLE, budget
            return Satisfiable({}), budget

        result = decide(
            request.region,
            request.literal,
            cancel=cancel,
            seed=request.seed,
            mine_probability=request.mine_probability,
            allowed=allowed,
        )
        return result, budget

    def _apply(
        self,
        request: OpenRequest,
        result: Decision,
        budget: Optional[MineBudget],
        move: _Move,
    ) -> None:
        coord = request.cell
        cell = self.board.get_cell(*coord)
        if cell.state != CellState.HIDDEN:
            # flagged while the solver was running
            return
        if not isinstance(result, Satisfiable):
            self._lose(coord)
            return

        clue = 0
        free_neighbors = 0
        for n in self.board.neighbors(*coord):
            if n.mine is not None:
                clue += n.mine
            elif n.coord in request.region:
                clue += result.assignment[n.coord]
            else:
                free_neighbors += 1
        clue += self._draw(
            free_neighbors,
            len(result.mines()),
            budget,
            random.Random(request.seed),
            request.mine_probability,
        )

        if cell.mine is None:
            if coord in self.store:
                self.store.assign(coord, False)
            else:
                self._commit(coord, False)
        cell.state = CellState.REVEALED
        cell.clue = clue
        self.store.add_constraint(coord)
        move.revealed.append((coord[0], coord[1], clue))
        logger.debug("revealed %s with clue %d", coord, clue)

        if clue == 0:
            for n in self.board.neighbors(*coord):
                if n.state == CellState.HIDDEN:
                    self._pending.append(n.coord)

    @staticmethod
    def _draw(
        count: int,
        placed: int,
        budget: Optional[MineBudget],
        draws: random.Random,
        probability: float,
    ) -> int:
        """
        Mines among `count` free neighbors, drawn one at a time.

        Under a mine count a draw is overridden whenever it would leave a
        remainder that the other free cells and the rest of the frontier
        cannot hold; `placed` is the witness's share.
        """
        mines = 0
        for left in range(count - 1, -1, -1):
            mine = draws.random() < probability
            if budget is not None:
                room = budget.free - count
                can_mine = any(
                    budget.fits(placed + d, room) for d in range(mines + 1, mines + left + 2)
                )
                can_safe = any(
                    budget.fits(placed + d, room) for d in range(mines, mines + left + 1)
                )
                mine = can_mine and (mine or not can_safe)
            mines += mine
        return mines

    def _lose(self, coord: Coord) -> Outcome:
        self.state = GameState.LOST
        self.exploded = coord
        self._pending.clear()
        logger.info("game lost: %s is provably a mine", coord)
        return Outcome(OutcomeKind.LOSS)

    def _is_won(self) -> bool:
        """
        Without a mine count: won once something is revealed and every hidden
        neighbor of a revealed cell is a committed mine.

        With a mine count: won once no hidden cell is committed safe and the
        mines still to place equal the undecided cells, so every one of them
        must be a mine.
        """
        if self.board.mine_count is not None:
            undecided = 0
            for cell in self.board.iter_cells():
                if cell.is_hidden and cell.mine is False:
                    return False
                if cell.mine is None:
                    undecided += 1
            return self.board.mine_count - self.board.committed_mines() == undecided

        any_revealed = False
        for cell in self.board.revealed_cells():
            any_revealed = True
            for n in self.board.neighbors(cell.row, cell.col):
                if n.is_hidden and not n.mine:
                    return False
        return any_revealed

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------
    def toggle_flag(self, row: int, col: int) -> bool:
        """
        Toggle a flag on a hidden cell. Flags never reach the solver.
        Returns False when nothing changed.
        """
        with self.lock:
            cell = self.board.get_cell(row, col)
            if self.state is not GameState.PLAYING or cell.is_revealed:
                return False
            if cell.state == CellState.HIDDEN:
                cell.state = CellState.FLAGGED
            else:
                cell.state = CellState.HIDDEN
            return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def snapshot(self) -> BoardSnapshot:
        with self.lock:
            return self.board.snapshot()

    def components(self) -> List[Component]:
        with self.lock:
            return self.store.components()

    def component_of(self, row: int, col: int) -> Optional[Component]:
        with self.lock:
            return self.store.component_of((row, col))

    def is_forced(self, row: int, col: int, cancel: Optional[CancelToken] = None) -> Forced:
        """
        Whether every minefield consistent with the clues, and with the mine
        count when the board has one, agrees on (row, col).
        """
        coord = (row, col)
        with self.lock:
            cell = self.board.get_cell(row, col)
            if cell.mine is not None:
                return Forced.MINE if cell.mine else Forced.SAFE
            component = self.store.component_of(coord)
            others = None
            if self.board.mine_count is not None:
                remaining = self.board.mine_count - self.board.committed_mines()
                free = self._free_cells(exclude=coord)
                others = [c for c in self.store.components() if c != component]

        if others is None:
            if component is None:
                return Forced.UNDETERMINED
            return is_forced(component, coord, cancel)

        budget = MineBudget(remaining, free, self._totals(others, cancel))
        if component is not None:
            return is_forced(
                component, coord, cancel, allowed=budget.region_totals(len(component))
            )

        safe_ok = budget.fits(0, free)
        mine_ok = budget.fits(1, free)
        if not safe_ok and not mine_ok:
            raise InvariantViolation(f"the mine count cannot be met whatever {coord} holds")
        if not safe_ok:
            return Forced.MINE
        if not mine_ok:
            return Forced.SAFE
        return Forced.UNDETERMINED

    def count_configurations(self, row: int, col: int) -> int:
        """Number of assignments of the component containing (row, col)."""
        component = self.component_of(row, col)
        if component is None:
            return 1
        return count_solutions(component)

    def check_consistency(self) -> bool:
        """
        Rebuild every constraint from the board and prove each independent
        group satisfiable. With a mine count, also prove the groups and the
        free cells can hold exactly the mines still to place. True means the
        commitments still extend to a full minefield.
        """
        with self.lock:
            constraints = build_constraints(self.board)
            undecided = [cell.coord for cell in self.board.iter_cells() if cell.mine is None]
            remaining = None
            if self.board.mine_count is not None:
                remaining = self.board.mine_count - self.board.committed_mines()

        components = constraint_components(constraints)
        for component in components:
            if not isinstance(decide(component), Satisfiable):
                return False
        if remaining is None:
            return True

        constrained = {v for component in components for v in component.variables}
        free = sum(1 for coord in undecided if coord not in constrained)
        totals = combine_totals(mine_counts(c) for c in components)
        return any(0 <= remaining - t <= free for t in totals)
