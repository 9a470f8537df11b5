# solver/csp_solver.py
"""
Backtracking CSP solver over one frontier component.

Each constraint says "exactly k of these cells are mines". The search
alternates unit propagation with branching:

  - a constraint whose remaining requirement equals its number of unassigned
    cells forces all of them to mine;
  - a constraint whose requirement is already met forces them all to safe;
  - a constraint whose requirement is negative or larger than its unassigned
    count is a conflict, and the branch is abandoned.

Branching picks the first unassigned variable in row-major order and tries
safe before mine. An optional set of allowed mine totals prunes any branch
whose total can no longer land in it; this is how a fixed board mine count
reaches a single component. When a seed is given, each branching point instead tries
mine first with probability `mine_probability`; this only changes which
satisfying assignment is found first, never whether one exists.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Dict, FrozenSet, Iterator, List, Mapping, Optional, Set, Tuple, Union

from board import Coord
from logging_utils import get_logger
from .errors import InvariantViolation, SolveCancelled
from .utils import CancelToken, Component, Literal

logger = get_logger(__name__)


@dataclass(frozen=True)
class Satisfiable:
    """A satisfying assignment: every component variable -> is mine."""
    assignment: Mapping[Coord, bool] = field(default_factory=dict)

    def mines(self) -> List[Coord]:
        return sorted(cell for cell, mine in self.assignment.items() if mine)


@dataclass(frozen=True)
class Unsatisfiable:
    """No assignment satisfies the constraints and the asserted literal."""


UNSATISFIABLE = Unsatisfiable()

Decision = Union[Satisfiable, Unsatisfiable]


class Forced(Enum):
    MINE = "mine"
    SAFE = "safe"
    UNDETERMINED = "undetermined"


class _Search:
    """Mutable search state over one component, with an undo trail."""

    def __init__(
        self,
        component: Component,
        cancel: Optional[CancelToken] = None,
        seed: Optional[int] = None,
        mine_probability: float = 0.5,
        allowed: Optional[AbstractSet[int]] = None,
    ) -> None:
        self.variables = component.variables
        index = {v: i for i, v in enumerate(self.variables)}

        self.members: List[List[int]] = []
        self.need: List[int] = []
        for constraint in component.constraints:
            self.members.append([index[c] for c in sorted(constraint.cells)])
            self.need.append(constraint.mines)

        self.watch: List[List[int]] = [[] for _ in self.variables]
        for ci, members in enumerate(self.members):
            for v in members:
                self.watch[v].append(ci)

        self.value: List[Optional[bool]] = [None] * len(self.variables)
        self.mines = [0] * len(self.members)
        self.free = [len(m) for m in self.members]
        self.trail: List[int] = []
        self.total = 0
        self.allowed = allowed

        self.cancel = cancel
        self.rng = random.Random(seed) if seed is not None else None
        self.mine_probability = mine_probability
        self.nodes = 0

    # ------------------------------------------------------------------ #
    # Propagation
    # ------------------------------------------------------------------ #
    def start(self, literal: Optional[Literal]) -> bool:
        """Propagate the constraints as given, then the literal."""
        pending: List[Tuple[int, bool]] = []
        for ci, members in enumerate(self.members):
            if self.need[ci] < 0 or self.need[ci] > len(members):
                return False
            if members and self.need[ci] in (0, len(members)):
                forced = self.need[ci] > 0
                pending.extend((v, forced) for v in members)

        if literal is not None:
            v = self._index_of(literal.cell)
            if v is not None:
                pending.append((v, literal.mine))

        return self.assign_all(pending)

    def _index_of(self, cell: Coord) -> Optional[int]:
        try:
            return self.variables.index(cell)
        except ValueError:
            return None

    def assign_all(self, pending: List[Tuple[int, bool]]) -> bool:
        """
        Assign and propagate to a fixpoint. Returns False on conflict; the
        caller undoes the trail in that case.
        """
        while pending:
            v, mine = pending.pop()
            current = self.value[v]
            if current is not None:
                if current != mine:
                    return False
                continue

            self.value[v] = mine
            self.trail.append(v)
            self.total += mine
            for ci in self.watch[v]:
                self.free[ci] -= 1
                if mine:
                    self.mines[ci] += 1

            for ci in self.watch[v]:
                remaining = self.need[ci] - self.mines[ci]
                free = self.free[ci]
                if remaining < 0 or remaining > free:
                    return False
                if free and remaining in (0, free):
                    forced = remaining > 0
                    pending.extend(
                        (u, forced) for u in self.members[ci] if self.value[u] is None
                    )
        return True

    def undo(self, mark: int) -> None:
        while len(self.trail) > mark:
            v = self.trail.pop()
            mine = self.value[v]
            self.value[v] = None
            self.total -= mine
            for ci in self.watch[v]:
                self.free[ci] += 1
                if mine:
                    self.mines[ci] -= 1

    # ------------------------------------------------------------------ #
    # Branching
    # ------------------------------------------------------------------ #
    def next_variable(self) -> Optional[int]:
        for v, value in enumerate(self.value):
            if value is None:
                return v
        return None

    def branch_order(self) -> Tuple[bool, bool]:
        if self.rng is not None and self.rng.random() < self.mine_probability:
            return (True, False)
        return (False, True)

    def check_cancel(self) -> None:
        self.nodes += 1
        if self.cancel is not None and self.cancel.cancelled:
            raise SolveCancelled(f"search cancelled after {self.nodes} nodes")

    def span(self) -> Tuple[int, int]:
        """Lowest and highest mine total this branch can still end with."""
        return self.total, self.total + len(self.variables) - len(self.trail)

    def reachable(self) -> bool:
        if self.allowed is None:
            return True
        low, high = self.span()
        return any(low <= n <= high for n in self.allowed)

    def solve(self) -> bool:
        self.check_cancel()
        if not self.reachable():
            return False
        v = self.next_variable()
        if v is None:
            return True
        for mine in self.branch_order():
            mark = len(self.trail)
            if self.assign_all([(v, mine)]) and self.solve():
                return True
            self.undo(mark)
        return False

    def solutions(self) -> Iterator[Dict[Coord, bool]]:
        self.check_cancel()
        v = self.next_variable()
        if v is None:
            yield self.assignment()
            return
        for mine in (False, True):
            mark = len(self.trail)
            if self.assign_all([(v, mine)]):
                yield from self.solutions()
            self.undo(mark)

    def collect_totals(self, found: Set[int]) -> None:
        self.check_cancel()
        low, high = self.span()
        if all(n in found for n in range(low, high + 1)):
            return
        v = self.next_variable()
        if v is None:
            found.add(self.total)
            return
        for mine in (False, True):
            mark = len(self.trail)
            if self.assign_all([(v, mine)]):
                self.collect_totals(found)
            self.undo(mark)

    def assignment(self) -> Dict[Coord, bool]:
        return {cell: bool(self.value[i]) for i, cell in enumerate(self.variables)}


# ---------------------------------------------------------------------------
# Public operations
# ---------------------------------------------------------------------------

def decide(
    component: Component,
    literal: Optional[Literal] = None,
    cancel: Optional[CancelToken] = None,
    seed: Optional[int] = None,
    mine_probability: float = 0.5,
    allowed: Optional[AbstractSet[int]] = None,
) -> Decision:
    """
    Find one assignment of the component that satisfies its constraints and
    the optional literal, with a mine total in `allowed` when that is given.

    A literal on a cell outside the component does not constrain it. Raises
    SolveCancelled if the token is set while searching.
    """
    search = _Search(component, cancel, seed, mine_probability, allowed)
    if not search.start(literal) or not search.solve():
        logger.debug(
            "decide %s over %d vars: unsatisfiable (%d nodes)",
            literal, len(component), search.nodes,
        )
        return UNSATISFIABLE

    logger.debug(
        "decide %s over %d vars: satisfiable (%d nodes)",
        literal, len(component), search.nodes,
    )
    return Satisfiable(search.assignment())


def is_forced(
    component: Component,
    cell: Coord,
    cancel: Optional[CancelToken] = None,
    allowed: Optional[AbstractSet[int]] = None,
) -> Forced:
    """
    Whether every assignment of the component agrees on `cell`, counting
    only assignments whose mine total is in `allowed` when that is given.

    Both assertions being unsatisfiable means the component itself is
    inconsistent, which the engine must never let happen.
    """
    if cell not in component:
        return Forced.UNDETERMINED

    safe = decide(component, Literal(cell, False), cancel, allowed=allowed)
    mine = decide(component, Literal(cell, True), cancel, allowed=allowed)
    safe_ok = isinstance(safe, Satisfiable)
    mine_ok = isinstance(mine, Satisfiable)

    if not safe_ok and not mine_ok:
        raise InvariantViolation(f"component containing {cell} has no solution")
    if not safe_ok:
        return Forced.MINE
    if not mine_ok:
        return Forced.SAFE
    return Forced.UNDETERMINED


def enumerate_solutions(
    component: Component,
    literal: Optional[Literal] = None,
    cancel: Optional[CancelToken] = None,
    limit: Optional[int] = None,
) -> Iterator[Dict[Coord, bool]]:
    """Yield every satisfying assignment, safe branches first."""
    search = _Search(component, cancel)
    if not search.start(literal):
        return
    for count, solution in enumerate(search.solutions(), start=1):
        yield solution
        if limit is not None and count >= limit:
            return


def count_solutions(
    component: Component,
    literal: Optional[Literal] = None,
    cancel: Optional[CancelToken] = None,
    limit: Optional[int] = None,
) -> int:
    return sum(1 for _ in enumerate_solutions(component, literal, cancel, limit))


def mine_counts(
    component: Component,
    cancel: Optional[CancelToken] = None,
) -> FrozenSet[int]:
    """
    Every mine total some assignment of the component reaches.

    Branches whose whole range of totals is already known are skipped, so this
    is far cheaper than enumerating the solutions.
    """
    search = _Search(component, cancel)
    found: Set[int] = set()
    if search.start(None):
        search.collect_totals(found)
    return frozenset(found)
