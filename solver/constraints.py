# solver/constraints.py
from __future__ import annotations

from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set

from board import Board, Coord
from logging_utils import get_logger
from .errors import InvariantViolation
from .utils import EMPTY_COMPONENT, Component, Constraint, Literal

logger = get_logger(__name__)

CommitCallback = Callable[[Coord, bool], None]


class ConstraintStore:
    """
    Incremental set of clue constraints over the undecided frontier.

    For every revealed cell that still has undecided neighbors the store keeps
    the set of those neighbors and how many of them must be mines. Values
    forced by unit propagation are handed to `on_commit` as soon as they are
    found, so the board always reflects them before the next query.

    Components are kept as a labelling of frontier cells. Adding a constraint
    merges the labels it touches; removing cells only marks their component
    dirty, and dirty components are split again lazily by components().
    """

    def __init__(self, board: Board, on_commit: Optional[CommitCallback] = None) -> None:
        self.board = board
        self.on_commit = on_commit

        # origin -> undecided cells / required mines
        self._cells: Dict[Coord, Set[Coord]] = {}
        self._mines: Dict[Coord, int] = {}
        # frontier cell -> origins of the constraints it appears in
        self._watch: Dict[Coord, Set[Coord]] = {}

        self._label: Dict[Coord, int] = {}
        self._members: Dict[int, Set[Coord]] = {}
        self._dirty: Set[int] = set()
        self._next_label = 0

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #
    @property
    def frontier(self) -> Set[Coord]:
        return set(self._watch)

    def __contains__(self, cell: object) -> bool:
        return cell in self._watch

    def __len__(self) -> int:
        return len(self._cells)

    def constraints(self) -> List[Constraint]:
        return [self._constraint(origin) for origin in sorted(self._cells)]

    def _constraint(self, origin: Coord) -> Constraint:
        return Constraint(origin, frozenset(self._cells[origin]), self._mines[origin])

    def components(self) -> List[Component]:
        """Current partition of the frontier into independent components."""
        self._split_dirty()
        return [
            self._snapshot(members)
            for _, members in sorted(
                self._members.items(), key=lambda item: min(item[1])
            )
        ]

    def component_of(self, cell: Coord) -> Optional[Component]:
        if cell not in self._watch:
            return None
        self._split_dirty()
        return self._snapshot(self._members[self._label[cell]])

    def region(self, cells: Iterable[Coord]) -> Component:
        """Union of the components touching any of `cells`."""
        self._split_dirty()
        labels = {self._label[c] for c in cells if c in self._label}
        if not labels:
            return EMPTY_COMPONENT
        return Component.merge([self._snapshot(self._members[l]) for l in sorted(labels)])

    def mine_lower_bound(self, exclude: Component = EMPTY_COMPONENT) -> int:
        """
        Mines the frontier outside `exclude` must still hold, at least.

        Sums the requirements of pairwise disjoint constraints, taken
        greedily from the most demanding one.
        """
        used: Set[Coord] = set()
        total = 0
        for origin in sorted(self._cells, key=lambda o: (-self._mines[o], o)):
            cells = self._cells[origin]
            if not cells or cells & used or any(c in exclude for c in cells):
                continue
            used |= cells
            total += self._mines[origin]
        return total

    def _snapshot(self, members: Set[Coord]) -> Component:
        origins = {origin for cell in members for origin in self._watch[cell]}
        return Component(
            variables=tuple(sorted(members)),
            constraints=tuple(self._constraint(o) for o in sorted(origins)),
        )

    # ------------------------------------------------------------------ #
    # Mutation
    # ------------------------------------------------------------------ #
    def add_constraint(self, origin: Coord) -> List[Literal]:
        """
        Insert the constraint of a freshly revealed cell and propagate it.

        Returns the literals forced by propagation (already committed).
        """
        cell = self.board.get_cell(*origin)
        if not cell.is_revealed or cell.clue is None:
            raise ValueError(f"Cell {origin} is not revealed.")
        if origin in self._cells:
            raise ValueError(f"Cell {origin} already has a constraint.")

        undecided: Set[Coord] = set()
        committed_mines = 0
        for n in self.board.neighbors(*origin):
            if n.mine is None:
                undecided.add(n.coord)
            elif n.mine:
                committed_mines += 1

        mines = cell.clue - committed_mines
        if mines < 0 or mines > len(undecided):
            raise InvariantViolation(
                f"clue {cell.clue} at {origin} cannot be met by {len(undecided)} "
                f"undecided and {committed_mines} committed mine neighbors"
            )
        if not undecided:
            return []

        self._cells[origin] = undecided
        self._mines[origin] = mines
        for v in undecided:
            self._watch.setdefault(v, set()).add(origin)
        self._merge(undecided)

        return self._propagate([origin])

    def assign(self, cell: Coord, mine: bool) -> List[Literal]:
        """
        Commit a frontier cell from outside (for example a cell being
        revealed) and propagate the consequences.
        """
        if cell not in self._watch:
            return []
        touched = self._remove(cell, mine)
        return self._propagate(touched)

    def retire(self, origin: Coord) -> None:
        """Drop a constraint that has no undecided cell left."""
        cells = self._cells.get(origin)
        if cells is None:
            return
        if cells:
            raise ValueError(f"Constraint at {origin} still has undecided cells.")
        if self._mines[origin] != 0:
            raise InvariantViolation(
                f"constraint at {origin} retired with {self._mines[origin]} mines unmet"
            )
        del self._cells[origin]
        del self._mines[origin]

    # ------------------------------------------------------------------ #
    # Propagation
    # ------------------------------------------------------------------ #
    def _propagate(self, origins: Iterable[Coord]) -> List[Literal]:
        queue: Deque[Coord] = deque(origins)
        forced: List[Literal] = []

        while queue:
            origin = queue.popleft()
            cells = self._cells.get(origin)
            if cells is None:
                continue

            mines = self._mines[origin]
            if mines < 0 or mines > len(cells):
                raise InvariantViolation(
                    f"constraint at {origin} needs {mines} mines among {len(cells)} cells"
                )
            if not cells:
                self.retire(origin)
                continue
            if mines not in (0, len(cells)):
                continue

            value = mines > 0
            for cell in sorted(cells):
                if cell not in self._watch:
                    continue
                forced.append(Literal(cell, value))
                queue.extend(self._remove(cell, value))

        if forced:
            logger.debug("propagation forced %d cells", len(forced))
        return forced

    def _remove(self, cell: Coord, mine: bool) -> List[Coord]:
        """Take a decided cell out of every constraint; return those origins."""
        origins = self._watch.pop(cell)
        for origin in origins:
            self._cells[origin].discard(cell)
            if mine:
                self._mines[origin] -= 1

        label = self._label.pop(cell)
        members = self._members[label]
        members.discard(cell)
        if members:
            self._dirty.add(label)
        else:
            del self._members[label]
            self._dirty.discard(label)

        if self.on_commit is not None:
            self.on_commit(cell, mine)
        return sorted(origins)

    # ------------------------------------------------------------------ #
    # Component labelling
    # ------------------------------------------------------------------ #
    def _new_label(self, members: Set[Coord]) -> int:
        label = self._next_label
        self._next_label += 1
        self._members[label] = members
        for cell in members:
            self._label[cell] = label
        return label

    def _merge(self, cells: Set[Coord]) -> None:
        labels = {self._label[c] for c in cells if c in self._label}
        fresh = {c for c in cells if c not in self._label}

        if not labels:
            self._new_label(set(fresh))
            return

        target = max(labels, key=lambda l: len(self._members[l]))
        members = self._members[target]
        for label in labels - {target}:
            moved = self._members.pop(label)
            for cell in moved:
                self._label[cell] = target
            members |= moved
            if label in self._dirty:
                self._dirty.discard(label)
                self._dirty.add(target)
        for cell in fresh:
            self._label[cell] = target
        members |= fresh

    def _split_dirty(self) -> None:
        while self._dirty:
            label = self._dirty.pop()
            members = self._members.pop(label, None)
            if not members:
                continue

            unvisited = set(members)
            while unvisited:
                start = min(unvisited)
                piece = {start}
                stack = [start]
                unvisited.discard(start)
                while stack:
                    cell = stack.pop()
                    for origin in self._watch[cell]:
                        for other in self._cells[origin]:
                            if other in unvisited:
                                unvisited.discard(other)
                                piece.add(other)
                                stack.append(other)
                self._new_label(piece)
