from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterable, Iterator, List, Optional, Tuple

Coord = Tuple[int, int]


class CellState(Enum):
    """Possible visible states of a cell."""
    HIDDEN = auto()
    FLAGGED = auto()
    REVEALED = auto()


@dataclass
class Cell:
    """
    A single square on the board.

    `mine` is the committed truth value: None until the engine has decided it.
    `clue` is only meaningful once the cell is revealed.
    """
    row: int
    col: int
    state: CellState = CellState.HIDDEN
    clue: Optional[int] = None
    mine: Optional[bool] = None

    @property
    def coord(self) -> Coord:
        return (self.row, self.col)

    @property
    def is_revealed(self) -> bool:
        return self.state == CellState.REVEALED

    @property
    def is_flagged(self) -> bool:
        return self.state == CellState.FLAGGED

    @property
    def is_hidden(self) -> bool:
        """Hidden or flagged: the player has not opened it."""
        return self.state != CellState.REVEALED

    @property
    def is_decided(self) -> bool:
        return self.mine is not None

    def display_char(self, reveal_mines: bool = False) -> str:
        """
        Character for this cell.

        - 'U' : hidden
        - 'O' : revealed, 0 adjacent mines
        - '1'..'8' : revealed, that many adjacent mines
        - 'F' : flagged
        - 'B' : committed mine (only with reveal_mines=True)
        """
        if reveal_mines and self.mine:
            return "B"

        if self.state == CellState.FLAGGED:
            return "F"
        if self.state == CellState.HIDDEN:
            return "U"

        return "O" if self.clue == 0 else str(self.clue)


@dataclass(frozen=True)
class CellView:
    """What the player may see of a cell: no truth value for hidden cells."""
    state: CellState
    clue: Optional[int] = None


@dataclass(frozen=True)
class BoardSnapshot:
    """Read-only copy of the visible board."""
    rows: int
    cols: int
    cells: Tuple[Tuple[CellView, ...], ...]

    def __getitem__(self, coord: Coord) -> CellView:
        row, col = coord
        return self.cells[row][col]

    def render(self) -> str:
        def char(view: CellView) -> str:
            if view.state == CellState.FLAGGED:
                return "F"
            if view.state == CellState.HIDDEN:
                return "U"
            return "O" if view.clue == 0 else str(view.clue)

        return "\n".join(
            "".join(f"[{char(view)}]" for view in row) for row in self.cells
        )


def density_from(mine_density: float, rows: int, cols: int) -> float:
    """
    Turn the density parameter into a per-cell mine probability.

    Floats in [0, 1) are probabilities already; integers >= 1 are mine counts.
    """
    if isinstance(mine_density, bool):
        raise ValueError("mine_density must be a number.")
    if isinstance(mine_density, int) and mine_density >= 1:
        if mine_density >= rows * cols:
            raise ValueError("Number of mines must be between 1 and rows*cols-1.")
        return mine_density / (rows * cols)
    if not 0.0 <= mine_density < 1.0:
        raise ValueError("Mine probability must be in [0, 1).")
    return float(mine_density)


class Board:
    """
    Grid of cells plus the density parameter.

    Design:
    - No minefield is generated: cells only carry the truth values the
      commitment manager has decided so far.
    - Coordinates are 0-indexed: row in [0, rows-1], col in [0, cols-1].
    - The board is passive; only game.CommitmentManager mutates it.
    """

    def __init__(
        self,
        rows: int = 16,
        cols: int = 16,
        mine_density: float = 40,
    ) -> None:
        if rows <= 0 or cols <= 0:
            raise ValueError("Board dimensions must be positive.")

        self.rows = rows
        self.cols = cols
        self.mine_probability = density_from(mine_density, rows, cols)
        # A mine count caps how many mines clue draws may introduce.
        self.mine_count: Optional[int] = None
        if isinstance(mine_density, int) and mine_density >= 1:
            self.mine_count = mine_density

        self.grid: List[List[Cell]] = [
            [Cell(r, c) for c in range(cols)] for r in range(rows)
        ]

    # ------------------------------------------------------------------
    # Core board / cell helpers
    # ------------------------------------------------------------------
    @property
    def target_mines(self) -> int:
        """Mine count if one was given, else the expected count for the density."""
        if self.mine_count is not None:
            return self.mine_count
        return round(self.mine_probability * self.rows * self.cols)

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.cols

    def get_cell(self, row: int, col: int) -> Cell:
        if not self.in_bounds(row, col):
            raise IndexError(f"Cell ({row}, {col}) is out of bounds.")
        return self.grid[row][col]

    def neighbors(self, row: int, col: int) -> Iterable[Cell]:
        """Yield all neighboring cells (up to 8), row-major."""
        for dr in (-1, 0, 1):
            for dc in (-1, 0, 1):
                if dr == 0 and dc == 0:
                    continue
                nr, nc = row + dr, col + dc
                if self.in_bounds(nr, nc):
                    yield self.grid[nr][nc]

    def iter_cells(self) -> Iterator[Cell]:
        """Iterate over all cells in row-major order."""
        for row in self.grid:
            for cell in row:
                yield cell

    def revealed_cells(self) -> Iterator[Cell]:
        for cell in self.iter_cells():
            if cell.is_revealed:
                yield cell

    def count_flags(self) -> int:
        """Count how many cells are flagged."""
        return sum(1 for cell in self.iter_cells() if cell.is_flagged)

    def committed_mines(self) -> int:
        return sum(1 for cell in self.iter_cells() if cell.mine)

    def remaining_mines_estimate(self) -> int:
        """
        How many mines *should* remain, assuming every flag is correct.
        Mainly for UI/debugging, not strict rule enforcement.
        """
        return self.target_mines - self.count_flags()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def snapshot(self) -> BoardSnapshot:
        return BoardSnapshot(
            rows=self.rows,
            cols=self.cols,
            cells=tuple(
                tuple(CellView(cell.state, cell.clue) for cell in row)
                for row in self.grid
            ),
        )

    def to_display_grid(self, reveal_mines: bool = False) -> List[List[str]]:
        return [
            [self.grid[r][c].display_char(reveal_mines=reveal_mines) for c in range(self.cols)]
            for r in range(self.rows)
        ]

    def __str__(self) -> str:
        return self.render()

    def render(self, reveal_mines: bool = False) -> str:
        """
        Render the board as a multiline string, e.g.:

        ____________________
        [U][U][2][U][O][U]
        [U][U][2][U][U][U]
        ____________________
        """
        grid = self.to_display_grid(reveal_mines=reveal_mines)
        border = "_" * (self.cols * 3 + 2)

        lines = [border]
        for r in range(self.rows):
            lines.append("".join(f"[{grid[r][c]}]" for c in range(self.cols)))
        lines.append(border)
        return "\n".join(lines)
