"""
Settings shared by the whole engine.

Edit the constants here to change the default board, the difficulty presets,
the solver worker pool or the log level.
"""

from __future__ import annotations

import os
from typing import Dict, Tuple

# ==== Board defaults ========================================================

DEFAULT_ROWS: int = 16
DEFAULT_COLS: int = 16
DEFAULT_MINES: int = 40

# name -> (rows, cols, mines)
DIFFICULTY_PRESETS: Dict[str, Tuple[int, int, int]] = {
    "beginner": (9, 9, 10),
    "intermediate": (16, 16, 40),
    "expert": (16, 30, 99),
}

# ==== Solver ================================================================

# Moves must never run concurrently against the same board.
SOLVER_WORKERS: int = 1
SOLVER_THREAD_PREFIX: str = "solver"

# Components larger than this are not enumerated by the probability advisor.
MAX_ENUM_UNKNOWNS: int = 15

# ==== Logging ===============================================================

LOG_LEVEL: str = os.environ.get("MINESWEEPER_LOG_LEVEL", "WARNING")
