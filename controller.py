"""
Public surface of the engine for a front-end.

Moves are handed to a single solver worker and served strictly in submission
order; the calling thread gets a Future back immediately and can keep reading
snapshots while a long search runs.
"""

from __future__ import annotations

import random
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

from board import Board, BoardSnapshot
from config import SOLVER_THREAD_PREFIX, SOLVER_WORKERS
from game import CommitmentManager, GameState, Outcome
from logging_utils import get_logger
from solver.csp_solver import Forced
from solver.utils import CancelToken

logger = get_logger(__name__)

OutcomeCallback = Callable[[Outcome], None]


class MoveController:
    """
    Serializes moves against one CommitmentManager.

    submit_open() returns a Future[Outcome]; toggle_flag(), board_snapshot()
    and session_state() answer immediately.
    """

    def __init__(
        self,
        game: CommitmentManager,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> None:
        self.game = game
        self.on_outcome = on_outcome
        self._executor = ThreadPoolExecutor(
            max_workers=SOLVER_WORKERS, thread_name_prefix=SOLVER_THREAD_PREFIX
        )
        self._lock = threading.Lock()
        self._outstanding: List[Tuple[Future, CancelToken]] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------
    def submit_open(self, row: int, col: int) -> "Future[Outcome]":
        self.game.board.get_cell(row, col)
        token = CancelToken()
        with self._lock:
            if self._closed:
                raise RuntimeError("controller is closed")
            future = self._executor.submit(self._run_open, row, col, token)
            self._outstanding.append((future, token))
        future.add_done_callback(self._done)
        logger.debug("queued open (%d, %d)", row, col)
        return future

    def _run_open(self, row: int, col: int, token: CancelToken) -> Outcome:
        outcome = self.game.open(row, col, cancel=token)
        logger.debug("open (%d, %d) -> %s", row, col, outcome.kind.value)
        return outcome

    def _done(self, future: "Future[Outcome]") -> None:
        with self._lock:
            self._outstanding = [(f, t) for f, t in self._outstanding if f is not future]
        if self.on_outcome is None or future.cancelled() or future.exception() is not None:
            return
        self.on_outcome(future.result())

    def toggle_flag(self, row: int, col: int) -> bool:
        return self.game.toggle_flag(row, col)

    def query_forced(self, row: int, col: int) -> "Future[Forced]":
        """Ask the solver whether (row, col) is forced, behind pending moves."""
        self.game.board.get_cell(row, col)
        with self._lock:
            if self._closed:
                raise RuntimeError("controller is closed")
            return self._executor.submit(self.game.is_forced, row, col)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def board_snapshot(self) -> BoardSnapshot:
        return self.game.snapshot()

    def session_state(self) -> GameState:
        return self.game.state

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._outstanding)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def cancel(self) -> int:
        """
        Drop queued moves and interrupt the one being solved.
        Returns how many moves were affected.
        """
        with self._lock:
            outstanding = list(self._outstanding)
        for future, token in outstanding:
            if not future.cancel():
                token.cancel()
        if outstanding:
            logger.warning("cancelled %d outstanding moves", len(outstanding))
        return len(outstanding)

    def close(self) -> None:
        with self._lock:
            self._closed = True
        self.cancel()
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "MoveController":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def new_game(
    width: int,
    height: int,
    mine_density: float,
    seed: Optional[int] = None,
    on_outcome: Optional[OutcomeCallback] = None,
) -> MoveController:
    """Start a session on a width x height board."""
    board = Board(rows=height, cols=width, mine_density=mine_density)
    game = CommitmentManager(board, rng=random.Random(seed))
    logger.info(
        "new game %dx%d, mine probability %.3f", width, height, board.mine_probability
    )
    return MoveController(game, on_outcome=on_outcome)
