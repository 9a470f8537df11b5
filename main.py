# main.py

from __future__ import annotations

from typing import Tuple

from config import DEFAULT_COLS, DEFAULT_MINES, DEFAULT_ROWS, DIFFICULTY_PRESETS
from controller import MoveController, new_game
from game import GameState, OutcomeKind
from solver.probabilistic_solver import ProbabilisticSolver


# ---------------------------------------------------------------------------
# Helper functions for user input
# ---------------------------------------------------------------------------

def ask_yes_no(prompt: str, default: bool = True) -> bool:
    default_str = "Y/n" if default else "y/N"
    while True:
        answer = input(f"{prompt} [{default_str}]: ").strip().lower()
        if not answer:
            return default
        if answer in {"y", "yes"}:
            return True
        if answer in {"n", "no"}:
            return False
        print("Please enter 'y' or 'n'.")


def ask_int(prompt: str, minimum: int, maximum: int, default: int) -> int:
    full_prompt = f"{prompt} (min={minimum}, max={maximum}, default={default}): "
    while True:
        raw = input(full_prompt).strip()
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError:
            print("Please enter an integer.")
            continue
        if not (minimum <= value <= maximum):
            print(f"Value must be between {minimum} and {maximum}.")
            continue
        return value


def parse_move(user_input: str) -> Tuple[str, int, int]:
    """
    Parse a move string like:
      'o 3 4' or 'open 3 4'  -> open cell (row=3, col=4)
      'f 3 4' or 'flag 3 4'  -> toggle flag
      'h 3 4' or 'hint 3 4'  -> ask whether the cell is forced

    Returns: (action, row_index, col_index) where row/col are 0-based.

    Raises ValueError on bad input.
    """
    tokens = user_input.strip().split()
    if not tokens:
        raise ValueError("Empty input.")

    action_token = tokens[0].lower()
    if action_token in {"q", "quit", "exit"}:
        return ("quit", -1, -1)

    if len(tokens) != 3:
        raise ValueError("Format must be: 'o row col', 'f row col' or 'h row col' (or 'q' to quit).")

    if action_token in {"o", "open"}:
        action = "open"
    elif action_token in {"f", "flag"}:
        action = "flag"
    elif action_token in {"h", "hint"}:
        action = "hint"
    else:
        raise ValueError("First token must be 'o'/'open', 'f'/'flag', 'h'/'hint', or 'q' to quit.")

    try:
        # User enters 1-based coordinates; convert to 0-based
        row = int(tokens[1]) - 1
        col = int(tokens[2]) - 1
    except ValueError:
        raise ValueError("Row and column must be integers.")

    return (action, row, col)


# ---------------------------------------------------------------------------
# Game setup
# ---------------------------------------------------------------------------

def configure_game() -> MoveController:
    """Ask the user for a preset or a custom board."""
    print("=== Lazy Minesweeper Configuration ===")
    names = ", ".join(DIFFICULTY_PRESETS)
    choice = input(f"Difficulty ({names}, or 'custom') [intermediate]: ").strip().lower()

    if choice in DIFFICULTY_PRESETS:
        rows, cols, mines = DIFFICULTY_PRESETS[choice]
    elif choice == "custom":
        rows = ask_int("Number of rows", minimum=2, maximum=50, default=DEFAULT_ROWS)
        cols = ask_int("Number of columns", minimum=2, maximum=50, default=DEFAULT_COLS)
        max_mines = rows * cols - 1
        default_mines = min(max(1, (rows * cols) // 6), max_mines)
        mines = ask_int("Number of mines", minimum=1, maximum=max_mines, default=default_mines)
    else:
        rows, cols, mines = DEFAULT_ROWS, DEFAULT_COLS, DEFAULT_MINES

    print(f"\nCreating a {rows}x{cols} board with about {mines} mines...\n")
    return new_game(width=cols, height=rows, mine_density=mines)


def print_status(controller: MoveController) -> None:
    game = controller.game
    print(game.board.render(reveal_mines=controller.session_state() is not GameState.PLAYING))
    print(f"Mines remaining (estimate): {game.board.remaining_mines_estimate()}")


# ---------------------------------------------------------------------------
# Human game loop
# ---------------------------------------------------------------------------

def run_human_game(controller: MoveController) -> None:
    print("=== Lazy Minesweeper (Human Mode) ===")
    print("Commands:")
    print("  o r c   -> open cell at row r, column c (1-based indices)")
    print("  f r c   -> toggle flag at row r, column c")
    print("  h r c   -> is that cell forced?")
    print("  q       -> quit")
    print("You only lose when the clues prove the cell you open is a mine.")
    print()

    board = controller.game.board
    while True:
        print_status(controller)

        state = controller.session_state()
        if state is GameState.WON:
            print("\nEvery cell you could open is open. You win!")
            break
        if state is GameState.LOST:
            r, c = controller.game.exploded
            print(f"\nThe clues proved ({r + 1}, {c + 1}) was a mine. Game over!")
            break

        user_input = input("\nEnter your move: ")

        try:
            action, row, col = parse_move(user_input)
        except ValueError as exc:
            print(f"Invalid move: {exc}")
            continue

        if action == "quit":
            print("Goodbye!")
            break

        if not board.in_bounds(row, col):
            print(f"Cell ({row + 1}, {col + 1}) is out of bounds.")
            continue

        if action == "open":
            outcome = controller.submit_open(row, col).result()
            if outcome.kind is OutcomeKind.NOOP:
                print("Nothing to open there.")
        elif action == "flag":
            controller.toggle_flag(row, col)
        elif action == "hint":
            forced = controller.query_forced(row, col).result()
            print(f"Cell ({row + 1}, {col + 1}): {forced.value}")


# ---------------------------------------------------------------------------
# AI game loop
# ---------------------------------------------------------------------------

def run_ai_game(controller: MoveController) -> None:
    print("=== Lazy Minesweeper (AI Mode) ===")
    player = ProbabilisticSolver()

    step = 0
    while controller.session_state() is GameState.PLAYING:
        moves = player.play_step(controller)
        if not moves:
            print("\nAI is stuck and cannot find a move.")
            break

        step += 1
        print(f"\nAfter AI step {step}:")
        print_status(controller)

    state = controller.session_state()
    if state is GameState.WON:
        print("\nAI opened everything it could. AI wins!")
    elif state is GameState.LOST:
        print("\nAI opened a provable mine. Game over!")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    with configure_game() as controller:
        if ask_yes_no("Do you want to play the game yourself?", default=True):
            run_human_game(controller)
        else:
            run_ai_game(controller)


if __name__ == "__main__":
    main()
