"""CLI entrypoint for the phrase reorder practice shell."""

from __future__ import annotations

import argparse
import logging
import os
import sqlite3
from collections.abc import Callable
from pathlib import Path

from .models import TokenFragment
from .progress import KeyValueStore, MemoryStore, SqliteStore
from .service import PracticeService

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]

DEFAULT_DB_PATH = Path(".phrasereorder") / "sessions.db"
PROBLEMS_ENV = "PHRASEREORDER_PROBLEMS"
QUIT_COMMANDS = {"q", ":q", ":quit", ":exit"}

logger = logging.getLogger(__name__)


def _service(db_path: Path) -> PracticeService:
    """Create app service backed by a local session database, or memory when it cannot be opened."""
    store: KeyValueStore
    try:
        store = SqliteStore(db_path)
    except (OSError, sqlite3.Error) as exc:
        logger.warning("Could not open session database %s (%s); progress will not be saved.", db_path, exc)
        store = MemoryStore()
    return PracticeService(store)


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="phrasereorder", description="Reorder shuffled sentence fragments")
    parser.add_argument("command", nargs="?", default="play", choices=["play"])
    parser.add_argument(
        "--problems",
        default=os.environ.get(PROBLEMS_ENV) or None,
        help=f"problem set URL or JSON path (default: bundled set, or ${PROBLEMS_ENV})",
    )
    parser.add_argument("--db", default=str(DEFAULT_DB_PATH), help="session database path")
    parser.add_argument("--cache", default=None, help="local copy used when the problems URL is unreachable")
    parser.add_argument("--verbose", action="store_true", help="enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return play_shell(_service(Path(args.db)), source=args.problems, cache_path=args.cache)


def play_shell(
    service: PracticeService,
    input_fn: InputFn = input,
    print_fn: PrintFn = print,
    *,
    source: str | None = None,
    cache_path: str | None = None,
) -> int:
    """Run the interactive reorder loop until the learner quits."""
    try:
        print_fn("Loading practice problems...")
        if service.load(source, cache_path=cache_path) == "error":
            print_fn("Unable to load problems")
            print_fn(service.error_message or "Unknown error")
            return 1
        if service.total_count == 0:
            print_fn("No practice prompts available.")
            return 0

        while True:
            _show_problem(service, print_fn)
            controls = service.controls()
            print_fn("")
            if controls.solve:
                print_fn("<numbers>) Reorder, e.g. 3 1 2")
                print_fn("m <from> <to>) Move one fragment")
                print_fn("s) Solve")
            if controls.skip:
                print_fn("k) Skip for now")
            if controls.next:
                print_fn("n) Next problem")
            if controls.restart:
                print_fn("All problems solved.")
                print_fn("r) Restart")
            print_fn("q) Quit")

            choice = input_fn("Choose: ").strip()
            lowered = choice.lower()
            if lowered in QUIT_COMMANDS:
                return 0
            if lowered == "s" and controls.solve:
                _solve(service, print_fn)
            elif lowered == "k" and controls.skip:
                service.skip()
            elif lowered == "n" and controls.next:
                service.next()
            elif lowered == "r" and controls.restart:
                service.restart()
                print_fn("Problems reshuffled.")
            elif lowered.startswith("m ") and controls.solve:
                _move(service, lowered[2:], print_fn)
            elif choice[:1].isdigit() and controls.solve:
                _reorder(service, choice, print_fn)
            else:
                print_fn("Invalid choice.")
    finally:
        service.close()


def _show_problem(service: PracticeService, print_fn: PrintFn) -> None:
    """Print the active problem, its fragments, and the note once solved."""
    problem = service.get_current_problem()
    progress = service.get_current_progress()
    if problem is None or progress is None:
        return

    print_fn(f"\n=== Problem {service.current_position()} of {service.total_count} ===")
    print_fn(f"Solved: {service.solved_count}  Remaining: {service.remaining_count}")
    for idx, (fragment, text) in enumerate(zip(progress.fragments, service.fragment_texts(), strict=True), start=1):
        print_fn(f"{idx}) [{text}]" if fragment.locked else f"{idx}) {text}")
    if progress.solved:
        print_fn(f"Note: {problem.note}")


def _solve(service: PracticeService, print_fn: PrintFn) -> None:
    result = service.solve()
    if result is None:
        return
    if result.is_solved:
        print_fn("Correct!")
        return
    problem = service.get_current_problem()
    total = len(problem.tokens) if problem is not None else result.locked_count
    print_fn(f"Not yet: {result.locked_count} of {total} words locked in place.")


def _parse_positions(raw: str) -> list[int] | None:
    parts = raw.replace(",", " ").split()
    if not parts or not all(part.isdigit() for part in parts):
        return None
    return [int(part) for part in parts]


def _reorder(service: PracticeService, raw: str, print_fn: PrintFn) -> None:
    """Apply a full permutation of fragment numbers."""
    progress = service.get_current_progress()
    if progress is None:
        return
    fragments = progress.fragments
    positions = _parse_positions(raw)
    if positions is None or sorted(positions) != list(range(1, len(fragments) + 1)):
        print_fn(f"Enter each fragment number from 1 to {len(fragments)} exactly once.")
        return

    reordered: list[TokenFragment] = [fragments[position - 1] for position in positions]
    for before, after in zip(fragments, reordered, strict=True):
        if before.locked and before is not after:
            print_fn("Locked fragments cannot be moved.")
            return
    service.reorder(reordered)


def _move(service: PracticeService, raw: str, print_fn: PrintFn) -> None:
    """Move fragment number `from` into slot `to`."""
    progress = service.get_current_progress()
    if progress is None:
        return
    fragments = progress.fragments
    positions = _parse_positions(raw)
    if positions is None or len(positions) != 2 or not all(1 <= item <= len(fragments) for item in positions):
        print_fn(f"Usage: m <from> <to> with numbers from 1 to {len(fragments)}.")
        return

    source, target = positions
    position = "before" if target <= source else "after"
    try:
        service.move_fragment(fragments[source - 1].id, fragments[target - 1].id, position)
    except ValueError as exc:
        print_fn(str(exc))


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
