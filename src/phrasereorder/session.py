"""Session state machine as an explicit reducer over immutable SessionState values."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import cast

from .evaluate import ContractViolation, evaluate_fragments, validate_partition
from .models import Problem, ProblemProgress, SessionState, TokenFragment, fragment_id
from .shuffle import shuffle


@dataclass(frozen=True)
class Initialize:
    """Build a brand-new session from the problem set."""

    seed: str


@dataclass(frozen=True)
class Reorder:
    """Replace the current problem's fragments with an already reordered list."""

    fragments: tuple[TokenFragment, ...]


@dataclass(frozen=True)
class Solve:
    """Evaluate the current arrangement."""


@dataclass(frozen=True)
class Skip:
    """Rotate the current unsolved problem to the back of the queue."""


@dataclass(frozen=True)
class Next:
    """Retire the current problem and advance to the queue front."""


@dataclass(frozen=True)
class Restart:
    """Discard the session and reshuffle every problem with a new seed."""

    seed: str


Action = Initialize | Reorder | Solve | Skip | Next | Restart


@dataclass(frozen=True)
class Controls:
    """Which navigation controls the UI should offer."""

    solve: bool
    skip: bool
    next: bool
    restart: bool


def problem_seed(seed: str, index: int) -> str:
    """Derive the per-problem shuffle seed."""
    return f"{seed}-{index}"


def initial_fragments(problem: Problem, seed: str) -> tuple[TokenFragment, ...]:
    """One unlocked single-token fragment per token, in seeded shuffled order."""
    singles = [TokenFragment(indices=(index,)) for index in range(len(problem.tokens))]
    return tuple(shuffle(singles, seed))


def initial_state(problems: Sequence[Problem], seed: str) -> SessionState:
    """Return a fresh session for the problem set."""
    if not problems:
        return SessionState(current=None, queue=(), progress=())

    progress = tuple(
        ProblemProgress(fragments=initial_fragments(problem, problem_seed(seed, index)), solved=False)
        for index, problem in enumerate(problems)
    )
    order = tuple(range(len(problems)))
    return SessionState(current=order[0], queue=order[1:], progress=progress)


def _replace_progress(state: SessionState, index: int, progress: ProblemProgress) -> tuple[ProblemProgress, ...]:
    items = list(state.progress)
    items[index] = progress
    return tuple(items)


def reduce(problems: Sequence[Problem], state: SessionState, action: Action) -> SessionState:
    """Apply one action and return the next session state.

    Every transition is total: actions that make no sense in the current
    state return `state` unchanged.
    """
    if isinstance(action, Initialize | Restart):
        return initial_state(problems, action.seed)

    if isinstance(action, Next):
        if not state.queue:
            return state
        return replace(state, current=state.queue[0], queue=state.queue[1:])

    current = state.current
    if current is None:
        return state
    progress = state.progress[current]

    if isinstance(action, Reorder):
        fragments = tuple(action.fragments)
        validate_partition(fragments, len(problems[current].tokens))
        updated = ProblemProgress(fragments=fragments, solved=progress.solved)
        return replace(state, progress=_replace_progress(state, current, updated))

    if isinstance(action, Solve):
        result = evaluate_fragments(progress.fragments, len(problems[current].tokens))
        solved = progress.solved or result.is_solved
        updated = ProblemProgress(fragments=result.fragments, solved=solved)
        queue = tuple(item for item in state.queue if item != current) if solved else state.queue
        return SessionState(current=current, queue=queue, progress=_replace_progress(state, current, updated))

    if isinstance(action, Skip):
        if progress.solved or not state.queue:
            return state
        return replace(state, current=state.queue[0], queue=state.queue[1:] + (current,))

    raise TypeError(f"Unsupported action: {action!r}")


def available_controls(state: SessionState) -> Controls:
    """Return the controls consistent with current progress."""
    if state.current is None:
        return Controls(solve=False, skip=False, next=False, restart=bool(state.progress))
    solved = state.progress[state.current].solved
    has_queue = bool(state.queue)
    return Controls(
        solve=not solved,
        skip=not solved and has_queue,
        next=solved and has_queue,
        restart=solved and not has_queue,
    )


def state_to_dict(state: SessionState) -> dict[str, object]:
    """Return the JSON-ready persisted shape of a session."""
    return {
        "current": state.current,
        "queue": list(state.queue),
        "progress": [
            {
                "fragments": [
                    {"id": fragment.id, "indices": list(fragment.indices), "locked": fragment.locked}
                    for fragment in item.fragments
                ],
                "solved": item.solved,
            }
            for item in state.progress
        ],
    }


def _int_value(value: object, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Session field {label} must be an integer.")
    return value


def _fragment_from_dict(raw: object) -> TokenFragment:
    if not isinstance(raw, dict):
        raise ValueError("Session fragment must be an object.")
    row = cast(dict[str, object], raw)
    raw_indices = row.get("indices")
    if not isinstance(raw_indices, list) or not raw_indices:
        raise ValueError("Session fragment indices must be a non-empty list.")
    indices = tuple(_int_value(item, "fragment index") for item in cast(list[object], raw_indices))
    locked = row.get("locked", False)
    if not isinstance(locked, bool):
        raise ValueError("Session fragment locked flag must be a boolean.")
    stored_id = row.get("id")
    if stored_id is not None and stored_id != fragment_id(indices):
        raise ValueError(f"Session fragment id {stored_id!r} does not match its indices.")
    return TokenFragment(indices=indices, locked=locked)


def _progress_from_dict(raw: object) -> ProblemProgress:
    if not isinstance(raw, dict):
        raise ValueError("Session progress entry must be an object.")
    row = cast(dict[str, object], raw)
    raw_fragments = row.get("fragments")
    if not isinstance(raw_fragments, list):
        raise ValueError("Session progress fragments must be a list.")
    solved = row.get("solved", False)
    if not isinstance(solved, bool):
        raise ValueError("Session progress solved flag must be a boolean.")
    fragments = tuple(_fragment_from_dict(item) for item in cast(list[object], raw_fragments))
    return ProblemProgress(fragments=fragments, solved=solved)


def state_from_dict(raw: object) -> SessionState:
    """Rebuild a session from its persisted shape, raising ValueError when malformed."""
    if not isinstance(raw, dict):
        raise ValueError("Session record root must be a JSON object.")
    data = cast(dict[str, object], raw)

    current_raw = data.get("current")
    current = None if current_raw is None else _int_value(current_raw, "current")

    queue_raw = data.get("queue")
    if not isinstance(queue_raw, list):
        raise ValueError("Session queue must be a list.")
    queue = tuple(_int_value(item, "queue") for item in cast(list[object], queue_raw))

    progress_raw = data.get("progress")
    if not isinstance(progress_raw, list):
        raise ValueError("Session progress must be a list.")
    progress = tuple(_progress_from_dict(item) for item in cast(list[object], progress_raw))
    return SessionState(current=current, queue=queue, progress=progress)


def state_matches_problems(state: SessionState, problems: Sequence[Problem]) -> bool:
    """Return whether a restored session is structurally valid for the problem set."""
    if len(state.progress) != len(problems):
        return False
    indices = set(range(len(problems)))
    if state.current is not None and state.current not in indices:
        return False
    if state.current is None and problems and state.queue:
        return False
    if state.current in state.queue or len(set(state.queue)) != len(state.queue):
        return False
    if not set(state.queue) <= indices:
        return False
    for problem, progress in zip(problems, state.progress, strict=True):
        try:
            validate_partition(progress.fragments, len(problem.tokens))
        except ContractViolation:
            return False
        if not _progress_is_consistent(progress):
            return False
    return True


def _progress_is_consistent(progress: ProblemProgress) -> bool:
    """Contiguous fragments, locked ones in their own slots, all locked once solved."""
    offset = 0
    for fragment in progress.fragments:
        first, last = fragment.indices[0], fragment.indices[-1]
        if last - first + 1 != len(fragment.indices):
            return False
        if fragment.locked and first != offset:
            return False
        offset += len(fragment.indices)
    return not progress.solved or all(fragment.locked for fragment in progress.fragments)
