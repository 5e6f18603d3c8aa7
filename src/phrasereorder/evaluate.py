"""Fragment evaluation: lock correctly placed fragments and merge contiguous runs."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from .models import TokenFragment

DropPosition = Literal["before", "after"]


class ContractViolation(RuntimeError):
    """Fragments handed to the engine do not partition the solution."""


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one fragment arrangement."""

    fragments: tuple[TokenFragment, ...]
    locked_count: int
    is_solved: bool


def validate_partition(fragments: Sequence[TokenFragment], solution_length: int) -> None:
    """Raise ContractViolation unless fragments cover 0..solution_length-1 exactly once."""
    total_tokens = sum(len(fragment.indices) for fragment in fragments)
    if total_tokens != solution_length:
        raise ContractViolation(
            f"Token fragments cover {total_tokens} tokens but the solution has {solution_length}."
        )

    seen: set[int] = set()
    for fragment in fragments:
        for index in fragment.indices:
            if index in seen:
                raise ContractViolation(f"Duplicate token index {index} across fragments.")
            if not 0 <= index < solution_length:
                raise ContractViolation(f"Token index {index} is outside the solution range.")
            seen.add(index)


def evaluate_fragments(fragments: Sequence[TokenFragment], solution_length: int) -> EvaluationResult:
    """Lock fragments whose every position is correct and merge adjacent locked runs.

    Correctness is decided per fragment: a multi-token fragment with one
    misplaced token stays unlocked as a whole.
    """
    validate_partition(fragments, solution_length)

    position = 0
    correct: list[bool] = []
    for fragment in fragments:
        # Indices are stored ascending, which is also their display order.
        fragment_correct = True
        for index in fragment.indices:
            if index != position:
                fragment_correct = False
            position += 1
        correct.append(fragment_correct)

    result: list[TokenFragment] = []
    locked_count = 0
    for fragment, is_correct in zip(fragments, correct, strict=True):
        if not is_correct:
            result.append(TokenFragment(indices=fragment.indices, locked=False))
            continue

        locked_count += len(fragment.indices)
        if result and result[-1].locked and result[-1].indices[-1] + 1 == fragment.indices[0]:
            result[-1] = TokenFragment(indices=result[-1].indices + fragment.indices, locked=True)
            continue
        result.append(TokenFragment(indices=fragment.indices, locked=True))

    return EvaluationResult(
        fragments=tuple(result),
        locked_count=locked_count,
        is_solved=locked_count == solution_length,
    )


def move_fragment(
    fragments: Sequence[TokenFragment],
    fragment_id: str,
    target_id: str,
    position: DropPosition,
) -> list[TokenFragment]:
    """Return fragments with one unit dropped before or after a target fragment.

    Locked fragments can neither be picked up nor dropped onto. Dropping a
    fragment onto its own slot returns an unchanged copy.
    """
    ordered = list(fragments)
    ids = [fragment.id for fragment in ordered]
    if fragment_id not in ids:
        raise KeyError(fragment_id)
    if target_id not in ids:
        raise KeyError(target_id)
    if position not in ("before", "after"):
        raise ValueError(f"Unknown drop position: {position!r}")

    old_index = ids.index(fragment_id)
    if ordered[old_index].locked:
        raise ValueError(f"Fragment {fragment_id} is locked and cannot be moved.")

    new_index = ids.index(target_id)
    if ordered[new_index].locked:
        raise ValueError(f"Fragment {target_id} is locked and cannot be displaced.")
    if position == "after":
        new_index += 1
    if old_index < new_index:
        new_index -= 1
    if new_index == old_index:
        return ordered

    moving = ordered.pop(old_index)
    ordered.insert(new_index, moving)
    return ordered
