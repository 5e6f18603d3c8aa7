"""Core data types for phrase reordering sessions."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


@dataclass(frozen=True)
class Problem:
    """One sentence exercise: tokens in grammatical order plus a study note."""

    tokens: tuple[str, ...]
    note: str


def fragment_id(indices: Sequence[int]) -> str:
    """Return the stable id for a set of original token positions."""
    if not indices:
        raise ValueError("Cannot create a fragment id from an empty index set.")
    return "fragment-" + "-".join(str(index) for index in sorted(indices))


@dataclass(frozen=True)
class TokenFragment:
    """Contiguous run of original token positions moved as one unit.

    Indices always refer to positions in the solution token list, never to
    the shuffled display order.
    """

    indices: tuple[int, ...]
    locked: bool = False

    def __post_init__(self) -> None:
        if not self.indices:
            raise ValueError("A fragment must cover at least one token.")
        object.__setattr__(self, "indices", tuple(sorted(self.indices)))

    @property
    def id(self) -> str:
        return fragment_id(self.indices)

    def __len__(self) -> int:
        return len(self.indices)


def fragment_text(fragment: TokenFragment, solution_tokens: Sequence[str]) -> str:
    """Return display text for a fragment."""
    return " ".join(solution_tokens[index] for index in fragment.indices)


@dataclass(frozen=True)
class ProblemProgress:
    """Fragment arrangement and solved flag for one problem."""

    fragments: tuple[TokenFragment, ...]
    solved: bool = False


@dataclass(frozen=True)
class SessionState:
    """Whole-session snapshot; replaced wholesale on every transition."""

    current: int | None
    queue: tuple[int, ...]
    progress: tuple[ProblemProgress, ...]
