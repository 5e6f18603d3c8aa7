"""Application service tying the reducer, evaluation, and persistence together."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Literal

from .content_loader import NetworkError, SchemaError, fetch_problems
from .evaluate import DropPosition, EvaluationResult
from .evaluate import move_fragment as move_fragment_in
from .models import Problem, ProblemProgress, SessionState, TokenFragment, fragment_text
from .progress import SESSION_NAMESPACE, KeyValueStore, SessionRepository, problem_set_hash
from .session import Action, Controls, Initialize, Next, Reorder, Restart, Skip, Solve, available_controls, reduce
from .shuffle import generate_session_seed

LoadStatus = Literal["loading", "ready", "error"]

logger = logging.getLogger(__name__)


class PracticeService:
    """Coordinates the problem set, session transitions, and saved sessions."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        seed_factory: Callable[[], str] = generate_session_seed,
        namespace: str = SESSION_NAMESPACE,
    ) -> None:
        self.repository = SessionRepository(store, namespace)
        self._seed_factory = seed_factory
        self.status: LoadStatus = "loading"
        self.error_message: str | None = None
        self.problems: tuple[Problem, ...] = ()
        self.problem_hash: str | None = None
        self._state: SessionState | None = None

    @property
    def state(self) -> SessionState:
        if self._state is None:
            raise RuntimeError("Problems have not been loaded yet.")
        return self._state

    def load(
        self,
        source: Path | str | None = None,
        *,
        cancel: threading.Event | None = None,
        cache_path: Path | str | None = None,
    ) -> LoadStatus:
        """Fetch problems and apply them; a cancelled fetch changes nothing."""
        try:
            problems = fetch_problems(source, cancel=cancel, cache_path=cache_path)
        except (SchemaError, NetworkError) as exc:
            if cancel is not None and cancel.is_set():
                return self.status
            self.status = "error"
            self.error_message = str(exc)
            return self.status
        if problems is None:
            return self.status
        self.set_problems(problems)
        return self.status

    def set_problems(self, problems: Sequence[Problem]) -> None:
        """Restore the saved session for this content or start a fresh one."""
        self.problems = tuple(problems)
        self.problem_hash = problem_set_hash(self.problems)
        restored = self.repository.load(self.problem_hash, self.problems)
        if restored is not None:
            logger.debug("Restored session %s.", self.problem_hash)
            self._state = restored
        else:
            self._state = reduce(self.problems, self._empty_state(), Initialize(seed=self._seed_factory()))
            self._persist()
        self.status = "ready"
        self.error_message = None

    def _empty_state(self) -> SessionState:
        return SessionState(current=None, queue=(), progress=())

    def _dispatch(self, action: Action) -> SessionState:
        new_state = reduce(self.problems, self.state, action)
        if new_state is not self._state:
            self._state = new_state
            self._persist()
        return new_state

    def _persist(self) -> None:
        if self.problem_hash is not None and self._state is not None:
            self.repository.save(self.problem_hash, self._state)

    def get_current_problem(self) -> Problem | None:
        current = self.state.current
        return None if current is None else self.problems[current]

    def get_current_progress(self) -> ProblemProgress | None:
        current = self.state.current
        return None if current is None else self.state.progress[current]

    def current_position(self) -> int | None:
        """Return the 1-based number of the active problem."""
        current = self.state.current
        return None if current is None else current + 1

    def fragment_texts(self) -> list[str]:
        """Return display text for the current fragments, in order."""
        problem = self.get_current_problem()
        progress = self.get_current_progress()
        if problem is None or progress is None:
            return []
        return [fragment_text(fragment, problem.tokens) for fragment in progress.fragments]

    def reorder(self, fragments: Sequence[TokenFragment]) -> SessionState:
        """Accept a fully reordered fragment list for the current problem."""
        return self._dispatch(Reorder(fragments=tuple(fragments)))

    def move_fragment(self, fragment_id: str, target_id: str, position: DropPosition) -> SessionState:
        """Drop one fragment before or after another and record the new order."""
        progress = self.get_current_progress()
        if progress is None:
            return self.state
        moved = move_fragment_in(progress.fragments, fragment_id, target_id, position)
        return self.reorder(moved)

    def solve(self) -> EvaluationResult | None:
        """Evaluate the current arrangement; returns None when nothing is active."""
        current = self.state.current
        if current is None:
            return None
        after = self._dispatch(Solve()).progress[current]
        locked_count = sum(len(fragment) for fragment in after.fragments if fragment.locked)
        return EvaluationResult(
            fragments=after.fragments,
            locked_count=locked_count,
            is_solved=locked_count == len(self.problems[current].tokens),
        )

    def skip(self) -> SessionState:
        return self._dispatch(Skip())

    def next(self) -> SessionState:
        return self._dispatch(Next())

    def restart(self) -> SessionState:
        """Reshuffle everything under a new session seed."""
        return self._dispatch(Restart(seed=self._seed_factory()))

    def controls(self) -> Controls:
        return available_controls(self.state)

    @property
    def total_count(self) -> int:
        return len(self.problems)

    @property
    def solved_count(self) -> int:
        if self._state is None:
            return 0
        return sum(1 for item in self._state.progress if item.solved)

    @property
    def remaining_count(self) -> int:
        return self.total_count - self.solved_count

    def close(self) -> None:
        """Close the backing store when it holds resources."""
        close = getattr(self.repository.store, "close", None)
        if close is not None:
            close()
