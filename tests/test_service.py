import json
import threading
from pathlib import Path
from typing import Any

import pytest

from phrasereorder import content_loader
from phrasereorder.models import Problem, TokenFragment
from phrasereorder.progress import MemoryStore, SessionRepository, StorageError, problem_set_hash
from phrasereorder.service import PracticeService
from phrasereorder.session import initial_state


def _seeds(*values: str) -> Any:
    items = iter(values)
    return lambda: next(items)


def _ordered(problem: Problem) -> list[TokenFragment]:
    return [TokenFragment(indices=(index,)) for index in range(len(problem.tokens))]


def _service(store: Any = None, *seeds: str) -> PracticeService:
    return PracticeService(store if store is not None else MemoryStore(), seed_factory=_seeds(*(seeds or ("s1", "s2"))))


def test_operations_before_loading_raise() -> None:
    service = _service()
    assert service.status == "loading"
    with pytest.raises(RuntimeError):
        service.solve()
    assert service.solved_count == 0


def test_set_problems_initializes_and_persists(problems: list[Problem]) -> None:
    store = MemoryStore()
    service = _service(store)
    service.set_problems(problems)
    assert service.status == "ready"
    assert service.state == initial_state(problems, "s1")
    key = f"phrase-reorder-session:{problem_set_hash(problems)}"
    assert key in store.data
    assert (service.total_count, service.solved_count, service.remaining_count) == (3, 0, 3)


def test_session_is_restored_for_same_content(problems: list[Problem]) -> None:
    store = MemoryStore()
    first = _service(store, "s1")
    first.set_problems(problems)
    first.skip()

    second = _service(store, "other")
    second.set_problems(list(problems))
    assert second.state == first.state
    assert second.state.current == 1


def test_changed_content_starts_fresh(problems: list[Problem]) -> None:
    store = MemoryStore()
    first = _service(store, "s1")
    first.set_problems(problems)
    first.skip()

    edited = problems[:2] + [Problem(tokens=problems[2].tokens, note="edited note")]
    second = _service(store, "s1")
    second.set_problems(edited)
    assert second.state == initial_state(edited, "s1")
    assert second.state.current == 0


def test_worked_example_end_to_end() -> None:
    problem = Problem(tokens=("Eu", "chamo-me", "Paulo"), note="Grammar: enclisis.")
    service = _service()
    service.set_problems([problem])
    service.reorder([TokenFragment(indices=(1,)), TokenFragment(indices=(2,)), TokenFragment(indices=(0,))])
    assert service.fragment_texts() == ["chamo-me", "Paulo", "Eu"]

    result = service.solve()
    assert result is not None and result.locked_count == 0 and result.is_solved is False

    service.move_fragment("fragment-0", "fragment-1", "before")
    result = service.solve()
    assert result is not None and result.is_solved is True
    progress = service.get_current_progress()
    assert progress is not None and progress.solved is True
    assert progress.fragments == (TokenFragment(indices=(0, 1, 2), locked=True),)
    assert service.fragment_texts() == ["Eu chamo-me Paulo"]
    current = service.get_current_problem()
    assert current is not None and current.note == "Grammar: enclisis."
    assert service.controls().restart is True


def test_full_session_flow(problems: list[Problem]) -> None:
    service = _service(None, "s1", "s2")
    service.set_problems(problems)

    service.skip()
    assert service.state.current == 1
    assert service.state.queue == (2, 0)

    service.reorder(_ordered(problems[1]))
    assert service.solve().is_solved is True  # type: ignore[union-attr]
    assert service.controls().next is True
    service.next()
    assert service.state.current == 2
    assert service.state.queue == (0,)
    assert (service.solved_count, service.remaining_count) == (1, 2)

    for _ in range(2):
        current = service.get_current_problem()
        assert current is not None
        service.reorder(_ordered(current))
        service.solve()
        service.next()

    assert service.solved_count == 3
    assert service.controls().restart is True
    service.restart()
    assert service.state == initial_state(problems, "s2")
    assert service.solved_count == 0


def test_noop_actions_do_not_write(problems: list[Problem]) -> None:
    writes: list[str] = []

    class CountingStore(MemoryStore):
        def set(self, key: str, value: str) -> None:
            writes.append(key)
            super().set(key, value)

    service = _service(CountingStore())
    service.set_problems(problems[:1])
    assert len(writes) == 1
    service.skip()
    service.next()
    assert len(writes) == 1


def test_write_failures_keep_in_memory_state(problems: list[Problem]) -> None:
    class BrokenStore:
        def get(self, key: str) -> str | None:
            raise StorageError("unavailable")

        def set(self, key: str, value: str) -> None:
            raise StorageError("unavailable")

    service = _service(BrokenStore())
    service.set_problems(problems)
    service.skip()
    assert service.state.current == 1


def test_empty_problem_set() -> None:
    service = _service()
    service.set_problems([])
    assert service.status == "ready"
    assert service.get_current_problem() is None
    assert service.get_current_progress() is None
    assert service.solve() is None
    assert service.fragment_texts() == []
    assert service.total_count == 0


def test_load_from_path(tmp_path: Path) -> None:
    path = tmp_path / "problems.json"
    path.write_text(json.dumps([{"tokens": ["Sou", "de", "Lisboa"], "note": "n"}]), encoding="utf-8")
    service = _service()
    assert service.load(path) == "ready"
    assert service.total_count == 1


def test_load_schema_error_sets_error_state(tmp_path: Path) -> None:
    path = tmp_path / "problems.json"
    path.write_text(json.dumps({"tokens": []}), encoding="utf-8")
    service = _service()
    assert service.load(path) == "error"
    assert service.error_message == "Problems payload is not an array as expected."


def test_load_network_error_sets_error_state(monkeypatch: Any) -> None:
    class Response:
        ok = False
        status_code = 500
        reason = "Server Error"
        text = ""

    monkeypatch.setattr(content_loader.requests, "get", lambda url, **kwargs: Response())
    service = _service()
    assert service.load("https://example.test/problems.json") == "error"
    assert service.error_message is not None and "500 Server Error" in service.error_message


def test_cancelled_load_changes_nothing() -> None:
    cancel = threading.Event()
    cancel.set()
    service = _service()
    assert service.load(cancel=cancel) == "loading"
    assert service.error_message is None
    assert service.total_count == 0


def test_restored_record_survives_across_repository_instances(problems: list[Problem]) -> None:
    store = MemoryStore()
    service = _service(store)
    service.set_problems(problems)
    service.reorder(_ordered(problems[0]))
    service.solve()
    restored = SessionRepository(store).load(problem_set_hash(problems), problems)
    assert restored is not None and restored.progress[0].solved is True


def test_os_level_store_failures_keep_in_memory_state(problems: list[Problem]) -> None:
    class UnwritableStore:
        def get(self, key: str) -> str | None:
            raise PermissionError(13, "Permission denied")

        def set(self, key: str, value: str) -> None:
            raise OSError(30, "Read-only file system")

    service = _service(UnwritableStore())
    service.set_problems(problems)
    assert service.status == "ready"
    service.skip()
    assert service.state.current == 1


def test_load_problems_with_lone_surrogate(tmp_path: Path) -> None:
    path = tmp_path / "problems.json"
    path.write_text(json.dumps([{"tokens": ["\ud800"], "note": ""}]), encoding="utf-8")
    store = MemoryStore()
    service = _service(store)
    assert service.load(path) == "ready"
    assert service.total_count == 1
    assert service.problem_hash is not None and service.problem_hash.startswith("problems-")
    assert f"phrase-reorder-session:{service.problem_hash}" in store.data
