"""Hash-keyed session persistence over a minimal key-value store."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from .models import Problem, SessionState
from .session import state_from_dict, state_matches_problems, state_to_dict
from .shuffle import fnv1a_32

SCHEMA_VERSION = 1
SESSION_NAMESPACE = "phrase-reorder-session"

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Backing store could not be read or written."""


class KeyValueStore(Protocol):
    """String key-value capability used for persisted sessions."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryStore:
    """In-process store, mainly for tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class SqliteStore:
    """SQLite-backed key-value records."""

    def __init__(self, db_path: Path | str) -> None:
        """Open the database and bring its schema up to date."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")

    def _migrate_to_v1(self) -> None:
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)

    def get(self, key: str) -> str | None:
        try:
            row = self._conn.execute("SELECT value FROM records WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError(f"Could not read record {key!r}: {exc}") from exc
        if row is None:
            return None
        return str(row["value"])

    def set(self, key: str, value: str) -> None:
        now = datetime.now(UTC).isoformat()
        try:
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO records (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, now),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Could not write record {key!r}: {exc}") from exc

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()


def problem_set_hash(problems: Sequence[Problem]) -> str:
    """Return an order-sensitive digest over every token and note."""
    serialized = json.dumps(
        [{"tokens": list(problem.tokens), "note": problem.note} for problem in problems],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    length = len(serialized.encode("utf-16-le", "surrogatepass")) // 2
    return f"problems-{length:06x}-{fnv1a_32(serialized):08x}"


class SessionRepository:
    """Reads and writes sessions keyed by problem-set hash.

    Failures never escape: a bad read means "no saved session" and a bad
    write leaves the in-memory state authoritative.
    """

    def __init__(self, store: KeyValueStore, namespace: str = SESSION_NAMESPACE) -> None:
        self.store = store
        self.namespace = namespace

    def key_for(self, set_hash: str) -> str:
        return f"{self.namespace}:{set_hash}"

    def load(self, set_hash: str, problems: Sequence[Problem] | None = None) -> SessionState | None:
        """Return the saved session for a hash, or None when absent or unusable."""
        key = self.key_for(set_hash)
        try:
            raw = self.store.get(key)
        except Exception as exc:
            logger.warning("Failed to read persisted session %s: %s", key, exc)
            return None
        if raw is None:
            return None

        try:
            state = state_from_dict(json.loads(raw))
        except ValueError as exc:
            logger.warning("Discarding unreadable session %s: %s", key, exc)
            return None

        if problems is not None and not state_matches_problems(state, problems):
            logger.warning("Discarding session %s: it does not fit the problem set.", key)
            return None
        return state

    def save(self, set_hash: str, state: SessionState) -> bool:
        """Persist a session; returns False when the write failed."""
        key = self.key_for(set_hash)
        try:
            self.store.set(key, json.dumps(state_to_dict(state)))
        except Exception as exc:
            logger.warning("Failed to persist session %s: %s", key, exc)
            return False
        return True
