"""Task state persistence with per-task locking."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
import sqlite3
import threading
from typing import Callable

from sceneforge.state import TaskState, utc_now


class TaskStateStore(ABC):
    """get / update / replace by task id.

    Each read-modify-persist cycle runs under a re-entrant lock for that task id,
    so concurrent invocations on one task cannot lose each other's writes.
    """

    def __init__(self) -> None:
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @abstractmethod
    def _load(self, task_id: str) -> TaskState | None:
        raise NotImplementedError

    @abstractmethod
    def _save(self, state: TaskState) -> None:
        raise NotImplementedError

    @abstractmethod
    def task_ids(self) -> list[str]:
        raise NotImplementedError

    def lock(self, task_id: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._locks.get(task_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[task_id] = lock
            return lock

    def get(self, task_id: str) -> TaskState:
        with self.lock(task_id):
            state = self._load(task_id)
            if state is None:
                state = TaskState(task_id=task_id)
                self._save(state)
            return state

    def update(self, task_id: str, fn: Callable[[TaskState], None]) -> TaskState:
        with self.lock(task_id):
            state = self.get(task_id)
            fn(state)
            state.updated_at = utc_now()
            self._save(state)
            return state

    def replace(self, task_id: str, state: TaskState) -> TaskState:
        with self.lock(task_id):
            fresh = state.model_copy(deep=True, update={"task_id": task_id, "updated_at": utc_now()})
            self._save(fresh)
            return fresh


class InMemoryTaskStateStore(TaskStateStore):
    """Keeps serialized snapshots so callers never share mutable state."""

    def __init__(self) -> None:
        super().__init__()
        self._payloads: dict[str, str] = {}

    def _load(self, task_id: str) -> TaskState | None:
        payload = self._payloads.get(task_id)
        if payload is None:
            return None
        return TaskState.model_validate_json(payload)

    def _save(self, state: TaskState) -> None:
        self._payloads[state.task_id] = state.model_dump_json()

    def task_ids(self) -> list[str]:
        return sorted(self._payloads)


class SqliteTaskStateStore(TaskStateStore):
    def __init__(self, db_path: Path) -> None:
        super().__init__()
        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS task_states (
                    id TEXT PRIMARY KEY,
                    payload_json TEXT,
                    updated_at TEXT
                )
                """
            )
            conn.commit()

    def _load(self, task_id: str) -> TaskState | None:
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT payload_json FROM task_states WHERE id = ?",
                (task_id,),
            ).fetchone()
        if not row:
            return None
        return TaskState.model_validate_json(row[0])

    def _save(self, state: TaskState) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO task_states (id, payload_json, updated_at) VALUES (?, ?, ?)",
                (state.task_id, state.model_dump_json(), state.updated_at.isoformat()),
            )
            conn.commit()

    def task_ids(self) -> list[str]:
        with sqlite3.connect(self.db_path) as conn:
            rows = conn.execute("SELECT id FROM task_states ORDER BY id").fetchall()
        return [row[0] for row in rows]
