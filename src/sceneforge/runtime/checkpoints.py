"""Durable TaskState snapshots that can be listed and restored."""

from __future__ import annotations

from datetime import datetime
import json
from pathlib import Path
import shutil
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from sceneforge.failures import FailureTag, SceneForgeError
from sceneforge.runtime.storage import TaskStateStore
from sceneforge.state import TaskState, utc_now
from sceneforge.util.logging import get_logger


class CheckpointError(SceneForgeError):
    """Raised when a checkpoint cannot be found or read."""

    tag = FailureTag.CHECKPOINT


class CheckpointManifest(BaseModel):
    id: str
    task_id: str
    note: str | None = None
    created_at: datetime
    proposal_id: str | None = None
    message_created_at: datetime | None = None
    task_state: TaskState


class CheckpointSummary(BaseModel):
    id: str
    task_id: str
    note: str | None = None
    created_at: datetime
    proposal_id: str | None = None
    path: str


class CheckpointManager:
    def __init__(self, root_dir: Path, store: TaskStateStore, limit: int = 10) -> None:
        self.root_dir = Path(root_dir)
        self.store = store
        self.limit = max(1, limit)
        self.logger = get_logger("sceneforge.checkpoints")

    def _task_dir(self, task_id: str) -> Path:
        return self.root_dir / task_id

    def _read(self, directory: Path) -> CheckpointManifest | None:
        manifest_path = directory / "manifest.json"
        if not manifest_path.exists():
            return None
        try:
            return CheckpointManifest.model_validate_json(manifest_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            self.logger.warning("checkpoint.unreadable dir=%s error=%s", directory, exc)
            return None

    def create(
        self,
        task_id: str,
        note: str | None = None,
        proposal_id: str | None = None,
    ) -> CheckpointManifest:
        snapshot = self.store.get(task_id)
        created_at = utc_now()
        checkpoint_id = f"ckpt_{int(created_at.timestamp() * 1000)}_{uuid4().hex[:6]}"
        last_message = snapshot.history[-1].at if snapshot.history else None
        manifest = CheckpointManifest(
            id=checkpoint_id,
            task_id=task_id,
            note=note,
            created_at=created_at,
            proposal_id=proposal_id,
            message_created_at=last_message,
            task_state=snapshot,
        )
        directory = self._task_dir(task_id) / checkpoint_id
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "manifest.json").write_text(
            json.dumps(manifest.model_dump(mode="json"), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        self._clamp(task_id)

        def stamp(state: TaskState) -> None:
            state.checkpoints.last_id = checkpoint_id
            state.checkpoints.last_note = note
            state.checkpoints.last_created_at = created_at
            state.checkpoints.last_message_created_at = last_message
            state.checkpoints.count = len(self._manifests(task_id))

        self.store.update(task_id, stamp)
        self.logger.info("checkpoint.created task=%s id=%s", task_id, checkpoint_id)
        return manifest

    def _manifests(self, task_id: str) -> list[tuple[Path, CheckpointManifest]]:
        task_dir = self._task_dir(task_id)
        if not task_dir.exists():
            return []
        found = []
        for directory in task_dir.iterdir():
            if directory.is_dir():
                manifest = self._read(directory)
                if manifest is not None:
                    found.append((directory, manifest))
        found.sort(key=lambda item: (item[1].created_at, item[1].id))
        return found

    def _clamp(self, task_id: str) -> None:
        manifests = self._manifests(task_id)
        while len(manifests) > self.limit:
            directory, manifest = manifests.pop(0)
            shutil.rmtree(directory, ignore_errors=True)
            self.logger.info("checkpoint.pruned task=%s id=%s", task_id, manifest.id)

    def list(self, task_id: str) -> list[CheckpointSummary]:
        """Checkpoints for a task, newest first."""
        return [
            CheckpointSummary(
                id=manifest.id,
                task_id=manifest.task_id,
                note=manifest.note,
                created_at=manifest.created_at,
                proposal_id=manifest.proposal_id,
                path=str(directory),
            )
            for directory, manifest in reversed(self._manifests(task_id))
        ]

    def load(self, task_id: str, checkpoint_id: str) -> CheckpointManifest:
        manifest = self._read(self._task_dir(task_id) / checkpoint_id)
        if manifest is None:
            raise CheckpointError(f"Checkpoint {checkpoint_id} not found for task {task_id}")
        return manifest

    def restore(self, task_id: str, checkpoint_id: str) -> TaskState:
        manifest = self.load(task_id, checkpoint_id)
        current = self.store.get(task_id)
        restored = manifest.task_state.model_copy(deep=True)
        restored.checkpoints = current.checkpoints.model_copy()
        self.logger.info("checkpoint.restored task=%s id=%s", task_id, checkpoint_id)
        return self.store.replace(task_id, restored)
