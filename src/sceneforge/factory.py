"""Shared construction helpers for stores, controllers, and appliers."""

from __future__ import annotations

from pathlib import Path

from sceneforge.apply import AssetCatalog, InMemoryExecutor, LiveExecutor, ProposalApplier
from sceneforge.config import Settings
from sceneforge.controller import ModelFactory, TurnController
from sceneforge.runtime.checkpoints import CheckpointManager
from sceneforge.runtime.storage import InMemoryTaskStateStore, SqliteTaskStateStore, TaskStateStore
from sceneforge.runtime.stream import StreamBuffer


def build_store(settings: Settings, persistent: bool = True) -> TaskStateStore:
    if not persistent:
        return InMemoryTaskStateStore()
    data_dir = Path(settings.data_dir)
    data_dir.mkdir(parents=True, exist_ok=True)
    return SqliteTaskStateStore(data_dir / "tasks.sqlite")


def build_stream() -> StreamBuffer:
    return StreamBuffer()


def build_checkpoints(settings: Settings, store: TaskStateStore) -> CheckpointManager:
    return CheckpointManager(
        Path(settings.data_dir) / "checkpoints", store, limit=settings.checkpoint_limit
    )


def build_controller(
    settings: Settings,
    store: TaskStateStore | None = None,
    stream: StreamBuffer | None = None,
    model_factory: ModelFactory | None = None,
) -> TurnController:
    return TurnController(
        settings,
        store or build_store(settings),
        stream=stream or build_stream(),
        model_factory=model_factory,
    )


def build_applier(
    settings: Settings,
    store: TaskStateStore,
    executor: LiveExecutor | None = None,
    catalog: AssetCatalog | None = None,
    stream: StreamBuffer | None = None,
) -> ProposalApplier:
    return ProposalApplier(
        store,
        executor or InMemoryExecutor(),
        catalog=catalog,
        stream=stream,
        checkpoints=build_checkpoints(settings, store),
        auto_checkpoint=settings.auto_checkpoint,
    )
