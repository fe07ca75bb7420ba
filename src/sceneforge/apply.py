"""Executing approved proposals against the live editor."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Literal

from pydantic import BaseModel, Field

from sceneforge.edits import apply_range_edits, preimage_hash
from sceneforge.failures import ConflictError
from sceneforge.proposals import (
    AssetProposal,
    CompletionProposal,
    EditProposal,
    ObjectProposal,
    Proposal,
)
from sceneforge.runtime.checkpoints import CheckpointManager
from sceneforge.runtime.storage import TaskStateStore
from sceneforge.runtime.stream import StreamBuffer
from sceneforge.scene_graph import DEFAULT_PARENT, SceneGraphSimulator
from sceneforge.state import TaskState
from sceneforge.util.logging import get_logger


class ExecutionResult(BaseModel):
    status: Literal["succeeded", "failed", "conflict"]
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


class AssetResult(BaseModel):
    id: int
    name: str
    creator: str | None = None
    tags: list[str] = Field(default_factory=list)


class AssetCatalog(ABC):
    @abstractmethod
    def search(self, query: str, tags: list[str] | None = None, limit: int = 6) -> list[AssetResult]:
        raise NotImplementedError


class StaticAssetCatalog(AssetCatalog):
    """Matches query words against asset names and tags."""

    def __init__(self, assets: list[AssetResult]) -> None:
        self.assets = list(assets)

    def search(self, query: str, tags: list[str] | None = None, limit: int = 6) -> list[AssetResult]:
        words = [word for word in query.lower().split() if word]
        wanted = {tag.lower() for tag in tags or []}
        matches = []
        for asset in self.assets:
            haystack = " ".join([asset.name, *asset.tags]).lower()
            asset_tags = {tag.lower() for tag in asset.tags}
            if words and not all(word in haystack for word in words):
                continue
            if wanted and not wanted <= asset_tags:
                continue
            matches.append(asset)
        return matches[: max(1, limit)]


class LiveExecutor(ABC):
    """The editor side: reads current script text and performs changes."""

    @abstractmethod
    def read_text(self, path: str) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def apply_text(self, path: str, text: str, before_hash: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def execute_op(self, op: dict[str, Any]) -> dict[str, Any] | None:
        """Run one structural op; may return the op as executed (resolved path, props)."""
        raise NotImplementedError

    @abstractmethod
    def insert_asset(self, asset_id: int, parent_path: str) -> str:
        raise NotImplementedError

    def generate_asset(self, prompt: str, **options: Any) -> str:
        raise NotImplementedError("This editor cannot generate assets")


class InMemoryExecutor(LiveExecutor):
    """Editor stand-in backed by a script dict and a scene simulator."""

    def __init__(self, scripts: dict[str, str] | None = None, scene: SceneGraphSimulator | None = None) -> None:
        self.scripts = dict(scripts or {})
        self.scene = scene or SceneGraphSimulator()

    def read_text(self, path: str) -> str | None:
        return self.scripts.get(path)

    def apply_text(self, path: str, text: str, before_hash: str) -> None:
        self.scripts[path] = text

    def execute_op(self, op: dict[str, Any]) -> dict[str, Any] | None:
        self.scene.apply_op(op)
        return op

    def insert_asset(self, asset_id: int, parent_path: str) -> str:
        node = self.scene.create("Model", parent_path, {"Name": f"Asset_{asset_id}", "AssetId": asset_id})
        return node.path


class ProposalApplier:
    """Applies one approved proposal and records the outcome on the task."""

    def __init__(
        self,
        store: TaskStateStore,
        executor: LiveExecutor,
        catalog: AssetCatalog | None = None,
        stream: StreamBuffer | None = None,
        checkpoints: CheckpointManager | None = None,
        auto_checkpoint: bool = False,
    ) -> None:
        self.store = store
        self.executor = executor
        self.catalog = catalog
        self.stream = stream or StreamBuffer()
        self.checkpoints = checkpoints
        self.auto_checkpoint = auto_checkpoint
        self.logger = get_logger("sceneforge.apply")

    def apply(self, task_id: str, proposal: Proposal) -> ExecutionResult:
        with self.store.lock(task_id):
            state = self.store.get(task_id)
            run = state.start_run(f"apply.{proposal.type}", {"proposalId": proposal.id})
            try:
                result = self._dispatch(state, proposal)
            except ConflictError as exc:
                state.finish_run(run.id, error=str(exc), code="MERGE_CONFLICT")
                self.store.replace(task_id, state)
                self.stream.push(task_id, f"conflict.merge path={exc.path}")
                self.logger.warning("apply.conflict task=%s path=%s", task_id, exc.path)
                raise
            except Exception as exc:
                # Ops that already ran stay mirrored; the failure is persisted on the run.
                state.finish_run(run.id, error=str(exc), code="EXECUTION_ERROR")
                self.store.replace(task_id, state)
                self.stream.push(task_id, f"apply.error type={proposal.type}")
                self.logger.warning("apply.error task=%s type=%s %s", task_id, proposal.type, exc)
                return ExecutionResult(status="failed", message=str(exc))
            state.finish_run(run.id)
            self.store.replace(task_id, state)
        self.stream.push(task_id, f"apply.{proposal.type} status={result.status}")
        if self.auto_checkpoint and self.checkpoints is not None:
            self.checkpoints.create(task_id, note=f"after {proposal.type}", proposal_id=proposal.id)
        return result

    def _dispatch(self, state: TaskState, proposal: Any) -> ExecutionResult:
        if isinstance(proposal, EditProposal):
            return self._apply_edit(state, proposal)
        if isinstance(proposal, ObjectProposal):
            return self._apply_objects(state, proposal)
        if isinstance(proposal, AssetProposal):
            return self._apply_asset(state, proposal)
        if isinstance(proposal, CompletionProposal):
            return ExecutionResult(status="succeeded", message=proposal.summary)
        raise TypeError(f"Unsupported proposal {type(proposal).__name__}")

    def _apply_edit(self, state: TaskState, proposal: EditProposal) -> ExecutionResult:
        # Check every pre-image before writing anything.
        planned = []
        for change in proposal.files:
            current = self.executor.read_text(change.path)
            if current is None:
                current = change.base_text
            actual = preimage_hash(current)
            if change.before_hash and actual != change.before_hash:
                raise ConflictError(change.path, change.before_hash, actual)
            planned.append((change, apply_range_edits(current, change.edits)))
        for change, text in planned:
            self.executor.apply_text(change.path, text, change.before_hash or "")
            state.scripts[change.path] = text
        return ExecutionResult(status="succeeded", data={"paths": proposal.paths})

    def _apply_objects(self, state: TaskState, proposal: ObjectProposal) -> ExecutionResult:
        scene = SceneGraphSimulator(state.scene)
        for op in proposal.ops:
            payload = op.wire()
            executed = self.executor.execute_op(payload)
            scene.apply_op_result(executed or payload)
        return ExecutionResult(status="succeeded", data={"ops": len(proposal.ops)})

    def _apply_asset(self, state: TaskState, proposal: AssetProposal) -> ExecutionResult:
        if proposal.op == "search":
            if self.catalog is None:
                return ExecutionResult(status="failed", message="No asset catalog configured")
            results = self.catalog.search(proposal.query or "", proposal.tags, proposal.limit or 6)
            return ExecutionResult(
                status="succeeded", data={"results": [asset.model_dump() for asset in results]}
            )
        if proposal.op == "insert":
            parent = proposal.parent_path or DEFAULT_PARENT
            inserted = self.executor.insert_asset(proposal.asset_id, parent)
            SceneGraphSimulator(state.scene).create(
                "Model", parent, {"AssetId": proposal.asset_id}, path=inserted
            )
            return ExecutionResult(status="succeeded", data={"path": inserted})
        try:
            generated = self.executor.generate_asset(
                proposal.prompt or "", tags=proposal.tags, style=proposal.style, budget=proposal.budget
            )
        except NotImplementedError as exc:
            return ExecutionResult(status="failed", message=str(exc))
        return ExecutionResult(status="succeeded", data={"assetId": generated})
