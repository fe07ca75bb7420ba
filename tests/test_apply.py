import pytest

from sceneforge.apply import AssetResult, InMemoryExecutor, ProposalApplier, StaticAssetCatalog
from sceneforge.edits import preimage_hash
from sceneforge.failures import ConflictError
from sceneforge.fallback import static_fallback
from sceneforge.proposals import AssetProposal, CreateInstanceOp, ObjectProposal
from sceneforge.runtime.checkpoints import CheckpointManager
from sceneforge.runtime.storage import InMemoryTaskStateStore
from sceneforge.runtime.stream import StreamBuffer
from sceneforge.state import ChatContext

SCRIPT = "game.ServerScriptService.Main"


def _edit_proposal(text: str):
    context = ChatContext.model_validate({"activeScript": {"path": SCRIPT, "text": text}})
    (proposal,) = static_fallback("spin the part", context)
    return proposal


def test_edit_applies_when_preimage_matches():
    store = InMemoryTaskStateStore()
    executor = InMemoryExecutor(scripts={SCRIPT: "print(1)\n"})
    applier = ProposalApplier(store, executor)

    result = applier.apply("t1", _edit_proposal("print(1)\n"))

    assert result.status == "succeeded"
    assert executor.scripts[SCRIPT] == "-- spin the part\nprint(1)\n"
    assert store.get("t1").scripts[SCRIPT] == executor.scripts[SCRIPT]
    assert store.get("t1").runs[-1].status == "succeeded"


def test_edit_conflict_when_content_changed():
    store = InMemoryTaskStateStore()
    stream = StreamBuffer()
    executor = InMemoryExecutor(scripts={SCRIPT: "print(2)\n"})
    applier = ProposalApplier(store, executor, stream=stream)
    proposal = _edit_proposal("print(1)\n")

    with pytest.raises(ConflictError) as excinfo:
        applier.apply("t1", proposal)

    assert excinfo.value.expected_hash == preimage_hash("print(1)\n")
    assert executor.scripts[SCRIPT] == "print(2)\n"
    run = store.get("t1").runs[-1]
    assert run.status == "failed"
    assert run.error.code == "MERGE_CONFLICT"
    chunks, _ = stream.since("t1")
    assert chunks[-1].text == f"conflict.merge path={SCRIPT}"


def test_object_ops_update_editor_and_mirror():
    store = InMemoryTaskStateStore()
    executor = InMemoryExecutor()
    applier = ProposalApplier(store, executor)
    proposal = ObjectProposal(
        ops=[CreateInstanceOp(class_name="Part", parent_path="game.Workspace", props={"Name": "Base"})]
    )
    applier.apply("t1", proposal)
    assert executor.scene.exists("game.Workspace.Base")
    assert "game.Workspace.Base" in store.get("t1").scene.nodes


def test_asset_search_and_insert():
    store = InMemoryTaskStateStore()
    catalog = StaticAssetCatalog(
        [
            AssetResult(id=11, name="Oak Tree", tags=["nature"]),
            AssetResult(id=12, name="Pine Tree", tags=["nature", "winter"]),
            AssetResult(id=13, name="Street Lamp", tags=["city"]),
        ]
    )
    executor = InMemoryExecutor()
    applier = ProposalApplier(store, executor, catalog=catalog)

    found = applier.apply("t1", AssetProposal(op="search", query="tree", tags=["winter"], limit=6))
    assert [item["id"] for item in found.data["results"]] == [12]

    inserted = applier.apply("t1", AssetProposal(op="insert", asset_id=11, parent_path="game.Workspace"))
    assert inserted.data["path"] == "game.Workspace.Asset_11"
    assert "game.Workspace.Asset_11" in store.get("t1").scene.nodes


def test_generate_unsupported_is_reported():
    applier = ProposalApplier(InMemoryTaskStateStore(), InMemoryExecutor())
    result = applier.apply("t1", AssetProposal(op="generate", prompt="a dragon"))
    assert result.status == "failed"


def test_auto_checkpoint_after_apply(tmp_path):
    store = InMemoryTaskStateStore()
    checkpoints = CheckpointManager(tmp_path, store)
    applier = ProposalApplier(
        store, InMemoryExecutor(), checkpoints=checkpoints, auto_checkpoint=True
    )
    proposal = _edit_proposal("")
    applier.apply("t1", proposal)
    (summary,) = checkpoints.list("t1")
    assert summary.proposal_id == proposal.id


class _FlakyExecutor(InMemoryExecutor):
    def __init__(self) -> None:
        super().__init__()
        self.executed = 0

    def execute_op(self, op):
        if self.executed == 1:
            raise RuntimeError("editor rejected the op")
        self.executed += 1
        return super().execute_op(op)


def test_executor_failure_is_recorded_and_earlier_ops_mirrored():
    store = InMemoryTaskStateStore()
    stream = StreamBuffer()
    applier = ProposalApplier(store, _FlakyExecutor(), stream=stream)
    proposal = ObjectProposal(
        ops=[
            CreateInstanceOp(class_name="Folder", parent_path="game.Workspace", props={"Name": "Keep"}),
            CreateInstanceOp(class_name="Part", parent_path="game.Workspace", props={"Name": "Lost"}),
        ]
    )

    result = applier.apply("t1", proposal)

    assert result.status == "failed"
    assert "editor rejected" in result.message
    state = store.get("t1")
    run = state.runs[-1]
    assert run.status == "failed"
    assert run.error.code == "EXECUTION_ERROR"
    assert "game.Workspace.Keep" in state.scene.nodes
    assert "game.Workspace.Lost" not in state.scene.nodes
    chunks, _ = stream.since("t1")
    assert chunks[-1].text == "apply.error type=object_op"


def test_edit_result_lists_paths():
    applier = ProposalApplier(InMemoryTaskStateStore(), InMemoryExecutor(scripts={SCRIPT: ""}))
    result = applier.apply("t1", _edit_proposal(""))
    assert result.data["paths"] == [SCRIPT]
