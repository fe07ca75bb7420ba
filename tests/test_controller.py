from __future__ import annotations

import pytest

from sceneforge.config import Settings
from sceneforge.controller import TurnController
from sceneforge.failures import (
    ActionValidationError,
    BackendError,
    FailureTag,
    InvocationCancelled,
    MissingContextError,
    NoActionableCallError,
    ParseFailure,
    UnknownActionError,
)
from sceneforge.models.base import BaseChatModel, ModelResponse
from sceneforge.models.mock import MockChatModel
from sceneforge.prompts import NO_CALL_NUDGE, TEXT_BEFORE_CALL_NUDGE
from sceneforge.proposals import AssetProposal, CompletionProposal, EditProposal, ObjectProposal
from sceneforge.runtime.context import CancellationToken
from sceneforge.runtime.storage import InMemoryTaskStateStore
from sceneforge.runtime.stream import StreamBuffer
from sceneforge.state import ChatRequest


CREATE_BASE = (
    "<create_instance>"
    "<className>Part</className>"
    "<parentPath>game.Workspace</parentPath>"
    '<props>{"Name": "Base"}</props>'
    "</create_instance>"
)
COMPLETE = "<complete><summary>Built the base</summary></complete>"


def _settings(**overrides) -> Settings:
    values = {
        "gemini_api_key": None,
        "openrouter_api_key": None,
        "nvidia_api_key": None,
        "default_provider": None,
        "force_openrouter": False,
    }
    values.update(overrides)
    return Settings(**values)


def _controller(settings=None, model_factory=None):
    return TurnController(
        settings or _settings(),
        InMemoryTaskStateStore(),
        stream=StreamBuffer(),
        model_factory=model_factory,
    )


def _request(message="create a part called Base under the root container", **extra) -> ChatRequest:
    return ChatRequest.model_validate({"taskId": "task-1", "message": message, **extra})


def test_create_part_under_root_container():
    controller = _controller()
    model = MockChatModel([CREATE_BASE])

    result = controller.run(_request(), model=model)

    (proposal,) = result.proposals
    assert isinstance(proposal, ObjectProposal)
    assert len(proposal.ops) == 1
    assert not result.fallback
    assert result.turns == 1
    stored = controller.store.get("task-1")
    assert list(stored.scene.nodes) == ["game.Workspace.Base"]
    assert stored.script_policy.geometry_ops == 1
    assert stored.runs[-1].tool == "create_instance"
    assert stored.runs[-1].status == "succeeded"
    assert [message.role for message in stored.history] == ["user", "assistant"]
    assert stored.counters.tokens_out == len(CREATE_BASE)


def test_system_prompt_lists_actions():
    controller = _controller()
    model = MockChatModel([CREATE_BASE])
    controller.run(_request(), model=model)
    assert "create_instance(" in model.system_prompts[0]
    assert "complete(" in model.system_prompts[0]


def test_missing_call_is_nudged():
    controller = _controller()
    model = MockChatModel(["I would add a part for you.", CREATE_BASE])

    result = controller.run(_request(), model=model)

    assert result.turns == 2
    assert isinstance(result.proposals[0], ObjectProposal)
    assert model.calls[1][-1] == {"role": "user", "content": NO_CALL_NUDGE}
    assert result.events[0].tag is FailureTag.PARSE_FAILURE


def test_validation_failures_are_reported_then_raised():
    controller = _controller()
    bad = "<set_properties><path>game.Workspace.Base</path><props>{}</props></set_properties>"
    model = MockChatModel([bad, bad, bad])

    with pytest.raises(ActionValidationError) as excinfo:
        controller.run(_request(), model=model)

    assert excinfo.value.action == "set_properties"
    assert model.calls[1][-1]["content"].startswith("VALIDATION_ERROR set_properties")
    stored = controller.store.get("task-1")
    failed = [run for run in stored.runs if run.status == "failed"]
    assert len(failed) == 3
    assert failed[0].error.code == "VALIDATION_ERROR"
    assert not stored.streaming.is_streaming


def test_validation_error_then_corrected_call():
    controller = _controller()
    bad = "<create_instance><parentPath>game.Workspace</parentPath></create_instance>"
    model = MockChatModel([bad, CREATE_BASE])
    result = controller.run(_request(), model=model)
    assert isinstance(result.proposals[0], ObjectProposal)
    assert model.calls[1][-1]["content"].startswith("VALIDATION_ERROR create_instance")


def test_unknown_action_exhausts_then_falls_back():
    controller = _controller()
    model = MockChatModel(["<teleport></teleport>", "<teleport></teleport>"])

    result = controller.run(_request(message="oak tree"), model=model)

    assert result.fallback
    assert model.calls[1][-1]["content"].startswith("UNKNOWN_TOOL teleport")
    (proposal,) = result.proposals
    assert isinstance(proposal, AssetProposal)
    assert proposal.op == "search"
    assert proposal.query == "oak tree"


def test_context_read_feeds_result_back():
    controller = _controller()
    model = MockChatModel(
        ["<list_children><parentPath>game.Workspace</parentPath></list_children>", COMPLETE]
    )
    request = _request(context={"scene": [{"path": "game.Workspace.Spawn", "className": "SpawnLocation"}]})

    result = controller.run(request, model=model)

    assert isinstance(result.proposals[0], CompletionProposal)
    feedback = model.calls[1][-1]["content"]
    assert feedback.startswith("TOOL_RESULT list_children")
    assert "game.Workspace.Spawn" in feedback


def test_completion_blocked_after_structure_without_code():
    controller = _controller()
    controller.run(_request(), model=MockChatModel([CREATE_BASE]))

    model = MockChatModel([COMPLETE, COMPLETE])
    result = controller.run(_request(message="finish up"), model=model)

    assert model.calls[1][-1]["content"].startswith("CONTEXT_REQUEST COMPLETION_BLOCKED")
    assert result.fallback
    assert controller.store.get("task-1").counters.context_requests == 1


def test_opt_out_allows_completion():
    controller = _controller()
    controller.run(_request(), model=MockChatModel([CREATE_BASE]))
    result = controller.run(_request(message="no scripts, just finish"), model=MockChatModel([COMPLETE]))
    assert isinstance(result.proposals[0], CompletionProposal)


def test_text_before_call_can_be_refused():
    controller = _controller(_settings(allow_text_before_call=False))
    model = MockChatModel([f"Okay! {COMPLETE}", COMPLETE])
    result = controller.run(_request(), model=model)
    assert model.calls[1][-1]["content"] == TEXT_BEFORE_CALL_NUDGE
    assert isinstance(result.proposals[0], CompletionProposal)


def test_pinned_backend_error_propagates():
    def factory(selection):
        return MockChatModel([BackendError("quota exceeded", provider=selection.family)])

    controller = _controller(_settings(gemini_api_key="g-key"), model_factory=factory)
    request = _request(provider={"name": "nvidia", "apiKey": "request-key"})

    with pytest.raises(BackendError, match="quota exceeded"):
        controller.run(request)


def test_unpinned_backend_error_fails_over():
    built = []

    def factory(selection):
        built.append(selection.family)
        if selection.family == "gemini":
            return MockChatModel([BackendError("unavailable", provider="gemini")])
        return MockChatModel([COMPLETE])

    controller = _controller(
        _settings(gemini_api_key="g-key", openrouter_api_key="or-key"), model_factory=factory
    )
    result = controller.run(_request())

    assert built == ["gemini", "openrouter"]
    assert result.provider == "openrouter"
    assert result.turns == 1
    assert result.events[0].tag is FailureTag.BACKEND_ERROR


def test_no_backend_uses_placeholder_edit():
    controller = _controller()
    request = _request(
        message="make the door open",
        context={"activeScript": {"path": "game.ServerScriptService.Door", "text": "local door = nil\n"}},
    )

    result = controller.run(request)

    assert result.fallback
    assert result.turns == 0
    (proposal,) = result.proposals
    assert isinstance(proposal, EditProposal)
    assert proposal.files[0].edits[0].text == "-- make the door open\n"
    stored = controller.store.get("task-1")
    assert stored.scripts["game.ServerScriptService.Door"] == "-- make the door open\nlocal door = nil\n"


def test_selection_fallback_renames_placeholder():
    controller = _controller()
    request = _request(context={"selection": [{"path": "game.Workspace.Door", "className": "Part"}]})
    result = controller.run(request)
    op = result.proposals[0].ops[0]
    assert op.new_name == "Door_Pending"


def test_fallback_disabled_raises():
    controller = _controller(_settings(enable_fallbacks=False))
    model = MockChatModel(["nothing useful"])
    with pytest.raises(NoActionableCallError):
        controller.run(_request(maxTurns=1), model=model)


def test_cancelled_before_start():
    controller = _controller()
    token = CancellationToken()
    token.cancel()
    with pytest.raises(InvocationCancelled):
        controller.run(_request(), cancel_token=token, model=MockChatModel([CREATE_BASE]))


class _CancellingModel(BaseChatModel):
    provider = "mock"

    def __init__(self, token: CancellationToken) -> None:
        self.token = token
        self.calls = 0

    def chat(self, system_prompt, messages, cancel_token=None):
        self.calls += 1
        self.token.cancel("user pressed stop")
        return ModelResponse(text="still thinking")


def test_cancelled_between_turns():
    controller = _controller()
    token = CancellationToken()
    model = _CancellingModel(token)
    with pytest.raises(InvocationCancelled):
        controller.run(_request(), cancel_token=token, model=model)
    assert model.calls == 1


def test_auto_approval_annotates_search():
    controller = _controller()
    model = MockChatModel(["<search_assets><query>oak tree</query></search_assets>"])
    result = controller.run(_request(autoApproval=True), model=model)
    assert result.proposals[0].meta.auto_approved
    assert controller.store.get("task-1").auto_approval.enabled


def test_stream_records_progress():
    controller = _controller()
    controller.run(_request(), model=MockChatModel([CREATE_BASE]))
    chunks, cursor = controller.stream.since("task-1")
    texts = [chunk.text for chunk in chunks]
    assert texts[0] == "orchestrator.start mode=agent"
    assert "tool.parsed name=create_instance" in texts
    assert "proposals.mapped count=1" in texts
    assert controller.store.get("task-1").streaming.indexed_up_to == cursor


def test_result_serializes_to_wire_shape():
    controller = _controller()
    result = controller.run(_request(), model=MockChatModel([CREATE_BASE]))
    payload = result.to_dict()
    assert payload["taskId"] == "task-1"
    assert payload["proposals"][0]["type"] == "object_op"
    assert payload["proposals"][0]["ops"][0]["className"] == "Part"


def test_search_files_result_feeds_next_turn():
    controller = _controller()
    model = MockChatModel(["<search_files><query>door</query></search_files>", CREATE_BASE])
    request = _request(
        context={"activeScript": {"path": "game.ServerScriptService.Door", "text": "local door = nil\n"}}
    )

    result = controller.run(request, model=model)

    assert isinstance(result.proposals[0], ObjectProposal)
    feedback = model.calls[1][-1]["content"]
    assert feedback.startswith("TOOL_RESULT search_files")
    assert '"path": "game.ServerScriptService.Door", "line": 1' in feedback


def test_exhausted_no_call_raises_parse_failure_without_fallbacks():
    controller = _controller(_settings(enable_fallbacks=False))
    with pytest.raises(ParseFailure) as excinfo:
        controller.run(_request(maxTurns=1), model=MockChatModel(["just chatting"]))
    assert excinfo.value.tag is FailureTag.PARSE_FAILURE


def test_repeated_unknown_action_raises_without_fallbacks():
    controller = _controller(_settings(enable_fallbacks=False))
    model = MockChatModel(["<teleport></teleport>", "<teleport></teleport>"])
    with pytest.raises(UnknownActionError) as excinfo:
        controller.run(_request(), model=model)
    assert isinstance(excinfo.value, NoActionableCallError)


def test_blocked_completion_raises_missing_context_without_fallbacks():
    controller = _controller(_settings(enable_fallbacks=False))
    controller.run(_request(), model=MockChatModel([CREATE_BASE]))
    with pytest.raises(MissingContextError):
        controller.run(_request(message="finish up"), model=MockChatModel([COMPLETE, COMPLETE]))
