"""Turn-by-turn control loop: call backend, parse, validate, map, decide."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from sceneforge.actions.registry import DEFAULT_CATALOG, ActionCatalog
from sceneforge.actions.validation import validate_action
from sceneforge.approval import annotate_auto_approval
from sceneforge.config import Settings
from sceneforge.edits import apply_range_edits
from sceneforge.failures import (
    ActionValidationError,
    BackendError,
    FailureEvent,
    FailureTag,
    FieldFailure,
    exit_error,
)
from sceneforge.fallback import static_fallback
from sceneforge.mapper import MapperHooks, ProposalMapper, apply_context_defaults
from sceneforge.models.base import BaseChatModel
from sceneforge.plan import PlanTracker
from sceneforge.prompts import (
    NO_CALL_NUDGE,
    TEXT_BEFORE_CALL_NUDGE,
    build_system_prompt,
    context_request_message,
    render_context,
    tool_result_message,
    unknown_action_message,
    validation_error_message,
)
from sceneforge.proposals import EditProposal, ObjectProposal, Proposal
from sceneforge.protocol import format_call, parse_call
from sceneforge.routing import ProviderRouter, ProviderSelection
from sceneforge.runtime.context import CancellationToken, RunContext, new_run_context
from sceneforge.runtime.storage import TaskStateStore
from sceneforge.runtime.stream import StreamBuffer
from sceneforge.scene_graph import SceneGraphSimulator, normalize_path
from sceneforge.script_policy import ScriptPolicyEnforcer
from sceneforge.state import ChatContext, ChatRequest, TaskState
from sceneforge.util.context_trim import trim_history
from sceneforge.util.logging import get_logger, redact


class TurnState(str, Enum):
    AWAITING_RESPONSE = "awaiting_response"
    PARSED_NO_CALL = "parsed_no_call"
    PARSED_UNKNOWN_ACTION = "parsed_unknown_action"
    PARSED_INVALID_ARGS = "parsed_invalid_args"
    PARSED_VALID_ACTION = "parsed_valid_action"
    NO_BACKEND_FALLBACK = "no_backend_fallback"
    TERMINAL = "terminal"


@dataclass
class TurnBudgets:
    validation_failures: int = 0
    unknown_actions: int = 0
    context_requests: int = 0
    pinned_no_calls: int = 0


@dataclass
class ChatResult:
    proposals: list[Proposal]
    task_state: TaskState
    turns: int
    fallback: bool = False
    provider: str | None = None
    final_state: TurnState = TurnState.TERMINAL
    events: list[FailureEvent] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_state.task_id,
            "proposals": [proposal.wire() for proposal in self.proposals],
            "turns": self.turns,
            "fallback": self.fallback,
            "provider": self.provider,
            "events": [
                {"tag": event.tag.value, "reason": event.reason} for event in self.events
            ],
        }


@dataclass
class _Candidate:
    selection: ProviderSelection | None
    model: BaseChatModel | None = None

    @property
    def pinned(self) -> bool:
        return bool(self.selection and self.selection.pinned)

    @property
    def name(self) -> str:
        if self.selection is not None:
            return self.selection.family
        return getattr(self.model, "provider", "custom")


ModelFactory = Callable[[ProviderSelection], BaseChatModel]


class TurnController:
    """Runs one invocation for a task and returns at most one proposal batch."""

    def __init__(
        self,
        settings: Settings,
        store: TaskStateStore,
        stream: StreamBuffer | None = None,
        catalog: ActionCatalog | None = None,
        model_factory: ModelFactory | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.stream = stream or StreamBuffer()
        self.catalog = catalog or DEFAULT_CATALOG
        self.model_factory = model_factory
        self.system_prompt = build_system_prompt(
            self.catalog, settings.max_edits, settings.max_inserted_chars
        )
        self.logger = get_logger("sceneforge.controller")

    def _emit(self, task_id: str, line: str) -> None:
        self.stream.push(task_id, line)

    def _candidates(self, request: ChatRequest, model: BaseChatModel | None) -> list[_Candidate]:
        if model is not None:
            return [_Candidate(selection=None, model=model)]
        router = ProviderRouter(
            self.settings, provider=request.provider, model_override=request.model_override
        )
        return [_Candidate(selection=selection) for selection in router.resolve()]

    def _model_for(self, candidate: _Candidate, request: ChatRequest) -> BaseChatModel:
        if candidate.model is None:
            if self.model_factory is not None:
                candidate.model = self.model_factory(candidate.selection)
            else:
                router = ProviderRouter(self.settings, request.provider, request.model_override)
                candidate.model = router.build_model(candidate.selection)
        return candidate.model

    def _prepare(self, state: TaskState, request: ChatRequest) -> ChatContext:
        scene = SceneGraphSimulator(state.scene)
        if request.context.scene is not None:
            count = scene.hydrate(request.context.scene)
            self._emit(state.task_id, f"scene.hydrated nodes={count}")
        for path, text in request.context.scripts.items():
            state.scripts[normalize_path(path) or path] = text
        if request.context.active_script is not None:
            active = request.context.active_script
            state.scripts[normalize_path(active.path) or active.path] = active.text
        ScriptPolicyEnforcer(state.script_policy).observe_message(request.message)
        if request.auto_approval is not None:
            state.auto_approval.enabled = request.auto_approval
        state.add_message("user", request.message)
        state.history = trim_history(
            state.history, self.settings.max_history, self.settings.history_keep_recent
        )
        return request.context.model_copy(update={"scripts": dict(state.scripts)})

    def _initial_messages(self, state: TaskState, request: ChatRequest, plan: PlanTracker) -> list[dict[str, Any]]:
        messages = [
            {"role": message.role, "content": message.content} for message in state.history[:-1]
        ]
        extra = render_context(request.context, plan.state.steps, plan.current_step)
        content = f"{request.message}\n\n{extra}" if extra else request.message
        messages.append({"role": "user", "content": content})
        return messages

    def run(
        self,
        request: ChatRequest,
        cancel_token: CancellationToken | None = None,
        model: BaseChatModel | None = None,
    ) -> ChatResult:
        run_context = new_run_context(request.task_id, cancel_token, labels={"mode": request.mode})
        run_context.cancel_token.raise_if_cancelled()
        with self.store.lock(request.task_id):
            state = self.store.get(request.task_id)
            state.streaming.is_streaming = True
            try:
                return self._run(state, request, run_context, model)
            finally:
                state.streaming.is_streaming = False
                _, cursor = self.stream.since(request.task_id, 0)
                state.streaming.indexed_up_to = cursor
                self.store.replace(request.task_id, state)

    def _run(
        self,
        state: TaskState,
        request: ChatRequest,
        run_context: RunContext,
        model: BaseChatModel | None,
    ) -> ChatResult:
        task_id = state.task_id
        token = run_context.cancel_token
        context = self._prepare(state, request)
        scene = SceneGraphSimulator(state.scene)
        plan = PlanTracker(state.plan)
        policy = ScriptPolicyEnforcer(state.script_policy)
        mapper = ProposalMapper(
            MapperHooks(
                scene=scene,
                plan=plan,
                policy=policy,
                require_plan=self.settings.require_plan,
                max_edits=self.settings.max_edits,
                max_inserted_chars=self.settings.max_inserted_chars,
            ),
            catalog=self.catalog,
        )
        self._emit(task_id, f"orchestrator.start mode={request.mode}")
        self.logger.info(
            "orchestrator.start task=%s run=%s mode=%s", task_id, run_context.run_id, request.mode
        )

        candidates = self._candidates(request, model)
        messages = self._initial_messages(state, request, plan)
        max_turns = max(1, request.max_turns or self.settings.max_turns_for(request.mode))
        budgets = TurnBudgets()
        events: list[FailureEvent] = []
        proposals: list[Any] | None = None
        final_action: tuple[str, dict[str, Any]] | None = None
        turn_state = TurnState.AWAITING_RESPONSE
        candidate_index = 0
        turns = 0
        provider_name: str | None = None

        if not candidates:
            turn_state = TurnState.NO_BACKEND_FALLBACK
            events.append(FailureEvent(FailureTag.BACKEND_ERROR, "no backend has credentials"))
            self._emit(task_id, "provider.none")

        while turn_state is not TurnState.NO_BACKEND_FALLBACK and turns < max_turns:
            token.raise_if_cancelled()
            candidate = candidates[candidate_index]
            turn_state = TurnState.AWAITING_RESPONSE
            try:
                response = self._model_for(candidate, request).chat(
                    self.system_prompt, messages, cancel_token=token
                )
            except BackendError as exc:
                reason = redact(str(exc), [candidate.selection.api_key if candidate.selection else None])
                self.logger.warning("provider.error provider=%s %s", candidate.name, reason)
                self._emit(task_id, f"provider.error provider={candidate.name}")
                events.append(FailureEvent(FailureTag.BACKEND_ERROR, reason, {"provider": candidate.name}))
                if candidate.pinned:
                    raise
                candidate_index += 1
                if candidate_index >= len(candidates):
                    turn_state = TurnState.NO_BACKEND_FALLBACK
                continue
            turns += 1
            provider_name = candidate.name
            text = response.text or ""
            state.counters.tokens_in += sum(len(message["content"]) for message in messages)
            state.counters.tokens_out += len(text)
            self._emit(task_id, f"provider.response provider={candidate.name} chars={len(text)}")
            messages.append({"role": "assistant", "content": text})

            parsed = parse_call(text)
            if parsed is not None and parsed.has_prefix_text and not self.settings.allow_text_before_call:
                nudge = TEXT_BEFORE_CALL_NUDGE
                parsed = None
            else:
                nudge = NO_CALL_NUDGE
            if parsed is None:
                turn_state = TurnState.PARSED_NO_CALL
                events.append(FailureEvent(FailureTag.PARSE_FAILURE, "no action call in response"))
                self._emit(task_id, "tool.none")
                if candidate.pinned:
                    budgets.pinned_no_calls += 1
                    if budgets.pinned_no_calls >= self.settings.pinned_no_call_limit:
                        break
                messages.append({"role": "user", "content": nudge})
                continue

            name = parsed.name
            self._emit(task_id, f"tool.parsed name={name}")
            self.logger.info("turn.parsed task=%s action=%s turn=%s", task_id, name, turns)
            if self.catalog.get(name) is None:
                turn_state = TurnState.PARSED_UNKNOWN_ACTION
                budgets.unknown_actions += 1
                events.append(FailureEvent(FailureTag.UNKNOWN_ACTION, f"unknown action {name}"))
                if budgets.unknown_actions > self.settings.unknown_action_retry_limit:
                    break
                messages.append({"role": "user", "content": unknown_action_message(name, self.catalog)})
                continue

            fields = apply_context_defaults(name, parsed.fields, context)
            outcome = validate_action(name, fields, self.catalog)
            failures: list[FieldFailure] = list(outcome.failures)
            result = None
            if outcome.ok:
                result = mapper.map(name, outcome.fields, context)
                failures = list(result.failures)
            if failures:
                turn_state = TurnState.PARSED_INVALID_ARGS
                budgets.validation_failures += 1
                run = state.start_run(name, fields)
                rendered = "\n".join(f"- {failure.render()}" for failure in failures)
                state.finish_run(run.id, error=rendered, code="VALIDATION_ERROR")
                events.append(FailureEvent(FailureTag.VALIDATION_FAILURE, rendered, {"action": name}))
                self._emit(task_id, f"error.validation name={name}")
                if budgets.validation_failures > self.settings.validation_retry_limit:
                    raise ActionValidationError(name, failures)
                messages.append({"role": "user", "content": validation_error_message(name, rendered)})
                continue
            budgets.validation_failures = 0

            if result.context_result is not None:
                run = state.start_run(name, outcome.fields)
                state.finish_run(run.id)
                self._emit(task_id, f"tool.result name={name}")
                messages.append({"role": "user", "content": tool_result_message(name, result.context_result)})
                continue

            if result.missing_context is not None:
                events.append(FailureEvent(FailureTag.MISSING_CONTEXT, result.missing_context, {"action": name}))
                if budgets.context_requests >= self.settings.context_request_limit:
                    break
                budgets.context_requests += 1
                state.counters.context_requests += 1
                self._emit(task_id, f"context.request name={name}")
                messages.append({"role": "user", "content": context_request_message(result.missing_context)})
                continue

            if result.empty:
                turn_state = TurnState.PARSED_UNKNOWN_ACTION
                budgets.unknown_actions += 1
                events.append(FailureEvent(FailureTag.UNKNOWN_ACTION, f"no mapping for {name}"))
                if budgets.unknown_actions > self.settings.unknown_action_retry_limit:
                    break
                messages.append({"role": "user", "content": unknown_action_message(name, self.catalog)})
                continue

            turn_state = TurnState.PARSED_VALID_ACTION
            proposals = result.proposals
            final_action = (name, outcome.fields)
            break

        fallback = proposals is None
        if fallback:
            self._emit(task_id, "fallback.static")
            self.logger.info("fallback.static task=%s turns=%s", task_id, turns)
            if not self.settings.enable_fallbacks:
                raise exit_error(events, turns)
            proposals = static_fallback(request.message, context)
        else:
            policy.record(proposals)
        self._apply_previews(state, scene, proposals)
        annotate_auto_approval(proposals, state.auto_approval)

        if final_action is not None:
            run = state.start_run(final_action[0], final_action[1])
            state.finish_run(run.id)
            state.add_message("assistant", format_call(*final_action))
        else:
            state.add_message("assistant", f"fallback: {', '.join(p.type for p in proposals)}")
        self._emit(task_id, f"proposals.mapped count={len(proposals)}")
        self._emit(
            task_id,
            f"telemetry.tokens in={state.counters.tokens_in} out={state.counters.tokens_out}",
        )
        return ChatResult(
            proposals=proposals,
            task_state=state,
            turns=turns,
            fallback=fallback,
            provider=provider_name,
            final_state=TurnState.TERMINAL,
            events=events,
        )

    def _apply_previews(self, state: TaskState, scene: SceneGraphSimulator, proposals: list[Any]) -> None:
        for proposal in proposals:
            if isinstance(proposal, ObjectProposal):
                scene.apply_ops(op.wire() for op in proposal.ops)
            elif isinstance(proposal, EditProposal):
                for change in proposal.files:
                    state.scripts[change.path] = apply_range_edits(change.base_text, change.edits)


__all__ = ["ChatResult", "TurnController", "TurnState"]
