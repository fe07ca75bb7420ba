"""Per-task state and request models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sceneforge.approval import AutoApproval
from sceneforge.plan import PlanState
from sceneforge.scene_graph import SceneGraph
from sceneforge.script_policy import ScriptPolicyState


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str
    at: datetime = Field(default_factory=utc_now)


class RunError(BaseModel):
    message: str
    code: str | None = None


class ToolRun(BaseModel):
    id: str = Field(default_factory=lambda: f"run_{uuid4().hex[:12]}")
    tool: str
    input: Any = None
    status: Literal["queued", "running", "succeeded", "failed"] = "queued"
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error: RunError | None = None


class StreamingState(BaseModel):
    is_streaming: bool = False
    indexed_up_to: int | None = None


class Counters(BaseModel):
    tokens_in: int = 0
    tokens_out: int = 0
    context_requests: int = 0


class CheckpointMeta(BaseModel):
    last_id: str | None = None
    last_note: str | None = None
    last_created_at: datetime | None = None
    last_message_created_at: datetime | None = None
    count: int = 0


class TaskState(BaseModel):
    task_id: str
    history: list[ChatMessage] = Field(default_factory=list)
    runs: list[ToolRun] = Field(default_factory=list)
    streaming: StreamingState = Field(default_factory=StreamingState)
    auto_approval: AutoApproval = Field(default_factory=AutoApproval)
    counters: Counters = Field(default_factory=Counters)
    scene: SceneGraph = Field(default_factory=SceneGraph)
    plan: PlanState = Field(default_factory=PlanState)
    script_policy: ScriptPolicyState = Field(default_factory=ScriptPolicyState)
    scripts: dict[str, str] = Field(default_factory=dict)
    checkpoints: CheckpointMeta = Field(default_factory=CheckpointMeta)
    updated_at: datetime = Field(default_factory=utc_now)

    def add_message(self, role: str, content: str) -> None:
        self.history.append(ChatMessage(role=role, content=content))

    def start_run(self, tool: str, input: Any = None) -> ToolRun:
        run = ToolRun(tool=tool, input=input, status="running", started_at=utc_now())
        self.runs.append(run)
        return run

    def finish_run(self, run_id: str, error: str | None = None, code: str | None = None) -> None:
        for run in self.runs:
            if run.id == run_id:
                run.status = "failed" if error else "succeeded"
                run.ended_at = utc_now()
                if error:
                    run.error = RunError(message=error, code=code)
                return


# Request-side context


class _Camel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ActiveScript(_Camel):
    path: str
    text: str = ""


class SelectionItem(_Camel):
    path: str
    class_name: str | None = Field(
        default=None, validation_alias=AliasChoices("className", "class_name")
    )


class OpenDocument(_Camel):
    path: str


class ChatContext(_Camel):
    active_script: ActiveScript | None = Field(
        default=None, validation_alias=AliasChoices("activeScript", "active_script")
    )
    selection: list[SelectionItem] = Field(default_factory=list)
    open_documents: list[OpenDocument] = Field(
        default_factory=list, validation_alias=AliasChoices("openDocs", "openDocuments", "open_documents")
    )
    scene: list[dict[str, Any]] | None = None
    scripts: dict[str, str] = Field(default_factory=dict)


class ProviderOverride(_Camel):
    name: str | None = None
    api_key: str | None = Field(default=None, validation_alias=AliasChoices("apiKey", "api_key"))
    model: str | None = None
    base_url: str | None = Field(default=None, validation_alias=AliasChoices("baseUrl", "base_url"))


class ChatRequest(_Camel):
    task_id: str = Field(validation_alias=AliasChoices("taskId", "task_id", "projectId"))
    message: str
    context: ChatContext = Field(default_factory=ChatContext)
    mode: Literal["ask", "agent"] = "agent"
    max_turns: int | None = Field(default=None, validation_alias=AliasChoices("maxTurns", "max_turns"))
    model_override: str | None = Field(
        default=None, validation_alias=AliasChoices("modelOverride", "model_override")
    )
    provider: ProviderOverride | None = None
    auto_approval: bool | None = Field(
        default=None, validation_alias=AliasChoices("autoApply", "autoApproval", "auto_approval")
    )
