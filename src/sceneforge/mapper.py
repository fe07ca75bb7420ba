"""Turns validated actions into proposals or context results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

from sceneforge.actions.base import ActionKind, ActionName
from sceneforge.actions.registry import DEFAULT_CATALOG, ActionCatalog
from sceneforge.code_intel import as_dicts, list_definitions, search_scripts
from sceneforge.edits import (
    MAX_EDITS,
    MAX_INSERTED_CHARS,
    EditRejection,
    apply_range_edits,
    compute_anchors,
    preimage_hash,
    unified_diff,
    validate_edit_list,
)
from sceneforge.failures import FieldFailure
from sceneforge.plan import PlanTracker
from sceneforge.proposals import (
    AssetProposal,
    CompletionProposal,
    CreateInstanceOp,
    DeleteInstanceOp,
    EditProposal,
    FileChange,
    ObjectProposal,
    Proposal,
    RenameInstanceOp,
    SetPropertiesOp,
)
from sceneforge.scene_graph import (
    DEFAULT_PARENT,
    SceneGraphSimulator,
    anchor_path,
    is_descendant,
    is_root_path,
    join_path,
    normalize_path,
    split_path,
)
from sceneforge.script_policy import ScriptPolicyEnforcer
from sceneforge.state import ChatContext


MAX_SCRIPT_RESULT_CHARS = 40000
CONTAINER_CLASSES = {
    "Model",
    "Folder",
    "Workspace",
    "ScreenGui",
    "Frame",
    "Part",
    "Configuration",
    "ReplicatedStorage",
    "ServerStorage",
    "StarterGui",
}


@dataclass
class MapperHooks:
    scene: SceneGraphSimulator
    plan: PlanTracker
    policy: ScriptPolicyEnforcer
    require_plan: bool = False
    max_edits: int = MAX_EDITS
    max_inserted_chars: int = MAX_INSERTED_CHARS


@dataclass
class MapResult:
    proposals: list[Proposal] = field(default_factory=list)
    missing_context: str | None = None
    context_result: dict[str, Any] | None = None
    failures: list[FieldFailure] = field(default_factory=list)
    rejection: EditRejection | None = None

    @property
    def empty(self) -> bool:
        return (
            not self.proposals
            and self.missing_context is None
            and self.context_result is None
            and not self.failures
        )


def _single_selection(context: ChatContext) -> str | None:
    if len(context.selection) == 1:
        return context.selection[0].path
    return None


def _known_scripts(context: ChatContext) -> dict[str, str]:
    scripts = dict(context.scripts)
    active = context.active_script
    if active is not None:
        scripts.setdefault(normalize_path(active.path) or active.path, active.text)
    return scripts


def apply_context_defaults(
    name: str,
    fields: dict[str, Any],
    context: ChatContext,
) -> dict[str, Any]:
    """Fill omitted targets from the editor context before validation."""
    filled = dict(fields)
    action = ActionName.lookup(name)
    if action in {ActionName.SHOW_DIFF, ActionName.APPLY_EDIT}:
        if not filled.get("path") and not filled.get("files") and context.active_script:
            filled["path"] = context.active_script.path
    elif action in {
        ActionName.RENAME_INSTANCE,
        ActionName.SET_PROPERTIES,
        ActionName.DELETE_INSTANCE,
    }:
        selected = _single_selection(context)
        if not filled.get("path") and selected:
            filled["path"] = selected
    elif action in {ActionName.CREATE_INSTANCE, ActionName.INSERT_ASSET}:
        has_parent = filled.get("parentPath") or filled.get("parent")
        if not has_parent and not filled.get("path"):
            filled["parentPath"] = _default_parent(context)
    return filled


def _default_parent(context: ChatContext) -> str:
    if len(context.selection) == 1:
        item = context.selection[0]
        if item.class_name in CONTAINER_CLASSES:
            return item.path
    return DEFAULT_PARENT


Handler = Callable[["ProposalMapper", dict[str, Any], ChatContext], MapResult]


class ProposalMapper:
    """Maps a validated action onto proposals using scene, plan and policy hooks."""

    def __init__(self, hooks: MapperHooks, catalog: ActionCatalog | None = None) -> None:
        self.hooks = hooks
        self.catalog = catalog or DEFAULT_CATALOG

    def map(self, name: str, fields: dict[str, Any], context: ChatContext) -> MapResult:
        action = ActionName.lookup(name)
        if action is None:
            return MapResult()
        spec = self.catalog.get(action)
        if (
            spec is not None
            and self.hooks.require_plan
            and spec.kind in {ActionKind.STRUCTURAL, ActionKind.EDIT, ActionKind.ASSET}
            and not self.hooks.plan.has_plan
        ):
            return MapResult(
                failures=[FieldFailure("", "call start_plan with your steps before making changes")]
            )
        return _HANDLERS[action](self, fields, context)

    # Structural

    def _ancestor_ops(self, parent: str) -> list[CreateInstanceOp]:
        missing: list[str] = []
        current: str | None = parent
        while current and not is_root_path(current) and not self.hooks.scene.exists(current):
            missing.append(current)
            current = split_path(current)[0]
        ops = []
        for path in reversed(missing):
            grandparent, name = split_path(path)
            class_name = "Model" if is_descendant(path, DEFAULT_PARENT) else "Folder"
            ops.append(
                CreateInstanceOp(
                    class_name=class_name,
                    parent_path=grandparent,
                    props={"Name": name},
                    synthesized=True,
                )
            )
        return ops

    def create_instance(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        props = dict(fields.get("props") or {})
        parent = anchor_path(fields.get("parentPath"))
        if fields.get("path"):
            path_parent, path_name = split_path(anchor_path(fields["path"]))
            parent = parent or path_parent
            props.setdefault("Name", path_name)
        parent = parent or DEFAULT_PARENT
        ops: list[Any] = self._ancestor_ops(parent)
        ops.append(
            CreateInstanceOp(class_name=fields["className"], parent_path=parent, props=props)
        )
        return MapResult(proposals=[ObjectProposal(ops=ops)])

    def set_properties(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        op = SetPropertiesOp(path=normalize_path(fields["path"]), props=fields["props"])
        return MapResult(proposals=[ObjectProposal(ops=[op])])

    def rename_instance(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        path = normalize_path(fields["path"])
        if is_root_path(path):
            return MapResult(failures=[FieldFailure("path", f"{path} is a root container")])
        parent, current = split_path(path)
        target = join_path(parent, fields["newName"]) if parent else None
        if target and fields["newName"] != current and self.hooks.scene.occupied(target):
            return MapResult(
                failures=[FieldFailure("newName", f"{target} already exists; choose another name")]
            )
        op = RenameInstanceOp(path=path, new_name=fields["newName"])
        return MapResult(proposals=[ObjectProposal(ops=[op])])

    def delete_instance(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        path = normalize_path(fields["path"])
        if is_root_path(path):
            return MapResult(
                failures=[FieldFailure("path", f"refusing to delete root container {path}")]
            )
        return MapResult(proposals=[ObjectProposal(ops=[DeleteInstanceOp(path=path)])])

    # Edits

    def _base_text(self, path: str, explicit: str | None, context: ChatContext) -> str:
        if explicit is not None:
            return explicit
        if path in context.scripts:
            return context.scripts[path]
        active = context.active_script
        if active and normalize_path(active.path) == path:
            return active.text
        return ""

    def _file_change(
        self,
        path: str,
        edits: list[Any],
        base_text: str | None,
        context: ChatContext,
    ) -> FileChange | EditRejection:
        parsed, rejection = validate_edit_list(
            edits,
            max_edits=self.hooks.max_edits,
            max_inserted_chars=self.hooks.max_inserted_chars,
        )
        if rejection is not None:
            return rejection
        base = self._base_text(path, base_text, context)
        updated = apply_range_edits(base, parsed)
        return FileChange(
            path=path,
            edits=parsed,
            diff=unified_diff(base, updated, path),
            before_hash=preimage_hash(base),
            base_text=base,
            anchors=compute_anchors(base, parsed),
        )

    def edit(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        targets: list[tuple[str, list[Any], str | None]] = []
        if fields.get("files"):
            for entry in fields["files"]:
                targets.append((entry["path"], entry.get("edits") or [], entry.get("baseText")))
        else:
            targets.append((fields["path"], fields.get("edits") or [], fields.get("baseText")))
        changes: list[FileChange] = []
        for raw_path, edits, base_text in targets:
            path = normalize_path(raw_path) or raw_path
            change = self._file_change(path, edits, base_text, context)
            if isinstance(change, EditRejection):
                return MapResult(
                    rejection=change,
                    failures=[FieldFailure("edits", f"{change.reason}: {change.message}")],
                )
            changes.append(change)
        return MapResult(proposals=[EditProposal(files=changes)])

    # Assets

    def search_assets(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        proposal = AssetProposal(
            op="search",
            query=fields["query"],
            tags=fields.get("tags") or [],
            limit=fields.get("limit", 6),
        )
        return MapResult(proposals=[proposal])

    def insert_asset(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        proposal = AssetProposal(
            op="insert",
            asset_id=fields["assetId"],
            parent_path=anchor_path(fields.get("parentPath")) or DEFAULT_PARENT,
        )
        return MapResult(proposals=[proposal])

    def generate_asset(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        proposal = AssetProposal(
            op="generate",
            prompt=fields["prompt"],
            tags=fields.get("tags") or [],
            style=fields.get("style"),
            budget=fields.get("budget"),
        )
        return MapResult(proposals=[proposal])

    # Planning

    def start_plan(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        change = self.hooks.plan.start(fields["steps"])
        return MapResult(context_result=change.as_result())

    def update_plan(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        change = self.hooks.plan.update(
            completed_step=fields.get("completedStep"),
            next_step=fields.get("nextStep"),
            notes=fields.get("notes"),
        )
        return MapResult(context_result=change.as_result())

    # Context reads

    def get_active_script(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        active = context.active_script
        if active is None:
            return MapResult(context_result={"path": None, "text": None, "message": "No active script."})
        return MapResult(
            context_result={"path": active.path, "text": active.text[:MAX_SCRIPT_RESULT_CHARS]}
        )

    def list_selection(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        selection = [item.model_dump(by_alias=False) for item in context.selection]
        return MapResult(context_result={"selection": selection})

    def list_open_documents(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        documents = [doc.path for doc in context.open_documents][: fields.get("maxCount", 20)]
        return MapResult(context_result={"documents": documents})

    def list_children(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        parent = normalize_path(fields["parentPath"]) or DEFAULT_PARENT
        children = self.hooks.scene.list_children(
            parent,
            depth=fields.get("depth", 1),
            max_nodes=fields.get("maxNodes", 200),
            class_whitelist=fields.get("classWhitelist"),
        )
        return MapResult(context_result={"parentPath": parent, "children": children})

    def get_properties(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        path = normalize_path(fields["path"])
        props = self.hooks.scene.get_properties(
            path,
            keys=fields.get("keys"),
            include_attributes=fields.get("includeAllAttributes", False),
        )
        return MapResult(
            context_result={"path": path, "known": self.hooks.scene.exists(path), "props": props}
        )

    def list_code_definition_names(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        definitions = list_definitions(
            _known_scripts(context), root=fields.get("root"), limit=fields.get("limit", 200)
        )
        return MapResult(context_result={"definitions": as_dicts(definitions)})

    def search_files(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        hits = search_scripts(
            _known_scripts(context),
            fields["query"],
            root=fields.get("root"),
            limit=fields.get("limit", 20),
            case_sensitive=fields.get("caseSensitive", False),
        )
        return MapResult(context_result={"query": fields["query"], "results": as_dicts(hits)})

    # Completion

    def _completion(self, summary: str, confidence: float | None) -> MapResult:
        gate = self.hooks.policy.completion_gate()
        if gate is not None:
            return MapResult(missing_context=gate)
        return MapResult(proposals=[CompletionProposal(summary=summary, confidence=confidence)])

    def complete(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        return self._completion(fields["summary"], fields.get("confidence"))

    def attempt_completion(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        return self._completion(fields["result"], fields.get("confidence"))

    def final_message(self, fields: dict[str, Any], context: ChatContext) -> MapResult:
        return self._completion(fields["text"], fields.get("confidence"))


_HANDLERS: dict[ActionName, Handler] = {
    ActionName.CREATE_INSTANCE: ProposalMapper.create_instance,
    ActionName.SET_PROPERTIES: ProposalMapper.set_properties,
    ActionName.RENAME_INSTANCE: ProposalMapper.rename_instance,
    ActionName.DELETE_INSTANCE: ProposalMapper.delete_instance,
    ActionName.SHOW_DIFF: ProposalMapper.edit,
    ActionName.APPLY_EDIT: ProposalMapper.edit,
    ActionName.SEARCH_ASSETS: ProposalMapper.search_assets,
    ActionName.INSERT_ASSET: ProposalMapper.insert_asset,
    ActionName.GENERATE_ASSET_3D: ProposalMapper.generate_asset,
    ActionName.START_PLAN: ProposalMapper.start_plan,
    ActionName.UPDATE_PLAN: ProposalMapper.update_plan,
    ActionName.GET_ACTIVE_SCRIPT: ProposalMapper.get_active_script,
    ActionName.LIST_SELECTION: ProposalMapper.list_selection,
    ActionName.LIST_OPEN_DOCUMENTS: ProposalMapper.list_open_documents,
    ActionName.LIST_CHILDREN: ProposalMapper.list_children,
    ActionName.GET_PROPERTIES: ProposalMapper.get_properties,
    ActionName.LIST_CODE_DEFINITION_NAMES: ProposalMapper.list_code_definition_names,
    ActionName.SEARCH_FILES: ProposalMapper.search_files,
    ActionName.COMPLETE: ProposalMapper.complete,
    ActionName.ATTEMPT_COMPLETION: ProposalMapper.attempt_completion,
    ActionName.FINAL_MESSAGE: ProposalMapper.final_message,
}

_UNHANDLED = set(ActionName) - set(_HANDLERS)
if _UNHANDLED:
    raise RuntimeError(f"Actions without a mapper: {sorted(action.value for action in _UNHANDLED)}")
