"""Closed catalog of actions a model may request."""

from __future__ import annotations

from typing import Iterable

from sceneforge.actions import schemas
from sceneforge.actions.base import ActionKind, ActionName, ActionSpec


class ActionCatalog:
    """Registry of action specs keyed by action name."""

    def __init__(self) -> None:
        self._specs: dict[ActionName, ActionSpec] = {}

    def register(self, spec: ActionSpec) -> None:
        self._specs[spec.name] = spec

    def register_all(self, specs: Iterable[ActionSpec]) -> None:
        for spec in specs:
            self.register(spec)

    def get(self, name: str | ActionName) -> ActionSpec | None:
        key = name if isinstance(name, ActionName) else ActionName.lookup(name)
        if key is None:
            return None
        return self._specs.get(key)

    def list(self) -> list[ActionSpec]:
        return list(self._specs.values())

    def names(self) -> list[str]:
        return [spec.name.value for spec in self._specs.values()]

    def by_kind(self, kind: ActionKind) -> list[ActionSpec]:
        return [spec for spec in self._specs.values() if spec.kind is kind]


def _spec(name: ActionName, kind: ActionKind, description: str, model) -> ActionSpec:
    return ActionSpec(name=name, kind=kind, description=description, input_model=model)


BUILTIN_SPECS = [
    _spec(
        ActionName.CREATE_INSTANCE,
        ActionKind.STRUCTURAL,
        "Create an instance of className under parentPath; missing ancestors are created.",
        schemas.CreateInstanceInput,
    ),
    _spec(
        ActionName.SET_PROPERTIES,
        ActionKind.STRUCTURAL,
        "Shallow-merge props into the instance at path.",
        schemas.SetPropertiesInput,
    ),
    _spec(
        ActionName.RENAME_INSTANCE,
        ActionKind.STRUCTURAL,
        "Rename the instance at path to newName.",
        schemas.RenameInstanceInput,
    ),
    _spec(
        ActionName.DELETE_INSTANCE,
        ActionKind.STRUCTURAL,
        "Delete the instance at path and all of its descendants.",
        schemas.DeleteInstanceInput,
    ),
    _spec(
        ActionName.SHOW_DIFF,
        ActionKind.EDIT,
        "Preview zero-based, end-exclusive, sorted, non-overlapping range edits.",
        schemas.EditInput,
    ),
    _spec(
        ActionName.APPLY_EDIT,
        ActionKind.EDIT,
        "Propose zero-based, end-exclusive, sorted, non-overlapping range edits to a script.",
        schemas.EditInput,
    ),
    _spec(
        ActionName.SEARCH_ASSETS,
        ActionKind.ASSET,
        "Search the asset catalog.",
        schemas.SearchAssetsInput,
    ),
    _spec(
        ActionName.INSERT_ASSET,
        ActionKind.ASSET,
        "Insert a catalog asset by id under parentPath.",
        schemas.InsertAssetInput,
    ),
    _spec(
        ActionName.GENERATE_ASSET_3D,
        ActionKind.ASSET,
        "Request generation of a new 3D asset from a prompt.",
        schemas.GenerateAsset3dInput,
    ),
    _spec(
        ActionName.START_PLAN,
        ActionKind.PLAN,
        "Record an ordered list of steps for the task.",
        schemas.StartPlanInput,
    ),
    _spec(
        ActionName.UPDATE_PLAN,
        ActionKind.PLAN,
        "Mark a step completed and/or move to the next step.",
        schemas.UpdatePlanInput,
    ),
    _spec(
        ActionName.GET_ACTIVE_SCRIPT,
        ActionKind.CONTEXT,
        "Return the path and text of the active script.",
        schemas.GetActiveScriptInput,
    ),
    _spec(
        ActionName.LIST_SELECTION,
        ActionKind.CONTEXT,
        "Return the currently selected instances.",
        schemas.ListSelectionInput,
    ),
    _spec(
        ActionName.LIST_OPEN_DOCUMENTS,
        ActionKind.CONTEXT,
        "Return the open script documents.",
        schemas.ListOpenDocumentsInput,
    ),
    _spec(
        ActionName.LIST_CHILDREN,
        ActionKind.CONTEXT,
        "List descendants of parentPath breadth-first.",
        schemas.ListChildrenInput,
    ),
    _spec(
        ActionName.GET_PROPERTIES,
        ActionKind.CONTEXT,
        "Read properties of the instance at path.",
        schemas.GetPropertiesInput,
    ),
    _spec(
        ActionName.LIST_CODE_DEFINITION_NAMES,
        ActionKind.CONTEXT,
        "List function definitions in the known scripts, optionally under root.",
        schemas.ListCodeDefinitionNamesInput,
    ),
    _spec(
        ActionName.SEARCH_FILES,
        ActionKind.CONTEXT,
        "Search the known scripts for a literal query; returns path, line and snippet.",
        schemas.SearchFilesInput,
    ),
    _spec(
        ActionName.COMPLETE,
        ActionKind.COMPLETION,
        "Finish the task with a summary.",
        schemas.CompleteInput,
    ),
    _spec(
        ActionName.ATTEMPT_COMPLETION,
        ActionKind.COMPLETION,
        "Finish the task with a result description.",
        schemas.AttemptCompletionInput,
    ),
    _spec(
        ActionName.FINAL_MESSAGE,
        ActionKind.COMPLETION,
        "Finish the task with a message to the user.",
        schemas.FinalMessageInput,
    ),
]


def build_catalog() -> ActionCatalog:
    catalog = ActionCatalog()
    catalog.register_all(BUILTIN_SPECS)
    return catalog


DEFAULT_CATALOG = build_catalog()
