"""Action catalog primitives."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class ActionName(str, Enum):
    CREATE_INSTANCE = "create_instance"
    SET_PROPERTIES = "set_properties"
    RENAME_INSTANCE = "rename_instance"
    DELETE_INSTANCE = "delete_instance"
    SHOW_DIFF = "show_diff"
    APPLY_EDIT = "apply_edit"
    SEARCH_ASSETS = "search_assets"
    INSERT_ASSET = "insert_asset"
    GENERATE_ASSET_3D = "generate_asset_3d"
    START_PLAN = "start_plan"
    UPDATE_PLAN = "update_plan"
    GET_ACTIVE_SCRIPT = "get_active_script"
    LIST_SELECTION = "list_selection"
    LIST_OPEN_DOCUMENTS = "list_open_documents"
    LIST_CHILDREN = "list_children"
    GET_PROPERTIES = "get_properties"
    LIST_CODE_DEFINITION_NAMES = "list_code_definition_names"
    SEARCH_FILES = "search_files"
    COMPLETE = "complete"
    ATTEMPT_COMPLETION = "attempt_completion"
    FINAL_MESSAGE = "final_message"

    @classmethod
    def lookup(cls, name: str) -> "ActionName | None":
        try:
            return cls(name)
        except ValueError:
            return None


class ActionKind(str, Enum):
    STRUCTURAL = "structural"
    EDIT = "edit"
    ASSET = "asset"
    PLAN = "plan"
    CONTEXT = "context"
    COMPLETION = "completion"


class ActionInput(BaseModel):
    """Base input model; aliases are the camelCase names models emit."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def normalized(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class ActionSpec:
    name: ActionName
    kind: ActionKind
    description: str
    input_model: type[ActionInput]

    @property
    def context_only(self) -> bool:
        return self.kind in {ActionKind.PLAN, ActionKind.CONTEXT}

    def field_summary(self) -> str:
        """Render the declared fields as a compact signature for prompts."""
        schema = self.input_model.model_json_schema(by_alias=True)
        required = set(schema.get("required", []))
        parts = []
        for key in schema.get("properties", {}):
            parts.append(key if key in required else f"{key}?")
        return f"{self.name.value}({', '.join(parts)})"
