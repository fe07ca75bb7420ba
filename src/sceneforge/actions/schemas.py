"""Input models for every catalog action."""

from __future__ import annotations

import re
from typing import Annotated, Any

from pydantic import AliasChoices, BeforeValidator, Field, field_validator, model_validator

from sceneforge.actions.base import ActionInput
from sceneforge.coercion import coerce_value


_STEP_TAG_RE = re.compile(r"<(li|item|step)>(.*?)</\1>", re.DOTALL | re.IGNORECASE)
_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def _stringify(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _stringify_strip(value: Any) -> Any:
    value = _stringify(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _decode_mapping(value: Any) -> Any:
    if value is None or value == "":
        return {}
    if isinstance(value, str):
        decoded = coerce_value(value)
        if isinstance(decoded, dict):
            return decoded
        raise ValueError("expected an object of property values")
    return value


def _string_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        decoded = coerce_value(value)
        if isinstance(decoded, list):
            return [str(item).strip() for item in decoded if str(item).strip()]
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, dict):
        return [str(key) for key, enabled in value.items() if enabled]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return value


def _edit_list(value: Any) -> Any:
    if isinstance(value, str):
        value = coerce_value(value)
    if isinstance(value, dict):
        return [value]
    return value


Text = Annotated[str, BeforeValidator(_stringify)]
PathText = Annotated[str, BeforeValidator(_stringify_strip), Field(min_length=1)]
Props = Annotated[dict[str, Any], BeforeValidator(_decode_mapping)]
StringList = Annotated[list[str], BeforeValidator(_string_list)]


def parse_steps(value: Any) -> list[str]:
    """Accept arrays, JSON strings, <li>/<item> tags or bullet lines."""
    if isinstance(value, str):
        decoded = coerce_value(value)
        if isinstance(decoded, list):
            value = decoded
        else:
            tagged = [match.group(2).strip() for match in _STEP_TAG_RE.finditer(value)]
            if tagged:
                value = tagged
            else:
                value = [_BULLET_RE.sub("", line) for line in value.splitlines()]
    if isinstance(value, list):
        steps = []
        for item in value:
            if isinstance(item, dict):
                item = item.get("step") or item.get("title") or item.get("text") or ""
            text = str(item).strip()
            if text:
                steps.append(text)
        return steps
    return value


# Structural


class CreateInstanceInput(ActionInput):
    class_name: PathText = Field(
        alias="className", validation_alias=AliasChoices("className", "class_name", "class")
    )
    parent_path: PathText | None = Field(
        default=None,
        alias="parentPath",
        validation_alias=AliasChoices("parentPath", "parent_path", "parent"),
    )
    path: PathText | None = None
    name: PathText | None = None
    props: Props = Field(default_factory=dict)

    @model_validator(mode="after")
    def _require_parent(self) -> "CreateInstanceInput":
        if self.parent_path is None and self.path is None:
            raise ValueError("parentPath is required")
        if self.name is not None:
            self.props = {**self.props, "Name": self.name}
        return self


class SetPropertiesInput(ActionInput):
    path: PathText
    props: Props

    @field_validator("props")
    @classmethod
    def _non_empty(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not value:
            raise ValueError("at least one property is required")
        return value


class RenameInstanceInput(ActionInput):
    path: PathText
    new_name: PathText = Field(
        alias="newName", validation_alias=AliasChoices("newName", "new_name", "name")
    )


class DeleteInstanceInput(ActionInput):
    path: PathText


# Edits


class Position(ActionInput):
    line: int = Field(ge=0)
    character: int = Field(ge=0, validation_alias=AliasChoices("character", "char", "column"))


class TextEdit(ActionInput):
    start: Position
    end: Position
    text: Text = Field(default="", validation_alias=AliasChoices("text", "newText", "new_text"))


class FileEdits(ActionInput):
    path: PathText
    edits: Annotated[list[TextEdit], BeforeValidator(_edit_list)]
    base_text: str | None = Field(
        default=None, alias="baseText", validation_alias=AliasChoices("baseText", "base_text")
    )


class EditInput(ActionInput):
    path: PathText | None = None
    edits: Annotated[list[TextEdit] | None, BeforeValidator(_edit_list)] = None
    files: list[FileEdits] | None = None
    base_text: str | None = Field(
        default=None, alias="baseText", validation_alias=AliasChoices("baseText", "base_text")
    )

    @model_validator(mode="after")
    def _require_edits(self) -> "EditInput":
        if self.edits is None and not self.files:
            raise ValueError("edits or files is required")
        if self.edits is not None and self.path is None and not self.files:
            raise ValueError("path is required (no active script)")
        return self


# Assets


class SearchAssetsInput(ActionInput):
    query: PathText
    tags: StringList = Field(default_factory=list)
    limit: int = Field(default=6, ge=1, le=50)


class InsertAssetInput(ActionInput):
    asset_id: int = Field(
        alias="assetId", ge=1, validation_alias=AliasChoices("assetId", "asset_id", "id")
    )
    parent_path: PathText | None = Field(
        default=None,
        alias="parentPath",
        validation_alias=AliasChoices("parentPath", "parent_path", "parent"),
    )

    @field_validator("asset_id", mode="before")
    @classmethod
    def _numeric_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            digits = re.sub(r"^rbxassetid://", "", value.strip())
            if digits.isdigit():
                return int(digits)
        return value


class GenerateAsset3dInput(ActionInput):
    prompt: PathText
    tags: StringList = Field(default_factory=list)
    style: Text | None = None
    budget: int | None = Field(default=None, ge=1)


# Planning


class StartPlanInput(ActionInput):
    steps: Annotated[list[str], BeforeValidator(parse_steps), Field(min_length=1)]


class UpdatePlanInput(ActionInput):
    completed_step: int | str | None = Field(
        default=None,
        alias="completedStep",
        validation_alias=AliasChoices("completedStep", "completed_step", "completed"),
    )
    next_step: int | str | None = Field(
        default=None,
        alias="nextStep",
        validation_alias=AliasChoices("nextStep", "next_step", "next"),
    )
    notes: Text | None = None

    @model_validator(mode="after")
    def _require_change(self) -> "UpdatePlanInput":
        if self.completed_step is None and self.next_step is None and self.notes is None:
            raise ValueError("one of completedStep, nextStep or notes is required")
        return self


# Context reads


class GetActiveScriptInput(ActionInput):
    pass


class ListSelectionInput(ActionInput):
    pass


class ListOpenDocumentsInput(ActionInput):
    max_count: int = Field(
        default=20, alias="maxCount", ge=1, validation_alias=AliasChoices("maxCount", "max_count")
    )


class ListChildrenInput(ActionInput):
    parent_path: PathText = Field(
        default="game.Workspace",
        alias="parentPath",
        validation_alias=AliasChoices("parentPath", "parent_path", "parent", "path"),
    )
    depth: int = Field(default=1, ge=0)
    max_nodes: int = Field(
        default=200, alias="maxNodes", ge=1, validation_alias=AliasChoices("maxNodes", "max_nodes")
    )
    class_whitelist: StringList | None = Field(
        default=None,
        alias="classWhitelist",
        validation_alias=AliasChoices("classWhitelist", "class_whitelist", "classes"),
    )


class ListCodeDefinitionNamesInput(ActionInput):
    root: PathText | None = None
    limit: int = Field(default=200, ge=1, le=1000)


class SearchFilesInput(ActionInput):
    query: PathText
    root: PathText | None = None
    limit: int = Field(default=20, ge=1, le=100)
    case_sensitive: bool = Field(
        default=False,
        alias="caseSensitive",
        validation_alias=AliasChoices("caseSensitive", "case_sensitive"),
    )


class GetPropertiesInput(ActionInput):
    path: PathText
    keys: StringList | None = None
    include_all_attributes: bool = Field(
        default=False,
        alias="includeAllAttributes",
        validation_alias=AliasChoices("includeAllAttributes", "include_all_attributes"),
    )


# Completion


class CompleteInput(ActionInput):
    summary: PathText
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class AttemptCompletionInput(ActionInput):
    result: PathText = Field(validation_alias=AliasChoices("result", "summary"))
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class FinalMessageInput(ActionInput):
    text: PathText = Field(validation_alias=AliasChoices("text", "message"))
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
