"""Reviewable change proposals returned to the caller."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from sceneforge.edits import Anchors, RangeEdit


def _proposal_id() -> str:
    return f"prop_{uuid4().hex[:12]}"


class ProposalMeta(BaseModel):
    auto_approved: bool = False


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FileChange(_Wire):
    path: str
    edits: list[RangeEdit]
    diff: str = ""
    before_hash: str = Field(alias="beforeHash")
    base_text: str = Field(default="", alias="baseText")
    anchors: Anchors = Field(default_factory=Anchors)


class CreateInstanceOp(_Wire):
    op: Literal["create_instance"] = "create_instance"
    class_name: str = Field(alias="className")
    parent_path: str = Field(alias="parentPath")
    props: dict[str, Any] = Field(default_factory=dict)
    synthesized: bool = False


class SetPropertiesOp(_Wire):
    op: Literal["set_properties"] = "set_properties"
    path: str
    props: dict[str, Any]


class RenameInstanceOp(_Wire):
    op: Literal["rename_instance"] = "rename_instance"
    path: str
    new_name: str = Field(alias="newName")


class DeleteInstanceOp(_Wire):
    op: Literal["delete_instance"] = "delete_instance"
    path: str


ObjectOp = Annotated[
    Union[CreateInstanceOp, SetPropertiesOp, RenameInstanceOp, DeleteInstanceOp],
    Field(discriminator="op"),
]


class EditProposal(_Wire):
    type: Literal["edit"] = "edit"
    id: str = Field(default_factory=_proposal_id)
    files: list[FileChange]
    notes: str | None = None
    meta: ProposalMeta = Field(default_factory=ProposalMeta)

    @property
    def paths(self) -> list[str]:
        return [change.path for change in self.files]


class ObjectProposal(_Wire):
    type: Literal["object_op"] = "object_op"
    id: str = Field(default_factory=_proposal_id)
    ops: list[ObjectOp]
    notes: str | None = None
    meta: ProposalMeta = Field(default_factory=ProposalMeta)


class AssetProposal(_Wire):
    type: Literal["asset_op"] = "asset_op"
    id: str = Field(default_factory=_proposal_id)
    op: Literal["search", "insert", "generate"]
    query: str | None = None
    tags: list[str] | None = None
    limit: int | None = None
    asset_id: int | None = Field(default=None, alias="assetId")
    parent_path: str | None = Field(default=None, alias="parentPath")
    prompt: str | None = None
    style: str | None = None
    budget: int | None = None
    meta: ProposalMeta = Field(default_factory=ProposalMeta)


class CompletionProposal(_Wire):
    type: Literal["completion"] = "completion"
    id: str = Field(default_factory=_proposal_id)
    summary: str
    confidence: float | None = None
    meta: ProposalMeta = Field(default_factory=ProposalMeta)


Proposal = Annotated[
    Union[EditProposal, ObjectProposal, AssetProposal, CompletionProposal],
    Field(discriminator="type"),
]
