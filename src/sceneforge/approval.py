"""Auto-approval annotation for proposals."""

from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel

from sceneforge.proposals import (
    AssetProposal,
    CompletionProposal,
    CreateInstanceOp,
    EditProposal,
    ObjectProposal,
)
from sceneforge.scene_graph import DEFAULT_PARENT, is_descendant, normalize_path


SAFE_PREFIXES = (
    "game.Workspace",
    "game.ReplicatedStorage",
    "game.ServerStorage",
    "game.StarterGui",
    "game.StarterPack",
    "game.StarterPlayer",
    "game.ServerScriptService",
    "game.SoundService",
    "game.TextService",
    "game.CollectionService",
)


class AutoApproval(BaseModel):
    enabled: bool = False
    read_files: bool = False
    edit_files: bool = False
    exec_safe: bool = False


def is_safe_path(path: str | None) -> bool:
    normalized = normalize_path(path)
    if normalized is None:
        return False
    return any(normalized == prefix or is_descendant(normalized, prefix) for prefix in SAFE_PREFIXES)


def is_auto_approved(proposal: object, settings: AutoApproval) -> bool:
    if not settings.enabled:
        return False
    if isinstance(proposal, EditProposal):
        return bool(proposal.files) and all(is_safe_path(change.path) for change in proposal.files)
    if isinstance(proposal, ObjectProposal):
        return all(
            is_safe_path(op.parent_path if isinstance(op, CreateInstanceOp) else op.path)
            for op in proposal.ops
        )
    if isinstance(proposal, AssetProposal):
        if proposal.op == "search":
            return True
        if proposal.op == "insert":
            return is_safe_path(proposal.parent_path or DEFAULT_PARENT)
        return False
    if isinstance(proposal, CompletionProposal):
        return False
    return False


def annotate_auto_approval(proposals: Iterable[object], settings: AutoApproval) -> None:
    for proposal in proposals:
        proposal.meta.auto_approved = is_auto_approved(proposal, settings)
