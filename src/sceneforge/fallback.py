"""Deterministic proposals used when the model produced nothing actionable."""

from __future__ import annotations

import re

from sceneforge.edits import RangeEdit, compute_anchors, preimage_hash, unified_diff
from sceneforge.proposals import (
    AssetProposal,
    EditProposal,
    FileChange,
    ObjectProposal,
    RenameInstanceOp,
)
from sceneforge.scene_graph import normalize_path, split_path
from sceneforge.state import ChatContext


PLACEHOLDER_SUFFIX = "_Pending"
_COMMENT_CHARS = 160
_UNSAFE_COMMENT_RE = re.compile(r"[\r\n]+|\]\]|--\[")


def _comment_text(message: str) -> str:
    cleaned = _UNSAFE_COMMENT_RE.sub(" ", message).strip()
    return cleaned[:_COMMENT_CHARS] or "pending change"


def _placeholder_edit(path: str, base_text: str, message: str) -> EditProposal:
    edit = RangeEdit.model_validate(
        {
            "start": {"line": 0, "character": 0},
            "end": {"line": 0, "character": 0},
            "text": f"-- {_comment_text(message)}\n",
        }
    )
    change = FileChange(
        path=path,
        edits=[edit],
        diff=unified_diff(base_text, f"{edit.text}{base_text}", path),
        before_hash=preimage_hash(base_text),
        base_text=base_text,
        anchors=compute_anchors(base_text, [edit]),
    )
    return EditProposal(files=[change], notes="fallback: placeholder comment")


def static_fallback(message: str, context: ChatContext) -> list[object]:
    """Placeholder edit, else placeholder rename, else asset search for the message."""
    if context.active_script is not None:
        path = normalize_path(context.active_script.path) or context.active_script.path
        return [_placeholder_edit(path, context.active_script.text, message)]
    if context.selection:
        path = normalize_path(context.selection[0].path)
        if path:
            _, name = split_path(path)
            op = RenameInstanceOp(path=path, new_name=f"{name}{PLACEHOLDER_SUFFIX}")
            return [ObjectProposal(ops=[op], notes="fallback: placeholder rename")]
    query = message.strip()[:_COMMENT_CHARS] or "placeholder"
    return [AssetProposal(op="search", query=query, tags=[], limit=6)]
