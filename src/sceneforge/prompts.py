"""System prompt and corrective messages for the turn loop."""

from __future__ import annotations

import json
from typing import Any

from sceneforge.actions.base import ActionKind
from sceneforge.actions.registry import ActionCatalog


_HEADER = """You are a scene-building copilot for a 3D editor.

Core rules
- One action per turn: emit EXACTLY ONE action tag and nothing else, then wait for its result.
- Changes are proposals the user reviews; keep each step small and undoable.
- No prose, no markdown, no code fences around the action.

Call format
<action_name>
  <field>value</field>
</action_name>

Field encoding
- Strings and numbers: the literal value.
- Objects and arrays: strict JSON (double quotes, no trailing commas), never wrapped in quotes.
- Omit optional fields you do not know.

Paths
- Use full paths such as game.Workspace.Model.Part.
- Bracket names that are not identifiers: game.Workspace["My Part"].
- If parentPath is unknown for create_instance or insert_asset, use game.Workspace.

Edits
- Positions are zero-based and the end is exclusive.
- Edits must be sorted by start and must not overlap; at most {max_edits} edits and {max_chars} inserted characters.

Policy
- Structure that should behave at runtime needs a Luau script; author it before calling complete.
- On VALIDATION_ERROR resubmit the SAME action with corrected fields.
- When finished, call complete with a summary.
"""

_KIND_TITLES = {
    ActionKind.CONTEXT: "Context (read-only)",
    ActionKind.PLAN: "Planning",
    ActionKind.STRUCTURAL: "Structure",
    ActionKind.EDIT: "Script edits",
    ActionKind.ASSET: "Assets",
    ActionKind.COMPLETION: "Completion",
}

NO_CALL_NUDGE = (
    "NO_TOOL_USED Please emit exactly one tool or call <complete><summary>...</summary></complete> to finish."
)
TEXT_BEFORE_CALL_NUDGE = (
    "TEXT_BEFORE_TOOL Emit the action tag alone, with no text before it. Resend the same action."
)


def build_system_prompt(catalog: ActionCatalog, max_edits: int = 20, max_chars: int = 2000) -> str:
    lines = [_HEADER.format(max_edits=max_edits, max_chars=max_chars), "Available actions"]
    for kind, title in _KIND_TITLES.items():
        specs = catalog.by_kind(kind)
        if specs:
            lines.append(f"- {title}: {', '.join(spec.field_summary() for spec in specs)}")
    return "\n".join(lines)


def unknown_action_message(name: str, catalog: ActionCatalog) -> str:
    return f"UNKNOWN_TOOL {name}\nUse one of: {', '.join(catalog.names())}"


def validation_error_message(name: str, rendered_failures: str) -> str:
    return f"VALIDATION_ERROR {name}\n{rendered_failures}"


def context_request_message(reason: str) -> str:
    return f"CONTEXT_REQUEST {reason}"


def tool_result_message(name: str, result: Any) -> str:
    return f"TOOL_RESULT {name}\n{json.dumps(result, ensure_ascii=False, default=str)}"


def render_context(context: Any, plan_steps: list[str], current_step: str | None) -> str:
    """Compact description of editor context appended to the user's message."""
    parts: list[str] = []
    if context.active_script is not None:
        parts.append(f"Active script: {context.active_script.path}")
    if context.selection:
        selected = ", ".join(item.path for item in context.selection[:10])
        parts.append(f"Selection: {selected}")
    if plan_steps:
        parts.append(f"Plan: {json.dumps(plan_steps)} (current: {current_step})")
    return "\n".join(parts)
