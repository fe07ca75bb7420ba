"""Policy that gates completion until visible structure is backed by code."""

from __future__ import annotations

from datetime import datetime, timezone
import re
from typing import Iterable

from pydantic import BaseModel

from sceneforge.proposals import (
    AssetProposal,
    CreateInstanceOp,
    EditProposal,
    ObjectProposal,
    SetPropertiesOp,
)


_OPT_OUT_PATTERNS = [
    re.compile(
        r"\b(?:no|without|skip(?:\s+the)?|don'?t\s+(?:need|want|write|add)|do\s+not\s+(?:need|want|write|add))"
        r"\s+(?:any\s+)?(?:luau|lua|scripts?|scripting|code)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:geometry|structure|building)\s+only\b", re.IGNORECASE),
    re.compile(r"\bonly\s+(?:the\s+)?(?:geometry|parts|model|structure)\b", re.IGNORECASE),
]
_OPT_IN_PATTERNS = [
    re.compile(
        r"\b(?:add|write|include|need|want|use)\s+(?:a\s+|the\s+|some\s+)?(?:luau|lua|scripts?|code)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\bscripts?\s+(?:are\s+)?(?:back\s+)?on\b", re.IGNORECASE),
]

GATE_MESSAGE = (
    "COMPLETION_BLOCKED You created or changed visible structure without authoring any Luau. "
    "Write the script that reproduces or drives this structure with show_diff/apply_edit "
    "(or create a Script with a Source property) before calling complete."
)


class ScriptPolicyState(BaseModel):
    geometry_ops: int = 0
    luau_edits: int = 0
    user_opted_out: bool = False
    opted_out_at: datetime | None = None


def _last_end(patterns: list[re.Pattern[str]], text: str) -> int:
    last = -1
    for pattern in patterns:
        for match in pattern.finditer(text):
            last = max(last, match.end())
    return last


def detect_opt_signal(text: str) -> bool | None:
    """True for opt-out, False for opt-in, None when the message has neither.

    The later phrase in the message wins; an opt-in ending at the same place
    as an opt-out is part of the opt-out phrase.
    """
    if not text:
        return None
    opt_out = _last_end(_OPT_OUT_PATTERNS, text)
    opt_in = _last_end(_OPT_IN_PATTERNS, text)
    if opt_out < 0 and opt_in < 0:
        return None
    return opt_out >= opt_in


def _has_source(props: dict) -> bool:
    source = props.get("Source")
    return isinstance(source, str) and bool(source.strip())


def classify(proposal: object) -> tuple[bool, bool]:
    """Return (touches code, touches visible structure) for a proposal."""
    if isinstance(proposal, EditProposal):
        return True, False
    if isinstance(proposal, ObjectProposal):
        code = False
        structure = False
        for op in proposal.ops:
            if isinstance(op, (CreateInstanceOp, SetPropertiesOp)):
                if _has_source(op.props):
                    code = True
                else:
                    structure = True
        return code, structure
    if isinstance(proposal, AssetProposal):
        return False, proposal.op in {"insert", "generate"}
    return False, False


class ScriptPolicyEnforcer:
    def __init__(self, state: ScriptPolicyState | None = None) -> None:
        self.state = state if state is not None else ScriptPolicyState()

    def observe_message(self, text: str, now: datetime | None = None) -> bool | None:
        signal = detect_opt_signal(text)
        if signal is True and not self.state.user_opted_out:
            self.state.user_opted_out = True
            self.state.opted_out_at = now or datetime.now(timezone.utc)
        elif signal is False and self.state.user_opted_out:
            self.state.user_opted_out = False
            self.state.opted_out_at = None
        return signal

    def record(self, proposals: Iterable[object]) -> None:
        for proposal in proposals:
            code, structure = classify(proposal)
            if code:
                self.state.luau_edits += 1
            if structure:
                self.state.geometry_ops += 1

    @property
    def gate_active(self) -> bool:
        return (
            self.state.geometry_ops > 0
            and self.state.luau_edits == 0
            and not self.state.user_opted_out
        )

    def completion_gate(self) -> str | None:
        """Corrective instruction while completion is blocked, else None."""
        return GATE_MESSAGE if self.gate_active else None
