"""Range-edit validation, application and previews."""

from __future__ import annotations

from dataclasses import dataclass
import difflib
import hashlib
from typing import Any, Iterable

from pydantic import BaseModel, ValidationError


MAX_EDITS = 20
MAX_INSERTED_CHARS = 2000

REJECT_EMPTY = "empty"
REJECT_MALFORMED = "malformed"
REJECT_OVERLAP = "overlap"
REJECT_UNSORTED = "unsorted"
REJECT_TOO_MANY = "too_many"
REJECT_OVER_BUDGET = "over_budget"


class Position(BaseModel):
    line: int
    character: int

    def key(self) -> tuple[int, int]:
        return (self.line, self.character)


class RangeEdit(BaseModel):
    start: Position
    end: Position
    text: str = ""


class Anchors(BaseModel):
    start_line_text: str = ""
    end_line_text: str = ""


@dataclass(frozen=True)
class EditRejection:
    reason: str
    message: str


def _coerce_edits(edits: Iterable[Any]) -> list[RangeEdit]:
    coerced = []
    for edit in edits:
        if isinstance(edit, RangeEdit):
            coerced.append(edit)
        else:
            coerced.append(RangeEdit.model_validate(edit))
    return coerced


def validate_edit_list(
    edits: Iterable[Any] | None,
    max_edits: int = MAX_EDITS,
    max_inserted_chars: int = MAX_INSERTED_CHARS,
) -> tuple[list[RangeEdit], EditRejection | None]:
    """Return the edits in order, or a rejection with a distinguishing reason.

    Positions are zero-based and end-exclusive. Lists are rejected whole.
    """
    if edits is None:
        return [], EditRejection(REJECT_EMPTY, "edit list is empty")
    try:
        parsed = _coerce_edits(edits)
    except (ValidationError, TypeError) as exc:
        return [], EditRejection(REJECT_MALFORMED, f"edit list is malformed: {exc}")
    if not parsed:
        return [], EditRejection(REJECT_EMPTY, "edit list is empty")
    for index, edit in enumerate(parsed):
        if min(edit.start.line, edit.start.character, edit.end.line, edit.end.character) < 0:
            return [], EditRejection(REJECT_MALFORMED, f"edit {index} has a negative position")
        if edit.end.key() < edit.start.key():
            return [], EditRejection(REJECT_MALFORMED, f"edit {index} ends before it starts")
    ordered = sorted(parsed, key=lambda item: (item.start.key(), item.end.key()))
    for previous, current in zip(ordered, ordered[1:]):
        if current.start.key() < previous.end.key():
            return [], EditRejection(
                REJECT_OVERLAP,
                f"edit starting at {current.start.line}:{current.start.character} overlaps "
                f"edit ending at {previous.end.line}:{previous.end.character}",
            )
    if ordered != parsed:
        return [], EditRejection(REJECT_UNSORTED, "edits must be sorted by start position")
    if len(parsed) > max_edits:
        return [], EditRejection(
            REJECT_TOO_MANY, f"{len(parsed)} edits exceeds the limit of {max_edits}"
        )
    inserted = sum(len(edit.text) for edit in parsed)
    if inserted > max_inserted_chars:
        return [], EditRejection(
            REJECT_OVER_BUDGET,
            f"{inserted} inserted characters exceeds the budget of {max_inserted_chars}",
        )
    return parsed, None


def position_to_index(text: str, position: Position) -> int:
    lines = text.split("\n")
    if position.line >= len(lines):
        return len(text)
    offset = sum(len(line) + 1 for line in lines[: position.line])
    return offset + min(position.character, len(lines[position.line]))


def apply_range_edits(text: str, edits: Iterable[RangeEdit]) -> str:
    """Apply edits back to front so earlier offsets stay valid."""
    result = text
    ordered = sorted(edits, key=lambda item: (item.start.key(), item.end.key()), reverse=True)
    for edit in ordered:
        start = position_to_index(result, edit.start)
        end = position_to_index(result, edit.end)
        result = f"{result[:start]}{edit.text}{result[end:]}"
    return result


def unified_diff(old: str, new: str, path: str) -> str:
    lines = difflib.unified_diff(
        old.splitlines(keepends=True),
        new.splitlines(keepends=True),
        fromfile=f"a/{path}",
        tofile=f"b/{path}",
    )
    return "".join(lines)


def compute_anchors(text: str, edits: list[RangeEdit]) -> Anchors:
    """First and last touched line of the base text, for conflict detection."""
    if not edits:
        return Anchors()
    lines = text.split("\n")
    first = edits[0]
    last = edits[-1]
    end_line = last.end.line
    if last.end.character == 0 and end_line > last.start.line:
        end_line -= 1

    def line_at(index: int) -> str:
        return lines[index] if 0 <= index < len(lines) else ""

    return Anchors(start_line_text=line_at(first.start.line), end_line_text=line_at(end_line))


def preimage_hash(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()
