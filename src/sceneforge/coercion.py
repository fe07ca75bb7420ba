"""Ordered decode chain for raw call-field text.

Model output is not guaranteed to be syntactically valid, so each field body is
passed through a fixed sequence of named strategies. Every strategy is total:
it either returns a decoded value or ``MISS``. When nothing applies the raw
string is returned unchanged. This leniency applies to model output only.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable

from sceneforge.util.json_repair import (
    JsonRepairError,
    balanced_chunks,
    escape_newlines_in_strings,
    repair_json,
    strip_fences,
)


class _Miss:
    def __repr__(self) -> str:
        return "MISS"


MISS: Any = _Miss()

_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LITERALS = {"true": True, "false": False, "null": None}

_POSITION_RE = {
    key: re.compile(rf"[\"']?{key}[\"']?\s*:\s*\{{([^{{}}]*)\}}", re.IGNORECASE)
    for key in ("start", "end")
}
_LINE_RE = re.compile(r"[\"']?line[\"']?\s*:\s*(\d+)", re.IGNORECASE)
_CHAR_RE = re.compile(r"[\"']?(?:character|char|column)[\"']?\s*:\s*(\d+)", re.IGNORECASE)
_TEXT_RE = re.compile(r"[\"']?text[\"']?\s*:\s*\"((?:[^\"\\]|\\.)*)\"", re.DOTALL)
_TEXT_SINGLE_RE = re.compile(r"[\"']?text[\"']?\s*:\s*'((?:[^'\\]|\\.)*)'", re.DOTALL)

# Oversized integers raise ValueError and deep nesting raises RecursionError.
_DECODE_ERRORS = (ValueError, RecursionError)


def _literal(text: str) -> Any:
    stripped = text.strip()
    lowered = stripped.lower()
    if lowered in _LITERALS:
        return _LITERALS[lowered]
    if _NUMBER_RE.fullmatch(stripped):
        try:
            if any(marker in stripped for marker in ".eE"):
                return float(stripped)
            return int(stripped)
        except _DECODE_ERRORS:
            return MISS
    return MISS


def _strict_json(text: str) -> Any:
    stripped = text.strip()
    if not stripped or stripped[0] not in "{[\"":
        return MISS
    try:
        return json.loads(stripped)
    except _DECODE_ERRORS:
        return MISS


def _escaped_newlines(text: str) -> Any:
    stripped = text.strip()
    if not stripped or stripped[0] not in "{[\"":
        return MISS
    try:
        return json.loads(escape_newlines_in_strings(stripped))
    except _DECODE_ERRORS:
        return MISS


def _fenced_block(text: str) -> Any:
    body = strip_fences(text)
    if body is None:
        return MISS
    for attempt in (_literal, _strict_json, _escaped_newlines):
        value = attempt(body)
        if value is not MISS:
            return value
    return MISS


def _lenient_json(text: str) -> Any:
    body = strip_fences(text)
    try:
        return repair_json(body if body is not None else text)
    except JsonRepairError:
        return MISS


def _decode_text(raw: str) -> str:
    try:
        return json.loads(escape_newlines_in_strings(f'"{raw}"'))
    except _DECODE_ERRORS:
        return raw


def _position(chunk: str, key: str) -> dict[str, int] | None:
    match = _POSITION_RE[key].search(chunk)
    if not match:
        return None
    inner = match.group(1)
    line = _LINE_RE.search(inner)
    character = _CHAR_RE.search(inner)
    if not line or not character:
        return None
    try:
        return {"line": int(line.group(1)), "character": int(character.group(1))}
    except _DECODE_ERRORS:
        return None


def _edit_list_scan(text: str) -> Any:
    if "start" not in text or "end" not in text:
        return MISS
    edits: list[dict[str, Any]] = []
    for chunk in balanced_chunks(text):
        start = _position(chunk, "start")
        end = _position(chunk, "end")
        if start is None or end is None:
            return MISS
        match = _TEXT_RE.search(chunk)
        if match:
            replacement = _decode_text(match.group(1))
        else:
            single = _TEXT_SINGLE_RE.search(chunk)
            replacement = single.group(1).replace("\\'", "'").replace("\\n", "\n") if single else ""
        edits.append({"start": start, "end": end, "text": replacement})
    if not edits:
        return MISS
    return edits


DecodeStrategy = Callable[[str], Any]

DECODE_STRATEGIES: tuple[tuple[str, DecodeStrategy], ...] = (
    ("literal", _literal),
    ("strict_json", _strict_json),
    ("escaped_newlines", _escaped_newlines),
    ("fenced_block", _fenced_block),
    ("lenient_json", _lenient_json),
    ("edit_list_scan", _edit_list_scan),
)


def decode(raw: str) -> tuple[str | None, Any]:
    """Return the name of the first strategy that decoded raw, and its value."""
    for name, strategy in DECODE_STRATEGIES:
        value = strategy(raw)
        if value is not MISS:
            return name, value
    return None, raw


def coerce_value(raw: str) -> Any:
    """Best-effort decode of a raw field body; falls back to the raw string."""
    if not isinstance(raw, str):
        return raw
    return decode(raw)[1]
