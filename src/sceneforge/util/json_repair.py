"""Best-effort JSON repair utilities for model-generated payloads."""

from __future__ import annotations

import json
import re
from typing import Any


_FENCE_RE = re.compile(r"^\s*```(?:json|lua|luau)?\s*(.*?)\s*```\s*$", re.DOTALL | re.IGNORECASE)
_SINGLE_QUOTED_RE = re.compile(r"(?<![\\\w])'([^'\\]*(?:\\.[^'\\]*)*)'")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_][\w]*)\s*:")
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


class JsonRepairError(ValueError):
    """Raised when JSON repair fails."""


def strip_fences(text: str) -> str | None:
    """Return the body of a fenced block, or None when the text is not fenced."""
    match = _FENCE_RE.match(text)
    if match:
        return match.group(1).strip()
    return None


def escape_newlines_in_strings(text: str) -> str:
    """Escape raw line breaks that appear inside double-quoted strings."""
    out: list[str] = []
    in_string = False
    escape = False
    for char in text:
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            elif char == "\n":
                out.append("\\n")
                continue
            elif char == "\r":
                out.append("\\r")
                continue
            elif char == "\t":
                out.append("\\t")
                continue
        elif char == '"':
            in_string = True
        out.append(char)
    return "".join(out)


def _replace_single_quotes(text: str) -> str:
    def _swap(match: re.Match[str]) -> str:
        inner = match.group(1).replace('\\"', '"').replace("\\'", "'").replace('"', '\\"')
        return f'"{inner}"'

    return _SINGLE_QUOTED_RE.sub(_swap, text)


def _quote_bare_keys(text: str) -> str:
    return _BARE_KEY_RE.sub(r'\1"\2":', text)


def _remove_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def balanced_chunks(text: str, opener: str = "{", closer: str = "}") -> list[str]:
    """Return every top-level balanced chunk delimited by opener/closer."""
    chunks: list[str] = []
    depth = 0
    start_index: int | None = None
    in_string = False
    escape = False
    for idx, char in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif char == "\\":
                escape = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
            continue
        if char == opener:
            if depth == 0:
                start_index = idx
            depth += 1
        elif char == closer and depth > 0:
            depth -= 1
            if depth == 0 and start_index is not None:
                chunks.append(text[start_index : idx + 1])
                start_index = None
    return chunks


def repair_json(text: str) -> Any:
    """Parse JSON tolerating single quotes, bare keys and trailing commas."""
    cleaned = text.strip()
    if not cleaned or cleaned[0] not in "{[":
        raise JsonRepairError("No JSON object or array found")
    for candidate in (
        _remove_trailing_commas(cleaned),
        _remove_trailing_commas(_quote_bare_keys(cleaned)),
        _remove_trailing_commas(_quote_bare_keys(_replace_single_quotes(cleaned))),
    ):
        try:
            return json.loads(escape_newlines_in_strings(candidate))
        except (ValueError, RecursionError):
            continue
    raise JsonRepairError("Failed to repair JSON")
