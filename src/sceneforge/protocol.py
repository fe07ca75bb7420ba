"""Call grammar used by models to request actions.

A call is a bracketed action name wrapping bracketed fields::

    <create_instance>
      <className>Part</className>
      <parentPath>game.Workspace</parentPath>
      <props>{"Name": "Base"}</props>
    </create_instance>
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import re
from typing import Any

from sceneforge.coercion import coerce_value


_BLOCK_RE = re.compile(r"<([A-Za-z_][\w]*)>(.*?)</\1>", re.DOTALL)


@dataclass(frozen=True)
class ParsedCall:
    name: str
    fields: dict[str, Any]
    body: str
    prefix_text: str = ""
    suffix_text: str = ""
    raw_fields: dict[str, str] = field(default_factory=dict)

    @property
    def has_prefix_text(self) -> bool:
        return bool(self.prefix_text.strip())


def _parse_fields(body: str) -> tuple[dict[str, Any], dict[str, str]]:
    fields: dict[str, Any] = {}
    raw_fields: dict[str, str] = {}
    for match in _BLOCK_RE.finditer(body):
        key = match.group(1)
        raw = match.group(2).strip()
        raw_fields[key] = raw
        fields[key] = coerce_value(raw)
    return fields, raw_fields


def parse_call(text: str) -> ParsedCall | None:
    """Extract the first well-formed call from generated text.

    Returns None when no call block is present.
    """
    if not text:
        return None
    match = _BLOCK_RE.search(text)
    if match is None:
        return None
    name = match.group(1)
    body = match.group(2)
    fields, raw_fields = _parse_fields(body)
    if not raw_fields:
        stripped = body.strip()
        if stripped:
            value = coerce_value(stripped)
            if isinstance(value, dict):
                fields = value
    return ParsedCall(
        name=name,
        fields=fields,
        body=body,
        prefix_text=text[: match.start()],
        suffix_text=text[match.end() :],
        raw_fields=raw_fields,
    )


def format_call(name: str, fields: dict[str, Any]) -> str:
    """Render a call back into the bracketed grammar."""
    lines = [f"<{name}>"]
    for key, value in fields.items():
        if isinstance(value, str):
            rendered = value
        else:
            rendered = json.dumps(value, ensure_ascii=False)
        lines.append(f"<{key}>{rendered}</{key}>")
    lines.append(f"</{name}>")
    return "\n".join(lines)
