"""Definition listing and text search over the known script sources."""

from __future__ import annotations

from dataclasses import asdict, dataclass
import re
from typing import Any, Mapping

from sceneforge.scene_graph import is_descendant, normalize_path


MAX_SNIPPET_CHARS = 240
_DEFINITION_RE = re.compile(r"(?:local\s+)?function\s+([A-Za-z0-9_.:]+)")


@dataclass
class Definition:
    path: str
    line: int
    name: str


@dataclass
class SearchHit:
    path: str
    line: int
    snippet: str


def _under_root(path: str, root: str | None) -> bool:
    if root is None:
        return True
    return path == root or is_descendant(path, root)


def _scoped(scripts: Mapping[str, str], root: str | None) -> list[tuple[str, str]]:
    normalized_root = normalize_path(root) if root else None
    return [
        (path, scripts[path])
        for path in sorted(scripts)
        if _under_root(normalize_path(path) or path, normalized_root)
    ]


def _clamp(text: str) -> str:
    if len(text) <= MAX_SNIPPET_CHARS:
        return text
    return f"{text[:MAX_SNIPPET_CHARS]}..."


def list_definitions(
    scripts: Mapping[str, str], root: str | None = None, limit: int = 200
) -> list[Definition]:
    """Function definitions (``function X`` / ``local function X``), in path then line order."""
    found: list[Definition] = []
    for path, text in _scoped(scripts, root):
        for index, line in enumerate(text.splitlines(), start=1):
            match = _DEFINITION_RE.search(line)
            if match:
                found.append(Definition(path=path, line=index, name=match.group(1)))
                if len(found) >= limit:
                    return found
    return found


def search_scripts(
    scripts: Mapping[str, str],
    query: str,
    root: str | None = None,
    limit: int = 20,
    case_sensitive: bool = False,
) -> list[SearchHit]:
    if not query:
        return []
    pattern = re.compile(re.escape(query), 0 if case_sensitive else re.IGNORECASE)
    hits: list[SearchHit] = []
    for path, text in _scoped(scripts, root):
        for index, line in enumerate(text.splitlines(), start=1):
            if pattern.search(line):
                hits.append(SearchHit(path=path, line=index, snippet=_clamp(line.strip())))
                if len(hits) >= limit:
                    return hits
    return hits


def as_dicts(items: list[Any]) -> list[dict[str, Any]]:
    return [asdict(item) for item in items]
