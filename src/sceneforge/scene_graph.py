"""Optimistic, path-indexed mirror of the remote scene hierarchy.

The mirror is advisory: it records the effects of proposals so later turns can
reason about what exists, and is replaced wholesale whenever the live
environment sends a full snapshot.
"""

from __future__ import annotations

from collections import deque
import copy
import re
from typing import Any, Iterable

from pydantic import BaseModel, Field


ROOT = "game"
DEFAULT_PARENT = "game.Workspace"
SERVICE_HEADS = frozenset(
    {
        "Workspace",
        "ReplicatedStorage",
        "ReplicatedFirst",
        "ServerStorage",
        "ServerScriptService",
        "StarterGui",
        "StarterPack",
        "StarterPlayer",
        "Lighting",
        "Players",
        "Teams",
        "SoundService",
        "TextService",
        "CollectionService",
    }
)
ROOT_PATHS = frozenset({ROOT} | {f"{ROOT}.{head}" for head in SERVICE_HEADS})
_SERVICE_LOOKUP = {head.lower(): head for head in SERVICE_HEADS}
_IDENTIFIER_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

MAX_DEPTH = 10
MAX_NODES = 2000


class SceneNode(BaseModel):
    path: str
    parent_path: str | None = None
    name: str
    class_name: str = "Instance"
    props: dict[str, Any] = Field(default_factory=dict)

    def summary(self) -> dict[str, str]:
        return {"path": self.path, "name": self.name, "className": self.class_name}


class SceneGraph(BaseModel):
    nodes: dict[str, SceneNode] = Field(default_factory=dict)


def needs_brackets(name: str) -> bool:
    return _IDENTIFIER_RE.fullmatch(name) is None


def quote_segment(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'["{escaped}"]'


def split_segments(path: str) -> list[str]:
    """Split a dotted path into unquoted segments, honouring bracketed names."""
    segments: list[str] = []
    buffer: list[str] = []
    index = 0
    length = len(path)

    def flush() -> None:
        text = "".join(buffer).strip()
        if text:
            segments.append(text)
        buffer.clear()

    while index < length:
        char = path[index]
        if char == ".":
            flush()
            index += 1
            continue
        if char == "[":
            flush()
            index += 1
            while index < length and path[index] == " ":
                index += 1
            name_chars: list[str] = []
            if index < length and path[index] in "\"'":
                quote = path[index]
                index += 1
                while index < length and path[index] != quote:
                    if path[index] == "\\" and index + 1 < length:
                        index += 1
                    name_chars.append(path[index])
                    index += 1
                index += 1
                while index < length and path[index] != "]":
                    index += 1
            else:
                while index < length and path[index] != "]":
                    name_chars.append(path[index])
                    index += 1
                name_chars = list("".join(name_chars).strip())
            index += 1
            segments.append("".join(name_chars))
            continue
        buffer.append(char)
        index += 1
    flush()
    return segments


def build_path(segments: Iterable[str]) -> str:
    path = ""
    for segment in segments:
        if not path:
            path = segment if not needs_brackets(segment) else quote_segment(segment)
        elif needs_brackets(segment):
            path = f"{path}{quote_segment(segment)}"
        else:
            path = f"{path}.{segment}"
    return path


def normalize_path(path: str | None) -> str | None:
    """Canonical root-qualified form of a path; idempotent."""
    if not isinstance(path, str):
        return None
    segments = split_segments(path.strip())
    if not segments:
        return None
    head = segments[0]
    if head.lower() == ROOT:
        segments[0] = ROOT
        if len(segments) > 1 and segments[1].lower() in _SERVICE_LOOKUP:
            segments[1] = _SERVICE_LOOKUP[segments[1].lower()]
    elif head.lower() in _SERVICE_LOOKUP:
        segments = [ROOT, _SERVICE_LOOKUP[head.lower()], *segments[1:]]
    return build_path(segments)


def anchor_path(path: str | None, default_parent: str = DEFAULT_PARENT) -> str | None:
    """Normalize path and place it under default_parent unless it already starts at game."""
    normalized = normalize_path(path)
    if normalized is None:
        return None
    if split_segments(normalized)[0] == ROOT:
        return normalized
    base = normalize_path(default_parent) or DEFAULT_PARENT
    return build_path([*split_segments(base), *split_segments(normalized)])


def join_path(parent: str | None, name: str) -> str:
    """Build a child path, bracket-quoting names that are not identifiers."""
    parent_path = normalize_path(parent) or DEFAULT_PARENT
    if needs_brackets(name):
        return f"{parent_path}{quote_segment(name)}"
    return f"{parent_path}.{name}"


def split_path(path: str) -> tuple[str | None, str]:
    """Return (parent path, unquoted name); the parent is None at the root."""
    normalized = normalize_path(path)
    if normalized is None:
        return None, ""
    segments = split_segments(normalized)
    if len(segments) == 1:
        return None, segments[0]
    return build_path(segments[:-1]), segments[-1]


def is_root_path(path: str | None) -> bool:
    return normalize_path(path) in ROOT_PATHS


def is_descendant(path: str, ancestor: str) -> bool:
    return path.startswith(f"{ancestor}.") or path.startswith(f"{ancestor}[")


def _rebase(path: str, old_prefix: str, new_prefix: str) -> str:
    if path == old_prefix:
        return new_prefix
    return f"{new_prefix}{path[len(old_prefix):]}"


class SceneGraphSimulator:
    """Mutators and bounded queries over a SceneGraph."""

    def __init__(self, graph: SceneGraph | None = None) -> None:
        self.graph = graph if graph is not None else SceneGraph()

    @property
    def nodes(self) -> dict[str, SceneNode]:
        return self.graph.nodes

    def get(self, path: str) -> SceneNode | None:
        normalized = normalize_path(path)
        if normalized is None:
            return None
        return self.nodes.get(normalized)

    def exists(self, path: str) -> bool:
        return self.get(path) is not None

    def occupied(self, path: str) -> bool:
        """True when a node exists at path or anywhere below it."""
        normalized = normalize_path(path)
        if normalized is None:
            return False
        return any(key == normalized or is_descendant(key, normalized) for key in self.nodes)

    def create(
        self,
        class_name: str,
        parent_path: str | None = None,
        props: dict[str, Any] | None = None,
        path: str | None = None,
    ) -> SceneNode:
        props_copy = copy.deepcopy(props or {})
        name_prop = props_copy.get("Name")
        if path:
            node_path = normalize_path(path) or join_path(parent_path, class_name)
        else:
            name = name_prop if isinstance(name_prop, str) and name_prop else class_name
            node_path = join_path(parent_path, name)
        parent, name = split_path(node_path)
        props_copy.setdefault("Name", name)
        existing = self.nodes.get(node_path)
        merged = {**existing.props, **props_copy} if existing else props_copy
        node = SceneNode(
            path=node_path, parent_path=parent, name=name, class_name=class_name, props=merged
        )
        self.nodes[node_path] = node
        return node

    def set_properties(self, path: str, props: dict[str, Any]) -> SceneNode | None:
        normalized = normalize_path(path)
        if normalized is None:
            return None
        node = self.nodes.get(normalized)
        if node is None:
            parent, name = split_path(normalized)
            node = SceneNode(path=normalized, parent_path=parent, name=name)
            self.nodes[normalized] = node
        updates = copy.deepcopy(props)
        new_name = updates.get("Name")
        node.props = {**node.props, **updates}
        if isinstance(new_name, str) and new_name and new_name != node.name:
            renamed = self.rename(normalized, new_name)
            if renamed is None:
                node.props["Name"] = node.name
                return node
            return self.nodes.get(renamed)
        return node

    def rename(self, path: str, new_name: str) -> str | None:
        """Rename a node and rewrite every descendant path; returns the new path."""
        normalized = normalize_path(path)
        if normalized is None:
            return None
        parent, _ = split_path(normalized)
        new_path = join_path(parent, new_name) if parent else build_path([new_name])
        if new_path != normalized and self.occupied(new_path):
            return None
        moved: dict[str, SceneNode] = {}
        for key, node in list(self.nodes.items()):
            if key != normalized and not is_descendant(key, normalized):
                continue
            updated = node.model_copy(deep=True)
            updated.path = _rebase(key, normalized, new_path)
            if node.parent_path == normalized or (
                node.parent_path and is_descendant(node.parent_path, normalized)
            ):
                updated.parent_path = _rebase(node.parent_path, normalized, new_path)
            if key == normalized:
                updated.name = new_name
                updated.props["Name"] = new_name
            moved[key] = updated
            del self.nodes[key]
        for node in moved.values():
            self.nodes[node.path] = node
        return new_path if moved else None

    def delete(self, path: str) -> list[str]:
        normalized = normalize_path(path)
        if normalized is None:
            return []
        removed = [
            key for key in self.nodes if key == normalized or is_descendant(key, normalized)
        ]
        for key in removed:
            del self.nodes[key]
        return removed

    def list_children(
        self,
        parent_path: str,
        depth: int = 1,
        max_nodes: int = 200,
        class_whitelist: Iterable[str] | None = None,
    ) -> list[dict[str, str]]:
        """Bounded breadth-first listing, each level ordered by name."""
        parent = normalize_path(parent_path)
        if parent is None:
            return []
        depth_limit = max(0, min(MAX_DEPTH, int(depth)))
        if depth_limit == 0:
            return []
        cap = max(1, min(MAX_NODES, int(max_nodes)))
        allowed = set(class_whitelist) if class_whitelist else None

        by_parent: dict[str | None, list[SceneNode]] = {}
        for node in self.nodes.values():
            by_parent.setdefault(node.parent_path, []).append(node)

        results: list[dict[str, str]] = []
        queue: deque[tuple[str, int]] = deque([(parent, 0)])
        while queue and len(results) < cap:
            current, level = queue.popleft()
            next_level = level + 1
            if next_level > depth_limit:
                continue
            children = sorted(by_parent.get(current, []), key=lambda item: item.name.lower())
            for child in children:
                if allowed is None or child.class_name in allowed:
                    results.append(child.summary())
                    if len(results) >= cap:
                        break
                if next_level < depth_limit:
                    queue.append((child.path, next_level))
        return results

    def get_properties(
        self,
        path: str,
        keys: Iterable[str] | None = None,
        include_attributes: bool = False,
    ) -> dict[str, Any]:
        """Full property bag, a subset of keys, or attribute entries under '@attributes'."""
        node = self.get(path)
        if node is None:
            return {}
        source = node.props
        wanted = list(keys or [])
        if not wanted:
            result = copy.deepcopy(source)
            if include_attributes:
                result["@attributes"] = self._attributes(source)
            return result
        result: dict[str, Any] = {}
        for key in wanted:
            if key == "@attributes":
                if include_attributes:
                    result["@attributes"] = self._attributes(source)
                continue
            if key in source:
                result[key] = copy.deepcopy(source[key])
        return result

    @staticmethod
    def _attributes(source: dict[str, Any]) -> dict[str, Any]:
        return {key[1:]: copy.deepcopy(value) for key, value in source.items() if key.startswith("@")}

    def hydrate(self, snapshot_nodes: Iterable[dict[str, Any]]) -> int:
        """Replace the whole table from a live snapshot; returns the node count."""
        fresh: dict[str, SceneNode] = {}
        for entry in snapshot_nodes:
            if not isinstance(entry, dict):
                continue
            raw_path = entry.get("path")
            class_name = entry.get("className") or entry.get("class_name")
            path = normalize_path(raw_path) if isinstance(raw_path, str) else None
            if path is None or not isinstance(class_name, str):
                continue
            parent, name = split_path(path)
            node_name = entry.get("name") if isinstance(entry.get("name"), str) else name
            props = copy.deepcopy(entry.get("props") or {})
            props.setdefault("Name", node_name)
            fresh[path] = SceneNode(
                path=path,
                parent_path=normalize_path(entry.get("parentPath")) or parent,
                name=node_name,
                class_name=class_name,
                props=props,
            )
        self.graph.nodes = fresh
        return len(fresh)

    def apply_op(self, op: dict[str, Any]) -> None:
        """Record the effect of one structural op (preview or executor result)."""
        kind = op.get("op")
        if kind == "create_instance" and isinstance(op.get("className"), str):
            self.create(
                op["className"],
                op.get("parentPath"),
                props=op.get("props") if isinstance(op.get("props"), dict) else None,
                path=op.get("path") if isinstance(op.get("path"), str) else None,
            )
        elif kind == "set_properties" and isinstance(op.get("path"), str) and op.get("props"):
            self.set_properties(op["path"], op["props"])
        elif kind == "rename_instance" and isinstance(op.get("path"), str):
            if isinstance(op.get("newName"), str):
                self.rename(op["path"], op["newName"])
        elif kind == "delete_instance" and isinstance(op.get("path"), str):
            self.delete(op["path"])

    def apply_op_result(self, body: Any) -> bool:
        """Record an op the editor reports as executed. Returns False for unusable bodies."""
        if not isinstance(body, dict) or not isinstance(body.get("op"), str):
            return False
        if body["op"] == "create_instance" and not isinstance(body.get("parentPath"), str):
            return False
        self.apply_op(body)
        return True

    def apply_ops(self, ops: Iterable[dict[str, Any]]) -> None:
        for op in ops:
            if isinstance(op, dict):
                self.apply_op(op)
