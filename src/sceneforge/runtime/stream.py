"""Per-task append-only buffer of status lines, read by cursor."""

from __future__ import annotations

from dataclasses import dataclass
import threading


MAX_CHUNKS_PER_KEY = 200


@dataclass(frozen=True)
class StreamChunk:
    index: int
    text: str


class StreamBuffer:
    """Writers append; readers poll from a cursor and never block writers."""

    def __init__(self, max_per_key: int = MAX_CHUNKS_PER_KEY) -> None:
        self.max_per_key = max(1, max_per_key)
        self._chunks: dict[str, list[StreamChunk]] = {}
        self._next_index: dict[str, int] = {}
        self._condition = threading.Condition()

    def push(self, key: str, text: str) -> StreamChunk:
        with self._condition:
            index = self._next_index.get(key, 0)
            chunk = StreamChunk(index=index, text=text)
            chunks = self._chunks.setdefault(key, [])
            chunks.append(chunk)
            if len(chunks) > self.max_per_key:
                del chunks[: len(chunks) - self.max_per_key]
            self._next_index[key] = index + 1
            self._condition.notify_all()
            return chunk

    def since(self, key: str, cursor: int = 0) -> tuple[list[StreamChunk], int]:
        """Chunks with index >= cursor, plus the cursor to use next time."""
        with self._condition:
            chunks = [chunk for chunk in self._chunks.get(key, []) if chunk.index >= cursor]
            next_cursor = self._next_index.get(key, 0)
        return chunks, max(cursor, next_cursor)

    def wait_for(self, key: str, cursor: int = 0, timeout: float = 25.0) -> tuple[list[StreamChunk], int]:
        """Long-poll: block up to timeout for chunks past cursor."""
        with self._condition:
            self._condition.wait_for(lambda: self._next_index.get(key, 0) > cursor, timeout=timeout)
        return self.since(key, cursor)

    def clear(self, key: str) -> None:
        with self._condition:
            self._chunks.pop(key, None)
