"""History trimming for long-running tasks."""

from __future__ import annotations

from sceneforge.state import ChatMessage


_ENTRY_CHARS = 160
_SUMMARY_CHARS = 2000
_SUMMARY_HEADER = "Summary of earlier conversation:"


def _entry(message: ChatMessage) -> str:
    content = " ".join(message.content.split())
    if len(content) > _ENTRY_CHARS:
        content = f"{content[: _ENTRY_CHARS - 3]}..."
    return f"- {message.role}: {content}"


def _is_summary(message: ChatMessage) -> bool:
    return message.role == "system" and message.content.startswith(_SUMMARY_HEADER)


def _summarize(carried: list[str], messages: list[ChatMessage]) -> str:
    lines = [*carried, *(_entry(message) for message in messages)]
    # Oldest lines go first when the summary outgrows its budget.
    while lines and len(_SUMMARY_HEADER) + sum(len(line) + 1 for line in lines) > _SUMMARY_CHARS:
        lines.pop(0)
    return "\n".join([_SUMMARY_HEADER, *lines])


def trim_history(
    history: list[ChatMessage],
    max_history: int = 40,
    keep_recent: int = 20,
) -> list[ChatMessage]:
    """Collapse everything but the most recent entries into one summary message.

    Returns history unchanged while it is within max_history. An earlier summary
    is folded into the new one.
    """
    max_history = max(1, max_history)
    keep_recent = max(1, min(keep_recent, max_history))
    if len(history) <= max_history:
        return list(history)
    older = history[:-keep_recent]
    recent = history[-keep_recent:]
    carried: list[str] = []
    if older and _is_summary(older[0]):
        carried = [line for line in older[0].content.splitlines()[1:] if line]
    older_messages = [message for message in older if not _is_summary(message)]
    stamp = older[-1].at if older else recent[0].at
    return [ChatMessage(role="system", content=_summarize(carried, older_messages), at=stamp), *recent]
