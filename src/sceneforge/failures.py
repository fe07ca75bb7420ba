"""Failure taxonomy and helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FailureTag(str, Enum):
    """Standardized failure categories surfaced by the turn loop."""

    PARSE_FAILURE = "PARSE_FAILURE"
    UNKNOWN_ACTION = "UNKNOWN_ACTION"
    VALIDATION_FAILURE = "VALIDATION_FAILURE"
    MISSING_CONTEXT = "MISSING_CONTEXT"
    BACKEND_ERROR = "BACKEND_ERROR"
    CONFLICT = "CONFLICT"
    NO_ACTIONABLE_CALL = "NO_ACTIONABLE_CALL"
    CANCELLED = "CANCELLED"
    CHECKPOINT = "CHECKPOINT_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"


@dataclass(frozen=True)
class FieldFailure:
    """One validation failure, addressed by dotted field path."""

    path: str
    message: str

    def render(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass(frozen=True)
class FailureEvent:
    """Structured failure event recorded during an invocation."""

    tag: FailureTag
    reason: str
    details: dict[str, Any] | None = None


class SceneForgeError(RuntimeError):
    """Base class for errors that terminate an invocation."""

    tag: FailureTag = FailureTag.PARSE_FAILURE

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details = details or {}

    def event(self) -> FailureEvent:
        return FailureEvent(tag=self.tag, reason=str(self), details=self.details or None)


class ActionValidationError(SceneForgeError):
    """Raised when an action keeps failing validation past its retry budget."""

    tag = FailureTag.VALIDATION_FAILURE

    def __init__(self, action: str, failures: list[FieldFailure]) -> None:
        rendered = "; ".join(failure.render() for failure in failures)
        super().__init__(
            f"Validation failed for {action}: {rendered}",
            details={"action": action, "failures": [failure.render() for failure in failures]},
        )
        self.action = action
        self.failures = failures


class BackendError(SceneForgeError):
    """Raised when a model backend call fails."""

    tag = FailureTag.BACKEND_ERROR

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, details={"provider": provider, "status_code": status_code})
        self.provider = provider
        self.status_code = status_code


class ConflictError(SceneForgeError):
    """Raised when content changed since a proposal's pre-image hash was taken."""

    tag = FailureTag.CONFLICT

    def __init__(self, path: str, expected_hash: str, actual_hash: str) -> None:
        super().__init__(
            f"Content of {path} changed since the proposal was made",
            details={"path": path, "expected": expected_hash, "actual": actual_hash},
        )
        self.path = path
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash


class NoActionableCallError(SceneForgeError):
    """Raised when an invocation ends without proposals and fallbacks are disabled."""

    tag = FailureTag.NO_ACTIONABLE_CALL


class ParseFailure(NoActionableCallError):
    tag = FailureTag.PARSE_FAILURE


class UnknownActionError(NoActionableCallError):
    tag = FailureTag.UNKNOWN_ACTION


class MissingContextError(NoActionableCallError):
    tag = FailureTag.MISSING_CONTEXT


EXIT_ERRORS: dict[FailureTag, type[NoActionableCallError]] = {
    FailureTag.PARSE_FAILURE: ParseFailure,
    FailureTag.UNKNOWN_ACTION: UnknownActionError,
    FailureTag.MISSING_CONTEXT: MissingContextError,
}


def exit_error(events: list[FailureEvent], turns: int) -> NoActionableCallError:
    """The error for an invocation that ran out of turns, classified by its last failure."""
    if not events:
        return NoActionableCallError("No actionable tool produced within turn limit", {"turns": turns})
    last = events[-1]
    error_class = EXIT_ERRORS.get(last.tag, NoActionableCallError)
    return error_class(last.reason, {"turns": turns, **(last.details or {})})


class InvocationCancelled(SceneForgeError):
    tag = FailureTag.CANCELLED
