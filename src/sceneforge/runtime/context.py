"""Runtime context helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import threading
from uuid import uuid4

from sceneforge.failures import InvocationCancelled


class CancellationToken:
    """Cooperative cancellation flag checked at turn boundaries and before backend calls."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise InvocationCancelled(f"Invocation cancelled: {self.reason}")


@dataclass
class RunContext:
    task_id: str
    run_id: str
    started_at: datetime
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    labels: dict[str, str] = field(default_factory=dict)


def new_run_context(
    task_id: str,
    cancel_token: CancellationToken | None = None,
    labels: dict[str, str] | None = None,
) -> RunContext:
    return RunContext(
        task_id=task_id,
        run_id=str(uuid4()),
        started_at=datetime.now(timezone.utc),
        cancel_token=cancel_token or CancellationToken(),
        labels=labels or {},
    )
