"""Plan tracking for multi-step tasks."""

from __future__ import annotations

from dataclasses import dataclass
import re

from pydantic import BaseModel, Field


_PUNCT_RE = re.compile(r"[^\w\s]")
_ARTICLES = {"a", "an", "the"}


class PlanState(BaseModel):
    steps: list[str] = Field(default_factory=list)
    completed: list[str] = Field(default_factory=list)
    current_index: int = 0
    notes: str | None = None


@dataclass(frozen=True)
class PlanChange:
    changed: bool
    state: PlanState
    message: str

    def as_result(self) -> dict[str, object]:
        return {
            "changed": self.changed,
            "message": self.message,
            "steps": list(self.state.steps),
            "completed": list(self.state.completed),
            "currentIndex": self.state.current_index,
            "notes": self.state.notes,
        }


def _singular(word: str) -> str:
    if len(word) > 3 and word.endswith("ies"):
        return f"{word[:-3]}y"
    if len(word) > 3 and word.endswith(("ches", "shes", "sses", "xes", "zes")):
        return word[:-2]
    if len(word) > 2 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def normalize_step(step: str) -> str:
    """Reduce a step to its subject nouns: case, punctuation, articles and plurals."""
    words = _PUNCT_RE.sub(" ", step.lower()).split()
    return " ".join(_singular(word) for word in words if word not in _ARTICLES)


def same_steps(left: list[str], right: list[str]) -> bool:
    if len(left) != len(right):
        return False
    return all(normalize_step(a) == normalize_step(b) for a, b in zip(left, right))


class PlanTracker:
    """Mutates a PlanState while keeping completed steps and the cursor valid."""

    def __init__(self, state: PlanState | None = None) -> None:
        self.state = state if state is not None else PlanState()

    @property
    def has_plan(self) -> bool:
        return bool(self.state.steps)

    @property
    def current_step(self) -> str | None:
        if not self.state.steps:
            return None
        return self.state.steps[self.state.current_index]

    def start(self, steps: list[str]) -> PlanChange:
        cleaned = [step.strip() for step in steps if step and step.strip()]
        if self.state.steps and same_steps(self.state.steps, cleaned):
            return PlanChange(False, self.state, "Plan unchanged; continue with the current step.")
        self.state.steps = cleaned
        self.state.completed = []
        self.state.current_index = 0
        self.state.notes = None
        return PlanChange(True, self.state, f"Plan started with {len(cleaned)} steps.")

    def _resolve(self, step: int | str | None) -> int | None:
        if step is None or not self.state.steps:
            return None
        if isinstance(step, str) and step.strip().isdigit():
            step = int(step.strip())
        if isinstance(step, int):
            if 0 <= step < len(self.state.steps):
                return step
            return None
        target = normalize_step(step)
        for index, candidate in enumerate(self.state.steps):
            if candidate == step or normalize_step(candidate) == target:
                return index
        return None

    def update(
        self,
        completed_step: int | str | None = None,
        next_step: int | str | None = None,
        notes: str | None = None,
    ) -> PlanChange:
        changed = False
        completed_index = self._resolve(completed_step)
        if completed_index is not None:
            name = self.state.steps[completed_index]
            if name not in self.state.completed:
                done = set(self.state.completed) | {name}
                self.state.completed = [step for step in self.state.steps if step in done]
                changed = True
        next_index = self._resolve(next_step)
        if next_index is None and completed_index is not None:
            next_index = self._first_open(completed_index)
        if next_index is not None and next_index != self.state.current_index:
            self.state.current_index = next_index
            changed = True
        if notes is not None and notes != self.state.notes:
            self.state.notes = notes
            changed = True
        self._clamp()
        message = f"Current step: {self.current_step}" if self.current_step else "No plan recorded."
        return PlanChange(changed, self.state, message)

    def _first_open(self, after: int) -> int:
        steps = self.state.steps
        for index in list(range(after + 1, len(steps))) + list(range(0, after + 1)):
            if steps[index] not in self.state.completed:
                return index
        return len(steps) - 1

    def _clamp(self) -> None:
        upper = max(0, len(self.state.steps) - 1)
        self.state.current_index = max(0, min(upper, self.state.current_index))
