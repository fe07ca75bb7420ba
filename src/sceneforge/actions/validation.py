"""Per-action input validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from sceneforge.actions.registry import DEFAULT_CATALOG, ActionCatalog
from sceneforge.failures import FieldFailure


@dataclass(frozen=True)
class ValidationOutcome:
    ok: bool
    fields: dict[str, Any] = field(default_factory=dict)
    failures: list[FieldFailure] = field(default_factory=list)

    def render_failures(self) -> str:
        return "\n".join(f"- {failure.render()}" for failure in self.failures)


def _failures_from(exc: ValidationError) -> list[FieldFailure]:
    failures = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        failures.append(FieldFailure(path=path, message=message))
    return failures


def validate_action(
    name: str,
    fields: dict[str, Any] | None,
    catalog: ActionCatalog | None = None,
) -> ValidationOutcome:
    """Validate a coerced field map against the action's declared shape.

    Never raises; failures are returned as (field path, message) pairs.
    """
    catalog = catalog or DEFAULT_CATALOG
    spec = catalog.get(name)
    if spec is None:
        return ValidationOutcome(ok=False, failures=[FieldFailure("", f"unknown action {name}")])
    if not isinstance(fields, dict):
        return ValidationOutcome(
            ok=False, failures=[FieldFailure("", "fields must be a set of named values")]
        )
    try:
        model = spec.input_model.model_validate(fields)
    except ValidationError as exc:
        return ValidationOutcome(ok=False, failures=_failures_from(exc))
    return ValidationOutcome(ok=True, fields=model.normalized())
