"""Scripted chat model for offline runs and tests."""

from __future__ import annotations

from typing import Any

from sceneforge.failures import BackendError
from sceneforge.models.base import BaseChatModel, ModelResponse


class MockChatModel(BaseChatModel):
    """Returns scripted responses in order; exceptions in the script are raised."""

    provider = "mock"

    def __init__(self, scripted: list[str | ModelResponse | Exception] | None = None) -> None:
        self._scripted = list(scripted or [])
        self.calls: list[list[dict[str, Any]]] = []
        self.system_prompts: list[str] = []

    def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        cancel_token=None,
    ) -> ModelResponse:
        self.calls.append([dict(message) for message in messages])
        self.system_prompts.append(system_prompt)
        if not self._scripted:
            raise BackendError("Mock script exhausted", provider=self.provider)
        item = self._scripted.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, ModelResponse):
            return item
        return ModelResponse(text=item, provider=self.provider, model="mock")
