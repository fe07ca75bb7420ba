"""Base model interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from sceneforge.runtime.context import CancellationToken


class ModelResponse(BaseModel):
    text: str = ""
    provider: str | None = None
    model: str | None = None


class BaseChatModel(ABC):
    """Abstract chat backend: system prompt plus role/content messages in, text out."""

    provider: str = "unknown"

    @abstractmethod
    def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        cancel_token: "CancellationToken | None" = None,
    ) -> ModelResponse:
        """Send chat request and return model response."""
        raise NotImplementedError
