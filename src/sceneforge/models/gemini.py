"""Gemini generateContent client."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from sceneforge.failures import BackendError
from sceneforge.models.base import BaseChatModel, ModelResponse
from sceneforge.models.openai_compat import post_with_retries


DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiError(BackendError):
    """Raised when Gemini rejects, blocks or fails a request."""


class GeminiChatModel(BaseChatModel):
    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        base_url: str | None = None,
        timeout_seconds: float = 30,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = (base_url or DEFAULT_GEMINI_BASE_URL).strip().rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.transport = transport

    def _build_url(self) -> str:
        return f"{self.base_url}/{self.model}:generateContent?key={quote(self.api_key, safe='')}"

    def _request_payload(self, system_prompt: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if message["role"] == "assistant" else "user",
                    "parts": [{"text": message["content"]}],
                }
                for message in messages
            ]
        }
        if system_prompt.strip():
            payload["systemInstruction"] = {"role": "system", "parts": [{"text": system_prompt}]}
        return payload

    def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        cancel_token=None,
    ) -> ModelResponse:
        data = post_with_retries(
            self._build_url(),
            {"Content-Type": "application/json"},
            self._request_payload(system_prompt, messages),
            provider=self.provider,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            transport=self.transport,
            cancel_token=cancel_token,
            secrets=(self.api_key,),
            error_cls=GeminiError,
        )
        candidates = data.get("candidates") or []
        if not candidates:
            raise GeminiError("Gemini returned no candidates", provider=self.provider)
        candidate = candidates[0]
        finish_reason = str(candidate.get("finishReason") or "").upper()
        if "SAFETY" in finish_reason:
            raise GeminiError(f"Gemini blocked the response ({finish_reason})", provider=self.provider)
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
        if not text:
            raise GeminiError("Gemini response was empty", provider=self.provider)
        return ModelResponse(text=text, provider=self.provider, model=self.model)
