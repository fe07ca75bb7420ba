"""OpenAI-compatible chat client (OpenRouter, NVIDIA and self-hosted endpoints)."""

from __future__ import annotations

import json
import time
from typing import Any
from urllib.parse import urlparse, urlunparse

import httpx

from sceneforge.failures import BackendError, InvocationCancelled
from sceneforge.models.base import BaseChatModel, ModelResponse
from sceneforge.util.logging import get_logger, redact


class OpenAICompatError(BackendError):
    """Raised when an OpenAI-compatible backend returns an error."""


def post_with_retries(
    url: str,
    headers: dict[str, str],
    payload: dict[str, Any],
    *,
    provider: str,
    timeout_seconds: float,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    transport: httpx.BaseTransport | None = None,
    cancel_token=None,
    secrets: tuple[str | None, ...] = (),
    error_cls: type[BackendError] = BackendError,
) -> dict[str, Any]:
    """POST JSON, retrying 429/5xx and transport errors with exponential backoff."""
    logger = get_logger(f"sceneforge.models.{provider}")
    timeout = httpx.Timeout(timeout_seconds)
    attempts = max(1, max_retries)
    last_error: Exception | None = None
    for attempt in range(attempts):
        if cancel_token is not None and cancel_token.cancelled:
            raise InvocationCancelled("Invocation cancelled before backend call")
        try:
            with httpx.Client(timeout=timeout, transport=transport) as client:
                response = client.post(url, headers=headers, json=payload)
            if response.status_code == 429 or response.status_code >= 500:
                raise error_cls(
                    f"Retryable error {response.status_code}: {response.text[:200]}",
                    provider=provider,
                    status_code=response.status_code,
                )
            if response.status_code >= 400:
                raise error_cls(
                    f"{provider} error {response.status_code}: {response.text[:200]}",
                    provider=provider,
                    status_code=response.status_code,
                )
            try:
                data = response.json()
            except json.JSONDecodeError as exc:
                raise error_cls("Malformed JSON response", provider=provider) from exc
            if not isinstance(data, dict):
                raise error_cls("Unexpected response shape", provider=provider)
            return data
        except error_cls as exc:
            last_error = exc
            if exc.status_code is not None and exc.status_code < 500 and exc.status_code != 429:
                raise
        except httpx.HTTPError as exc:
            last_error = exc
        logger.warning(
            "provider.retry provider=%s attempt=%s/%s error=%s",
            provider,
            attempt + 1,
            attempts,
            redact(str(last_error), secrets),
        )
        if attempt < attempts - 1:
            time.sleep(retry_delay * 2**attempt)
    raise error_cls(
        f"{provider} request failed: {redact(str(last_error), secrets)}", provider=provider
    )


class OpenAICompatChatModel(BaseChatModel):
    """HTTP client for OpenAI-compatible chat/completions."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        provider: str = "openrouter",
        timeout_seconds: float = 30,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        extra_headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        normalized = base_url.strip()
        if not normalized.startswith(("http://", "https://")):
            normalized = f"https://{normalized}"
        self.base_url = normalized.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.extra_headers = extra_headers or {}
        self.transport = transport

    def _build_url(self) -> str:
        parsed = urlparse(self.base_url)
        path = parsed.path or ""
        if path in {"", "/"}:
            base_path = "/v1"
        else:
            base_path = path.rstrip("/")
            segments = [segment for segment in base_path.split("/") if segment]
            if "v1" not in segments:
                base_path = f"{base_path}/v1"
        if base_path.endswith("/chat/completions"):
            final_path = base_path
        else:
            final_path = f"{base_path}/chat/completions"
        return urlunparse(parsed._replace(path=final_path, params="", query="", fragment=""))

    def _request_payload(self, system_prompt: str, messages: list[dict[str, Any]]) -> dict[str, Any]:
        chat: list[dict[str, Any]] = []
        if system_prompt.strip():
            chat.append({"role": "system", "content": system_prompt})
        chat.extend({"role": m["role"], "content": m["content"]} for m in messages)
        return {"model": self.model, "messages": chat}

    def chat(
        self,
        system_prompt: str,
        messages: list[dict[str, Any]],
        cancel_token=None,
    ) -> ModelResponse:
        headers = {"Authorization": f"Bearer {self.api_key}", **self.extra_headers}
        data = post_with_retries(
            self._build_url(),
            headers,
            self._request_payload(system_prompt, messages),
            provider=self.provider,
            timeout_seconds=self.timeout_seconds,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
            transport=self.transport,
            cancel_token=cancel_token,
            secrets=(self.api_key,),
            error_cls=OpenAICompatError,
        )
        choices = data.get("choices") or [{}]
        message = choices[0].get("message", {}) if isinstance(choices[0], dict) else {}
        content = message.get("content")
        return ModelResponse(
            text=content if isinstance(content, str) else "",
            provider=self.provider,
            model=self.model,
        )
