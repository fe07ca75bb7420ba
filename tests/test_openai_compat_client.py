from __future__ import annotations

import json

import pytest

import httpx

from sceneforge.failures import BackendError, InvocationCancelled
from sceneforge.models.openai_compat import OpenAICompatChatModel, OpenAICompatError
from sceneforge.runtime.context import CancellationToken


def _client(handler, **kwargs) -> OpenAICompatChatModel:
    return OpenAICompatChatModel(
        base_url=kwargs.pop("base_url", "https://example.com/v1/"),
        api_key="test-key",
        model="kimi-test",
        retry_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_system_prompt_is_prepended():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "<complete></complete>"}}]})

    response = _client(handler).chat("SYSTEM", [{"role": "user", "content": "hi"}])
    assert response.text == "<complete></complete>"
    assert response.provider == "openrouter"
    data = json.loads(requests[0].content.decode())
    assert data["model"] == "kimi-test"
    assert data["messages"][0] == {"role": "system", "content": "SYSTEM"}
    assert data["messages"][1] == {"role": "user", "content": "hi"}
    assert requests[0].url == httpx.URL("https://example.com/v1/chat/completions")
    assert requests[0].headers["Authorization"] == "Bearer test-key"


@pytest.mark.parametrize(
    ("base_url", "expected"),
    [
        ("http://host:8000", "http://host:8000/v1/chat/completions"),
        ("https://integrate.api.nvidia.com/v1", "https://integrate.api.nvidia.com/v1/chat/completions"),
        ("https://openrouter.ai/api/v1", "https://openrouter.ai/api/v1/chat/completions"),
        ("https://example.com/v1/chat/completions", "https://example.com/v1/chat/completions"),
    ],
)
def test_url_building(base_url, expected):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    _client(handler, base_url=base_url).chat("", [{"role": "user", "content": "hi"}])
    assert str(requests[0].url) == expected


def test_retries_server_errors_then_succeeds():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] < 3:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    response = _client(handler, max_retries=3).chat("", [{"role": "user", "content": "hi"}])
    assert response.text == "ok"
    assert calls["count"] == 3


def test_client_errors_are_not_retried():
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        return httpx.Response(401, text="bad key")

    with pytest.raises(OpenAICompatError) as excinfo:
        _client(handler).chat("", [{"role": "user", "content": "hi"}])
    assert calls["count"] == 1
    assert excinfo.value.status_code == 401
    assert isinstance(excinfo.value, BackendError)


def test_exhausted_retries_raise_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="slow down")

    with pytest.raises(BackendError):
        _client(handler, max_retries=2).chat("", [{"role": "user", "content": "hi"}])


def test_cancelled_token_stops_before_request():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

    token = CancellationToken()
    token.cancel("user stopped")
    with pytest.raises(InvocationCancelled):
        _client(handler).chat("", [{"role": "user", "content": "hi"}], cancel_token=token)
    assert calls == []
