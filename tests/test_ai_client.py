from __future__ import annotations

import json

import httpx
import pytest

from feed_engine.ai_client import ChatClient
from feed_engine.errors import AIServiceError


def make_client(handler, **kw) -> ChatClient:
    kw.setdefault("retry_delay_s", 0)
    return ChatClient(
        api_key="sk-test",
        base_url="https://llm.example.com/v1/",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        **kw,
    )


def completion(text: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def test_complete_returns_first_choice_text():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=completion("===DESCRIPTION===\nok"))

    text = make_client(handler, model="test-model").complete("system prompt", "user prompt")

    assert text == "===DESCRIPTION===\nok"
    assert captured["url"] == "https://llm.example.com/v1/chat/completions"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["body"]["model"] == "test-model"
    assert captured["body"]["messages"] == [
        {"role": "system", "content": "system prompt"},
        {"role": "user", "content": "user prompt"},
    ]


def test_server_errors_are_retried_until_success():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(502)
        return httpx.Response(200, json=completion("done"))

    assert make_client(handler).complete("s", "u") == "done"
    assert len(calls) == 3


def test_retries_exhausted_raise_ai_service_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(AIServiceError):
        make_client(handler, max_retries=2).complete("s", "u")
    assert len(calls) == 2


def test_client_errors_are_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"error": "bad key"})

    with pytest.raises(AIServiceError, match="HTTP 401"):
        make_client(handler).complete("s", "u")
    assert len(calls) == 1


def test_malformed_payloads_raise_ai_service_error():
    def not_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html>gateway</html>")

    def no_choices(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    with pytest.raises(AIServiceError):
        make_client(not_json).complete("s", "u")
    with pytest.raises(AIServiceError):
        make_client(no_choices).complete("s", "u")


def test_null_content_is_empty_string():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=completion(None))

    assert make_client(handler).complete("s", "u") == ""


def test_from_settings_requires_api_key(settings):
    assert ChatClient.from_settings(settings) is None

    keyed = settings.model_copy(update={"openai_api_key": "sk-live", "openai_model": "m1"})
    client = ChatClient.from_settings(keyed)
    assert client.model == "m1"
    assert client.api_key == "sk-live"
