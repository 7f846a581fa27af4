"""Tests for the FastAPI front end."""

import json

import pytest
from fastapi.testclient import TestClient

from config import get_settings
from main import create_app, get_http_client


@pytest.fixture
def build_client(make_settings, upstream):
    """Builds a TestClient whose settings and upstream client are overridden."""

    def _build(forced_path=None, **settings_overrides):
        app = create_app(forced_path=forced_path)
        settings = make_settings(**settings_overrides)

        async def _upstream_client():
            async with upstream.client() as client:
                yield client

        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_http_client] = _upstream_client
        return TestClient(app)

    return _build


def test_health_and_trailing_slash(build_client):
    with build_client() as client:
        for path in ("/", "/health", "/health/", "/api", "/api/health/"):
            response = client.get(path)
            assert response.status_code == 200, path
            assert response.json() == {"status": "ok"}
            assert response.headers["content-type"] == "application/json; charset=utf-8"
            assert response.headers["access-control-allow-origin"] == "*"


def test_docs_routes_are_not_exposed(build_client):
    with build_client() as client:
        for path in ("/docs", "/openapi.json"):
            response = client.get(path)
            assert response.status_code == 404
            assert response.json()["error"]["code"] == "not_found"


def test_options_preflight(build_client):
    with build_client(OPENAI_API_KEY="secret") as client:
        response = client.options("/v1/chat/completions")
    assert response.status_code == 204
    assert response.content == b""
    assert response.headers["access-control-allow-methods"] == "GET,POST,OPTIONS"
    assert response.headers["access-control-allow-headers"] == "Authorization,Content-Type"


def test_models_via_alias(build_client):
    with build_client(CHATJIMMY_MODELS="a,b", CHATJIMMY_MODEL="b") as client:
        canonical = client.get("/v1/models").json()
        alias = client.get("/api/v1-models").json()
    assert [m["id"] for m in canonical["data"]] == ["a", "b"]
    assert [m["id"] for m in alias["data"]] == ["a", "b"]


def test_chat_completion_requires_configured_key(build_client, upstream):
    body = {"messages": [{"role": "user", "content": "hi"}]}
    with build_client(OPENAI_API_KEY="secret") as client:
        rejected = client.post("/v1/chat/completions", json=body)
        accepted = client.post(
            "/v1/chat/completions", json=body, headers={"Authorization": "Bearer secret"}
        )
    assert rejected.status_code == 401
    assert rejected.json()["error"]["code"] == "invalid_api_key"
    assert accepted.status_code == 200
    assert len(upstream.requests) == 1


def test_chat_completion_json(build_client, upstream):
    upstream.text = 'Hello<|stats|>{"prefill_tokens":3,"decode_tokens":2}<|/stats|>'
    with build_client() as client:
        response = client.post(
            "/api/v1-chat-completions",
            json={"messages": [{"role": "user", "content": "hi"}]},
        )
    assert response.status_code == 200
    completion = response.json()
    assert completion["choices"][0]["message"]["content"] == "Hello"
    assert completion["usage"]["total_tokens"] == 5


def test_chat_completion_stream(build_client, upstream):
    upstream.text = "all at once"
    with build_client() as client:
        response = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "user", "content": "hi"}], "stream": True},
        )
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"

    frames = [frame for frame in response.text.split("\n\n") if frame]
    assert len(frames) == 3
    assert frames[2] == "data: [DONE]"
    first = json.loads(frames[0][len("data: "):])
    assert first["choices"][0]["delta"] == {"role": "assistant", "content": "all at once"}


def test_non_json_body(build_client):
    with build_client() as client:
        response = client.post(
            "/v1/chat/completions", content=b"hello", headers={"content-type": "text/plain"}
        )
    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Request body must be JSON"


def test_forced_path_app_treats_every_path_as_chat(build_client):
    with build_client(forced_path="/v1/chat/completions") as client:
        response = client.post("/", json={"messages": [{"role": "user", "content": "hi"}]})
        not_allowed = client.get("/")
    assert response.status_code == 200
    assert response.json()["object"] == "chat.completion"
    assert not_allowed.status_code == 405
