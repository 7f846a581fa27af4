"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from config import Settings

PROXY_ENV_VARS = (
    "ALLOWED_ORIGIN",
    "OPENAI_API_KEY",
    "CHATJIMMY_URL",
    "CHATJIMMY_MODEL",
    "CHATJIMMY_MODELS",
    "CHATJIMMY_TOP_K",
    "CHATJIMMY_TIMEOUT",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep the developer's environment and .env file out of the tests."""
    for name in PROXY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        return Settings(_env_file=None, **overrides)

    return _make


class FakeUpstream:
    """Records upstream calls and answers them through httpx.MockTransport."""

    def __init__(self, text: str = "Hello", status_code: int = 200):
        self.text = text
        self.status_code = status_code
        self.error: Exception | None = None
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status_code, text=self.text)

    @property
    def last_payload(self) -> Dict[str, Any]:
        assert self.requests, "upstream was never called"
        return json.loads(self.requests[-1].content)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()
