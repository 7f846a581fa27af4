"""Tests for environment-sourced settings."""

import pytest

from config import get_settings


@pytest.mark.parametrize("raw, expected", [("30", 30.0), (" 2.5 ", 2.5)])
def test_upstream_timeout_from_environment(monkeypatch, raw, expected):
    monkeypatch.setenv("CHATJIMMY_TIMEOUT", raw)
    assert get_settings().upstream_timeout == expected


@pytest.mark.parametrize("raw", ["abc", "", "0", "-5", "nan", "inf"])
def test_invalid_timeout_falls_back_to_default(monkeypatch, raw):
    monkeypatch.setenv("CHATJIMMY_TIMEOUT", raw)
    assert get_settings().upstream_timeout == 180.0


def test_defaults_without_environment():
    settings = get_settings()
    assert settings.upstream_timeout == 180.0
    assert settings.default_model == "llama3.1-8B"
    assert settings.upstream_url == "https://chatjimmy.ai/api/chat"
    assert settings.expected_api_key == ""
    assert settings.advertised_models == []
