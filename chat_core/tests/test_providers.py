from chat_core.providers import create_provider
from chat_core.providers.gemini_client import GeminiClient
from chat_core.providers.proxy_client import ProxyClient
from chat_core.providers.registry import (
    build_system_instruction,
    clamp_thinking_budget,
    get_friendly_model_name,
    supports_thinking,
)


def test_create_provider_default(monkeypatch):
    class DummySettings:
        default_provider = "gemini"
        gemini_api_key = "g" * 20
        http_timeout = 1.0
        proxy_url = None

    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    provider = create_provider()
    assert isinstance(provider, GeminiClient)


def test_create_provider_explicit(monkeypatch):
    class DummySettings:
        default_provider = "gemini"
        gemini_api_key = None
        http_timeout = 1.0
        proxy_url = "http://localhost:3000/api/proxy"

    monkeypatch.setattr("chat_core.providers.settings", DummySettings())
    provider = create_provider("PROXY")
    assert isinstance(provider, ProxyClient)


def test_model_capabilities():
    assert supports_thinking("gemini-2.5-flash")
    assert not supports_thinking("gemini-2.5-pro")
    assert not supports_thinking("unknown-model")
    assert get_friendly_model_name("gemini-2.5-pro") == "Pro (Advanced & Powerful)"
    assert get_friendly_model_name("custom") == "custom"


def test_clamp_thinking_budget():
    assert clamp_thinking_budget(-3) == 0
    assert clamp_thinking_budget(3) == 3
    assert clamp_thinking_budget(42) == 5


def test_system_instruction_names_model():
    text = build_system_instruction("gemini-2.5-flash-lite")
    assert "Flash Lite (Ultra Fast)" in text
    assert text.startswith("You are NeuraMorphosis AI")
