import pytest

from llm.llm_client import LLMClient, LLMOutputError, provider_from_env
from llm.providers.mock_provider import MockProvider
from llm.providers.ollama_provider import OllamaProvider


def test_llm_json_array_is_rejected(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory('[{"title": "Call mom"}]'))
    with pytest.raises(LLMOutputError):
        client.complete_json(system="Return JSON", user="Call mom")


def test_llm_broken_json_inside_braces(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory('Result: {"title": "Call mom",} done'))
    with pytest.raises(LLMOutputError):
        client.complete_json(system="Return JSON", user="Call mom")


def test_generate_text_is_stripped(fake_provider_factory):
    client = LLMClient(provider=fake_provider_factory("  Focus on taxes.\n"))
    assert client.generate_text(system="digest", user="...") == "Focus on taxes."


def test_provider_selection(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "mock")
    assert isinstance(provider_from_env(), MockProvider)
    monkeypatch.setenv("LLM_PROVIDER", "Ollama")
    assert isinstance(provider_from_env(), OllamaProvider)


def test_transcription_unsupported_by_default():
    with pytest.raises(NotImplementedError):
        MockProvider().transcribe(b"\x00\x01")
