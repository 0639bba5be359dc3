"""Provider selection tests."""

import logging

from branchwork.ai import ChatCompletionsGenerator, build_generator
from branchwork.config import Settings


def _settings(**overrides):
    values = dict(
        _env_file=None,
        ai_provider=None,
        openai_api_key=None,
        xai_api_key=None,
        ollama_enabled=False,
    )
    values.update(overrides)
    return Settings(**values)


def test_nothing_configured_returns_none():
    assert build_generator(_settings()) is None


def test_auto_detect_prefers_openai():
    generator = build_generator(_settings(openai_api_key="sk-openai", xai_api_key="xai-key"))

    assert isinstance(generator, ChatCompletionsGenerator)
    assert generator.name == "openai"
    assert generator.default_model == "gpt-4o-mini"
    assert generator.api_key == "sk-openai"


def test_auto_detect_falls_through_to_ollama():
    generator = build_generator(_settings(ollama_enabled=True, ai_max_retries=5))

    assert generator.name == "ollama"
    assert generator.base_url == "http://localhost:11434/v1"
    assert generator.api_key is None
    assert generator.max_retries == 5


def test_explicit_provider_wins():
    generator = build_generator(
        _settings(ai_provider="xai", openai_api_key="sk-openai", xai_api_key="xai-key")
    )

    assert generator.name == "xai"
    assert generator.default_model == "grok-3-fast"


def test_unavailable_explicit_provider_falls_back(caplog):
    with caplog.at_level(logging.WARNING, logger="branchwork.ai.selector"):
        generator = build_generator(_settings(ai_provider="xai", openai_api_key="sk-openai"))

    assert generator.name == "openai"
    assert 'Requested AI provider "xai" is not available' in caplog.text
