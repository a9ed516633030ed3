"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from pagegen.core.config import Settings
from pagegen.schemas.generation import GenerationConfig


def test_generation_config_from_env(monkeypatch):
    monkeypatch.setenv("GENERATION_TOP_K", "7")
    monkeypatch.setenv("GENERATION_MIN_SCORE", "0.55")
    monkeypatch.setenv("GENERATION_INCLUDE_FACTS", "false")
    monkeypatch.setenv("GENERATION_MAX_CONTEXT_TOKENS", "2000")

    settings = Settings()
    config = settings.generation_config()

    assert config.top_k == 7
    assert config.min_score == 0.55
    assert config.include_facts is False
    assert config.max_tokens_section == 4000
    assert settings.max_context_tokens == 2000


def test_llm_provider_from_env(monkeypatch):
    monkeypatch.setenv("LLM_PROVIDER", "gemini")

    assert Settings().llm_provider == "gemini"


def test_generation_config_defaults():
    config = GenerationConfig()

    assert config.top_k == 15
    assert config.min_score == 0.4
    assert config.max_tokens_outline == 1000
    assert config.max_tokens_section == 4000
    assert config.temperature == 0.4
    assert config.include_facts is True
    assert config.max_facts == 30


def test_generation_config_rejects_unknown_options():
    with pytest.raises(ValidationError):
        GenerationConfig(top_k=5, max_pages=3)


@pytest.mark.parametrize(
    "overrides",
    [{"top_k": 0}, {"min_score": 1.5}, {"temperature": -0.1}, {"max_facts": -1}],
)
def test_generation_config_rejects_out_of_range_values(overrides):
    with pytest.raises(ValidationError):
        GenerationConfig(**overrides)
