"""Application configuration."""

import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pagegen.schemas.generation import GenerationConfig
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)


def find_env_file() -> Optional[Path]:
    """Find .env file in multiple possible locations."""
    current_dir = os.path.dirname(os.path.abspath(__file__))

    possible_paths = [
        os.path.join(current_dir, ".env"),
        os.path.join(os.path.dirname(current_dir), ".env"),
        os.path.join(os.path.dirname(os.path.dirname(current_dir)), ".env"),
    ]

    for path_str in possible_paths:
        if os.path.exists(path_str):
            path = Path(path_str)
            LOGGER.info(f"Found .env file at: {path}")
            return path

    LOGGER.debug("No .env file found in expected locations")
    return None


ENV_FILE = find_env_file()

_SETTINGS_CONFIG = SettingsConfigDict(
    env_file=str(ENV_FILE) if ENV_FILE else None,
    env_file_encoding="utf-8",
    case_sensitive=False,
    extra="ignore",
    env_prefix="",
)


class LLMSettings(BaseSettings):
    """LLM provider settings."""

    provider: str = Field(default="openrouter", validation_alias="LLM_PROVIDER")

    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_MODEL")

    openrouter_api_key: str = Field(default="", validation_alias="OPENROUTER_API_KEY")
    openrouter_api_url: str = Field(
        default="https://openrouter.ai/api/v1/chat/completions",
        validation_alias="OPENROUTER_API_URL",
    )
    openrouter_model: str = Field(
        default="google/gemini-2.0-flash-001", validation_alias="OPENROUTER_MODEL"
    )

    timeout: int = Field(default=60, validation_alias="LLM_TIMEOUT")
    max_retries: int = Field(default=3, validation_alias="LLM_MAX_RETRIES")
    retry_delay: int = Field(default=2, validation_alias="LLM_RETRY_DELAY")

    model_config = _SETTINGS_CONFIG

    def model_post_init(self, __context) -> None:
        """Log settings after initialization."""
        LOGGER.info(f"LLM Provider: {self.provider}")
        if self.provider == "gemini":
            LOGGER.info(f"Gemini API Key present: {bool(self.gemini_api_key)}")
        elif self.provider == "openrouter":
            LOGGER.info(f"OpenRouter API Key present: {bool(self.openrouter_api_key)}")
        else:
            LOGGER.warning(f"Using unsupported LLM provider: {self.provider}")


class EmbeddingSettings(BaseSettings):
    """Embedding model settings."""

    model_name: str = Field(default="all-MiniLM-L6-v2", validation_alias="EMBEDDING_MODEL")

    model_config = _SETTINGS_CONFIG


class GenerationSettings(BaseSettings):
    """Defaults for page generation calls."""

    top_k: int = Field(default=15, validation_alias="GENERATION_TOP_K")
    min_score: float = Field(default=0.4, validation_alias="GENERATION_MIN_SCORE")
    max_tokens_outline: int = Field(default=1000, validation_alias="GENERATION_MAX_TOKENS_OUTLINE")
    max_tokens_section: int = Field(default=4000, validation_alias="GENERATION_MAX_TOKENS_SECTION")
    temperature: float = Field(default=0.4, validation_alias="GENERATION_TEMPERATURE")
    include_facts: bool = Field(default=True, validation_alias="GENERATION_INCLUDE_FACTS")
    max_facts: int = Field(default=30, validation_alias="GENERATION_MAX_FACTS")

    # Not per-call options
    max_context_tokens: int = Field(default=8000, validation_alias="GENERATION_MAX_CONTEXT_TOKENS")
    state_ttl_seconds: int = Field(default=600, validation_alias="GENERATION_STATE_TTL_SECONDS")

    model_config = _SETTINGS_CONFIG


class Settings(BaseSettings):
    """Unified application settings with nested models."""

    app_name: str = Field(default="Pagegen", validation_alias="APP_NAME")
    app_version: str = "0.1.0"
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    debug: bool = Field(default=False, validation_alias="DEBUG")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        validation_alias="CORS_ORIGINS",
    )

    api_v1_prefix: str = "/api/v1"
    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=8000, validation_alias="PORT")

    llm: LLMSettings = Field(default_factory=lambda: LLMSettings())
    embedding: EmbeddingSettings = Field(default_factory=lambda: EmbeddingSettings())
    generation: GenerationSettings = Field(default_factory=lambda: GenerationSettings())

    model_config = _SETTINGS_CONFIG

    def generation_config(self) -> GenerationConfig:
        """Build the validated per-call generation config from env defaults."""
        gen = self.generation
        return GenerationConfig(
            top_k=gen.top_k,
            min_score=gen.min_score,
            max_tokens_outline=gen.max_tokens_outline,
            max_tokens_section=gen.max_tokens_section,
            temperature=gen.temperature,
            include_facts=gen.include_facts,
            max_facts=gen.max_facts,
        )

    @property
    def llm_provider(self) -> str:
        return self.llm.provider

    @property
    def max_context_tokens(self) -> int:
        return self.generation.max_context_tokens


settings = Settings()

LOGGER.info(f"Settings initialized with environment: {settings.environment}")
