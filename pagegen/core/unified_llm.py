"""LLM client factory.

Selects the provider client (Gemini or OpenRouter) from configuration.
"""

from enum import Enum
from typing import Union

from pagegen.core.config import LLMSettings
from pagegen.core.exceptions import ConfigurationError
from pagegen.core.llm_client import GeminiClient, OpenRouterClient
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported LLM providers."""

    GEMINI = "gemini"
    OPENROUTER = "openrouter"


def create_llm_client(
    provider: Union[str, LLMProvider],
    api_key: str,
    model: str,
    base_url: str = "",
    timeout: int = 60,
    max_retries: int = 3,
    retry_delay: int = 2,
) -> Union[GeminiClient, OpenRouterClient]:
    """Factory function to create a provider client.

    Args:
        provider: LLM provider to use ("gemini" or "openrouter")
        api_key: API key for the provider
        model: Model name to use
        base_url: Chat completions URL (OpenRouter only)
        timeout: Request timeout in seconds
        max_retries: Maximum retry attempts
        retry_delay: Base delay for exponential backoff

    Raises:
        ConfigurationError: If the provider is unknown or has no API key
    """
    try:
        provider = LLMProvider(provider)
    except ValueError as e:
        raise ConfigurationError(f"Unsupported LLM provider: {provider}", e) from e

    if not api_key:
        raise ConfigurationError(f"No API key configured for LLM provider '{provider.value}'")

    if provider == LLMProvider.GEMINI:
        return GeminiClient(
            api_key=api_key,
            model=model,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )

    return OpenRouterClient(
        api_key=api_key,
        model=model,
        base_url=base_url or "https://openrouter.ai/api/v1/chat/completions",
        timeout=timeout,
        max_retries=max_retries,
        retry_delay=retry_delay,
    )


def create_llm_client_from_settings(
    llm_settings: LLMSettings,
) -> Union[GeminiClient, OpenRouterClient]:
    """Create the provider client described by the LLM settings."""
    provider = llm_settings.provider.lower()

    if provider == LLMProvider.GEMINI.value:
        api_key, model, base_url = llm_settings.gemini_api_key, llm_settings.gemini_model, ""
    else:
        api_key = llm_settings.openrouter_api_key
        model = llm_settings.openrouter_model
        base_url = llm_settings.openrouter_api_url

    LOGGER.info(f"Creating LLM client for provider {provider}", extra={"model": model})
    return create_llm_client(
        provider=provider,
        api_key=api_key,
        model=model,
        base_url=base_url,
        timeout=llm_settings.timeout,
        max_retries=llm_settings.max_retries,
        retry_delay=llm_settings.retry_delay,
    )
