"""Factory pattern for creating LLM client instances."""

from sparkvertex.adapters.llm.base import AbstractLLMClient
from sparkvertex.adapters.llm.openai_client import OpenAIClient
from sparkvertex.core.config import settings
from sparkvertex.core.errors import ConfigurationAppError

# Providers speaking the OpenAI chat completions protocol
DEFAULT_BASE_URLS: dict[str, str | None] = {
    "deepseek": "https://api.deepseek.com",
    "openai": None,
}


def create_llm_client() -> AbstractLLMClient:
    """Instantiate the configured LLM client.

    Reads ``settings.llm``. ``LLM_BASE_URL`` overrides the provider default.

    Returns:
        AbstractLLMClient: Configured client.

    Raises:
        ConfigurationAppError: If the provider is unknown or the API key is missing.
    """
    provider = settings.llm.provider.lower()

    if provider not in DEFAULT_BASE_URLS:
        supported = ", ".join(sorted(DEFAULT_BASE_URLS))
        raise ConfigurationAppError(
            code="llm_unknown_provider",
            message=f"Unknown LLM provider: '{provider}'. Supported providers: {supported}",
        )

    if not settings.llm.api_key:
        raise ConfigurationAppError(
            code="llm_missing_api_key",
            message=f"{provider} provider requires LLM_API_KEY environment variable",
        )

    return OpenAIClient(
        api_key=settings.llm.api_key,
        model=settings.llm.model,
        base_url=settings.llm.base_url or DEFAULT_BASE_URLS[provider],
        timeout_seconds=settings.llm.timeout_seconds,
        max_retries=settings.llm.max_retries,
    )
