"""
LLM Provider Factory - Creates the configured LLM provider instance.
"""

from typing import Optional
from .base import LLMProvider
from .openai_compatible import OpenAICompatibleProvider

# provider name -> (default base_url, default model)
PROVIDER_DEFAULTS = {
    "openai": ("https://api.openai.com/v1", "gpt-4o-mini"),
    "gemini": ("https://generativelanguage.googleapis.com/v1beta/openai", "gemini-2.0-flash"),
}


def create_llm_provider(
    provider: str = "openai",
    api_key: str = "",
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    **kwargs
) -> Optional[LLMProvider]:
    """
    Create an LLM provider instance based on configuration.

    Args:
        provider: Provider name ("openai" or "gemini")
        api_key: API key for the provider
        model: Model name (uses provider default if not specified)
        base_url: Custom base URL (uses provider default if not specified)
        **kwargs: Additional provider-specific parameters

    Returns:
        LLMProvider instance, or None if api_key is not configured
    """
    if not api_key:
        return None

    if provider not in PROVIDER_DEFAULTS:
        raise ValueError(f"Unsupported LLM provider: {provider}")

    default_base_url, default_model = PROVIDER_DEFAULTS[provider]
    return OpenAICompatibleProvider(
        api_key=api_key,
        model=model or default_model,
        base_url=base_url or default_base_url,
        provider_name=provider,
        **kwargs
    )
