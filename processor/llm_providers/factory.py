"""Provider factory -- maps a registry provider id to its adapter class."""

from __future__ import annotations

import httpx

from processor.llm_providers import BaseProvider


def get_provider(
    provider_id: str,
    api_key: str,
    timeout: float = 60.0,
    http_client: httpx.AsyncClient | None = None,
) -> BaseProvider:
    """Return adapter instance for the given provider."""
    if provider_id == "anthropic":
        from processor.llm_providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key, timeout, http_client)
    elif provider_id == "google":
        from processor.llm_providers.google_provider import GoogleProvider
        return GoogleProvider(api_key, timeout, http_client)
    elif provider_id == "openai":
        from processor.llm_providers.openai_provider import OpenAIProvider
        return OpenAIProvider(api_key, timeout, http_client)
    else:
        raise ValueError(f"Unknown LLM provider: {provider_id}")
