"""AI model registry + uniform call entry point.

Usage:
    text = await call_model("claude-sonnet-4-20250514", prompt, temperature=0.5)

Env:
    ANTHROPIC_API_KEY / GOOGLE_AI_API_KEY / OPENAI_API_KEY  -- per-provider keys
    DEFAULT_AI_MODEL  -- default: claude-sonnet-4-20250514
    AI_TIMEOUT_SEC    -- default: 60
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from loguru import logger

from processor.config import ReportSettings, get_settings, is_configured
from processor.errors import ConfigurationError
from processor.llm_providers.factory import get_provider

PROVIDER_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_AI_API_KEY",
    "openai": "OPENAI_API_KEY",
}


@dataclass(frozen=True)
class ModelSpec:
    id: str
    name: str
    provider: str
    model_id: str
    max_tokens: int
    description: str
    default_temperature: float = 0.5

    @property
    def api_key_env(self) -> str:
        return PROVIDER_KEY_ENV[self.provider]


AI_MODELS: dict[str, ModelSpec] = {
    spec.id: spec
    for spec in (
        ModelSpec(
            "claude-sonnet-4-20250514", "Claude Sonnet 4", "anthropic",
            "claude-3-5-sonnet-20241022", 8192,
            "Advanced reasoning with balanced performance and speed",
        ),
        ModelSpec(
            "claude-opus-4-1-20250805", "Claude Opus 4.1", "anthropic",
            "claude-3-opus-20240229", 4096,
            "Most capable model for complex analysis",
        ),
        ModelSpec(
            "claude-3-7-sonnet-20250219", "Claude 3.7 Sonnet", "anthropic",
            "claude-3-sonnet-20240229", 4096,
            "Balanced performance for standard analysis",
        ),
        ModelSpec(
            "gemini-2.5-pro", "Gemini 2.5 Pro", "google",
            "gemini-1.5-pro", 8192,
            "Google's advanced model with multimodal capabilities",
        ),
        ModelSpec(
            "gemini-2.5-flash-lite", "Gemini 2.5 Flash Lite", "google",
            "gemini-1.5-flash", 4096,
            "Fast, efficient model for quick analysis",
        ),
        ModelSpec(
            "gpt-5-2025-08-07", "ChatGPT 5", "openai",
            "gpt-4-turbo-preview", 4096,
            "OpenAI's latest model with enhanced capabilities",
        ),
    )
}


def _provider_key(settings: ReportSettings, provider: str) -> str:
    return {
        "anthropic": settings.anthropic_api_key,
        "google": settings.google_ai_api_key,
        "openai": settings.openai_api_key,
    }.get(provider, "")


def default_model_id() -> str:
    return get_settings().default_ai_model


def get_model_config(model_id: str | None = None) -> ModelSpec:
    """Registry entry for model_id (default model when empty); unknown ids raise."""
    model_id = model_id or default_model_id()
    spec = AI_MODELS.get(model_id)
    if spec is None:
        raise ConfigurationError(f"Unknown AI model: {model_id}")
    return spec


def list_models() -> dict:
    """Registry listing with a per-model `configured` flag."""
    settings = get_settings()
    models = [
        {
            "id": spec.id,
            "name": spec.name,
            "provider": spec.provider,
            "description": spec.description,
            "configured": is_configured(_provider_key(settings, spec.provider)),
        }
        for spec in AI_MODELS.values()
    ]
    return {"models": models, "defaultModel": settings.default_ai_model}


async def call_model(
    model_id: str | None,
    prompt: str,
    temperature: float | None = None,
    max_tokens: int | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> str:
    """Send one prompt to the registered model and return its text.

    Raises ConfigurationError (unknown model / missing key) or ProviderError
    (transport, non-2xx, malformed JSON). A success body missing the text path
    returns "".
    """
    settings = get_settings()
    spec = get_model_config(model_id)
    api_key = _provider_key(settings, spec.provider)
    if not is_configured(api_key):
        raise ConfigurationError(
            f"API key not configured for {spec.provider}. Please set {spec.api_key_env} in .env file."
        )

    temperature = spec.default_temperature if temperature is None else temperature
    max_tokens = spec.max_tokens if max_tokens is None else max_tokens

    provider = get_provider(spec.provider, api_key, timeout=settings.ai_timeout_sec, http_client=http_client)
    logger.info("[llm] {} → {} ({}), temperature={}, max_tokens={}",
                spec.id, spec.provider, spec.model_id, temperature, max_tokens)
    try:
        return await provider.complete(spec.model_id, prompt, temperature, max_tokens)
    finally:
        await provider.close()
