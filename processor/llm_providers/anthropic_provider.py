"""Anthropic Messages API adapter."""

from __future__ import annotations

from processor.llm_providers import BaseProvider, dig

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicProvider(BaseProvider):
    provider_id = "anthropic"

    async def complete(self, model_id: str, prompt: str, temperature: float, max_tokens: int) -> str:
        data = await self._post_json(
            ANTHROPIC_URL,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            },
            payload={
                "model": model_id,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            },
        )
        return dig(data, ("content", 0, "text"))
