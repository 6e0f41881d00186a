"""Google Generative Language (Gemini) adapter."""

from __future__ import annotations

from processor.llm_providers import BaseProvider, dig

GOOGLE_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"


class GoogleProvider(BaseProvider):
    provider_id = "google"

    async def complete(self, model_id: str, prompt: str, temperature: float, max_tokens: int) -> str:
        url = GOOGLE_URL.format(model=model_id) + f"?key={self.api_key}"
        data = await self._post_json(
            url,
            headers={"Content-Type": "application/json"},
            payload={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": temperature,
                    "maxOutputTokens": max_tokens,
                },
            },
        )
        return dig(data, ("candidates", 0, "content", "parts", 0, "text"))
