"""OpenAI chat completions adapter (official SDK)."""

from __future__ import annotations

import httpx
import openai
from openai import AsyncOpenAI

from processor.errors import ProviderError
from processor.llm_providers import BaseProvider


class OpenAIProvider(BaseProvider):
    provider_id = "openai"

    def __init__(self, api_key: str, timeout: float = 60.0, http_client: httpx.AsyncClient | None = None):
        super().__init__(api_key, timeout, http_client)
        # 재시도는 report pipeline에서 결정
        self._sdk = AsyncOpenAI(
            api_key=api_key, timeout=timeout, max_retries=0, http_client=http_client,
        )

    async def complete(self, model_id: str, prompt: str, temperature: float, max_tokens: int) -> str:
        try:
            resp = await self._sdk.chat.completions.create(
                model=model_id,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIStatusError as exc:
            body = exc.body
            message = body.get("message") if isinstance(body, dict) else None
            raise ProviderError(
                f"openai API error ({exc.status_code}): {message or exc.response.text}",
                status_code=exc.status_code,
            ) from exc
        except openai.APITimeoutError as exc:
            raise ProviderError(f"openai request timed out after {self.timeout:.0f}s") from exc
        except openai.APIError as exc:
            raise ProviderError(f"openai request failed: {exc}") from exc

        if not resp.choices:
            return ""
        return resp.choices[0].message.content or ""

    async def close(self):
        if self._owns_client:
            await self._sdk.close()
