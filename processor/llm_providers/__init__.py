"""LLM providers -- one adapter per vendor request/response shape."""

from __future__ import annotations

import json

import httpx

from processor.errors import ProviderError


def dig(data, path: tuple) -> str:
    """Follow a fixed key/index path; any missing hop yields ""."""
    node = data
    for step in path:
        try:
            node = node[step]
        except (KeyError, IndexError, TypeError):
            return ""
    return node if isinstance(node, str) else ""


def error_message(response: httpx.Response) -> str:
    """`error.message` from a JSON error body, else the raw body."""
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
        if isinstance(err, str) and err:
            return err
    return response.text


class BaseProvider:
    """Base class for LLM provider adapters."""

    provider_id = ""

    def __init__(self, api_key: str, timeout: float = 60.0, http_client: httpx.AsyncClient | None = None):
        self.api_key = api_key
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def complete(self, model_id: str, prompt: str, temperature: float, max_tokens: int) -> str:
        """Return the model's text for a single user prompt."""
        raise NotImplementedError

    async def _post_json(self, url: str, headers: dict, payload: dict) -> dict:
        """POST and decode JSON; transport failures and non-2xx become ProviderError."""
        try:
            resp = await self._get_client().post(url, headers=headers, json=payload)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"{self.provider_id} request timed out after {self.timeout:.0f}s") from exc
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self.provider_id} request failed: {exc}") from exc

        if resp.status_code < 200 or resp.status_code >= 300:
            raise ProviderError(
                f"{self.provider_id} API error ({resp.status_code}): {error_message(resp)}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError) as exc:
            raise ProviderError(f"{self.provider_id} returned malformed JSON") from exc

    async def close(self):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
