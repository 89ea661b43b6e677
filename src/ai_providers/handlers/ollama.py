"""Handler for the Ollama native API."""

from __future__ import annotations

from typing import Any, AsyncIterable, AsyncIterator

from ai_providers.config import ProviderSpec
from ai_providers.decoding import aiter_ndjson_deltas
from ai_providers.errors import ProviderError
from ai_providers.transport.base import HTTPRequest
from ai_providers.types import StreamDelta

from .base import ProviderHandler


class OllamaHandler(ProviderHandler):
    """``/api/tags``, ``/api/chat`` (NDJSON) and ``/api/embed``.

    Ollama embeds one input per request.
    """

    embed_batch_size = 1

    @staticmethod
    def _headers(provider: ProviderSpec) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if provider.api_key:
            headers["Authorization"] = f"Bearer {provider.api_key}"
        return headers

    def models_request(self, provider: ProviderSpec) -> HTTPRequest:
        return HTTPRequest(
            url=f"{provider.base_url()}/api/tags",
            headers=self._headers(provider),
        )

    def parse_models(self, data: Any) -> list[str]:
        return [m["name"] for m in data.get("models", []) if m.get("name")]

    def chat_request(
        self,
        provider: ProviderSpec,
        messages: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> HTTPRequest:
        payload: dict[str, Any] = {
            "model": provider.model,
            "messages": messages,
            "stream": True,
        }
        if options:
            payload["options"] = options
        return HTTPRequest(
            url=f"{provider.base_url()}/api/chat",
            method="POST",
            headers=self._headers(provider),
            body=payload,
        )

    def decode_stream(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamDelta]:
        return aiter_ndjson_deltas(chunks)

    def embed_request(self, provider: ProviderSpec, batch: list[str]) -> HTTPRequest:
        return HTTPRequest(
            url=f"{provider.base_url()}/api/embed",
            method="POST",
            headers=self._headers(provider),
            body={"model": provider.model, "input": batch[0]},
        )

    def parse_embeddings(self, data: Any) -> list[list[float]]:
        vectors = data.get("embeddings")
        if not vectors:
            raise ProviderError("Embedding response has no embeddings")
        return [vectors[0]]
