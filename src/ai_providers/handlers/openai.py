"""Handler for OpenAI-compatible providers (OpenAI, LM Studio, OpenRouter, ...)."""

from __future__ import annotations

from typing import Any, AsyncIterable, AsyncIterator

from ai_providers.config import ProviderSpec
from ai_providers.decoding import aiter_sse_deltas
from ai_providers.errors import ProviderError
from ai_providers.transport.base import HTTPRequest
from ai_providers.types import StreamDelta

from .base import ProviderHandler

# OpenAI accepts at most 2048 inputs per embeddings request
EMBED_CHUNK_SIZE = 2048


class OpenAIHandler(ProviderHandler):
    """``/models``, ``/chat/completions`` (SSE) and ``/embeddings``."""

    embed_batch_size = EMBED_CHUNK_SIZE

    @staticmethod
    def _headers(provider: ProviderSpec) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {provider.api_key or 'placeholder-key'}",
            "Content-Type": "application/json",
        }

    def models_request(self, provider: ProviderSpec) -> HTTPRequest:
        return HTTPRequest(
            url=f"{provider.base_url()}/models",
            headers=self._headers(provider),
        )

    def parse_models(self, data: Any) -> list[str]:
        return [m["id"] for m in data.get("data", []) if m.get("id")]

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
        payload.update(options)
        return HTTPRequest(
            url=f"{provider.base_url()}/chat/completions",
            method="POST",
            headers={**self._headers(provider), "Accept": "text/event-stream"},
            body=payload,
        )

    def decode_stream(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamDelta]:
        return aiter_sse_deltas(chunks)

    def embed_request(self, provider: ProviderSpec, batch: list[str]) -> HTTPRequest:
        return HTTPRequest(
            url=f"{provider.base_url()}/embeddings",
            method="POST",
            headers=self._headers(provider),
            body={"model": provider.model, "input": batch},
        )

    def parse_embeddings(self, data: Any) -> list[list[float]]:
        items = data.get("data")
        if items is None:
            raise ProviderError("Embedding response has no data")
        return [item["embedding"] for item in items]
