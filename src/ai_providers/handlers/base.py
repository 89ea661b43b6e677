"""Async provider handler abstract base class.

A handler turns ``fetch_models`` / ``embed`` / ``execute`` calls into
operations ``(transport) -> result`` and hands them to the
``TransportSelector``, which picks the transport and owns failover.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterable, AsyncIterator, Callable

from ai_providers.config import ProviderSpec
from ai_providers.errors import AbortedError, ProviderError, StreamInterruptedError
from ai_providers.merge import ProgressFn, ReasoningMerger
from ai_providers.selector import TransportSelector
from ai_providers.signals import AbortSignal, ensure_not_aborted
from ai_providers.transport.base import HTTPRequest, Response, Transport
from ai_providers.types import StreamDelta

_logger = logging.getLogger(__name__)

EmbedProgressFn = Callable[[list[str]], Any]


def build_messages(
    prompt: str | None,
    messages: list[dict[str, Any]] | None,
    system_prompt: str | None,
) -> list[dict[str, Any]]:
    """Explicit *messages* win; otherwise build system + user from *prompt*."""
    if messages:
        return [dict(m) for m in messages]
    if prompt is None:
        raise ProviderError("Either messages or prompt must be provided")
    built: list[dict[str, Any]] = []
    if system_prompt:
        built.append({"role": "system", "content": system_prompt})
    built.append({"role": "user", "content": prompt})
    return built


class ProviderHandler(ABC):
    """Base class for provider handlers.

    Subclasses build the provider's requests and decode its responses; the
    orchestration of abort checks, failover and reasoning merge lives here.
    """

    # Inputs per embedding request
    embed_batch_size: int = 1

    def __init__(self, selector: TransportSelector) -> None:
        self._selector = selector

    # ------------------------------------------------------------------
    # Provider-specific hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def models_request(self, provider: ProviderSpec) -> HTTPRequest:
        """Request listing available models."""

    @abstractmethod
    def parse_models(self, data: Any) -> list[str]:
        """Model identifiers from the decoded models response."""

    @abstractmethod
    def chat_request(
        self,
        provider: ProviderSpec,
        messages: list[dict[str, Any]],
        options: dict[str, Any],
    ) -> HTTPRequest:
        """Streaming chat request."""

    @abstractmethod
    def decode_stream(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamDelta]:
        """Decode the streamed chat body into deltas."""

    @abstractmethod
    def embed_request(self, provider: ProviderSpec, batch: list[str]) -> HTTPRequest:
        """Embedding request for one batch of inputs."""

    @abstractmethod
    def parse_embeddings(self, data: Any) -> list[list[float]]:
        """Vectors from the decoded embedding response."""

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_models(
        self,
        provider: ProviderSpec,
        signal: AbortSignal | None = None,
    ) -> list[str]:
        ensure_not_aborted(signal)

        async def operation(transport: Transport) -> list[str]:
            ensure_not_aborted(signal)
            resp = await transport.fetch(self.models_request(provider), signal)
            return self.parse_models(await _read_json(resp))

        result = await self._selector.request(provider, operation)
        ensure_not_aborted(signal)
        return result

    async def embed(
        self,
        provider: ProviderSpec,
        input: str | list[str] | None,
        signal: AbortSignal | None = None,
        on_progress: EmbedProgressFn | None = None,
    ) -> list[list[float]]:
        if not input:
            raise ProviderError("Either input or text parameter must be provided")
        ensure_not_aborted(signal)

        inputs = [input] if isinstance(input, str) else list(input)
        embeddings: list[list[float]] = []
        processed: list[str] = []

        for start in range(0, len(inputs), self.embed_batch_size):
            batch = inputs[start : start + self.embed_batch_size]
            ensure_not_aborted(signal)

            async def operation(transport: Transport) -> list[list[float]]:
                resp = await transport.fetch(self.embed_request(provider, batch), signal)
                return self.parse_embeddings(await _read_json(resp))

            vectors = await self._selector.request(provider, operation)
            _logger.debug("Embedded batch of %d (dim=%d)", len(batch), len(vectors[0]) if vectors else 0)
            embeddings.extend(vectors)
            processed.extend(batch)
            if on_progress is not None:
                on_progress(list(processed))
            ensure_not_aborted(signal)

        return embeddings

    async def execute(
        self,
        provider: ProviderSpec,
        *,
        prompt: str | None = None,
        messages: list[dict[str, Any]] | None = None,
        system_prompt: str | None = None,
        options: dict[str, Any] | None = None,
        signal: AbortSignal | None = None,
        on_progress: ProgressFn | None = None,
    ) -> str:
        """Stream a generation and return the merged text.

        *on_progress* receives ``(fragment, accumulated_text)`` for each
        emission.  Once anything has been emitted, a failure is raised as
        ``StreamInterruptedError`` so the call is not replayed.
        """
        ensure_not_aborted(signal)
        chat_messages = build_messages(prompt, messages, system_prompt)
        request = self.chat_request(provider, chat_messages, dict(options or {}))
        _logger.debug(
            "Starting generation: model=%s messages=%d",
            provider.model, len(chat_messages),
        )

        async def operation(transport: Transport) -> str:
            ensure_not_aborted(signal)
            resp = await transport.fetch(request, signal)
            emitted = False

            def progress(fragment: str, accumulated: str) -> None:
                nonlocal emitted
                emitted = True
                if on_progress is not None:
                    on_progress(fragment, accumulated)

            merger = ReasoningMerger(progress)
            try:
                await resp.araise_for_status()
                async for delta in self.decode_stream(resp.aiter_bytes()):
                    ensure_not_aborted(signal)
                    merger.feed(delta)
                ensure_not_aborted(signal)
                return merger.finish()
            except AbortedError:
                raise
            except Exception as e:
                if emitted:
                    raise StreamInterruptedError(e) from e
                raise
            finally:
                await resp.aclose()

        return await self._selector.execute(provider, operation)


async def _read_json(resp: Response) -> Any:
    await resp.araise_for_status()
    try:
        return await resp.ajson()
    except ValueError as e:
        raise ProviderError(f"Invalid JSON response: {e}") from e
