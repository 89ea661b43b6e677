"""Service facade: one block list and selector shared by all handlers."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Callable

from ai_providers.config import ProviderSpec, ProvidersConfig
from ai_providers.errors import AbortedError, ProviderError
from ai_providers.handlers import OllamaHandler, OpenAIHandler, ProviderHandler
from ai_providers.handlers.base import EmbedProgressFn
from ai_providers.merge import ProgressFn
from ai_providers.selector import BlockList, TransportSelector
from ai_providers.signals import AbortController, AbortSignal, ensure_not_aborted
from ai_providers.text import preprocess_content, split_content
from ai_providers.types import Document, RetrievalChunk, RetrievalProgress, RetrievalResult

_logger = logging.getLogger(__name__)

OPENAI_COMPATIBLE_TYPES = ("openai", "openrouter", "gemini", "lmstudio", "groq", "ai302")
OLLAMA_TYPES = ("ollama", "ollama-openwebui")


RetrievalProgressFn = Callable[[RetrievalProgress], Any]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(x * x for x in b))
    if na == 0 or nb == 0:
        return 0.0
    return dot / (na * nb)


def _chunk_documents(documents: list[Document]) -> tuple[list[RetrievalChunk], dict[str, int]]:
    chunks: list[RetrievalChunk] = []
    counts: dict[str, int] = {}
    for document in documents:
        counts[document.key] = 0
        for piece in split_content(preprocess_content(document.content)):
            piece = piece.strip()
            if piece:
                chunks.append(RetrievalChunk(content=piece, document=document))
                counts[document.key] += 1
    return chunks, counts


def _finished_documents(
    processed: list[RetrievalChunk],
    chunk_counts: dict[str, int],
    documents: list[Document],
) -> list[Document]:
    """Documents whose chunks have all been embedded."""
    done: dict[str, int] = {}
    for chunk in processed:
        done[chunk.document.key] = done.get(chunk.document.key, 0) + 1
    return [
        doc for doc in documents
        if chunk_counts.get(doc.key, 0) > 0 and done.get(doc.key) == chunk_counts[doc.key]
    ]


class ChunkHandler:
    """Callback-style handle for a generation running in the background.

    Register callbacks with ``on_data`` / ``on_end`` / ``on_error`` right
    after receiving the handle; the call starts on the next loop iteration.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Callable[..., Any]]] = {
            "data": [], "end": [], "error": [],
        }
        self._controller = AbortController()
        self._task: asyncio.Task[str | None] | None = None

    @property
    def signal(self) -> AbortSignal:
        return self._controller.signal

    def on_data(self, callback: Callable[[str, str], Any]) -> None:
        self._handlers["data"].append(callback)

    def on_end(self, callback: Callable[[str], Any]) -> None:
        self._handlers["end"].append(callback)

    def on_error(self, callback: Callable[[Exception], Any]) -> None:
        self._handlers["error"].append(callback)

    def abort(self) -> None:
        self._controller.abort()

    async def wait(self) -> str | None:
        """Wait for the call; returns the final text or ``None`` on error."""
        if self._task is None:
            return None
        return await self._task

    def _start(self, run: Callable[[ChunkHandler], Any]) -> None:
        self._task = asyncio.get_running_loop().create_task(run(self))

    def _dispatch(self, event: str, *args: Any) -> None:
        for callback in list(self._handlers[event]):
            try:
                callback(*args)
            except Exception:
                _logger.exception("ChunkHandler %s callback raised", event)


class AIProvidersService:
    """Entry point for model listing, embeddings and generation.

    Parameters
    ----------
    config:
        Loaded ``ProvidersConfig``; defaults are used if omitted.
    block_list:
        Shared ``BlockList``; pass one in to share block state across
        services, or leave it out for a private one.
    selector:
        Pre-built ``TransportSelector`` (mainly for tests).
    """

    def __init__(
        self,
        config: ProvidersConfig | None = None,
        block_list: BlockList | None = None,
        selector: TransportSelector | None = None,
    ) -> None:
        self._config = config or ProvidersConfig()
        self._selector = selector or TransportSelector(
            self._config.transport, block_list=block_list,
        )
        openai = OpenAIHandler(self._selector)
        ollama = OllamaHandler(self._selector)
        self._handlers: dict[str, ProviderHandler] = {}
        for ptype in OPENAI_COMPATIBLE_TYPES:
            self._handlers[ptype] = openai
        for ptype in OLLAMA_TYPES:
            self._handlers[ptype] = ollama

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def providers(self) -> list[ProviderSpec]:
        return self._config.providers

    @property
    def selector(self) -> TransportSelector:
        return self._selector

    def resolve(self, provider: ProviderSpec | str) -> ProviderSpec:
        if isinstance(provider, ProviderSpec):
            return provider
        found = self._config.get_provider(provider)
        if found is None:
            raise ProviderError(f"Unknown provider: {provider}")
        return found

    def get_handler(self, provider_type: str) -> ProviderHandler:
        handler = self._handlers.get(provider_type)
        if handler is None:
            raise ProviderError(
                f"Handler not found for provider type: {provider_type}"
            )
        return handler

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def fetch_models(
        self,
        provider: ProviderSpec | str,
        signal: AbortSignal | None = None,
    ) -> list[str]:
        spec = self.resolve(provider)
        return await self.get_handler(spec.type).fetch_models(spec, signal)

    async def embed(
        self,
        provider: ProviderSpec | str,
        input: str | list[str] | None,
        signal: AbortSignal | None = None,
        on_progress: EmbedProgressFn | None = None,
    ) -> list[list[float]]:
        spec = self.resolve(provider)
        return await self.get_handler(spec.type).embed(
            spec, input, signal=signal, on_progress=on_progress,
        )

    async def retrieve(
        self,
        query: str,
        documents: list[Document],
        provider: ProviderSpec | str,
        signal: AbortSignal | None = None,
        on_progress: RetrievalProgressFn | None = None,
    ) -> list[RetrievalResult]:
        """Rank chunks of *documents* by cosine similarity to *query*.

        Documents are cleaned and chunked with ``split_content``; the query
        and the chunks are embedded concurrently.  Results are sorted best
        first and reference the caller's ``Document`` objects.
        """
        ensure_not_aborted(signal)
        if not query or not documents:
            return []
        spec = self.resolve(provider)
        self.get_handler(spec.type)

        chunks, chunk_counts = _chunk_documents(documents)
        if not chunks:
            return []

        def report(processed_chunks: list[RetrievalChunk]) -> None:
            if on_progress is None:
                return
            on_progress(RetrievalProgress(
                total_documents=len(documents),
                total_chunks=len(chunks),
                processed_documents=_finished_documents(processed_chunks, chunk_counts, documents),
                processed_chunks=processed_chunks,
            ))

        def on_embedded(processed_texts: list[str]) -> None:
            if signal is not None and signal.aborted:
                return
            report(chunks[: len(processed_texts)])

        report([])
        query_task = asyncio.ensure_future(self.embed(spec, query, signal=signal))
        chunks_task = asyncio.ensure_future(self.embed(
            spec, [chunk.content for chunk in chunks], signal=signal, on_progress=on_embedded,
        ))
        try:
            query_vectors, chunk_vectors = await asyncio.gather(query_task, chunks_task)
        except Exception:
            query_task.cancel()
            chunks_task.cancel()
            if signal is not None and signal.aborted:
                raise AbortedError() from None
            raise

        _logger.debug("Ranking %d chunks from %d documents", len(chunks), len(documents))
        query_vector = query_vectors[0]
        results = [
            RetrievalResult(
                content=chunk.content,
                score=cosine_similarity(query_vector, vector),
                document=chunk.document,
            )
            for chunk, vector in zip(chunks, chunk_vectors)
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    async def execute(
        self,
        provider: ProviderSpec | str,
        *,
        prompt: str | None = None,
        messages: list[dict[str, Any]] | None = None,
        system_prompt: str | None = None,
        options: dict[str, Any] | None = None,
        signal: AbortSignal | None = None,
        on_progress: ProgressFn | None = None,
    ) -> str | ChunkHandler:
        """Run a generation.

        With *on_progress* or *signal* the final text is returned.  With
        neither, a ``ChunkHandler`` is returned immediately and the call
        proceeds in the background.
        """
        spec = self.resolve(provider)
        handler = self.get_handler(spec.type)
        kwargs: dict[str, Any] = {
            "prompt": prompt,
            "messages": messages,
            "system_prompt": system_prompt,
            "options": options,
        }

        if on_progress is not None or signal is not None:
            return await handler.execute(
                spec, signal=signal, on_progress=on_progress, **kwargs,
            )

        async def run(chunks: ChunkHandler) -> str | None:
            try:
                text = await handler.execute(
                    spec,
                    signal=chunks.signal,
                    on_progress=lambda c, acc: chunks._dispatch("data", c, acc),
                    **kwargs,
                )
            except Exception as e:
                _logger.debug("Background generation failed: %s", e)
                chunks._dispatch("error", e)
                return None
            chunks._dispatch("end", text)
            return text

        chunk_handler = ChunkHandler()
        chunk_handler._start(run)
        return chunk_handler

    # ------------------------------------------------------------------
    # Block list
    # ------------------------------------------------------------------

    def is_blocked(self, provider: ProviderSpec | str) -> bool:
        return self._selector.is_blocked(self.resolve(provider))

    def clear_blocked(self) -> None:
        self._selector.clear_all()

    async def aclose(self) -> None:
        await self._selector.aclose()
