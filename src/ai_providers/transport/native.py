"""Native transport: httpx's own pull-based streaming, no bridge involved.

Used when configuration asks for the native fetch primitive.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from ai_providers.config import TransportConfig
from ai_providers.signals import AbortSignal, run_abortable
from ai_providers.transport.base import HTTPRequest, StreamingResponse

_logger = logging.getLogger(__name__)


class NativeTransport:
    """``httpx.AsyncClient.send(stream=True)`` wrapped in a ``StreamingResponse``."""

    name = "native"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 300.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=30),
        )

    @classmethod
    def from_config(cls, config: TransportConfig) -> NativeTransport:
        return cls(timeout=config.read_timeout)

    async def fetch(
        self,
        request: HTTPRequest,
        signal: AbortSignal | None = None,
    ) -> StreamingResponse:
        _logger.debug("Native request: %s %s", request.method, request.url)
        built = self._client.build_request(
            request.method,
            request.url,
            headers=request.headers,
            content=request.content,
        )
        resp = await run_abortable(self._client.send(built, stream=True), signal)
        return StreamingResponse(
            resp.status_code,
            resp.headers,
            _iter_abortable(resp, signal),
            on_close=resp.aclose,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


async def _iter_abortable(
    resp: httpx.Response,
    signal: AbortSignal | None,
) -> AsyncIterator[bytes]:
    iterator = resp.aiter_bytes().__aiter__()

    async def _next() -> bytes | None:
        try:
            return await iterator.__anext__()
        except StopAsyncIteration:
            return None

    while True:
        chunk = await run_abortable(_next(), signal)
        if chunk is None:
            return
        yield chunk
