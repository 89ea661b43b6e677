"""Streaming transport: the fast path for long-lived generation calls."""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from ai_providers.config import TransportConfig
from ai_providers.signals import AbortSignal
from ai_providers.transport.base import HTTPRequest, StreamingResponse
from ai_providers.transport.bridge import DEFAULT_HEADER_TIMEOUT, bridge_fetch
from ai_providers.transport.net import HttpxNetRequest, NetRequest

_logger = logging.getLogger(__name__)


class StreamingTransport:
    """Deliver the body incrementally through the byte stream bridge.

    Parameters
    ----------
    client:
        ``httpx.AsyncClient`` used by the default ``HttpxNetRequest``.
    open_request:
        Factory for the push primitive; defaults to ``HttpxNetRequest``.
    header_timeout:
        Seconds to wait for response headers.
    capacity:
        Number of chunks the bridge buffers ahead of the consumer.
    """

    name = "streaming"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        open_request: Callable[[HTTPRequest], NetRequest] | None = None,
        header_timeout: float | None = DEFAULT_HEADER_TIMEOUT,
        capacity: int = 1,
        read_timeout: float = 300.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(read_timeout, connect=30, read=read_timeout),
        )
        self._open_request = open_request or self._open_httpx_request
        self._header_timeout = header_timeout
        self._capacity = capacity

    @classmethod
    def from_config(cls, config: TransportConfig) -> StreamingTransport:
        return cls(
            header_timeout=config.request_timeout,
            capacity=config.stream_buffer_chunks,
            read_timeout=config.read_timeout,
        )

    def _open_httpx_request(self, request: HTTPRequest) -> NetRequest:
        return HttpxNetRequest(self._client, request)

    async def fetch(
        self,
        request: HTTPRequest,
        signal: AbortSignal | None = None,
    ) -> StreamingResponse:
        _logger.debug("Streaming request: %s %s", request.method, request.url)
        return await bridge_fetch(
            request,
            self._open_request,
            signal=signal,
            timeout=self._header_timeout,
            capacity=self._capacity,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
