"""Buffered transport: one full request/response exchange, no incremental delivery.

This is the permissive fallback: it works on every platform and is the
transport used for block-listed endpoints.
"""

from __future__ import annotations

import logging

import httpx

from ai_providers.config import TransportConfig
from ai_providers.signals import AbortSignal, run_abortable
from ai_providers.transport.base import BufferedResponse, HTTPRequest, normalize_headers

_logger = logging.getLogger(__name__)


class BufferedTransport:
    """Fetch the complete body before returning.  Non-2xx is a normal response."""

    name = "buffered"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 300.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=30),
        )

    @classmethod
    def from_config(cls, config: TransportConfig) -> BufferedTransport:
        return cls(timeout=config.read_timeout)

    async def fetch(
        self,
        request: HTTPRequest,
        signal: AbortSignal | None = None,
    ) -> BufferedResponse:
        # Length is recomputed from the body
        headers = dict(request.headers)
        headers.pop("content-length", None)

        _logger.debug(
            "Buffered request: %s %s (body=%s)",
            request.method, request.url, request.body is not None,
        )
        try:
            resp = await run_abortable(
                self._client.request(
                    request.method,
                    request.url,
                    headers=headers,
                    content=request.content,
                ),
                signal,
            )
        except httpx.HTTPError as e:
            _logger.error("Request failed: %s %s: %s", request.method, request.url, e)
            raise

        _logger.debug(
            "Buffered response: status=%d length=%d",
            resp.status_code, len(resp.content),
        )
        return BufferedResponse(
            status_code=resp.status_code,
            headers=normalize_headers(resp.headers),
            content=resp.content,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
