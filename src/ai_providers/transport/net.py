"""Push-style network primitive.

``NetRequest`` is an event emitter in the style of a callback HTTP client:
the request emits ``response`` (headers known) or ``error``; the response
emits ``data`` for each body chunk, then ``end`` or ``error``.  Handlers may
be coroutines; they are awaited before the next chunk is read, so a slow
handler slows the socket read loop down.

``HttpxNetRequest`` drives an ``httpx.AsyncClient.stream()`` call in a
background task and re-publishes it as events.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Protocol

import httpx

from ai_providers.transport.base import HTTPRequest, normalize_headers

_logger = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventEmitter:
    """Minimal async-aware event emitter."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event: str, handler: Handler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def remove_all_listeners(self) -> None:
        self._handlers.clear()

    def listener_count(self, event: str | None = None) -> int:
        if event is None:
            return sum(len(h) for h in self._handlers.values())
        return len(self._handlers.get(event, []))

    async def emit(self, event: str, *args: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            result = handler(*args)
            if inspect.isawaitable(result):
                await result


class NetResponse(EventEmitter):
    """Response side: emits ``data(chunk)``, ``end()`` and ``error(exc)``."""

    def __init__(self, status_code: int, headers: Any) -> None:
        super().__init__()
        self.status_code = status_code
        self.headers = normalize_headers(headers)


class NetRequest(Protocol):
    """Callback-driven request handle consumed by the byte stream bridge."""

    def on(self, event: str, handler: Handler) -> None: ...

    def write(self, data: bytes) -> None: ...

    def end(self) -> None: ...

    def abort(self) -> None: ...

    def remove_all_listeners(self) -> None: ...


class HttpxNetRequest(EventEmitter):
    """``NetRequest`` backed by a streaming ``httpx`` call."""

    def __init__(self, client: httpx.AsyncClient, request: HTTPRequest) -> None:
        super().__init__()
        self._client = client
        self._request = request
        self._body = bytearray()
        self._task: asyncio.Task[None] | None = None
        self._aborted = False

    def write(self, data: bytes) -> None:
        self._body.extend(data)

    def end(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._on_done)

    def abort(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    def _on_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Net request task failed: %s: %s", self._request.url, exc)

    async def _run(self) -> None:
        request = self._request
        response: NetResponse | None = None
        try:
            async with self._client.stream(
                request.method,
                request.url,
                headers=request.headers,
                content=bytes(self._body) if self._body else None,
            ) as resp:
                response = NetResponse(resp.status_code, resp.headers)
                await self.emit("response", response)
                async for chunk in resp.aiter_bytes():
                    await response.emit("data", chunk)
                await response.emit("end")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if response is None:
                _logger.debug("Request error before headers: %s", e)
                await self.emit("error", e)
            else:
                _logger.debug("Stream error after headers: %s", e)
                await response.emit("error", e)
