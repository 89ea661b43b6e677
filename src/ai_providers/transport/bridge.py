"""Bridge from a push-style ``NetRequest`` to a pull-based byte stream.

Network handlers push chunks into a ``ByteChannel`` owned by the call and
the consumer pulls from it.  Closing the channel (on end, error or abort) is
the single place where stream termination is decided.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Callable

from ai_providers.errors import AbortedError, TransportError
from ai_providers.signals import AbortSignal
from ai_providers.transport.base import HTTPRequest, StreamingResponse
from ai_providers.transport.net import NetRequest, NetResponse

_logger = logging.getLogger(__name__)

DEFAULT_HEADER_TIMEOUT = 10.0


class ChannelClosedError(Exception):
    """Raised to a producer that sends into a closed channel."""


class ByteChannel:
    """Bounded single-producer / single-consumer chunk queue.

    ``send()`` waits while ``capacity`` chunks are buffered.  ``close()``
    without an error lets the reader drain what is buffered; ``close(exc)``
    drops buffered chunks and the next ``receive()`` raises *exc*.
    """

    def __init__(self, capacity: int = 1) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._items: deque[bytes] = deque()
        self._closed = False
        self._error: BaseException | None = None
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered(self) -> int:
        return len(self._items)

    async def send(self, chunk: bytes) -> None:
        while len(self._items) >= self._capacity and not self._closed:
            self._writable.clear()
            await self._writable.wait()
        if self._closed:
            raise ChannelClosedError()
        self._items.append(chunk)
        self._readable.set()

    async def receive(self) -> bytes | None:
        """Next chunk, ``None`` at a clean end; raises the close error."""
        while not self._items:
            if self._closed:
                if self._error is not None:
                    raise self._error
                return None
            self._readable.clear()
            await self._readable.wait()
        chunk = self._items.popleft()
        self._writable.set()
        return chunk

    def close(self, error: BaseException | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        if error is not None:
            self._error = error
            self._items.clear()
        self._readable.set()
        self._writable.set()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.receive()
            if chunk is None:
                return
            yield chunk


class _Cleanup:
    """Run registered release callbacks exactly once."""

    def __init__(self) -> None:
        self._callbacks: list[Callable[[], object]] = []
        self.done = False

    def add(self, callback: Callable[[], object]) -> None:
        self._callbacks.append(callback)

    def __call__(self) -> None:
        if self.done:
            return
        self.done = True
        for callback in self._callbacks:
            callback()


async def bridge_fetch(
    request: HTTPRequest,
    open_request: Callable[[HTTPRequest], NetRequest],
    *,
    signal: AbortSignal | None = None,
    timeout: float | None = DEFAULT_HEADER_TIMEOUT,
    capacity: int = 1,
) -> StreamingResponse:
    """Issue *request* through a push primitive and return a pull stream.

    Returns as soon as the response headers arrive.  Raises ``AbortedError``
    without opening a request when *signal* is already set, and
    ``TransportError("Request timeout")`` when no headers arrive within
    *timeout* seconds.
    """
    if signal is not None and signal.aborted:
        raise AbortedError()

    loop = asyncio.get_running_loop()
    net = open_request(request)
    channel = ByteChannel(capacity)
    headers_ready: asyncio.Future[NetResponse] = loop.create_future()
    cleanup = _Cleanup()
    responses: list[NetResponse] = []
    timer: asyncio.TimerHandle | None = None

    def fail(exc: BaseException) -> None:
        if not headers_ready.done():
            headers_ready.set_exception(exc)
        channel.close(exc)
        cleanup()

    def on_abort() -> None:
        _logger.debug("Bridge call aborted: %s", request.url)
        net.abort()
        fail(AbortedError())

    def on_timeout() -> None:
        _logger.debug("No response headers within %ss: %s", timeout, request.url)
        net.abort()
        fail(TransportError("Request timeout"))

    def disarm_timer() -> None:
        if timer is not None:
            timer.cancel()

    async def on_data(chunk: bytes) -> None:
        try:
            await channel.send(bytes(chunk))
        except ChannelClosedError:
            cleanup()

    def on_end() -> None:
        channel.close()
        cleanup()

    def on_response(response: NetResponse) -> None:
        if signal is not None and signal.aborted:
            return
        disarm_timer()
        responses.append(response)
        response.on("data", on_data)
        response.on("end", on_end)
        response.on("error", fail)
        if not headers_ready.done():
            headers_ready.set_result(response)

    def release() -> None:
        disarm_timer()
        if signal is not None:
            signal.remove_listener(on_abort)
        net.remove_all_listeners()
        for response in responses:
            response.remove_all_listeners()

    cleanup.add(release)
    net.on("response", on_response)
    net.on("error", fail)
    if signal is not None:
        signal.add_listener(on_abort)
    if timeout:
        timer = loop.call_later(timeout, on_timeout)

    body = request.content
    if body:
        net.write(body)
    net.end()

    try:
        response = await headers_ready
    except asyncio.CancelledError:
        net.abort()
        channel.close(AbortedError())
        cleanup()
        raise

    async def on_close() -> None:
        # Consumer stopped early: tear the request down
        if not channel.closed:
            net.abort()
            channel.close()
        cleanup()

    return StreamingResponse(
        response.status_code,
        response.headers,
        channel.__aiter__(),
        on_close=on_close,
    )
