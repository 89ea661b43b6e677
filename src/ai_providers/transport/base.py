"""Request/response shapes and the transport capability protocol.

Every transport implements one coroutine, ``fetch(request, signal=None)``,
and returns either a ``BufferedResponse`` (body already complete) or a
``StreamingResponse`` (headers now, body pulled chunk by chunk).  Callers
can treat both the same way through ``aiter_bytes()`` / ``aread()``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, Mapping, Protocol, Union

import httpx

from ai_providers.errors import ProviderError
from ai_providers.signals import AbortSignal

HeadersInput = Union[Mapping[str, str], Iterable[tuple[str, str]], httpx.Headers, None]


def normalize_headers(headers: HeadersInput) -> dict[str, str]:
    """Convert any header input into a plain dict with lower-cased keys."""
    if not headers:
        return {}
    if isinstance(headers, httpx.Headers):
        return {k.lower(): v for k, v in headers.items()}
    if isinstance(headers, Mapping):
        return {str(k).lower(): str(v) for k, v in headers.items()}
    return {str(k).lower(): str(v) for k, v in headers}


def encode_body(body: Any) -> bytes | None:
    """Serialise a request body: bytes pass through, str is UTF-8, else JSON."""
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")


@dataclass
class HTTPRequest:
    """One HTTP-shaped request; the body is opaque to the transport layer."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        self.headers = normalize_headers(self.headers)

    @property
    def content(self) -> bytes | None:
        return encode_body(self.body)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

class _ResponseMixin:
    status_code: int

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    async def aread(self) -> bytes:  # pragma: no cover - overridden
        raise NotImplementedError

    async def atext(self) -> str:
        return (await self.aread()).decode("utf-8", errors="replace")

    async def ajson(self) -> Any:
        return json.loads(await self.aread())

    async def araise_for_status(self) -> None:
        """Raise ``ProviderError`` for a non-2xx status, with the body text."""
        if self.ok:
            return
        body = await self.atext()
        raise ProviderError(
            f"HTTP {self.status_code}: {body[:200]}",
            status_code=self.status_code,
            body=body,
        )


@dataclass
class BufferedResponse(_ResponseMixin):
    """A response whose body was received in full."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content)

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        if self.content:
            yield self.content

    async def aread(self) -> bytes:
        return self.content

    async def aclose(self) -> None:
        return None


class StreamingResponse(_ResponseMixin):
    """A response whose body is pulled incrementally from *stream*.

    ``on_close`` releases the underlying call; it is invoked at most once,
    either after the stream is exhausted or from ``aclose()``.
    """

    def __init__(
        self,
        status_code: int,
        headers: HeadersInput,
        stream: AsyncIterator[bytes],
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = normalize_headers(headers)
        self._stream = stream
        self._on_close = on_close
        self._consumed = False
        self._closed = False

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise RuntimeError("Response body already consumed")
        self._consumed = True
        try:
            async for chunk in self._stream:
                yield chunk
        finally:
            await self.aclose()

    async def aread(self) -> bytes:
        return b"".join([chunk async for chunk in self.aiter_bytes()])

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close()


Response = Union[BufferedResponse, StreamingResponse]


class Transport(Protocol):
    """Capability interface shared by the buffered, streaming and native transports."""

    name: str

    async def fetch(
        self,
        request: HTTPRequest,
        signal: AbortSignal | None = None,
    ) -> Response:
        """Perform *request*; non-2xx statuses are returned, not raised."""
        ...
