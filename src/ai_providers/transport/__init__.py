"""Transports: buffered, streaming (bridged) and native."""

from ai_providers.transport.base import (
    BufferedResponse,
    HTTPRequest,
    Response,
    StreamingResponse,
    Transport,
    normalize_headers,
)
from ai_providers.transport.bridge import ByteChannel, bridge_fetch
from ai_providers.transport.buffered import BufferedTransport
from ai_providers.transport.native import NativeTransport
from ai_providers.transport.net import HttpxNetRequest, NetRequest, NetResponse
from ai_providers.transport.streaming import StreamingTransport

__all__ = [
    "BufferedResponse",
    "BufferedTransport",
    "ByteChannel",
    "HTTPRequest",
    "HttpxNetRequest",
    "NativeTransport",
    "NetRequest",
    "NetResponse",
    "Response",
    "StreamingResponse",
    "StreamingTransport",
    "Transport",
    "bridge_fetch",
    "normalize_headers",
]
