"""Transport selection and origin-failure failover.

Selection order per call (first match wins):
  1. endpoint is block-listed        -> buffered transport
  2. platform has no streaming bridge -> buffered transport
  3. ``use_native_fetch`` configured  -> native transport
  4. category default: streaming for generation, buffered for requests

When a call fails with an error classified as an origin/connectivity
restriction, the endpoint is block-listed for the rest of the process and
the operation is replayed exactly once on the buffered transport.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Awaitable, Callable, Iterator, TypeVar, Union

from ai_providers.config import ProviderSpec, TransportConfig
from ai_providers.errors import AbortedError, ProviderError, StreamInterruptedError
from ai_providers.transport.base import Transport
from ai_providers.transport.buffered import BufferedTransport
from ai_providers.transport.native import NativeTransport
from ai_providers.transport.streaming import StreamingTransport
from ai_providers.types import CallCategory, EndpointKey, ErrorKind

_logger = logging.getLogger(__name__)

T = TypeVar("T")
Operation = Callable[[Transport], Awaitable[T]]
Endpoint = Union[EndpointKey, ProviderSpec]

# Best-effort markers for cross-origin rejection, preflight failure and the
# generic connection failures that cannot be told apart from them.  Matched
# case-insensitively against the error message and exception class name.
ORIGIN_ERROR_PATTERNS = (
    "cors policy",
    "cors error",
    "blocked by cors",
    "cross-origin",
    "access-control-allow-origin",
    "access-control-allow-methods",
    "access-control-allow-headers",
    "preflight request",
    "connection error",
    "network error",
    "failed to fetch",
    "typeerror: failed to fetch",
    "net::err_failed",
    "fetch error",
    "cors",
)


def classify_error(error: BaseException | None) -> ErrorKind:
    """Classify *error* for the failover decision."""
    if error is None:
        return ErrorKind.TRANSPORT
    if isinstance(error, (AbortedError, asyncio.CancelledError)):
        return ErrorKind.ABORTED
    if isinstance(error, StreamInterruptedError):
        return ErrorKind.TRANSPORT
    # The server answered; its body text is not a connectivity signal.
    if isinstance(error, ProviderError) and error.status_code is not None:
        return ErrorKind.PROTOCOL
    message = str(error).lower()
    name = type(error).__name__.lower()
    if any(p in message or p in name for p in ORIGIN_ERROR_PATTERNS):
        return ErrorKind.ORIGIN_RESTRICTED
    if isinstance(error, ProviderError):
        return ErrorKind.PROTOCOL
    return ErrorKind.TRANSPORT


def is_origin_error(error: BaseException | None) -> bool:
    if error is None:
        return False
    kind = classify_error(error)
    _logger.debug(
        "Classified %s(%s) as %s", type(error).__name__, error, kind.value,
    )
    return kind is ErrorKind.ORIGIN_RESTRICTED


def endpoint_key(endpoint: Endpoint) -> EndpointKey:
    if isinstance(endpoint, EndpointKey):
        return endpoint
    return EndpointKey.for_provider(endpoint)


class BlockList:
    """Thread-safe set of endpoints forced onto the buffered transport.

    Membership only grows during normal operation; ``clear()`` is the
    explicit reset.
    """

    def __init__(self) -> None:
        self._keys: set[EndpointKey] = set()
        self._lock = threading.Lock()

    def add(self, key: EndpointKey) -> None:
        with self._lock:
            self._keys.add(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __iter__(self) -> Iterator[EndpointKey]:
        with self._lock:
            return iter(sorted(self._keys, key=str))

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()


class TransportSelector:
    """Pick a transport per call and run operations with one-shot failover.

    Parameters
    ----------
    config:
        Platform and native-fetch settings.
    block_list:
        Shared ``BlockList``; a private one is created if omitted.
    buffered, streaming, native:
        Transport instances; defaults are built from *config*.
    """

    def __init__(
        self,
        config: TransportConfig | None = None,
        block_list: BlockList | None = None,
        buffered: Transport | None = None,
        streaming: Transport | None = None,
        native: Transport | None = None,
    ) -> None:
        self._config = config or TransportConfig()
        self._blocked = block_list if block_list is not None else BlockList()
        self._buffered = buffered or BufferedTransport.from_config(self._config)
        self._streaming = streaming or StreamingTransport.from_config(self._config)
        self._native = native or NativeTransport.from_config(self._config)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def config(self) -> TransportConfig:
        return self._config

    @property
    def block_list(self) -> BlockList:
        return self._blocked

    @property
    def fallback(self) -> Transport:
        """The permissive transport used for blocked endpoints and retries."""
        return self._buffered

    def get_fetch(self, endpoint: Endpoint) -> Transport:
        """Transport for metadata / embedding requests."""
        return self._select(endpoint_key(endpoint), CallCategory.REQUEST)

    def get_streaming_fetch(self, endpoint: Endpoint) -> Transport:
        """Transport for streaming generation."""
        return self._select(endpoint_key(endpoint), CallCategory.GENERATION)

    def _select(self, key: EndpointKey, category: CallCategory) -> Transport:
        if key in self._blocked:
            transport, reason = self._buffered, "blocked endpoint"
        elif not self._config.supports_streaming_bridge:
            transport, reason = self._buffered, f"{self._config.platform} platform"
        elif self._config.use_native_fetch:
            transport, reason = self._native, "native fetch enabled"
        elif category is CallCategory.GENERATION:
            transport, reason = self._streaming, "generation default"
        else:
            transport, reason = self._buffered, "request default"
        _logger.debug(
            "Using %s transport for %s (%s, %s)",
            transport.name, key, category.value, reason,
        )
        return transport

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, endpoint: Endpoint, operation: Operation[T]) -> T:
        """Run a generation-shaped *operation* with failover."""
        return await self._run(endpoint_key(endpoint), operation, CallCategory.GENERATION)

    async def request(self, endpoint: Endpoint, operation: Operation[T]) -> T:
        """Run a metadata/embedding-shaped *operation* with failover."""
        return await self._run(endpoint_key(endpoint), operation, CallCategory.REQUEST)

    async def _run(
        self,
        key: EndpointKey,
        operation: Operation[T],
        category: CallCategory,
    ) -> T:
        label = category.value
        if key in self._blocked:
            _logger.debug(
                "%s: %s already blocked, using %s transport directly",
                label, key, self._buffered.name,
            )
            return await operation(self._buffered)

        transport = self._select(key, category)
        try:
            result = await operation(transport)
        except Exception as e:
            if not is_origin_error(e):
                raise
            _logger.warning(
                "%s: origin/connectivity failure for %s via %s (%s); "
                "retrying with %s transport",
                label, key, transport.name, e, self._buffered.name,
            )
            self.mark_blocked(key)
            try:
                result = await operation(self._buffered)
            except Exception as retry_error:
                _logger.error(
                    "%s failed on retry with %s transport: %s",
                    label, self._buffered.name, retry_error,
                )
                raise
            _logger.info("%s succeeded on retry for %s", label, key)
            return result

        _logger.debug("%s completed for %s via %s", label, key, transport.name)
        return result

    # ------------------------------------------------------------------
    # Block list
    # ------------------------------------------------------------------

    def is_blocked(self, endpoint: Endpoint) -> bool:
        return endpoint_key(endpoint) in self._blocked

    def mark_blocked(self, endpoint: Endpoint) -> None:
        key = endpoint_key(endpoint)
        self._blocked.add(key)
        _logger.info("Endpoint marked as origin-restricted: %s", key)

    def clear_all(self) -> None:
        self._blocked.clear()
        _logger.debug("All blocked endpoints cleared")

    @property
    def blocked_count(self) -> int:
        return len(self._blocked)

    async def aclose(self) -> None:
        """Close the HTTP clients owned by the transports."""
        for transport in (self._buffered, self._streaming, self._native):
            aclose = getattr(transport, "aclose", None)
            if aclose is not None:
                await aclose()
