"""ai-providers: adaptive transport selection and streaming for AI endpoints."""

from ai_providers.config import ProviderSpec, ProvidersConfig, TransportConfig, load_config
from ai_providers.errors import (
    AbortedError,
    AIProvidersError,
    ProviderError,
    StreamInterruptedError,
    TransportError,
)
from ai_providers.merge import ReasoningMerger
from ai_providers.selector import BlockList, TransportSelector, classify_error
from ai_providers.service import AIProvidersService, ChunkHandler
from ai_providers.signals import AbortController, AbortSignal
from ai_providers.types import (
    Document,
    EndpointKey,
    ErrorKind,
    RetrievalProgress,
    RetrievalResult,
    StreamDelta,
)

__all__ = [
    "AIProvidersError",
    "AIProvidersService",
    "AbortController",
    "AbortSignal",
    "AbortedError",
    "BlockList",
    "ChunkHandler",
    "Document",
    "EndpointKey",
    "ErrorKind",
    "ProviderError",
    "ProviderSpec",
    "ProvidersConfig",
    "ReasoningMerger",
    "RetrievalProgress",
    "RetrievalResult",
    "StreamDelta",
    "StreamInterruptedError",
    "TransportConfig",
    "TransportError",
    "TransportSelector",
    "classify_error",
    "load_config",
]
