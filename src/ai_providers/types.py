"""Shared data types for ai-providers."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ai_providers.config import ProviderSpec


# ---------------------------------------------------------------------------
# Endpoint identity
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EndpointKey:
    """Stable block-list key for one endpoint: ``(base URL, provider type)``."""

    url: str
    provider_type: str

    @classmethod
    def for_provider(cls, provider: ProviderSpec) -> EndpointKey:
        return cls(url=provider.url or "unknown", provider_type=provider.type)

    def __str__(self) -> str:
        return f"{self.url}:{self.provider_type}"


# ---------------------------------------------------------------------------
# Streaming types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StreamDelta:
    """One decoded increment of generation output.

    ``content`` is visible answer text, ``reasoning`` is thinking-channel
    text.  A delta may carry both; reasoning is handled first.
    """

    content: str = ""
    reasoning: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.content and not self.reasoning


class ErrorKind(enum.Enum):
    """Failure classes used by the transport selector."""

    ABORTED = "aborted"
    ORIGIN_RESTRICTED = "origin_restricted"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"


class CallCategory(enum.Enum):
    """Call shapes with different default transports."""

    GENERATION = "generation"
    REQUEST = "request"


# ---------------------------------------------------------------------------
# Retrieval types
# ---------------------------------------------------------------------------

@dataclass
class Document:
    """A text to search; ``meta["id"]`` identifies it when present."""

    content: str
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.meta.get("id") or self.content


@dataclass
class RetrievalChunk:
    content: str
    document: Document


@dataclass
class RetrievalProgress:
    """Snapshot passed to the ``retrieve`` progress callback."""

    total_documents: int
    total_chunks: int
    processed_documents: list[Document] = field(default_factory=list)
    processed_chunks: list[RetrievalChunk] = field(default_factory=list)
    processing_type: str = "embedding"


@dataclass
class RetrievalResult:
    """A chunk ranked against the query; ``document`` is the caller's object."""

    content: str
    score: float
    document: Document
