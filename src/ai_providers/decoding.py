"""Decode streamed response bodies into ``StreamDelta``s.

Two framings are understood: OpenAI-style server-sent events
(``data: {...}`` lines ending with ``data: [DONE]``) and Ollama-style
newline-delimited JSON.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, AsyncIterable, AsyncIterator

from ai_providers.errors import ProviderError
from ai_providers.types import StreamDelta

_logger = logging.getLogger(__name__)


async def aiter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Split a byte stream into text lines, tolerating split UTF-8 sequences."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    async for chunk in chunks:
        pending += decoder.decode(chunk)
        *lines, pending = pending.split("\n")
        for line in lines:
            yield line.rstrip("\r")
    pending += decoder.decode(b"", final=True)
    if pending:
        yield pending.rstrip("\r")


def _raise_stream_error(data: dict[str, Any]) -> None:
    error = data.get("error")
    if not error:
        return
    if isinstance(error, dict):
        message = error.get("message") or json.dumps(error)
    else:
        message = str(error)
    raise ProviderError(f"Stream error: {message}")


async def aiter_sse_deltas(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamDelta]:
    """OpenAI-compatible SSE: ``choices[0].delta.content`` / ``.reasoning``."""
    async for line in aiter_lines(chunks):
        if not line.startswith("data:"):
            continue
        data_str = line[5:].strip()
        if data_str == "[DONE]":
            return
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            _logger.debug("Skipping malformed SSE line: %.80s", data_str)
            continue
        if not isinstance(data, dict):
            _logger.debug("Skipping non-object SSE payload: %.80s", data_str)
            continue
        _raise_stream_error(data)

        choices = data.get("choices")
        choice = choices[0] if isinstance(choices, list) and choices else {}
        delta = choice.get("delta") if isinstance(choice, dict) else None
        if not isinstance(delta, dict):
            delta = {}
        yield StreamDelta(
            content=delta.get("content") or "",
            reasoning=delta.get("reasoning") or delta.get("reasoning_content") or "",
        )


async def aiter_ndjson_deltas(chunks: AsyncIterable[bytes]) -> AsyncIterator[StreamDelta]:
    """Ollama NDJSON: ``message.content`` / ``message.thinking`` until ``done``."""
    async for line in aiter_lines(chunks):
        if not line.strip():
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            _logger.debug("Skipping malformed NDJSON line: %.80s", line)
            continue
        if not isinstance(data, dict):
            _logger.debug("Skipping non-object NDJSON line: %.80s", line)
            continue
        _raise_stream_error(data)

        message = data.get("message")
        if not isinstance(message, dict):
            message = {}
        yield StreamDelta(
            content=message.get("content") or "",
            reasoning=message.get("thinking") or "",
        )
        if data.get("done"):
            return
