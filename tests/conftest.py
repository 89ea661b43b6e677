"""Shared fakes for transport and handler tests."""

from __future__ import annotations

import json
from typing import Any

import pytest

from ai_providers.config import ProviderSpec, TransportConfig
from ai_providers.selector import TransportSelector
from ai_providers.transport.base import BufferedResponse, HTTPRequest
from ai_providers.transport.net import EventEmitter, NetResponse


# ---------------------------------------------------------------------------
# Push primitive fakes
# ---------------------------------------------------------------------------

class FakeNetRequest(EventEmitter):
    """Records what the bridge does to it; the test drives its events."""

    def __init__(self, request: HTTPRequest) -> None:
        super().__init__()
        self.request = request
        self.written = bytearray()
        self.ended = False
        self.abort_calls = 0
        self.remove_calls = 0

    def write(self, data: bytes) -> None:
        self.written.extend(data)

    def end(self) -> None:
        self.ended = True

    def abort(self) -> None:
        self.abort_calls += 1

    def remove_all_listeners(self) -> None:
        self.remove_calls += 1
        super().remove_all_listeners()

    async def respond(self, status: int = 200, headers: dict | None = None) -> NetResponse:
        response = NetResponse(status, headers or {})
        await self.emit("response", response)
        return response


class FakeNet:
    """``open_request`` factory that keeps every request it creates."""

    def __init__(self) -> None:
        self.requests: list[FakeNetRequest] = []

    def __call__(self, request: HTTPRequest) -> FakeNetRequest:
        net_request = FakeNetRequest(request)
        self.requests.append(net_request)
        return net_request


# ---------------------------------------------------------------------------
# Transport fakes
# ---------------------------------------------------------------------------

class ScriptedTransport:
    """Transport that replays scripted results in order.

    Each item is a response, an exception to raise, or a callable taking
    the ``HTTPRequest``.  The last item repeats once the script runs out.
    """

    def __init__(self, name: str, *script: Any) -> None:
        self.name = name
        self.calls: list[HTTPRequest] = []
        self._script = list(script)

    async def fetch(self, request: HTTPRequest, signal: Any = None) -> Any:
        self.calls.append(request)
        item = self._script.pop(0) if len(self._script) > 1 else self._script[0]
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            return item(request)
        return item


def json_response(data: Any, status: int = 200) -> BufferedResponse:
    return BufferedResponse(
        status_code=status,
        headers={"content-type": "application/json"},
        content=json.dumps(data).encode(),
    )


def sse_response(*payloads: dict) -> BufferedResponse:
    lines = [f"data: {json.dumps(p)}\n\n" for p in payloads]
    lines.append("data: [DONE]\n\n")
    return BufferedResponse(200, {"content-type": "text/event-stream"}, "".join(lines).encode())


def ndjson_response(*payloads: dict) -> BufferedResponse:
    body = "".join(json.dumps(p) + "\n" for p in payloads)
    return BufferedResponse(200, {"content-type": "application/x-ndjson"}, body.encode())


def make_selector(
    buffered: Any,
    streaming: Any,
    native: Any | None = None,
    config: TransportConfig | None = None,
) -> TransportSelector:
    return TransportSelector(
        config or TransportConfig(),
        buffered=buffered,
        streaming=streaming,
        native=native or ScriptedTransport("native", RuntimeError("native unused")),
    )


@pytest.fixture
def openai_provider() -> ProviderSpec:
    return ProviderSpec(
        id="lm",
        name="LM Studio",
        type="lmstudio",
        url="http://localhost:1234/v1",
        api_key="test-key",
        model="small-model",
    )


@pytest.fixture
def ollama_provider() -> ProviderSpec:
    return ProviderSpec(
        id="ol",
        name="Ollama",
        type="ollama",
        url="http://localhost:11434",
        model="qwen3-8b",
    )


@pytest.fixture
def fake_net() -> FakeNet:
    return FakeNet()
