"""Tests for the OpenAI-compatible and Ollama handlers over scripted transports."""

from __future__ import annotations

from typing import AsyncIterator, Callable

import pytest

from ai_providers.config import TransportConfig
from ai_providers.errors import (
    AbortedError,
    ProviderError,
    StreamInterruptedError,
    TransportError,
)
from ai_providers.handlers import OllamaHandler, OpenAIHandler, build_messages
from ai_providers.handlers.openai import EMBED_CHUNK_SIZE
from ai_providers.signals import AbortController
from ai_providers.transport.base import BufferedResponse, StreamingResponse

from conftest import (
    ScriptedTransport,
    json_response,
    make_selector,
    ndjson_response,
    sse_response,
)


def _chunk(content: str | None = None, reasoning: str | None = None, role: str | None = None) -> dict:
    delta: dict = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning"] = reasoning
    return {"choices": [{"delta": delta}]}


def _collector() -> tuple[list[str], Callable[[str, str], None]]:
    fragments: list[str] = []

    def on_progress(fragment: str, _accumulated: str) -> None:
        fragments.append(fragment)

    return fragments, on_progress


# ---------------------------------------------------------------------------
# build_messages
# ---------------------------------------------------------------------------

class TestBuildMessages:
    def test_prompt_with_system(self):
        assert build_messages("hi", None, "be brief") == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]

    def test_messages_win(self):
        messages = [{"role": "user", "content": "explicit"}]
        assert build_messages("ignored", messages, "ignored") == messages

    def test_neither(self):
        with pytest.raises(ProviderError, match="Either messages or prompt"):
            build_messages(None, None, None)


# ---------------------------------------------------------------------------
# OpenAI-compatible: generation
# ---------------------------------------------------------------------------

class TestOpenAIExecute:
    async def test_reasoning_merged_into_think_span(self, openai_provider):
        streaming = ScriptedTransport("streaming", sse_response(
            _chunk(role="assistant"),
            _chunk(content="", reasoning=" in"),
            _chunk(content="", reasoning=" Markdown."),
            _chunk(content="Hello"),
        ))
        buffered = ScriptedTransport("buffered", RuntimeError("unused"))
        handler = OpenAIHandler(make_selector(buffered, streaming))
        fragments, on_progress = _collector()

        text = await handler.execute(openai_provider, prompt="hi", on_progress=on_progress)

        assert fragments == ["<think> in", " Markdown.", "</think>Hello"]
        assert text == "<think> in Markdown.</think>Hello"
        assert buffered.calls == []

    async def test_request_shape(self, openai_provider):
        streaming = ScriptedTransport("streaming", sse_response(_chunk(content="ok")))
        handler = OpenAIHandler(make_selector(ScriptedTransport("buffered", RuntimeError()), streaming))

        await handler.execute(
            openai_provider,
            prompt="What is 2+2?",
            system_prompt="Answer tersely.",
            options={"temperature": 0.1},
        )

        request = streaming.calls[0]
        assert request.url == "http://localhost:1234/v1/chat/completions"
        assert request.method == "POST"
        assert request.headers["authorization"] == "Bearer test-key"
        assert request.body["model"] == "small-model"
        assert request.body["stream"] is True
        assert request.body["temperature"] == 0.1
        assert [m["role"] for m in request.body["messages"]] == ["system", "user"]

    async def test_origin_failure_falls_back_and_blocks(self, openai_provider):
        streaming = ScriptedTransport("streaming", TransportError("TypeError: Failed to fetch"))
        buffered = ScriptedTransport("buffered", sse_response(_chunk(content="via fallback")))
        selector = make_selector(buffered, streaming)
        handler = OpenAIHandler(selector)

        text = await handler.execute(openai_provider, prompt="hi")

        assert text == "via fallback"
        assert len(streaming.calls) == 1
        assert len(buffered.calls) == 1
        assert selector.is_blocked(openai_provider)

        await handler.execute(openai_provider, prompt="again")
        assert len(streaming.calls) == 1
        assert len(buffered.calls) == 2

    async def test_failure_after_output_is_not_replayed(self, openai_provider):
        async def broken() -> AsyncIterator[bytes]:
            yield b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\n'
            raise TransportError("network error")

        streaming = ScriptedTransport("streaming", StreamingResponse(200, {}, broken()))
        buffered = ScriptedTransport("buffered", sse_response(_chunk(content="dup")))
        selector = make_selector(buffered, streaming)
        handler = OpenAIHandler(selector)
        fragments, on_progress = _collector()

        with pytest.raises(StreamInterruptedError) as exc_info:
            await handler.execute(openai_provider, prompt="hi", on_progress=on_progress)

        assert isinstance(exc_info.value.original, TransportError)
        assert fragments == ["Hi"]
        assert buffered.calls == []
        assert not selector.is_blocked(openai_provider)

    async def test_failure_before_output_is_replayed(self, openai_provider):
        async def broken() -> AsyncIterator[bytes]:
            raise TransportError("network error")
            yield b""  # pragma: no cover

        streaming = ScriptedTransport("streaming", StreamingResponse(200, {}, broken()))
        buffered = ScriptedTransport("buffered", sse_response(_chunk(content="clean")))
        handler = OpenAIHandler(make_selector(buffered, streaming))

        assert await handler.execute(openai_provider, prompt="hi") == "clean"
        assert len(buffered.calls) == 1

    async def test_http_error_not_retried(self, openai_provider):
        streaming = ScriptedTransport("streaming", BufferedResponse(500, {}, b"upstream exploded"))
        buffered = ScriptedTransport("buffered", sse_response(_chunk(content="unused")))
        selector = make_selector(buffered, streaming)
        handler = OpenAIHandler(selector)

        with pytest.raises(ProviderError, match="HTTP 500") as exc_info:
            await handler.execute(openai_provider, prompt="hi")
        assert exc_info.value.status_code == 500
        assert buffered.calls == []
        assert not selector.is_blocked(openai_provider)

    async def test_pre_aborted_makes_no_call(self, openai_provider):
        streaming = ScriptedTransport("streaming", sse_response(_chunk(content="x")))
        buffered = ScriptedTransport("buffered", sse_response(_chunk(content="x")))
        handler = OpenAIHandler(make_selector(buffered, streaming))
        controller = AbortController()
        controller.abort()

        with pytest.raises(AbortedError):
            await handler.execute(openai_provider, prompt="hi", signal=controller.signal)
        assert streaming.calls == []
        assert buffered.calls == []

    async def test_abort_mid_generation(self, openai_provider):
        streaming = ScriptedTransport("streaming", sse_response(
            _chunk(content="a"), _chunk(content="b"), _chunk(content="c"),
        ))
        buffered = ScriptedTransport("buffered", RuntimeError("unused"))
        handler = OpenAIHandler(make_selector(buffered, streaming))
        controller = AbortController()
        fragments: list[str] = []

        def on_progress(fragment: str, _acc: str) -> None:
            fragments.append(fragment)
            controller.abort()

        with pytest.raises(AbortedError):
            await handler.execute(
                openai_provider, prompt="hi", signal=controller.signal, on_progress=on_progress,
            )
        assert fragments == ["a"]
        assert buffered.calls == []

    async def test_dangling_reasoning_closed(self, openai_provider):
        streaming = ScriptedTransport("streaming", sse_response(_chunk(reasoning="a")))
        handler = OpenAIHandler(make_selector(ScriptedTransport("buffered", RuntimeError()), streaming))
        fragments, on_progress = _collector()

        text = await handler.execute(openai_provider, prompt="hi", on_progress=on_progress)

        assert fragments == ["<think>a", "</think>"]
        assert text == "<think>a</think>"


# ---------------------------------------------------------------------------
# OpenAI-compatible: models and embeddings
# ---------------------------------------------------------------------------

class TestOpenAIRequests:
    async def test_fetch_models_uses_request_transport(self, openai_provider):
        buffered = ScriptedTransport("buffered", json_response({"data": [{"id": "a"}, {"id": "b"}]}))
        streaming = ScriptedTransport("streaming", RuntimeError("unused"))
        handler = OpenAIHandler(make_selector(buffered, streaming))

        assert await handler.fetch_models(openai_provider) == ["a", "b"]
        assert buffered.calls[0].url == "http://localhost:1234/v1/models"
        assert streaming.calls == []

    async def test_fetch_models_native_failover(self, openai_provider):
        native = ScriptedTransport("native", TransportError("net::ERR_FAILED"))
        buffered = ScriptedTransport("buffered", json_response({"data": [{"id": "m"}]}))
        selector = make_selector(
            buffered,
            ScriptedTransport("streaming", RuntimeError()),
            native=native,
            config=TransportConfig(use_native_fetch=True),
        )
        handler = OpenAIHandler(selector)

        assert await handler.fetch_models(openai_provider) == ["m"]
        assert len(native.calls) == 1
        assert selector.is_blocked(openai_provider)

    async def test_fetch_models_http_error(self, openai_provider):
        buffered = ScriptedTransport("buffered", json_response({"error": "unauthorized"}, status=401))
        handler = OpenAIHandler(make_selector(buffered, ScriptedTransport("streaming", RuntimeError())))

        with pytest.raises(ProviderError) as exc_info:
            await handler.fetch_models(openai_provider)
        assert exc_info.value.status_code == 401
        assert len(buffered.calls) == 1

    async def test_fetch_models_gateway_error_not_replayed(self, openai_provider):
        buffered = ScriptedTransport("buffered", BufferedResponse(502, {}, b"Network Error from gateway"))
        selector = make_selector(buffered, ScriptedTransport("streaming", RuntimeError()))
        handler = OpenAIHandler(selector)

        with pytest.raises(ProviderError, match="HTTP 502: Network Error from gateway") as exc_info:
            await handler.fetch_models(openai_provider)
        assert exc_info.value.status_code == 502
        assert len(buffered.calls) == 1
        assert not selector.is_blocked(openai_provider)

    async def test_invalid_json(self, openai_provider):
        buffered = ScriptedTransport("buffered", BufferedResponse(200, {}, b"<html>"))
        handler = OpenAIHandler(make_selector(buffered, ScriptedTransport("streaming", RuntimeError())))

        with pytest.raises(ProviderError, match="Invalid JSON response"):
            await handler.fetch_models(openai_provider)

    async def test_embed_chunks_and_progress(self, openai_provider):
        def respond(request):
            return json_response({
                "data": [{"embedding": [float(len(text))]} for text in request.body["input"]],
            })

        buffered = ScriptedTransport("buffered", respond)
        handler = OpenAIHandler(make_selector(buffered, ScriptedTransport("streaming", RuntimeError())))
        inputs = [f"text {i}" for i in range(EMBED_CHUNK_SIZE + 2)]
        progress: list[int] = []

        vectors = await handler.embed(
            openai_provider, inputs, on_progress=lambda done: progress.append(len(done)),
        )

        assert len(vectors) == len(inputs)
        assert [len(c.body["input"]) for c in buffered.calls] == [EMBED_CHUNK_SIZE, 2]
        assert progress == [EMBED_CHUNK_SIZE, EMBED_CHUNK_SIZE + 2]
        assert buffered.calls[0].url == "http://localhost:1234/v1/embeddings"

    async def test_embed_single_string(self, openai_provider):
        buffered = ScriptedTransport("buffered", json_response({"data": [{"embedding": [0.5, 0.5]}]}))
        handler = OpenAIHandler(make_selector(buffered, ScriptedTransport("streaming", RuntimeError())))

        assert await handler.embed(openai_provider, "one") == [[0.5, 0.5]]
        assert buffered.calls[0].body["input"] == ["one"]

    async def test_embed_empty_input(self, openai_provider):
        buffered = ScriptedTransport("buffered", RuntimeError("unused"))
        handler = OpenAIHandler(make_selector(buffered, ScriptedTransport("streaming", RuntimeError())))

        with pytest.raises(ProviderError, match="Either input or text"):
            await handler.embed(openai_provider, [])
        assert buffered.calls == []


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------

class TestOllama:
    async def test_execute_thinking(self, ollama_provider):
        streaming = ScriptedTransport("streaming", ndjson_response(
            {"message": {"role": "assistant", "thinking": "hmm"}, "done": False},
            {"message": {"role": "assistant", "content": "Hi"}, "done": False},
            {"message": {"role": "assistant", "content": ""}, "done": True},
        ))
        handler = OllamaHandler(make_selector(ScriptedTransport("buffered", RuntimeError()), streaming))

        text = await handler.execute(ollama_provider, prompt="hi", options={"temperature": 0.2})

        assert text == "<think>hmm</think>Hi"
        request = streaming.calls[0]
        assert request.url == "http://localhost:11434/api/chat"
        assert request.body["options"] == {"temperature": 0.2}
        assert "authorization" not in request.headers

    async def test_fetch_models(self, ollama_provider):
        buffered = ScriptedTransport("buffered", json_response({"models": [{"name": "qwen3-8b"}]}))
        handler = OllamaHandler(make_selector(buffered, ScriptedTransport("streaming", RuntimeError())))

        assert await handler.fetch_models(ollama_provider) == ["qwen3-8b"]
        assert buffered.calls[0].url == "http://localhost:11434/api/tags"

    async def test_embed_one_request_per_input(self, ollama_provider):
        buffered = ScriptedTransport("buffered", json_response({"embeddings": [[0.1, 0.2]]}))
        handler = OllamaHandler(make_selector(buffered, ScriptedTransport("streaming", RuntimeError())))
        progress: list[list[str]] = []

        vectors = await handler.embed(ollama_provider, ["a", "b"], on_progress=progress.append)

        assert vectors == [[0.1, 0.2], [0.1, 0.2]]
        assert [c.body["input"] for c in buffered.calls] == ["a", "b"]
        assert progress == [["a"], ["a", "b"]]

    async def test_embed_abort_between_inputs(self, ollama_provider):
        buffered = ScriptedTransport("buffered", json_response({"embeddings": [[1.0]]}))
        handler = OllamaHandler(make_selector(buffered, ScriptedTransport("streaming", RuntimeError())))
        controller = AbortController()

        with pytest.raises(AbortedError):
            await handler.embed(
                ollama_provider, ["a", "b", "c"],
                signal=controller.signal,
                on_progress=lambda _done: controller.abort(),
            )
        assert len(buffered.calls) == 1
