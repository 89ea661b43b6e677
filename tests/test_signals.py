"""Tests for AbortController / AbortSignal and run_abortable."""

from __future__ import annotations

import asyncio

import pytest

from ai_providers.errors import AbortedError
from ai_providers.signals import (
    AbortController,
    ensure_not_aborted,
    is_aborted,
    run_abortable,
)


class TestAbortSignal:
    def test_listeners_fire_once(self):
        controller = AbortController()
        calls: list[int] = []
        controller.signal.add_listener(lambda: calls.append(1))
        controller.abort("user")
        controller.abort("again")
        assert calls == [1]
        assert controller.signal.aborted
        assert controller.signal.reason == "user"

    def test_remove_listener(self):
        controller = AbortController()
        calls: list[int] = []

        def listener() -> None:
            calls.append(1)

        controller.signal.add_listener(listener)
        controller.signal.remove_listener(listener)
        controller.signal.remove_listener(listener)  # unknown: no-op
        controller.abort()
        assert calls == []
        assert controller.signal.listener_count == 0

    def test_raising_listener_does_not_stop_others(self):
        controller = AbortController()
        calls: list[str] = []

        def bad() -> None:
            raise RuntimeError("boom")

        controller.signal.add_listener(bad)
        controller.signal.add_listener(lambda: calls.append("ok"))
        controller.abort()
        assert calls == ["ok"]

    def test_helpers(self):
        controller = AbortController()
        assert not is_aborted(None)
        assert not is_aborted(controller.signal)
        ensure_not_aborted(None)
        ensure_not_aborted(controller.signal)
        controller.abort()
        assert is_aborted(controller.signal)
        with pytest.raises(AbortedError):
            ensure_not_aborted(controller.signal)

    async def test_wait(self):
        controller = AbortController()
        waiter = asyncio.create_task(controller.signal.wait())
        await asyncio.sleep(0)
        assert not waiter.done()
        controller.abort()
        await asyncio.wait_for(waiter, 1)


class TestRunAbortable:
    async def test_no_signal(self):
        async def work() -> int:
            return 42

        assert await run_abortable(work(), None) == 42

    async def test_already_aborted(self):
        controller = AbortController()
        controller.abort()
        started = False

        async def work() -> None:
            nonlocal started
            started = True

        coro = work()
        with pytest.raises(AbortedError):
            await run_abortable(coro, controller.signal)
        assert not started
        assert coro.cr_frame is None  # closed, never awaited

    async def test_abort_mid_flight(self):
        controller = AbortController()

        async def slow() -> None:
            await asyncio.sleep(10)

        task = asyncio.create_task(run_abortable(slow(), controller.signal))
        await asyncio.sleep(0.01)
        controller.abort()
        with pytest.raises(AbortedError):
            await task
        assert controller.signal.listener_count == 0

    async def test_listener_removed_after_success(self):
        controller = AbortController()

        async def work() -> str:
            return "ok"

        assert await run_abortable(work(), controller.signal) == "ok"
        assert controller.signal.listener_count == 0
