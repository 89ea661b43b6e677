"""Cancellation signals shared between a caller and an in-flight call.

An ``AbortController`` is created by the caller and its ``signal`` is handed
to the call.  Calls register listeners to tear down network I/O; the caller
triggers them with ``abort()``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, TypeVar

from ai_providers.errors import AbortedError

_logger = logging.getLogger(__name__)

Listener = Callable[[], Any]
T = TypeVar("T")


class AbortSignal:
    """Read side of an ``AbortController``."""

    def __init__(self) -> None:
        self._aborted = False
        self._reason: Any = None
        self._listeners: list[Listener] = []
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Any:
        return self._reason

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        """Remove *listener*; removing an unknown listener is a no-op."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def throw_if_aborted(self) -> None:
        if self._aborted:
            raise AbortedError()

    async def wait(self) -> None:
        """Block until the signal is aborted."""
        await self._event.wait()

    def _fire(self, reason: Any) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._reason = reason
        self._event.set()
        # Listeners may remove themselves while we iterate
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                _logger.exception("Abort listener raised")


class AbortController:
    """Write side: ``abort()`` flips the signal and runs its listeners once."""

    def __init__(self) -> None:
        self.signal = AbortSignal()

    def abort(self, reason: Any = None) -> None:
        self.signal._fire(reason)


def is_aborted(signal: AbortSignal | None) -> bool:
    return signal is not None and signal.aborted


def ensure_not_aborted(signal: AbortSignal | None) -> None:
    """Raise ``AbortedError`` if *signal* is set."""
    if signal is not None:
        signal.throw_if_aborted()


async def run_abortable(awaitable: Awaitable[T], signal: AbortSignal | None) -> T:
    """Await *awaitable*, cancelling it and raising ``AbortedError`` on abort."""
    if signal is None:
        return await awaitable
    if signal.aborted:
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise AbortedError()
    task = asyncio.ensure_future(awaitable)

    def on_abort() -> None:
        task.cancel()

    signal.add_listener(on_abort)
    try:
        return await task
    except asyncio.CancelledError:
        if signal.aborted:
            raise AbortedError() from None
        raise
    finally:
        signal.remove_listener(on_abort)
