"""Exception hierarchy for ai-providers."""

from __future__ import annotations


class AIProvidersError(Exception):
    """Base class for all errors raised by this package."""


class AbortedError(AIProvidersError):
    """The caller cancelled the call.  Never retried."""

    def __init__(self, message: str = "Aborted") -> None:
        super().__init__(message)


class TransportError(AIProvidersError):
    """Network-layer failure (timeout, DNS, reset, ...)."""


class StreamInterruptedError(TransportError):
    """A generation stream failed after output was already surfaced.

    Wrapping the original error keeps the selector from replaying the
    call; the original is available as ``__cause__``.
    """

    def __init__(self, original: BaseException) -> None:
        super().__init__(f"stream interrupted: {original}")
        self.original = original


class ProviderError(AIProvidersError):
    """Provider-level failure: bad status, bad payload or bad arguments."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
