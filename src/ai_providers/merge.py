"""Merge visible and reasoning stream deltas into one append-only text.

Reasoning spans are wrapped in ``<think>...</think>`` so a single string can
be rendered live.  Every opening marker is emitted together with the text
that follows it, and a span still open at end of stream is closed by one
synthetic emission.
"""

from __future__ import annotations

from typing import Any, Callable

from ai_providers.types import StreamDelta

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"

# (fragment, accumulated_text)
ProgressFn = Callable[[str, str], Any]


class ReasoningMerger:
    """State machine over ``StreamDelta``s.

    States:
      outside       - not inside a reasoning span
      inside_think  - an opening marker has been emitted, no closing yet
    """

    def __init__(self, on_progress: ProgressFn | None = None) -> None:
        self.state = "outside"
        self.text = ""
        self._on_progress = on_progress

    def feed(self, delta: StreamDelta) -> str:
        """Consume one delta; return the fragment emitted (``""`` if none)."""
        fragment = ""

        if delta.reasoning:
            if self.state == "outside":
                fragment += THINK_OPEN
                self.state = "inside_think"
            fragment += delta.reasoning

        if delta.content:
            if self.state == "inside_think":
                fragment += THINK_CLOSE
                self.state = "outside"
            fragment += delta.content

        if fragment:
            self._emit(fragment)
        return fragment

    def finish(self) -> str:
        """Close a dangling reasoning span and return the full text."""
        if self.state == "inside_think":
            self.state = "outside"
            self._emit(THINK_CLOSE)
        return self.text

    def _emit(self, fragment: str) -> None:
        self.text += fragment
        if self._on_progress is not None:
            self._on_progress(fragment, self.text)
