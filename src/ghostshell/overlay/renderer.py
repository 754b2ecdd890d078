"""Suggestion overlay — ghost text drawn past the cursor, always exactly undoable.

A suggestion is drawn as dim text followed by a cursor-back of the same
length, so the real cursor never moves. Erasing writes the same number of
blanks and moves back again. Both sequences depend only on the span's
length, which is what makes the erase an exact inverse of the draw.

Every write to the rendering surface, overlay or real process output,
goes through one lock, and real output always erases the overlay first.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Protocol, TYPE_CHECKING

from ghostshell.errors import OverlayRenderFailure

if TYPE_CHECKING:
    from ghostshell.complete.dictionary import Autocompleter
    from ghostshell.input.tracker import LineState

logger = logging.getLogger(__name__)

GHOST_STYLE = "\x1b[90m"
RESET_STYLE = "\x1b[0m"


def cursor_back(n: int) -> str:
    return f"\x1b[{n}D" if n > 0 else ""


class Surface(Protocol):
    """Where terminal text is drawn: the client's terminal, via its channel."""

    async def write(self, text: str) -> None: ...


@dataclass(frozen=True)
class OverlaySpan:
    """A drawn suggestion and the cursor column it was anchored at."""

    text: str
    anchor_offset: int

    @property
    def draw_sequence(self) -> str:
        return f"{GHOST_STYLE}{self.text}{RESET_STYLE}{cursor_back(len(self.text))}"

    @property
    def erase_sequence(self) -> str:
        return " " * len(self.text) + cursor_back(len(self.text))


def valid_extension(line: str, suffix: str | None) -> bool:
    """Whether ``suffix`` may be drawn as a continuation of ``line``.

    The line's last whitespace-delimited token must be non-empty (nothing
    is suggested after a trailing space) and the suffix must be non-empty
    printable text.
    """
    if not suffix or not line.strip():
        return False
    if line[-1].isspace():
        return False
    return suffix.isprintable()


class OverlayRenderer:
    """Draw/erase cycle of one connection's ghost-text suggestion."""

    def __init__(
        self,
        surface: Surface,
        autocompleter: Autocompleter | None,
        enabled: bool = True,
    ) -> None:
        self._surface = surface
        self._autocompleter = autocompleter
        self.enabled = enabled and autocompleter is not None
        self._span: OverlaySpan | None = None
        self._lock = asyncio.Lock()

    @property
    def span(self) -> OverlaySpan | None:
        return self._span

    @property
    def active(self) -> bool:
        return self._span is not None

    async def _write_overlay(self, text: str) -> None:
        try:
            await self._surface.write(text)
        except Exception as e:
            raise OverlayRenderFailure(str(e)) from e

    async def _erase_locked(self) -> OverlaySpan | None:
        span, self._span = self._span, None
        if span is not None:
            try:
                await self._write_overlay(span.erase_sequence)
            except OverlayRenderFailure as e:
                logger.debug("Overlay erase failed: %s", e)
        return span

    async def erase(self) -> OverlaySpan | None:
        """Remove the drawn suggestion, if any, and return it."""
        async with self._lock:
            return await self._erase_locked()

    async def refresh(
        self,
        line: LineState,
        current: Callable[[], LineState] | None = None,
    ) -> OverlaySpan | None:
        """Erase the old suggestion and draw a new one for ``line``.

        ``current`` returns the tracker's live line; if it no longer equals
        ``line`` by the time the suggestion is ready, nothing is drawn.
        """
        async with self._lock:
            await self._erase_locked()
            if not self.enabled or line.cursor_offset != len(line.buffer):
                return None

            try:
                suffix = self._autocompleter.match(line.buffer)
            except Exception:
                logger.debug("Autocomplete failed for %r", line.buffer, exc_info=True)
                return None
            if not valid_extension(line.buffer, suffix):
                return None
            if current is not None and current() != line:
                return None

            span = OverlaySpan(text=suffix, anchor_offset=line.cursor_offset)
            try:
                await self._write_overlay(span.draw_sequence)
            except OverlayRenderFailure as e:
                logger.debug("Overlay draw failed: %s", e)
                return None
            self._span = span
            return span

    async def accept(self) -> str | None:
        """Erase the suggestion and hand back its text for real input."""
        async with self._lock:
            span = await self._erase_locked()
        return span.text if span else None

    async def relay_output(self, text: str) -> bool:
        """Write real process output, erasing the suggestion first.

        Returns True if a suggestion had to be erased. Errors writing the
        output itself propagate; they mean the channel is gone.
        """
        async with self._lock:
            erased = await self._erase_locked()
            await self._surface.write(text)
        return erased is not None
