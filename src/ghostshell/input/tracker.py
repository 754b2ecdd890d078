"""Client input tracker — the logical command line, rebuilt from raw keystrokes.

The shell owns the real line editor; this tracker only keeps a model of
what has been typed since the last Enter so suggestions can be computed.
It understands appends and backspaces at the end of the line. Cursor
movement inside the line is forwarded but not modelled, so after
left/right arrow editing the tracked buffer can drift from the real one
until the next Enter.

Escape is swallowed only when it dismisses a visible suggestion. With
nothing drawn, a bare Escape is forwarded to the shell like any other key.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from ghostshell.input.keys import Key, decode_keys
from ghostshell.overlay.renderer import OverlayRenderer
from ghostshell.overlay.scheduler import LatestWins

logger = logging.getLogger(__name__)


class LineMode(enum.Enum):
    IDLE = "idle"  # Empty buffer
    COMPOSING = "composing"  # Buffer non-empty


@dataclass(frozen=True)
class LineState:
    """Immutable snapshot of the line being composed."""

    buffer: str = ""
    cursor_offset: int = 0

    @property
    def mode(self) -> LineMode:
        return LineMode.COMPOSING if self.buffer else LineMode.IDLE

    def insert(self, text: str) -> LineState:
        i = self.cursor_offset
        return LineState(self.buffer[:i] + text + self.buffer[i:], i + len(text))

    def delete_back(self) -> LineState:
        i = self.cursor_offset
        if i == 0:
            return self
        return LineState(self.buffer[: i - 1] + self.buffer[i:], i - 1)


class InputTracker:
    """Runs each input chunk through the line model before it reaches the shell.

    For every chunk:
    - a pending suggestion is cancelled and a drawn one erased before any
      byte is forwarded
    - bytes go to ``send`` verbatim, except Escape used to dismiss a
      suggestion and Tab used to accept one
    - a new suggestion is scheduled if the line changed
    - each Enter reports the submitted line to ``on_submit``
    """

    def __init__(
        self,
        send: Callable[[bytes], Awaitable[None]],
        renderer: OverlayRenderer,
        scheduler: LatestWins | None = None,
        on_submit: Callable[[str], None] | None = None,
    ) -> None:
        self._send = send
        self._renderer = renderer
        self._scheduler = scheduler or LatestWins()
        self._on_submit = on_submit
        self._line = LineState()

    @property
    def line(self) -> LineState:
        return self._line

    @property
    def mode(self) -> LineMode:
        return self._line.mode

    async def feed(self, data: str) -> None:
        """Process one chunk of client input."""
        self._scheduler.cancel()
        forward: list[str] = []
        submitted: list[str] = []
        changed = False

        for key, text in decode_keys(data):
            if key is Key.ESCAPE:
                if await self._renderer.erase() is not None:
                    continue
            elif key is Key.TAB:
                suggestion = await self._renderer.accept()
                if suggestion is not None:
                    text = suggestion + " "
                    self._line = self._line.insert(text)
                    forward.append(text)
                    changed = True
                    continue

            await self._renderer.erase()
            forward.append(text)

            if key is Key.CHAR:
                self._line = self._line.insert(text)
                changed = True
            elif key is Key.BACKSPACE:
                self._line = self._line.delete_back()
                changed = True
            elif key is Key.ENTER:
                submitted.append(self._line.buffer)
                self._line = LineState()
                changed = False

        if forward:
            await self._send("".join(forward).encode("utf-8"))

        for command in submitted:
            logger.debug("Command submitted: %r", command)
            if self._on_submit:
                self._on_submit(command)

        if changed and self._line.buffer:
            self.schedule_refresh()

    def schedule_refresh(self) -> None:
        """Recompute the suggestion for the current line after the quiet interval."""
        if not self._line.buffer:
            return
        snapshot = self._line
        self._scheduler.schedule(
            lambda: self._renderer.refresh(snapshot, current=lambda: self._line)
        )

    def cancel_refresh(self) -> None:
        self._scheduler.cancel()

    @property
    def refresh_pending(self) -> bool:
        return self._scheduler.pending

    async def wait_idle(self) -> None:
        """Wait for any scheduled suggestion to be drawn (or dropped)."""
        await self._scheduler.wait_idle()

    def reset(self) -> None:
        self._scheduler.cancel()
        self._line = LineState()
