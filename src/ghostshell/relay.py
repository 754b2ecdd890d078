"""Per-connection relay — ties one client channel to its session, tracker and overlay.

Input path:  frame -> InputTracker (line model, overlay erase) -> SessionManager
Output path: SessionManager -> OverlayChannel (overlay erase) -> client channel

Frames for one connection are handled strictly in arrival order by the
caller's receive loop; output is pumped concurrently by the manager.
"""

from __future__ import annotations

import logging
from typing import Any, TYPE_CHECKING

from ghostshell.config import GhostshellConfig
from ghostshell.errors import AlreadyExists, NotSupported, RelayFailure, SpawnFailure
from ghostshell.input.tracker import InputTracker
from ghostshell.overlay.renderer import OverlayRenderer
from ghostshell.overlay.scheduler import LatestWins
from ghostshell.session.history import CommandHistory
from ghostshell.transport.protocol import (
    CREATE_TERMINAL,
    TERMINAL_INPUT,
    TERMINAL_OUTPUT,
    TERMINAL_RESIZE,
    FrameError,
    decode_frame,
    parse_input,
    parse_size,
)

if TYPE_CHECKING:
    from ghostshell.complete.dictionary import Autocompleter
    from ghostshell.pty.manager import SessionManager
    from ghostshell.session.wire import Wire
    from ghostshell.transport.channel import Channel

logger = logging.getLogger(__name__)


class ChannelSurface:
    """Rendering surface backed by ``terminal-output`` events on a channel."""

    def __init__(self, channel: Channel) -> None:
        self._channel = channel

    async def write(self, text: str) -> None:
        await self._channel.emit(TERMINAL_OUTPUT, text)


class OverlayChannel:
    """The channel the SessionManager sees for this connection.

    Process output is routed through the renderer so a drawn suggestion is
    erased before real output lands on top of it; if one was erased (or
    one is waiting to be drawn) the suggestion is recomputed once output
    goes quiet.
    """

    def __init__(
        self, channel: Channel, renderer: OverlayRenderer, tracker: InputTracker
    ) -> None:
        self._channel = channel
        self._renderer = renderer
        self._tracker = tracker

    @property
    def closed(self) -> bool:
        return self._channel.closed

    async def emit(self, event: str, data: Any = None) -> None:
        if event == TERMINAL_OUTPUT:
            refresh = self._tracker.refresh_pending
            erased = await self._renderer.relay_output(data)
            if erased or refresh:
                self._tracker.schedule_refresh()
            return
        await self._renderer.erase()
        await self._channel.emit(event, data)


class TerminalConnection:
    """Everything that belongs to one connected client."""

    def __init__(
        self,
        connection_id: str,
        channel: Channel,
        manager: SessionManager,
        config: GhostshellConfig | None = None,
        autocompleter: Autocompleter | None = None,
        wire: Wire | None = None,
    ) -> None:
        config = config or GhostshellConfig()
        self.connection_id = connection_id
        self._channel = channel
        self._manager = manager
        self._wire = wire
        self._shell = config.shell
        self.history = CommandHistory(max_entries=config.server.history_size)
        self.renderer = OverlayRenderer(
            ChannelSurface(channel), autocompleter, enabled=config.overlay.enabled
        )
        self.tracker = InputTracker(
            send=self._send_input,
            renderer=self.renderer,
            scheduler=LatestWins(config.overlay.delay),
            on_submit=self._on_submit,
        )
        self.session_channel = OverlayChannel(channel, self.renderer, self.tracker)

    async def handle_frame(self, raw: str | bytes) -> None:
        """Decode and dispatch one client frame. Bad frames are dropped."""
        try:
            frame = decode_frame(raw)
            if frame.event == CREATE_TERMINAL:
                size = parse_size(frame.data)
                await self.create(size.cols, size.rows)
            elif frame.event == TERMINAL_INPUT:
                await self.input(parse_input(frame.data))
            elif frame.event == TERMINAL_RESIZE:
                size = parse_size(frame.data)
                if size.cols is None or size.rows is None:
                    raise FrameError("terminal-resize needs both cols and rows")
                self.resize(size.cols, size.rows)
        except FrameError as e:
            logger.warning("Dropped frame from %s: %s", self.connection_id, e)

    async def create(self, cols: int | None = None, rows: int | None = None) -> None:
        cols = cols or self._shell.default_cols
        rows = rows or self._shell.default_rows
        try:
            await self._manager.create_session(
                self.connection_id, cols, rows, self.session_channel
            )
        except AlreadyExists:
            logger.warning("Duplicate create-terminal from %s ignored", self.connection_id)
        except SpawnFailure:
            # Already reported to the client as terminal output
            pass
        except RelayFailure as e:
            logger.info("Channel for %s gone before session start: %s", self.connection_id, e)
        else:
            self.tracker.reset()

    async def input(self, data: str) -> None:
        if self.connection_id not in self._manager:
            logger.debug("Input from %s without a session dropped", self.connection_id)
            return
        await self.tracker.feed(data)

    def resize(self, cols: int, rows: int) -> None:
        try:
            self._manager.resize(self.connection_id, cols, rows)
        except NotSupported as e:
            logger.info("Resize ignored: %s", e)

    async def _send_input(self, data: bytes) -> None:
        await self._manager.write_input(self.connection_id, data)

    def _on_submit(self, command: str) -> None:
        if self.history.record(command) is None:
            return
        if self._wire:
            self._wire.send_command_submitted(self.connection_id, command)

    async def close(self, reason: str = "disconnect") -> None:
        """Tear down the session. Idempotent."""
        self.tracker.reset()
        await self._manager.close_session(self.connection_id, reason=reason)
