"""One ordered, bidirectional event stream per client."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from ghostshell.errors import RelayFailure
from ghostshell.transport.protocol import encode_frame

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """Server-side end of a client connection."""

    @property
    def closed(self) -> bool: ...

    async def emit(self, event: str, data: Any = None) -> None:
        """Send one named event. Raises RelayFailure if the channel is dead."""
        ...


class WebSocketChannel:
    """Channel over a Starlette WebSocket.

    Process output and overlay drawing are sent from different tasks, so
    sends are serialized with a lock to keep frames whole and in order.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self._ws = websocket
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._ws.application_state != WebSocketState.CONNECTED

    async def emit(self, event: str, data: Any = None) -> None:
        if self.closed:
            raise RelayFailure(f"Channel closed, dropped {event}")
        frame = encode_frame(event, data)
        async with self._lock:
            try:
                await self._ws.send_text(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                self._closed = True
                raise RelayFailure(f"Send of {event} failed: {e}") from e

    async def receive(self) -> str | None:
        """Next frame as text, or None once the client has disconnected."""
        message = await self._ws.receive()
        if message["type"] == "websocket.disconnect":
            self._closed = True
            return None
        if message.get("text") is not None:
            return message["text"]
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")

    def mark_closed(self) -> None:
        self._closed = True
