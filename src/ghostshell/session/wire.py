"""Wire protocol — decouples the relay from its observers.

Session lifecycle and submitted commands flow from the relay to any
number of subscribers (audit logging, usage statistics). Observers only
listen; nothing on the wire ever feeds back into session control.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any


class EventType(enum.Enum):
    SESSION_CREATED = "session_created"
    SESSION_EXIT = "session_exit"
    COMMAND_SUBMITTED = "command_submitted"
    SPAWN_FAILED = "spawn_failed"


@dataclass
class WireEvent:
    """An event on the wire."""

    type: EventType
    connection_id: str = ""
    data: dict[str, Any] = field(default_factory=dict)


class Wire:
    """Async message bus: relay -> observer subscribers.

    Single-producer, multi-consumer broadcast.
    """

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[WireEvent | None]] = []
        self._closed: bool = False

    def send(self, event: WireEvent) -> None:
        """Send an event to all subscribers.

        Silently drops events after ``close()`` has been called.
        """
        if self._closed:
            return
        for q in self._subscribers:
            q.put_nowait(event)

    def send_session_created(self, connection_id: str, backend: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SESSION_CREATED,
                connection_id=connection_id,
                data={"backend": backend},
            )
        )

    def send_session_exit(
        self,
        connection_id: str,
        exit_code: int,
        reason: str,
        last_output: str = "",
    ) -> None:
        """Notify subscribers that a session ended, for whatever reason."""
        self.send(
            WireEvent(
                type=EventType.SESSION_EXIT,
                connection_id=connection_id,
                data={
                    "exit_code": exit_code,
                    "reason": reason,
                    "last_output": last_output[:500],
                },
            )
        )

    def send_command_submitted(self, connection_id: str, command: str) -> None:
        self.send(
            WireEvent(
                type=EventType.COMMAND_SUBMITTED,
                connection_id=connection_id,
                data={"command": command},
            )
        )

    def send_spawn_failed(self, connection_id: str, error: str) -> None:
        self.send(
            WireEvent(
                type=EventType.SPAWN_FAILED,
                connection_id=connection_id,
                data={"error": error},
            )
        )

    def subscribe(self) -> asyncio.Queue[WireEvent | None]:
        """Subscribe to events. Returns a queue to read from."""
        q: asyncio.Queue[WireEvent | None] = asyncio.Queue()
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        """Unsubscribe from events."""
        if q in self._subscribers:
            self._subscribers.remove(q)

    def close(self) -> None:
        """Signal all subscribers that the wire is closing."""
        self._closed = True
        for q in self._subscribers:
            q.put_nowait(None)
