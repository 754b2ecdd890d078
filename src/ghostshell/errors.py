"""Error taxonomy for the terminal relay.

Process-level failures are terminal for one session only; none of these
ever escape the manager into other connections.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for all ghostshell errors."""


class SpawnFailure(RelayError):
    """The shell process could not be started (missing binary, bad cwd)."""


class AlreadyExists(RelayError):
    """A live session already exists for this connection."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(f"Session already exists for connection {connection_id}")
        self.connection_id = connection_id


class NotSupported(RelayError):
    """The execution backend lacks the requested capability (e.g. resize)."""


class RelayFailure(RelayError):
    """Writing to the transport channel failed; the channel is presumed dead."""


class OverlayRenderFailure(RelayError):
    """Drawing or erasing ghost text failed. Always swallowed."""
