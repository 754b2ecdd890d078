"""Observer-facing session events and per-connection command history."""

from ghostshell.session.history import CommandHistory, HistoryEntry
from ghostshell.session.wire import EventType, Wire, WireEvent

__all__ = ["CommandHistory", "EventType", "HistoryEntry", "Wire", "WireEvent"]
