"""Per-connection history of submitted command lines."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class HistoryEntry:
    text: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "timestamp": self.timestamp.isoformat()}


class CommandHistory:
    """Bounded record of commands submitted with Enter, oldest first.

    Blank submissions (Enter on an empty prompt) are not recorded.
    """

    def __init__(self, max_entries: int = 500) -> None:
        self._entries: deque[HistoryEntry] = deque(maxlen=max_entries)

    def record(self, text: str) -> HistoryEntry | None:
        if not text.strip():
            return None
        entry = HistoryEntry(text=text)
        self._entries.append(entry)
        return entry

    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    def last(self) -> HistoryEntry | None:
        return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
