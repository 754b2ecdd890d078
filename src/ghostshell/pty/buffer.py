"""Rolling output log for shell sessions."""

from __future__ import annotations

import re
from collections import deque

_ANSI_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07]*\x07|\x1b[()][A-Za-z0-9]")


def strip_ansi(text: str) -> str:
    """Strip ANSI escape sequences from text."""
    return _ANSI_RE.sub("", text)


class OutputLog:
    """Rolling log of a session's terminal output.

    Output arrives in arbitrary chunks, not lines, so the trailing partial
    line is held in ``_partial`` until its newline shows up. Stored lines
    are ANSI-stripped with carriage returns removed; the log is for
    transcripts and diagnostics, never for re-rendering.
    """

    def __init__(self, max_lines: int = 2_000) -> None:
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._partial: str = ""
        self._total_lines: int = 0

    def append_text(self, text: str) -> None:
        """Append a chunk of raw terminal output."""
        cleaned = strip_ansi(text).replace("\r", "")
        parts = (self._partial + cleaned).split("\n")
        self._partial = parts.pop()
        for line in parts:
            self._lines.append(line)
            self._total_lines += 1

    def read_tail(self, n: int = 100) -> list[str]:
        """Read the last N lines, including an unterminated final line."""
        lines = list(self._lines)
        if self._partial:
            lines.append(self._partial)
        return lines[-n:] if len(lines) > n else lines

    def read_all(self) -> str:
        return "\n".join(self.read_tail(len(self._lines) + 1))

    @property
    def line_count(self) -> int:
        """Current number of complete lines in the log."""
        return len(self._lines)

    @property
    def total_lines(self) -> int:
        """Total number of complete lines ever added."""
        return self._total_lines

    def clear(self) -> None:
        self._lines.clear()
        self._partial = ""
        self._total_lines = 0
