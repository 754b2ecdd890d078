"""Transport framing — named events as JSON text frames.

Every frame is ``{"event": <name>, "data": <payload>}``. Terminal bytes
travel as strings: input is encoded to UTF-8 before it reaches the
process, output is decoded incrementally so a multibyte character split
across two reads is never mangled.
"""

from __future__ import annotations

import codecs
import json
from typing import Any

from pydantic import BaseModel, Field, ValidationError

# client -> server
CREATE_TERMINAL = "create-terminal"
TERMINAL_INPUT = "terminal-input"
TERMINAL_RESIZE = "terminal-resize"

# server -> client
TERMINAL_CREATED = "terminal-created"
TERMINAL_OUTPUT = "terminal-output"
TERMINAL_EXIT = "terminal-exit"

CLIENT_EVENTS = frozenset({CREATE_TERMINAL, TERMINAL_INPUT, TERMINAL_RESIZE})


class FrameError(ValueError):
    """A frame could not be parsed or its payload is invalid."""


class Frame(BaseModel):
    event: str
    data: Any = None


class TerminalSize(BaseModel):
    """Payload of ``create-terminal`` and ``terminal-resize``."""

    # Unset fields fall back to the shell defaults in the config.
    cols: int | None = Field(default=None, ge=1, le=1000)
    rows: int | None = Field(default=None, ge=1, le=1000)


class TerminalCreated(BaseModel):
    id: str
    message: str = "Terminal created successfully"


class TerminalExit(BaseModel):
    code: int


def encode_frame(event: str, data: Any = None) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    return json.dumps({"event": event, "data": data}, ensure_ascii=False)


def decode_frame(raw: str | bytes) -> Frame:
    """Parse one client frame.

    Raises:
        FrameError: not JSON, wrong shape, or an event name the server
            does not accept.
    """
    try:
        frame = Frame.model_validate_json(raw)
    except ValidationError as e:
        raise FrameError(f"Malformed frame: {e.errors()[0]['msg']}") from e
    if frame.event not in CLIENT_EVENTS:
        raise FrameError(f"Unknown event: {frame.event!r}")
    return frame


def parse_size(data: Any) -> TerminalSize:
    try:
        return TerminalSize.model_validate(data or {})
    except ValidationError as e:
        raise FrameError(f"Invalid terminal size: {e.errors()[0]['msg']}") from e


def parse_input(data: Any) -> str:
    if not isinstance(data, str):
        raise FrameError("terminal-input payload must be a string")
    return data


class OutputDecoder:
    """Incremental UTF-8 decoder for one session's output stream."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def decode(self, chunk: bytes) -> str:
        return self._decoder.decode(chunk)

    def flush(self) -> str:
        return self._decoder.decode(b"", final=True)
