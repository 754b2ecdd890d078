"""Decode raw client input chunks into semantic key events.

Terminals send keys as bytes: most printable keys are one character, but
Enter, Backspace and the arrows are control bytes or escape sequences, and
a paste delivers many keys in one chunk. ``decode_keys`` splits a chunk
into units using a lookup table (longest match first); anything it does
not recognise comes out as ``Key.OTHER`` with its exact text, so it can be
relayed verbatim.
"""

from __future__ import annotations

import enum
from typing import Iterator

ESC = "\x1b"


class Key(enum.Enum):
    CHAR = "char"
    BACKSPACE = "backspace"
    ENTER = "enter"
    ESCAPE = "escape"
    TAB = "tab"
    CURSOR_UP = "cursor_up"
    CURSOR_DOWN = "cursor_down"
    CURSOR_LEFT = "cursor_left"
    CURSOR_RIGHT = "cursor_right"
    OTHER = "other"


KEY_SEQUENCES: dict[str, Key] = {
    "\x7f": Key.BACKSPACE,
    "\x08": Key.BACKSPACE,
    "\r\n": Key.ENTER,
    "\r": Key.ENTER,
    "\n": Key.ENTER,
    "\t": Key.TAB,
    # normal and application cursor modes
    "\x1b[A": Key.CURSOR_UP,
    "\x1b[B": Key.CURSOR_DOWN,
    "\x1b[C": Key.CURSOR_RIGHT,
    "\x1b[D": Key.CURSOR_LEFT,
    "\x1bOA": Key.CURSOR_UP,
    "\x1bOB": Key.CURSOR_DOWN,
    "\x1bOC": Key.CURSOR_RIGHT,
    "\x1bOD": Key.CURSOR_LEFT,
}

_BY_LENGTH = sorted(KEY_SEQUENCES, key=len, reverse=True)


def _csi_end(data: str, start: int) -> int:
    """Index just past a CSI sequence beginning at ``start`` (``ESC [``)."""
    i = start + 2
    # parameter bytes 0x30-0x3f, then intermediates 0x20-0x2f
    while i < len(data) and "\x30" <= data[i] <= "\x3f":
        i += 1
    while i < len(data) and "\x20" <= data[i] <= "\x2f":
        i += 1
    # final byte 0x40-0x7e; a truncated sequence ends at the chunk boundary
    if i < len(data) and "\x40" <= data[i] <= "\x7e":
        i += 1
    return i


def _escape_unit(data: str, i: int) -> tuple[Key, str]:
    if data.startswith("\x1b[", i):
        return Key.OTHER, data[i : _csi_end(data, i)]
    if data.startswith("\x1bO", i) and i + 2 < len(data):
        return Key.OTHER, data[i : i + 3]
    if i + 1 < len(data) and data[i + 1] != ESC:
        # Alt+key arrives as ESC followed by the key
        return Key.OTHER, data[i : i + 2]
    return Key.ESCAPE, ESC


def decode_keys(data: str) -> Iterator[tuple[Key, str]]:
    """Split an input chunk into ``(key, text)`` units.

    Concatenating the ``text`` of every unit reproduces ``data`` exactly.
    """
    i = 0
    while i < len(data):
        for seq in _BY_LENGTH:
            if data.startswith(seq, i):
                yield KEY_SEQUENCES[seq], seq
                i += len(seq)
                break
        else:
            ch = data[i]
            if ch == ESC:
                key, text = _escape_unit(data, i)
                yield key, text
                i += len(text)
            elif ch.isprintable():
                yield Key.CHAR, ch
                i += 1
            else:
                yield Key.OTHER, ch
                i += 1
