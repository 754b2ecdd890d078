"""Keystroke decoding and logical input-line tracking."""

from ghostshell.input.keys import Key, decode_keys
from ghostshell.input.tracker import InputTracker, LineState

__all__ = ["InputTracker", "Key", "LineState", "decode_keys"]
