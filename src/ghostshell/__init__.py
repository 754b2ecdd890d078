"""ghostshell — a terminal session relay with inline command suggestions."""

__version__ = "0.1.0"
