"""Shell process management — one managed process per connection.

Each connection's shell runs on an execution backend (a resizable
pseudo-terminal or the plain-pipe fallback) in its own process group,
with output relayed to the connection and logged in a rolling buffer.
"""

from ghostshell.pty.buffer import OutputLog
from ghostshell.pty.manager import Session, SessionManager
from ghostshell.pty.process import (
    PipeProcess,
    ProcessStatus,
    PTYProcess,
    ShellProcess,
    spawn_process,
)

__all__ = [
    "OutputLog",
    "PipeProcess",
    "ProcessStatus",
    "PTYProcess",
    "Session",
    "SessionManager",
    "ShellProcess",
    "spawn_process",
]
