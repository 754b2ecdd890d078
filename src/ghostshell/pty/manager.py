"""Session Manager — one shell process per client connection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, TYPE_CHECKING

from ghostshell.config import ShellConfig
from ghostshell.errors import AlreadyExists, NotSupported, RelayFailure, SpawnFailure
from ghostshell.pty.buffer import OutputLog
from ghostshell.pty.process import ShellProcess, spawn_process
from ghostshell.transport.protocol import (
    TERMINAL_CREATED,
    TERMINAL_EXIT,
    TERMINAL_OUTPUT,
    OutputDecoder,
    TerminalCreated,
    TerminalExit,
)

if TYPE_CHECKING:
    from ghostshell.session.wire import Wire
    from ghostshell.transport.channel import Channel

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """A live shell bound to one connection. Owned by the SessionManager."""

    connection_id: str
    process: ShellProcess
    channel: Channel
    log: OutputLog
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    pump_task: asyncio.Task | None = None

    @property
    def alive(self) -> bool:
        return self.process.alive


class SessionManager:
    """Registry of sessions keyed by connection id.

    The manager ensures:
    - At most one session (live or spawning) per connection id
    - Output of each process is forwarded to its connection's channel
    - Process exit, disconnect and explicit close all end in ``_cleanup``,
      which removes the registry entry before anything else, so exactly
      one ``terminal-exit`` is ever sent per session
    - Sessions are killed on shutdown (no orphan processes)
    """

    def __init__(
        self,
        shell: ShellConfig | None = None,
        wire: Wire | None = None,
        max_sessions: int = 64,
        output_log_lines: int = 2_000,
        spawner: Callable[..., ShellProcess] = spawn_process,
    ) -> None:
        self._shell = shell or ShellConfig()
        self._wire = wire
        self._spawner = spawner
        self.max_sessions = max_sessions
        self._output_log_lines = output_log_lines
        self._sessions: dict[str, Session] = {}
        self._creating: set[str] = set()

    async def create_session(
        self, connection_id: str, cols: int, rows: int, channel: Channel
    ) -> Session:
        """Spawn a shell for a connection and start relaying its output.

        Raises:
            AlreadyExists: a session for this connection is live or spawning.
            SpawnFailure: the shell could not start. The client has already
                been told via a ``terminal-output`` message.
        """
        if connection_id in self._sessions or connection_id in self._creating:
            raise AlreadyExists(connection_id)

        self._creating.add(connection_id)
        try:
            try:
                if len(self._sessions) >= self.max_sessions:
                    raise SpawnFailure(
                        f"session limit reached ({self.max_sessions})"
                    )
                process = self._spawner(
                    self._shell.backend,
                    self._shell.command,
                    cols=cols,
                    rows=rows,
                    cwd=self._shell.cwd,
                    env=self._shell.env,
                    term=self._shell.term,
                )
            except SpawnFailure as e:
                logger.error("Spawn failed for %s: %s", connection_id, e)
                await self._report_spawn_failure(connection_id, channel, e)
                raise

            session = Session(
                connection_id=connection_id,
                process=process,
                channel=channel,
                log=OutputLog(max_lines=self._output_log_lines),
            )
            self._sessions[connection_id] = session
        finally:
            self._creating.discard(connection_id)

        try:
            await channel.emit(TERMINAL_CREATED, TerminalCreated(id=connection_id))
        except RelayFailure as e:
            logger.info("Channel for %s died during create: %s", connection_id, e)
            await self._cleanup(session, reason="relay-failure")
            raise

        if self._wire:
            self._wire.send_session_created(connection_id, process.backend)

        session.pump_task = asyncio.create_task(self._pump(session))
        logger.info(
            "Session %s created (%s, %dx%d)", connection_id, process.backend, cols, rows
        )
        return session

    async def _report_spawn_failure(
        self, connection_id: str, channel: Channel, error: SpawnFailure
    ) -> None:
        if self._wire:
            self._wire.send_spawn_failed(connection_id, str(error))
        try:
            await channel.emit(
                TERMINAL_OUTPUT, f"\r\nFailed to start shell: {error}\r\n"
            )
        except RelayFailure:
            logger.debug("Could not report spawn failure to %s", connection_id)

    async def _pump(self, session: Session) -> None:
        """Forward process output to the channel until the process ends."""
        decoder = OutputDecoder()
        try:
            async for chunk in session.process.chunks():
                text = decoder.decode(chunk)
                if not text:
                    continue
                session.log.append_text(text)
                await session.channel.emit(TERMINAL_OUTPUT, text)
            tail = decoder.flush()
            if tail:
                session.log.append_text(tail)
                await session.channel.emit(TERMINAL_OUTPUT, tail)
        except RelayFailure as e:
            logger.info("Relay to %s failed: %s", session.connection_id, e)
            await self._cleanup(session, reason="relay-failure")
            return

        exit_code = await session.process.wait()
        await self._cleanup(session, reason="exit", exit_code=exit_code)

    def get(self, connection_id: str) -> Session | None:
        """Get a session by connection id."""
        return self._sessions.get(connection_id)

    async def write_input(self, connection_id: str, data: bytes) -> None:
        """Forward raw input bytes to the connection's process."""
        session = self._sessions.get(connection_id)
        if session is None or not session.alive:
            logger.debug("Input for %s dropped: no live session", connection_id)
            return
        await session.process.write(data)

    def resize(self, connection_id: str, cols: int, rows: int) -> None:
        """Resize the connection's terminal.

        Raises:
            NotSupported: the session's backend cannot resize. The session
                is left untouched.
        """
        session = self._sessions.get(connection_id)
        if session is None or not session.alive:
            logger.debug("Resize for %s dropped: no live session", connection_id)
            return
        if not session.process.resizable:
            raise NotSupported(
                f"Session {connection_id} runs on the {session.process.backend} backend"
            )
        session.process.resize(cols, rows)

    async def close_session(self, connection_id: str, reason: str = "closed") -> None:
        """End a connection's session. Safe to call any number of times."""
        session = self._sessions.get(connection_id)
        if session is None:
            return
        await self._cleanup(session, reason=reason)

    async def _cleanup(
        self, session: Session, reason: str, exit_code: int | None = None
    ) -> None:
        # The registry pop happens before any await: whoever gets here first
        # owns the teardown, every later caller returns immediately.
        if self._sessions.get(session.connection_id) is not session:
            return
        del self._sessions[session.connection_id]

        session.process.kill()
        pump = session.pump_task
        if pump is not None and pump is not asyncio.current_task() and not pump.done():
            pump.cancel()

        if exit_code is None:
            exit_code = await session.process.wait(timeout=2.0)

        logger.info(
            "Session %s closed (reason=%s, code=%s)",
            session.connection_id,
            reason,
            exit_code,
        )
        try:
            await session.channel.emit(TERMINAL_EXIT, TerminalExit(code=exit_code))
        except RelayFailure:
            logger.debug("terminal-exit not delivered to %s", session.connection_id)

        if self._wire:
            tail = session.log.read_tail(3)
            self._wire.send_session_exit(
                session.connection_id, exit_code, reason, "\n".join(tail)
            )

    def transcript(self, connection_id: str, lines: int = 100) -> list[str]:
        """Recent output of a live session, ANSI-stripped."""
        session = self._sessions.get(connection_id)
        if session is None:
            return []
        return session.log.read_tail(lines)

    def list_sessions(self) -> list[dict[str, Any]]:
        """List all live sessions."""
        return [
            {
                "id": s.connection_id,
                "backend": s.process.backend,
                "pid": s.process.pid,
                "alive": s.alive,
                "created_at": s.created_at.isoformat(),
                "lines": s.log.total_lines,
            }
            for s in self._sessions.values()
        ]

    async def cleanup(self) -> None:
        """Close all sessions. Called on shutdown."""
        for connection_id in list(self._sessions.keys()):
            await self.close_session(connection_id, reason="shutdown")
        logger.info("All sessions cleaned up")

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._sessions
