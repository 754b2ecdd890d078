"""Shell processes — the execution backends behind a terminal session.

Two variants share one interface:

* ``PTYProcess`` runs the shell on a real pseudo-terminal and can be
  resized.
* ``PipeProcess`` is the plain-subprocess fallback: stdout and stderr are
  merged into one pipe, there is no terminal, and ``resize()`` raises
  ``NotSupported``.

Both use subprocess.Popen (not os.fork). Each process's fds are
non-blocking and watched by the event loop itself (``add_reader`` /
``add_writer``), so no session ever holds a shared worker thread and an
idle or hung child only stalls its own session.
"""

from __future__ import annotations

import asyncio
import enum
import fcntl
import logging
import os
import pty
import signal
import struct
import subprocess
import termios
from abc import ABC, abstractmethod
from typing import AsyncIterator, ClassVar

from ghostshell.errors import NotSupported, SpawnFailure

logger = logging.getLogger(__name__)

READ_SIZE = 4096

# Returned by wait() when the process was never started or could not be reaped.
UNKNOWN_EXIT_CODE = -1

WAIT_POLL_INTERVAL = 0.02


class ProcessStatus(enum.Enum):
    """Lifecycle states for a shell process."""

    NEW = "new"
    RUNNING = "running"
    KILLING = "killing"  # Kill requested, waiting for process to die
    KILLED = "killed"  # Killed by us (SIGKILL)
    EXITED = "exited"  # Process exited on its own


class ShellProcess(ABC):
    """Base class for a spawned interactive shell.

    Lifecycle: ``start()`` (synchronous, raises ``SpawnFailure``), then any
    number of ``write()`` / ``resize()`` calls while ``chunks()`` yields
    output, then ``wait()`` for the exit status. ``kill()`` may be called
    at any point and is a no-op once the process is gone.
    """

    backend: ClassVar[str] = ""
    resizable: ClassVar[bool] = False

    def __init__(
        self,
        command: list[str],
        cols: int = 80,
        rows: int = 24,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        term: str = "xterm-color",
    ) -> None:
        self.command = command
        self.cols = cols
        self.rows = rows
        self.cwd = cwd or os.getcwd()
        self.env = env or {}
        self.term = term
        self._proc: subprocess.Popen | None = None
        self._pgid: int = 0
        self._status = ProcessStatus.NEW
        self._loop: asyncio.AbstractEventLoop | None = None
        self._output: asyncio.Queue[bytes | None] | None = None
        self._reading = False
        self._write_lock = asyncio.Lock()
        self._write_watch: tuple[int, asyncio.Future] | None = None

    def _build_env(self) -> dict[str, str]:
        env = {**os.environ, **self.env}
        env["TERM"] = self.term
        env["COLUMNS"] = str(self.cols)
        env["LINES"] = str(self.rows)
        return env

    @abstractmethod
    def start(self) -> None:
        """Spawn the process in its own process group."""

    @abstractmethod
    def _read_fd(self) -> int:
        """Non-blocking fd the process's output is read from."""

    @abstractmethod
    def _write_fd(self) -> int:
        """Non-blocking fd the process's input is written to."""

    def _after_start(self) -> None:
        assert self._proc is not None
        self._pgid = os.getpgid(self._proc.pid)
        self._status = ProcessStatus.RUNNING
        logger.info(
            "%s process started: pid=%d pgid=%d cmd=%s",
            self.backend,
            self._proc.pid,
            self._pgid,
            " ".join(self.command),
        )

    def _close_fds(self) -> None:
        pass

    def _release(self) -> None:
        """Stop watching the fds, then close them."""
        self._stop_reader()
        self._drop_writer()
        self._close_fds()

    # -- input ---------------------------------------------------------------

    async def write(self, data: bytes) -> None:
        """Write raw bytes to the process input. Dropped once it has exited."""
        if self._status != ProcessStatus.RUNNING or not data:
            return
        view = memoryview(data)
        async with self._write_lock:
            try:
                while view and self._status == ProcessStatus.RUNNING:
                    try:
                        written = os.write(self._write_fd(), view)
                    except BlockingIOError:
                        await self._writable()
                        continue
                    view = view[written:]
            except OSError as e:
                logger.debug("Write to pid %s failed: %s", self.pid, e)

    async def _writable(self) -> None:
        loop = asyncio.get_running_loop()
        fd = self._write_fd()
        ready = loop.create_future()
        self._write_watch = (fd, ready)
        loop.add_writer(fd, self._drop_writer)
        try:
            await ready
        finally:
            self._drop_writer()

    def _drop_writer(self) -> None:
        # Also wakes a write parked on a full input buffer when the fds close.
        if self._write_watch is None:
            return
        fd, ready = self._write_watch
        self._write_watch = None
        ready.get_loop().remove_writer(fd)
        if not ready.done():
            ready.set_result(None)

    def resize(self, cols: int, rows: int) -> None:
        raise NotSupported(f"The {self.backend} backend cannot resize")

    # -- output --------------------------------------------------------------

    def _start_reader(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._output = asyncio.Queue()
        self._loop.add_reader(self._read_fd(), self._on_readable)
        self._reading = True

    def _stop_reader(self) -> None:
        if not self._reading:
            return
        self._reading = False
        assert self._loop is not None and self._output is not None
        self._loop.remove_reader(self._read_fd())
        self._output.put_nowait(None)

    def _on_readable(self) -> None:
        assert self._output is not None
        try:
            data = os.read(self._read_fd(), READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO on the pty master once the child side is gone
            data = b""
        if not data:
            self._stop_reader()
            return
        self._output.put_nowait(data)

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield output chunks in order until the process output closes."""
        if self._status not in (ProcessStatus.RUNNING, ProcessStatus.KILLING):
            return
        self._start_reader()
        assert self._output is not None
        try:
            while True:
                data = await self._output.get()
                if data is None:
                    return
                yield data
        finally:
            self._stop_reader()

    # -- exit ----------------------------------------------------------------

    async def wait(self, timeout: float = 5.0) -> int:
        """Wait for the process to exit and return its status code."""
        if self._proc is None:
            return UNKNOWN_EXIT_CODE
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while (code := self._proc.poll()) is None:
            if loop.time() >= deadline:
                logger.warning("pid %d did not exit within %.1fs", self._proc.pid, timeout)
                return UNKNOWN_EXIT_CODE
            await asyncio.sleep(WAIT_POLL_INTERVAL)
        if self._status == ProcessStatus.RUNNING:
            self._status = ProcessStatus.EXITED
            self._release()
        return code

    def kill(self) -> None:
        """Kill the entire process tree. Reaping is left to ``wait()``."""
        if self._status not in (ProcessStatus.RUNNING, ProcessStatus.KILLING):
            return

        self._status = ProcessStatus.KILLING
        try:
            os.killpg(self._pgid, signal.SIGKILL)
            logger.info("Killed %s process (pgid=%d)", self.backend, self._pgid)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)
        except OSError as e:
            logger.warning("Error killing pgid %d: %s", self._pgid, e)

        self._release()
        self._status = ProcessStatus.KILLED

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc else None

    @property
    def alive(self) -> bool:
        return self._status == ProcessStatus.RUNNING

    @property
    def status(self) -> ProcessStatus:
        return self._status


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the pty slave.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PTYProcess(ShellProcess):
    """Shell attached to a pseudo-terminal. Resizable."""

    backend: ClassVar[str] = "pty"
    resizable: ClassVar[bool] = True

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._master_fd: int = -1

    def start(self) -> None:
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise SpawnFailure(f"Could not allocate a pseudo-terminal: {e}") from e

        _set_winsize(slave_fd, self.cols, self.rows)
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
                env=self._build_env(),
                cwd=self.cwd,
            )
        except (OSError, subprocess.SubprocessError) as e:
            os.close(master_fd)
            raise SpawnFailure(f"{' '.join(self.command)}: {e}") from e
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        os.set_blocking(master_fd, False)
        self._master_fd = master_fd
        self._after_start()

    def _read_fd(self) -> int:
        return self._master_fd

    def _write_fd(self) -> int:
        return self._master_fd

    def resize(self, cols: int, rows: int) -> None:
        if self._status != ProcessStatus.RUNNING:
            return
        _set_winsize(self._master_fd, cols, rows)
        self.cols, self.rows = cols, rows

    def _close_fds(self) -> None:
        if self._master_fd >= 0:
            try:
                os.close(self._master_fd)
            except OSError:
                logger.debug("master fd %d already closed", self._master_fd)
            self._master_fd = -1


class PipeProcess(ShellProcess):
    """Shell on plain pipes. No terminal, so it cannot resize."""

    backend: ClassVar[str] = "pipe"
    resizable: ClassVar[bool] = False

    BANNER = b"\x1b[32mShell ready\x1b[0m\r\n$ "

    def start(self) -> None:
        try:
            self._proc = subprocess.Popen(
                self.command,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                bufsize=0,
                start_new_session=True,
                env=self._build_env(),
                cwd=self.cwd,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise SpawnFailure(f"{' '.join(self.command)}: {e}") from e
        os.set_blocking(self._read_fd(), False)
        os.set_blocking(self._write_fd(), False)
        self._after_start()

    def _read_fd(self) -> int:
        assert self._proc is not None and self._proc.stdout is not None
        return self._proc.stdout.fileno()

    def _write_fd(self) -> int:
        assert self._proc is not None and self._proc.stdin is not None
        return self._proc.stdin.fileno()

    def _start_reader(self) -> None:
        super()._start_reader()
        # There is no terminal to draw a prompt, so lead with a banner.
        assert self._output is not None
        self._output.put_nowait(self.BANNER)

    def _close_fds(self) -> None:
        if self._proc is None:
            return
        for stream in (self._proc.stdin, self._proc.stdout):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    logger.debug("pipe already closed for pid %d", self._proc.pid)


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


BACKENDS: dict[str, type[ShellProcess]] = {
    PTYProcess.backend: PTYProcess,
    PipeProcess.backend: PipeProcess,
}


def spawn_process(
    backend: str,
    command: list[str],
    cols: int = 80,
    rows: int = 24,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
    term: str = "xterm-color",
) -> ShellProcess:
    """Create and start a shell process on the named backend.

    Raises:
        SpawnFailure: the backend is unknown or the process could not start.
    """
    cls = BACKENDS.get(backend)
    if cls is None:
        raise SpawnFailure(f"Unknown execution backend: {backend}")
    proc = cls(command, cols=cols, rows=rows, cwd=cwd, env=env, term=term)
    proc.start()
    return proc
