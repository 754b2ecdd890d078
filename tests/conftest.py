"""Shared fakes: process, spawner, channel, surface, completer, screen."""

from __future__ import annotations

import asyncio
import re
from typing import Any, AsyncIterator, Callable

import pytest
from pydantic import BaseModel

from ghostshell.errors import NotSupported, RelayFailure, SpawnFailure
from ghostshell.pty.process import ProcessStatus, ShellProcess
from ghostshell.transport.protocol import TERMINAL_OUTPUT


class FakeProcess(ShellProcess):
    """In-memory shell: tests push output and decide when it exits."""

    backend = "fake"

    def __init__(self, *args: Any, resizable: bool = True, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.resizable = resizable
        self.written = bytearray()
        self.sizes: list[tuple[int, int]] = []
        self.kill_count = 0
        self._code: int | None = None
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()

    def start(self) -> None:
        self._status = ProcessStatus.RUNNING

    # No file descriptors: output and input go through the queue and buffer.
    def _read_fd(self) -> int:
        return -1

    def _write_fd(self) -> int:
        return -1

    async def write(self, data: bytes) -> None:
        if self.alive:
            self.written += data

    def resize(self, cols: int, rows: int) -> None:
        if not self.resizable:
            raise NotSupported("fake backend cannot resize")
        self.sizes.append((cols, rows))

    async def chunks(self) -> AsyncIterator[bytes]:
        while True:
            data = await self._queue.get()
            if data is None:
                return
            yield data

    async def wait(self, timeout: float = 5.0) -> int:
        return self._code if self._code is not None else -1

    def kill(self) -> None:
        if self._status != ProcessStatus.RUNNING:
            return
        self.kill_count += 1
        self._status = ProcessStatus.KILLED
        self._code = -9
        self._queue.put_nowait(None)

    # test controls

    def output(self, data: bytes) -> None:
        self._queue.put_nowait(data)

    def exit(self, code: int) -> None:
        self._code = code
        self._status = ProcessStatus.EXITED
        self._queue.put_nowait(None)

    @property
    def returncode(self) -> int | None:
        return self._code


class FakeSpawner:
    def __init__(self, resizable: bool = True, fail: str | None = None) -> None:
        self.resizable = resizable
        self.fail = fail
        self.processes: list[FakeProcess] = []

    def __call__(
        self,
        backend: str,
        command: list[str],
        cols: int = 80,
        rows: int = 24,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        term: str = "xterm-color",
    ) -> FakeProcess:
        if self.fail:
            raise SpawnFailure(self.fail)
        proc = FakeProcess(
            command, cols=cols, rows=rows, cwd=cwd, env=env, term=term,
            resizable=self.resizable,
        )
        proc.start()
        self.processes.append(proc)
        return proc

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


class FakeChannel:
    """Records emitted events; ``fail = True`` simulates a dead connection."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []
        self.fail = False

    @property
    def closed(self) -> bool:
        return self.fail

    async def emit(self, event: str, data: Any = None) -> None:
        if self.fail:
            raise RelayFailure("channel closed")
        if isinstance(data, BaseModel):
            data = data.model_dump()
        self.events.append((event, data))

    def named(self, event: str) -> list[Any]:
        return [d for e, d in self.events if e == event]

    def output(self) -> str:
        return "".join(self.named(TERMINAL_OUTPUT))


class RecordingSurface:
    def __init__(self) -> None:
        self.writes: list[str] = []
        self.fail = False

    async def write(self, text: str) -> None:
        if self.fail:
            raise RelayFailure("surface detached")
        self.writes.append(text)

    @property
    def text(self) -> str:
        return "".join(self.writes)


class StubCompleter:
    """Autocompleter with a fixed line -> suffix table."""

    def __init__(self, table: dict[str, str] | None = None) -> None:
        self.table = table or {}
        self.calls: list[str] = []

    def match(self, line: str) -> str | None:
        self.calls.append(line)
        return self.table.get(line)


_SEQ = re.compile(r"\x1b\[(\d*)([A-Za-z])")


class Screen:
    """One terminal row: enough to check where overlay writes leave the cursor."""

    def __init__(self, width: int = 200) -> None:
        self.cells = [" "] * width
        self.cursor = 0

    def feed(self, text: str) -> None:
        i = 0
        while i < len(text):
            m = _SEQ.match(text, i)
            if m:
                if m.group(2) == "D":
                    self.cursor = max(0, self.cursor - int(m.group(1) or 1))
                i = m.end()
                continue
            self.cells[self.cursor] = text[i]
            self.cursor += 1
            i += 1

    @property
    def line(self) -> str:
        return "".join(self.cells).rstrip()


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def surface() -> RecordingSurface:
    return RecordingSurface()
