"""End-to-end tests for ghostshell.relay.TerminalConnection over fake processes."""

from __future__ import annotations

import json

import pytest

from conftest import FakeChannel, FakeSpawner, StubCompleter, wait_for
from ghostshell.config import GhostshellConfig, OverlayConfig, ShellConfig
from ghostshell.pty.manager import SessionManager
from ghostshell.relay import TerminalConnection
from ghostshell.session.wire import EventType, Wire
from ghostshell.transport.protocol import TERMINAL_CREATED, TERMINAL_EXIT, TERMINAL_OUTPUT

DRAW_LS = "\x1b[90ms -la\x1b[0m\x1b[5D"
ERASE_LS = "     \x1b[5D"


def make_connection(
    spawner: FakeSpawner,
    channel: FakeChannel,
    table: dict[str, str] | None = None,
    wire: Wire | None = None,
) -> TerminalConnection:
    config = GhostshellConfig(overlay=OverlayConfig(delay=0))
    manager = SessionManager(wire=wire, spawner=spawner)
    return TerminalConnection(
        "c1",
        channel,
        manager,
        config=config,
        autocompleter=StubCompleter(table or {"l": "s -la"}),
        wire=wire,
    )


async def type_keys(conn: TerminalConnection, data: str) -> None:
    await conn.input(data)
    await conn.tracker.wait_idle()


def frame(event: str, data: object = None) -> str:
    return json.dumps({"event": event, "data": data})


# ---------------------------------------------------------------------------
# Overlay over a live session
# ---------------------------------------------------------------------------


class TestSuggestionFlow:
    async def test_type_then_backspace(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.create(80, 24)

        await type_keys(conn, "l")
        assert channel.named(TERMINAL_OUTPUT) == [DRAW_LS]
        assert spawner.last.written == b"l"

        await type_keys(conn, "\b")
        assert channel.named(TERMINAL_OUTPUT) == [DRAW_LS, ERASE_LS]
        assert spawner.last.written == b"l\b"
        assert conn.tracker.line.buffer == ""
        assert not conn.renderer.active

    async def test_output_erases_then_redraws(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.create(80, 24)
        await type_keys(conn, "l")

        spawner.last.output(b"l")
        await wait_for(lambda: "l" in channel.named(TERMINAL_OUTPUT))
        await conn.tracker.wait_idle()
        assert channel.named(TERMINAL_OUTPUT) == [DRAW_LS, ERASE_LS, "l", DRAW_LS]

    async def test_tab_accepts_into_shell(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel, {"git st": "atus"})
        await conn.create(80, 24)
        await type_keys(conn, "git st")
        await type_keys(conn, "\t")
        assert spawner.last.written == b"git status "

    async def test_exit_erases_overlay_first(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.create(80, 24)
        session = conn._manager.get("c1")
        assert session is not None
        await type_keys(conn, "l")

        spawner.last.exit(0)
        await session.pump_task
        kinds = [e for e, _ in channel.events]
        assert kinds[-2:] == [TERMINAL_OUTPUT, TERMINAL_EXIT]
        assert channel.events[-2][1] == ERASE_LS
        assert channel.named(TERMINAL_EXIT) == [{"code": 0}]

    async def test_suggestions_disabled(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        config = GhostshellConfig(overlay=OverlayConfig(enabled=False, delay=0))
        conn = TerminalConnection(
            "c1",
            channel,
            SessionManager(spawner=spawner),
            config=config,
            autocompleter=StubCompleter({"l": "s"}),
        )
        await conn.create(80, 24)
        await type_keys(conn, "l")
        assert channel.named(TERMINAL_OUTPUT) == []
        assert spawner.last.written == b"l"


# ---------------------------------------------------------------------------
# Frame dispatch and lifecycle
# ---------------------------------------------------------------------------


class TestFrames:
    async def test_create_via_frame(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.handle_frame(frame("create-terminal", {"cols": 100, "rows": 30}))
        assert (spawner.last.cols, spawner.last.rows) == (100, 30)
        assert channel.named(TERMINAL_CREATED)[0]["id"] == "c1"

    async def test_create_without_size_uses_defaults(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.handle_frame(frame("create-terminal"))
        assert (spawner.last.cols, spawner.last.rows) == (80, 24)

    async def test_create_uses_configured_size(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        config = GhostshellConfig(
            shell=ShellConfig(default_cols=100, default_rows=40),
            overlay=OverlayConfig(delay=0),
        )
        conn = TerminalConnection(
            "c1", channel, SessionManager(spawner=spawner), config=config
        )
        await conn.handle_frame(frame("create-terminal", {"cols": 132}))
        assert (spawner.last.cols, spawner.last.rows) == (132, 40)

    async def test_input_before_create_is_dropped(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.handle_frame(frame("terminal-input", "ls\r"))
        assert spawner.processes == []
        assert channel.events == []

    async def test_duplicate_create_ignored(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.handle_frame(frame("create-terminal", {"cols": 80, "rows": 24}))
        await conn.handle_frame(frame("create-terminal", {"cols": 80, "rows": 24}))
        assert len(spawner.processes) == 1
        assert len(channel.named(TERMINAL_CREATED)) == 1

    async def test_spawn_failure_reported_not_raised(self, channel: FakeChannel) -> None:
        conn = make_connection(FakeSpawner(fail="no such shell"), channel)
        await conn.handle_frame(frame("create-terminal", {"cols": 80, "rows": 24}))
        assert "Failed to start shell: no such shell" in channel.output()
        assert channel.named(TERMINAL_CREATED) == []

    @pytest.mark.parametrize(
        "raw",
        [
            "garbage",
            frame("terminal-output", "x"),
            frame("terminal-input", {"not": "text"}),
            frame("terminal-resize", {"cols": 0, "rows": 0}),
            frame("terminal-resize", {"cols": 120}),
        ],
    )
    async def test_bad_frames_dropped(
        self, spawner: FakeSpawner, channel: FakeChannel, raw: str
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.create(80, 24)
        await conn.handle_frame(raw)  # Should not raise
        assert spawner.last.written == b""
        assert spawner.last.sizes == []

    async def test_resize_via_frame(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.create(80, 24)
        await conn.handle_frame(frame("terminal-resize", {"cols": 120, "rows": 40}))
        assert spawner.last.sizes == [(120, 40)]

    async def test_resize_on_pipe_backend_keeps_session(self, channel: FakeChannel) -> None:
        spawner = FakeSpawner(resizable=False)
        conn = make_connection(spawner, channel)
        await conn.create(80, 24)
        await conn.handle_frame(frame("terminal-resize", {"cols": 120, "rows": 40}))
        assert spawner.last.alive
        assert channel.named(TERMINAL_EXIT) == []

    async def test_submit_records_history(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        wire = Wire()
        q = wire.subscribe()
        conn = make_connection(spawner, channel, wire=wire)
        await conn.create(80, 24)
        await type_keys(conn, "pwd\r")
        await type_keys(conn, "\r")

        assert [e.text for e in conn.history.entries()] == ["pwd"]
        events = []
        while not q.empty():
            event = q.get_nowait()
            if event is not None and event.type == EventType.COMMAND_SUBMITTED:
                events.append(event.data["command"])
        assert events == ["pwd"]

    async def test_close_is_idempotent(
        self, spawner: FakeSpawner, channel: FakeChannel
    ) -> None:
        conn = make_connection(spawner, channel)
        await conn.create(80, 24)
        await conn.close()
        await conn.close()
        assert channel.named(TERMINAL_EXIT) == [{"code": -9}]
        assert spawner.last.kill_count == 1
