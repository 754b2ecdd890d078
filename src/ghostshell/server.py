"""Starlette server for ghostshell.

Endpoints:
- /ws/terminal: one WebSocket per client, carrying terminal events
- /health: liveness and session count
- /sessions: live sessions
- /sessions/{connection_id}/history: commands submitted on a connection
- /sessions/{connection_id}/transcript: recent output of a session
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from typing import AsyncIterator

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket

from ghostshell.complete.dictionary import Autocompleter, CommandDictionary
from ghostshell.config import GhostshellConfig
from ghostshell.pty.manager import SessionManager
from ghostshell.relay import TerminalConnection
from ghostshell.session.wire import Wire
from ghostshell.transport.channel import WebSocketChannel

logger = logging.getLogger(__name__)


async def terminal_websocket_endpoint(websocket: WebSocket) -> None:
    """
    WebSocket endpoint for terminal clients.

    Protocol (JSON text frames, ``{"event": ..., "data": ...}``):
        client -> server: create-terminal {cols, rows}, terminal-input "<keys>",
                          terminal-resize {cols, rows}
        server -> client: terminal-created {id}, terminal-output "<text>",
                          terminal-exit {code}
    Closing the socket ends the session.
    """
    state = websocket.app.state
    await websocket.accept()

    connection_id = uuid.uuid4().hex
    channel = WebSocketChannel(websocket)
    conn = TerminalConnection(
        connection_id,
        channel,
        state.manager,
        config=state.config,
        autocompleter=state.autocompleter,
        wire=state.wire,
    )
    state.connections[connection_id] = conn
    logger.info("Client connected: %s", connection_id)

    try:
        while True:
            raw = await channel.receive()
            if raw is None:
                break
            await conn.handle_frame(raw)
    except Exception:
        logger.exception("Terminal WebSocket error on %s", connection_id)
    finally:
        channel.mark_closed()
        await conn.close(reason="disconnect")
        state.connections.pop(connection_id, None)
        logger.info("Client disconnected: %s", connection_id)


async def health(request: Request) -> JSONResponse:
    """GET /health — liveness check."""
    manager: SessionManager = request.app.state.manager
    return JSONResponse({"status": "ok", "sessions": len(manager)})


async def list_sessions(request: Request) -> JSONResponse:
    """GET /sessions — live sessions."""
    manager: SessionManager = request.app.state.manager
    sessions = manager.list_sessions()
    return JSONResponse({"sessions": sessions, "count": len(sessions)})


async def session_history(request: Request) -> JSONResponse:
    """GET /sessions/{connection_id}/history — submitted commands."""
    connection_id = request.path_params["connection_id"]
    conn = request.app.state.connections.get(connection_id)
    if conn is None:
        return JSONResponse(
            {"error": f"Connection not found: {connection_id}"}, status_code=404
        )
    return JSONResponse(
        {"id": connection_id, "history": [e.to_dict() for e in conn.history.entries()]}
    )


async def session_transcript(request: Request) -> JSONResponse:
    """GET /sessions/{connection_id}/transcript?lines=N — recent output."""
    connection_id = request.path_params["connection_id"]
    manager: SessionManager = request.app.state.manager
    if manager.get(connection_id) is None:
        return JSONResponse(
            {"error": f"Session not found: {connection_id}"}, status_code=404
        )
    try:
        lines = int(request.query_params.get("lines", "100"))
    except ValueError:
        return JSONResponse({"error": "lines must be an integer"}, status_code=400)
    return JSONResponse(
        {"id": connection_id, "lines": manager.transcript(connection_id, lines)}
    )


def create_app(
    config: GhostshellConfig | None = None,
    autocompleter: Autocompleter | None = None,
    manager: SessionManager | None = None,
) -> Starlette:
    """Build the application. Everything shared lives on ``app.state``."""
    config = config or GhostshellConfig()
    wire = Wire()
    manager = manager or SessionManager(
        shell=config.shell,
        wire=wire,
        max_sessions=config.server.max_sessions,
        output_log_lines=config.server.output_log_lines,
    )

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        logger.info(
            "ghostshell ready (backend=%s, shell=%s)",
            config.shell.backend,
            " ".join(config.shell.command),
        )
        yield
        await manager.cleanup()
        wire.close()

    app = Starlette(
        routes=[
            WebSocketRoute("/ws/terminal", terminal_websocket_endpoint),
            Route("/health", health, methods=["GET"]),
            Route("/sessions", list_sessions, methods=["GET"]),
            Route(
                "/sessions/{connection_id}/history", session_history, methods=["GET"]
            ),
            Route(
                "/sessions/{connection_id}/transcript",
                session_transcript,
                methods=["GET"],
            ),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=config.server.cors_origins,
                allow_methods=["GET", "POST"],
                allow_headers=["*"],
            )
        ],
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.wire = wire
    app.state.manager = manager
    app.state.autocompleter = (
        autocompleter if autocompleter is not None else CommandDictionary()
    )
    app.state.connections = {}
    return app
