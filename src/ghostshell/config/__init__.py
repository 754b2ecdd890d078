"""Pydantic models for ghostshell settings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class ShellConfig(BaseModel):
    """How each session's shell process is spawned.

    ``backend`` picks the execution variant explicitly:
        "pty"  - real pseudo-terminal, resizable
        "pipe" - plain subprocess with pipes, cannot resize
    """

    command: list[str] = Field(default_factory=lambda: ["bash"])
    backend: Literal["pty", "pipe"] = Field(default="pty")
    term: str = Field(default="xterm-color", description="TERM for the child")
    cwd: str = Field(
        default_factory=lambda: str(Path.home()),
        description="Working directory for new shells",
    )
    env: dict[str, str] = Field(
        default_factory=dict, description="Extra environment variables"
    )
    default_cols: int = Field(default=80)
    default_rows: int = Field(default=24)


class OverlayConfig(BaseModel):
    """Ghost-text suggestion settings."""

    enabled: bool = Field(default=True)
    delay: float = Field(
        default=0.05,
        description="Quiet interval in seconds before a suggestion is computed",
    )


class ServerConfig(BaseModel):
    """HTTP / WebSocket listener settings."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000)
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:4200"])
    max_sessions: int = Field(default=64)
    history_size: int = Field(default=500, description="Commands kept per connection")
    output_log_lines: int = Field(default=2_000)


class GhostshellConfig(BaseModel):
    """Top-level ghostshell configuration."""

    shell: ShellConfig = Field(default_factory=ShellConfig)
    overlay: OverlayConfig = Field(default_factory=OverlayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def load(cls, config_path: str | None = None) -> GhostshellConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            GHOSTSHELL_SHELL          - Shell command line (split on whitespace)
            GHOSTSHELL_BACKEND        - Execution backend: pty or pipe
            GHOSTSHELL_CWD            - Working directory for new shells
            GHOSTSHELL_HOST           - Listen address
            GHOSTSHELL_PORT           - Listen port
            GHOSTSHELL_OVERLAY_DELAY  - Suggestion quiet interval (seconds)
        """
        # override=True so values edited into .env win over stale exports
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            import json

            with open(config_path) as f:
                config_data = json.load(f)

        shell = config_data.get("shell", {})
        server = config_data.get("server", {})
        overlay = config_data.get("overlay", {})

        env_shell = os.environ.get("GHOSTSHELL_SHELL")
        if env_shell:
            shell["command"] = env_shell.split()

        env_backend = os.environ.get("GHOSTSHELL_BACKEND")
        if env_backend:
            shell["backend"] = env_backend.lower()

        env_cwd = os.environ.get("GHOSTSHELL_CWD")
        if env_cwd:
            shell["cwd"] = env_cwd

        env_host = os.environ.get("GHOSTSHELL_HOST")
        if env_host:
            server["host"] = env_host

        env_port = os.environ.get("GHOSTSHELL_PORT")
        if env_port:
            server["port"] = int(env_port)

        env_delay = os.environ.get("GHOSTSHELL_OVERLAY_DELAY")
        if env_delay:
            overlay["delay"] = float(env_delay)

        if shell:
            config_data["shell"] = shell
        if server:
            config_data["server"] = server
        if overlay:
            config_data["overlay"] = overlay

        return cls.model_validate(config_data)
