"""Tests for ghostshell.config.GhostshellConfig."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from ghostshell.config import GhostshellConfig

ENV_VARS = (
    "GHOSTSHELL_SHELL",
    "GHOSTSHELL_BACKEND",
    "GHOSTSHELL_CWD",
    "GHOSTSHELL_HOST",
    "GHOSTSHELL_PORT",
    "GHOSTSHELL_OVERLAY_DELAY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self) -> None:
        config = GhostshellConfig()
        assert config.shell.command == ["bash"]
        assert config.shell.backend == "pty"
        assert config.shell.term == "xterm-color"
        assert config.server.port == 3000
        assert config.server.cors_origins == ["http://localhost:4200"]
        assert config.overlay.enabled is True

    def test_invalid_backend(self) -> None:
        with pytest.raises(ValidationError):
            GhostshellConfig.model_validate({"shell": {"backend": "telnet"}})


class TestLoad:
    def test_load_without_file(self) -> None:
        assert GhostshellConfig.load().shell.backend == "pty"

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        config = GhostshellConfig.load(str(tmp_path / "nope.json"))
        assert config.server.port == 3000

    def test_load_file(self, tmp_path: Path) -> None:
        path = tmp_path / "ghostshell.json"
        path.write_text(
            json.dumps(
                {
                    "shell": {"command": ["zsh", "-l"], "backend": "pipe"},
                    "overlay": {"delay": 0.2},
                }
            )
        )
        config = GhostshellConfig.load(str(path))
        assert config.shell.command == ["zsh", "-l"]
        assert config.shell.backend == "pipe"
        assert config.overlay.delay == 0.2

    def test_env_overrides_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "ghostshell.json"
        path.write_text(json.dumps({"server": {"port": 8000}}))
        monkeypatch.setenv("GHOSTSHELL_PORT", "9000")
        monkeypatch.setenv("GHOSTSHELL_SHELL", "/bin/sh -i")
        monkeypatch.setenv("GHOSTSHELL_BACKEND", "PIPE")
        monkeypatch.setenv("GHOSTSHELL_OVERLAY_DELAY", "0")
        config = GhostshellConfig.load(str(path))
        assert config.server.port == 9000
        assert config.shell.command == ["/bin/sh", "-i"]
        assert config.shell.backend == "pipe"
        assert config.overlay.delay == 0
