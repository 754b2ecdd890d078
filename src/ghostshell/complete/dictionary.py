"""Suggest how the current command line continues."""

from __future__ import annotations

from typing import Protocol

COMMANDS = [
    "ls", "cd", "pwd", "mkdir", "rmdir", "rm", "cp", "mv", "touch", "cat",
    "less", "more", "head", "tail", "grep", "find", "which", "whereis",
    "man", "info", "help", "history", "clear", "exit", "logout",
    "ps", "top", "htop", "kill", "killall", "jobs", "fg", "bg", "nohup",
    "chmod", "chown", "chgrp", "umask", "su", "sudo", "whoami", "id",
    "df", "du", "free", "uname", "uptime", "date", "cal", "bc",
    "tar", "gzip", "gunzip", "zip", "unzip", "wget", "curl", "ssh", "scp",
    "git", "npm", "node", "python", "python3", "pip", "pip3",
    "docker", "docker-compose", "kubectl", "helm",
    "vim", "nano", "emacs", "code", "vi",
    "echo", "printf", "read", "test", "expr", "seq", "yes", "true", "false",
    "sort", "uniq", "cut", "tr", "sed", "awk", "xargs", "wc", "nl",
]

SUBCOMMANDS = {
    "git": [
        "add", "commit", "push", "pull", "clone", "fetch", "merge", "rebase",
        "checkout", "branch", "tag", "status", "log", "diff", "show",
        "reset", "revert", "stash", "remote", "config", "init", "blame",
    ],
    "npm": [
        "install", "uninstall", "update", "run", "start", "build", "test",
        "publish", "version", "init", "search", "info", "list", "audit",
        "fund", "outdated", "doctor", "cache", "config", "login", "logout",
    ],
    "docker": [
        "run", "build", "pull", "push", "images", "ps", "stop", "start",
        "restart", "rm", "rmi", "exec", "logs", "inspect", "commit",
        "tag", "save", "load", "export", "import", "volume", "network",
    ],
}

COMMON_OPTIONS = [
    "-a", "-l", "-h", "--help", "-v", "--version", "-f", "--force",
    "-r", "--recursive", "-i", "--interactive", "-q", "--quiet",
    "-V", "--verbose", "-n", "--dry-run", "-y", "--yes", "-d", "--debug",
]


class Autocompleter(Protocol):
    def match(self, line: str) -> str | None:
        """Return the text that would complete ``line``, or None."""
        ...


class CommandDictionary:
    """Static word lists: commands, a few tools' subcommands, common options.

    The first word is matched against ``commands``; later words against the
    first word's subcommands, and words starting with ``-`` against
    ``options``. Candidates keep table order and the first one wins. A
    candidate equal to the typed word completes nothing.
    """

    def __init__(
        self,
        commands: list[str] | None = None,
        subcommands: dict[str, list[str]] | None = None,
        options: list[str] | None = None,
    ) -> None:
        self.commands = commands if commands is not None else COMMANDS
        self.subcommands = subcommands if subcommands is not None else SUBCOMMANDS
        self.options = options if options is not None else COMMON_OPTIONS

    def candidates(self, line: str) -> list[str]:
        """Full words that could replace the last word of ``line``."""
        parts = line.split()
        if not parts or line[-1].isspace():
            return []
        word = parts[-1]

        if len(parts) == 1:
            pool = self.commands
        else:
            pool = list(self.subcommands.get(parts[0], []))
            if word.startswith("-"):
                pool += self.options
        return [c for c in pool if c.startswith(word)][:10]

    def match(self, line: str) -> str | None:
        word = line.split()[-1] if line.strip() else ""
        for candidate in self.candidates(line):
            if candidate != word:
                return candidate[len(word) :]
        return None
