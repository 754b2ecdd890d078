"""CLI entry point for ghostshell."""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.text import Text

from ghostshell.config import GhostshellConfig

app = typer.Typer(
    name="ghostshell",
    help="Browser terminal relay with inline command suggestions.",
    no_args_is_help=True,
)

console = Console()


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command()
def serve(
    host: str | None = typer.Option(
        None, "--host", "-H", help="Listen address (default: from env/config)."
    ),
    port: int | None = typer.Option(
        None, "--port", "-p", help="Listen port (default: from env/config)."
    ),
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Execution backend: 'pty' (resizable) or 'pipe' (plain subprocess).",
    ),
    no_suggestions: bool = typer.Option(
        False, "--no-suggestions", help="Disable ghost-text suggestions."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run the terminal relay server."""
    import uvicorn

    from ghostshell.server import create_app

    setup_logging(verbose)

    config = GhostshellConfig.load(config_file)
    if host:
        config.server.host = host
    if port:
        config.server.port = port
    if backend:
        if backend not in ("pty", "pipe"):
            typer.echo(f"Error: Unknown backend: {backend}", err=True)
            raise typer.Exit(1)
        config.shell.backend = backend
    if no_suggestions:
        config.overlay.enabled = False

    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level="debug" if verbose else "info",
    )


@app.command()
def complete(
    line: str = typer.Argument(help="A partial command line, e.g. 'git st'."),
) -> None:
    """Show the suggestion the default dictionary would draw for LINE."""
    from ghostshell.complete.dictionary import CommandDictionary
    from ghostshell.overlay.renderer import valid_extension

    suffix = CommandDictionary().match(line)
    if not valid_extension(line, suffix):
        console.print(Text(line))
        raise typer.Exit(1)
    text = Text(line)
    text.append(suffix, style="bright_black")
    console.print(text)


@app.command("config")
def show_config(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Print the effective configuration as JSON."""
    config = GhostshellConfig.load(config_file)
    console.print_json(config.model_dump_json())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
