"""Command-line entry point for syzsup."""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Annotated, Optional

import typer

from . import __version__
from . import log as syzsup_log
from .commands.list_sources import list_sources as sources_cmd
from .commands.render import render_manager_config as manager_config_cmd
from .commands.run import run_supervisor as run_cmd

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Keep syz-manager running on the latest syzkaller, kernel and image.",
)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Supervisor config file (default: $SYZSUP_CONFIG or the user config dir).",
    ),
]


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main(
    log_level: Annotated[
        Optional[str],
        typer.Option(
            "--log-level",
            help=f"Log level ({', '.join(syzsup_log.LEVEL_NAMES)}).",
        ),
    ] = None,
    no_color: Annotated[
        bool, typer.Option("--no-color", help="Disable colorized output.")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show the version and exit.",
        ),
    ] = False,
) -> None:
    """Continuous deployment supervisor for syz-manager."""
    if log_level is not None:
        normalized = log_level.strip().lower()
        if normalized not in syzsup_log.LEVEL_NAMES and normalized != "warn":
            raise typer.BadParameter(
                f"expected one of: {', '.join(syzsup_log.LEVEL_NAMES)}",
                param_hint="--log-level",
            )
        syzsup_log.set_level(normalized)
    if no_color:
        syzsup_log.set_no_color(True)


@app.command("run")
def run(config: ConfigOption = None) -> None:
    """Poll sources, rebuild on change and keep syz-manager running."""
    raise typer.Exit(run_cmd(SimpleNamespace(config=config)))


@app.command("manager-config")
def manager_config(
    config: ConfigOption = None,
    port: Annotated[
        int, typer.Option("--port", min=0, max=65535, help="HTTP port to embed.")
    ] = 0,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Write to this file instead of stdout."),
    ] = None,
) -> None:
    """Render the syz-manager config from the current artifacts."""
    manager_config_cmd(SimpleNamespace(config=config, port=port, output=output))


@app.command("sources")
def sources(config: ConfigOption = None) -> None:
    """List the change sources the config selects, in polling order."""
    sources_cmd(SimpleNamespace(config=config))


if __name__ == "__main__":
    app()
