"""Implementation for the ``syzsup sources`` command."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table

from .. import cloud
from ..sources import build_sources
from .resolve import resolve_config, resolve_working_dir


def list_sources(args: object) -> None:
    """Show the change sources selected by the config, in polling order."""
    _config_path, cfg = resolve_config(args)
    wd = resolve_working_dir()
    sources = build_sources(
        cfg,
        wd,
        storage=cloud.GsutilStorage(),
        images=cloud.GcloudImages(),
    )
    table = Table(box=box.SIMPLE)
    table.add_column("#", justify="right")
    table.add_column("Source")
    table.add_column("Kind")
    for index, source in enumerate(sources, start=1):
        table.add_row(str(index), source.name, type(source).__name__)
    Console().print(table)
