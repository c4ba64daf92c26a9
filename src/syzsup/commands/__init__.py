"""Command implementations exposed by the syzsup CLI."""

from .list_sources import list_sources
from .render import render_manager_config
from .run import run_supervisor

__all__ = [
    "list_sources",
    "render_manager_config",
    "run_supervisor",
]
