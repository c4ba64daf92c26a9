"""Shared resolution helpers for CLI commands."""

from __future__ import annotations

from pathlib import Path

from .. import config, paths
from ..io import die
from ..models import SupervisorConfig


def resolve_config(args: object) -> tuple[Path, SupervisorConfig]:
    """Return the config path selected by ``args`` and its loaded config."""
    raw = getattr(args, "config", None)
    config_path = Path(raw).expanduser() if raw else paths.default_config_path()
    return config_path, config.load_config(config_path)


def resolve_working_dir() -> Path:
    """Return the supervisor working directory, exiting when it is unavailable."""
    try:
        return Path.cwd()
    except OSError as exc:
        die(f"failed to get working directory: {exc}")
