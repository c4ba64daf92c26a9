"""Implementation for the ``syzsup manager-config`` command."""

from __future__ import annotations

import json
from pathlib import Path

from ..errors import IoFailedError
from ..io import die, say
from ..manager_config import build_manager_config, write_manager_config
from .resolve import resolve_config, resolve_working_dir


def render_manager_config(args: object) -> None:
    """Render the manager config from the current artifacts."""
    _config_path, cfg = resolve_config(args)
    wd = resolve_working_dir()
    port = int(getattr(args, "port", 0) or 0)
    output = getattr(args, "output", None)
    try:
        if output:
            write_manager_config(cfg, port, Path(output), wd)
            say(f"wrote {output}")
            return
        manager_cfg = build_manager_config(cfg, port, wd)
    except IoFailedError as exc:
        die(str(exc))
    say(json.dumps(manager_cfg.model_dump(exclude_none=True), indent="\t"))
