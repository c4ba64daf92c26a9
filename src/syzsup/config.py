"""Loading the supervisor config and writing JSON files.

A config that cannot be loaded is fatal: every helper here that reads the
supervisor config exits through ``die`` with the reason.

Example:
    >>> from pathlib import Path
    >>> load_json(Path("no-such-config.json")) is None
    True
"""

import json
import os
from pathlib import Path

from pydantic import BaseModel, ValidationError

from .io import die
from .models import SupervisorConfig


def load_json(path: Path) -> dict | None:
    """Return the decoded JSON at ``path``, or ``None`` when it is absent."""
    if not path.exists():
        return None
    with path.open(encoding="utf-8") as fh:
        return json.load(fh)


def write_json(
    path: Path,
    payload: dict | BaseModel,
    *,
    indent: int | str = 2,
    mode: int | None = None,
) -> None:
    """Serialize ``payload`` to ``path`` with a trailing newline.

    Args:
        path: Destination file, replaced if present.
        payload: Plain dict, or a model dumped without its ``None`` fields.
        indent: Spaces per level, or a literal indent string such as a tab.
        mode: Permission bits applied once the file is written.
    """
    data = payload.model_dump(exclude_none=True) if isinstance(payload, BaseModel) else payload
    with path.open("w", encoding="utf-8") as fh:
        json.dump(data, fh, indent=indent)
        fh.write("\n")
    if mode is not None:
        os.chmod(path, mode)


def parse_config(payload: dict, source: Path | str | None = None) -> SupervisorConfig:
    """Validate ``payload`` as a supervisor config, exiting when it is invalid."""
    try:
        return SupervisorConfig.model_validate(payload)
    except ValidationError as exc:
        where = f" at {source}" if source else ""
        die(f"invalid supervisor config{where}:\n{exc}")


def load_config(path: Path) -> SupervisorConfig:
    """Read and validate the supervisor config at ``path``."""
    try:
        payload = load_json(path)
    except (OSError, json.JSONDecodeError) as exc:
        die(f"failed to load config file {path}: {exc}")
    if payload is None:
        die(f"config file not found: {path}")
    if not isinstance(payload, dict):
        die(f"invalid supervisor config at {path}: expected a JSON object")
    return parse_config(payload, path)
