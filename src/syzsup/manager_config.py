"""Generate the syz-manager configuration written before each start."""

from __future__ import annotations

import socket
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from . import paths
from .config import write_json
from .errors import IoFailedError
from .models import SupervisorConfig


class ManagerConfig(BaseModel):
    """syz-manager configuration. ``sshkey`` is omitted when ``None``."""

    model_config = ConfigDict(frozen=True)

    name: str
    hub_addr: str
    hub_key: str
    dashboard_addr: str
    dashboard_key: str
    http: str
    rpc: str = ":0"
    workdir: str = paths.MANAGER_WORKDIR.as_posix()
    vmlinux: str = paths.IMAGE_VMLINUX.as_posix()
    tag: str
    syzkaller: str = paths.SYZKALLER_DIR.as_posix()
    type: str = "gce"
    machine_type: str
    count: int
    image: str
    sandbox: str
    procs: int
    enable_syscalls: list[str]
    disable_syscalls: list[str]
    cover: bool = True
    reproduce: bool = True
    sshkey: str | None = None


def build_manager_config(cfg: SupervisorConfig, http_port: int, root: Path) -> ManagerConfig:
    """Assemble the manager config from ``cfg`` and the artifacts under ``root``.

    Raises:
        IoFailedError: If the artifact tag file cannot be read.
    """
    try:
        tag = paths.read_tag(root / paths.IMAGE_TAG)
    except OSError as exc:
        raise IoFailedError(f"failed to read tag file: {exc}") from exc
    sshkey = None
    if (root / paths.IMAGE_KEY).exists():
        sshkey = paths.IMAGE_KEY.as_posix()
    return ManagerConfig(
        name=cfg.name,
        hub_addr=cfg.hub_addr,
        hub_key=cfg.hub_key,
        dashboard_addr=cfg.dashboard_addr,
        dashboard_key=cfg.dashboard_key,
        http=f":{http_port}",
        tag=tag,
        machine_type=cfg.machine_type,
        count=cfg.machine_count,
        image=cfg.image_name,
        sandbox=cfg.sandbox,
        procs=cfg.procs,
        enable_syscalls=list(cfg.enable_syscalls),
        disable_syscalls=list(cfg.disable_syscalls),
        sshkey=sshkey,
    )


def write_manager_config(
    cfg: SupervisorConfig, http_port: int, path: Path, root: Path
) -> ManagerConfig:
    """Write the manager config to ``path`` (tab-indented JSON, mode 0600)."""
    manager_cfg = build_manager_config(cfg, http_port, root)
    try:
        write_json(path, manager_cfg, indent="\t", mode=0o600)
    except OSError as exc:
        raise IoFailedError(f"failed to write manager config: {exc}") from exc
    return manager_cfg


def choose_unused_port() -> int:
    """Ask the kernel for a free local TCP port.

    Raises:
        IoFailedError: If no socket can be bound.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("", 0))
            return int(sock.getsockname()[1])
    except OSError as exc:
        raise IoFailedError(f"failed to choose an unused port: {exc}") from exc
