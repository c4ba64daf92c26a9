"""Implementation for the ``syzsup run`` command."""

from __future__ import annotations

import os
import queue
from pathlib import Path

from .. import cloud, log, paths
from ..errors import SupervisorFailure, UnexpectedStateError, ValidationFailedError
from ..events import LoopEvent
from ..io import die
from ..loop import UpdateLoop
from ..models import SupervisorConfig
from ..signals import SignalController
from ..sources import build_sources
from ..status import ManagerStatus
from ..supervisor import ManagerSupervisor
from .resolve import resolve_config, resolve_working_dir

_COMMON_TOOLS = ("git", "make", "gsutil", "gcloud")
_LOCAL_IMAGE_TOOLS = ("patch",)

MANAGER_LOG_FILENAME = "manager.log"


def _check_image_script(cfg: SupervisorConfig, wd: Path) -> None:
    if not cfg.image_script:
        return
    script = paths.abs_path(wd, cfg.image_script)
    if not script.is_file():
        raise ValidationFailedError(
            f"image script not found: {script}",
            recovery_hint="leave image_script empty to use the one in the syzkaller checkout",
        )


def _check_preconditions(cfg: SupervisorConfig, wd: Path) -> None:
    if cfg.local_image and os.geteuid() != 0:
        die("building a local image requires root")
    tools = _COMMON_TOOLS + (_LOCAL_IMAGE_TOOLS if cfg.local_image else ())
    try:
        cloud.require_tools(*tools)
        if cfg.local_image:
            _check_image_script(cfg, wd)
    except SupervisorFailure as exc:
        hint = f" ({exc.recovery_hint})" if exc.recovery_hint else ""
        die(f"{exc}{hint}")


def run_supervisor(args: object) -> int:
    """Supervise syz-manager until a shutdown signal; return the exit code."""
    config_path, cfg = resolve_config(args)
    wd = resolve_working_dir()
    _check_preconditions(cfg, wd)
    os.environ["GOPATH"] = str(paths.abs_path(wd, paths.GOPATH_DIRNAME))

    events: queue.SimpleQueue[LoopEvent] = queue.SimpleQueue()
    status = ManagerStatus()
    storage = cloud.GsutilStorage()
    images = cloud.GcloudImages()
    sources = build_sources(cfg, wd, storage=storage, images=images)
    supervisor = ManagerSupervisor(
        events,
        binary=paths.abs_path(wd, paths.MANAGER_BINARY),
        cwd=wd,
        status=status,
        log_path=wd / MANAGER_LOG_FILENAME,
    )
    loop = UpdateLoop(
        sources,
        supervisor,
        events,
        cfg=cfg,
        root=wd,
        config_path=wd / paths.MANAGER_CONFIG_FILENAME,
    )
    log.info(
        f"supervising {cfg.name} from {wd} (config {config_path}); "
        f"sources: {', '.join(source.name for source in sources)}"
    )
    with SignalController(events):
        try:
            return loop.run()
        except UnexpectedStateError as exc:
            die(f"internal inconsistency: {exc}")
