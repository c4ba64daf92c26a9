"""Kernel build helpers for local image builds."""

from __future__ import annotations

import os
from importlib import resources
from pathlib import Path

from . import exec as exec_util
from . import log

FRAGMENT_FILENAME = "syz.config"


def bundled_config_fragment() -> str:
    """Return the bundled kernel config fragment.

    Example:
        >>> "CONFIG_KCOV=y" in bundled_config_fragment()
        True
    """
    return (
        resources.files("syzsup")
        .joinpath("templates")
        .joinpath("kernel.config")
        .read_text(encoding="utf-8")
    )


def default_jobs() -> int:
    return (os.cpu_count() or 1) * 2


def build_kernel(
    tree: Path,
    compiler: str,
    *,
    config_fragment: Path | None = None,
    jobs: int | None = None,
    runner: exec_util.CommandRunner | None = None,
) -> None:
    """Configure and build the kernel in ``tree``.

    Starts from ``defconfig`` + ``kvmconfig``, merges the fragment (the bundled
    one when ``config_fragment`` is ``None``) and builds with ``compiler``.

    Raises:
        CommandExecutionError: If any build step fails.
    """
    (tree / ".config").unlink(missing_ok=True)
    exec_util.run_command(["make", "defconfig"], cwd=tree, runner=runner)
    exec_util.run_command(["make", "kvmconfig"], cwd=tree, runner=runner)
    fragment = config_fragment
    if fragment is None:
        fragment = tree / FRAGMENT_FILENAME
        fragment.write_text(bundled_config_fragment(), encoding="utf-8")
    exec_util.run_command(
        ["scripts/kconfig/merge_config.sh", "-n", ".config", str(fragment)],
        cwd=tree,
        runner=runner,
    )
    exec_util.run_command(["make", "olddefconfig"], cwd=tree, runner=runner)
    job_count = jobs if jobs is not None else default_jobs()
    log.debug(f"make -j {job_count} CC={compiler}")
    exec_util.run_command(
        ["make", "-j", str(job_count), f"CC={compiler}"],
        cwd=tree,
        runner=runner,
    )
