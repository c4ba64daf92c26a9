"""Apply dashboard patches to a kernel tree."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from . import exec as exec_util
from . import log
from .dashboard import Patch
from .errors import BuildFailedError, DependencyMissingError

_PATCH_ARGS = ("patch", "-p1", "--force", "--ignore-whitespace")


class PatchOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_PRESENT = "already_present"
    SKIPPED = "skipped"


def _run_patch(
    tree: Path,
    patch: Patch,
    extra: tuple[str, ...],
    runner: exec_util.CommandRunner | None,
) -> exec_util.CommandResult:
    result = exec_util.try_run_command(
        [*_PATCH_ARGS, *extra],
        cwd=tree,
        runner=runner,
        input_bytes=patch.diff,
    )
    if result is None:
        raise DependencyMissingError("missing required command: patch")
    return result


def apply_patch(
    tree: Path,
    patch: Patch,
    *,
    runner: exec_util.CommandRunner | None = None,
) -> PatchOutcome:
    """Apply ``patch`` to ``tree`` using a dry run first.

    A dry run that fails but reverses cleanly means the patch is already in
    the tree. A dry run that fails both ways is logged and skipped so one stale
    patch does not block the whole build.

    Raises:
        BuildFailedError: If the real apply fails after a clean dry run.
    """
    dry_run = _run_patch(tree, patch, ("--dry-run",), runner)
    if dry_run.returncode != 0:
        reverse = _run_patch(tree, patch, ("--reverse", "--dry-run"), runner)
        if reverse.returncode == 0:
            log.info(f"patch already present: {patch.title}")
            return PatchOutcome.ALREADY_PRESENT
        log.warning(f"patch failed: {patch.title}\n{dry_run.output.strip()}")
        return PatchOutcome.SKIPPED
    applied = _run_patch(tree, patch, (), runner)
    if applied.returncode != 0:
        raise BuildFailedError(
            f"patch '{patch.title}' failed after dry run:\n{applied.output.strip()}"
        )
    log.info(f"patch applied: {patch.title}")
    return PatchOutcome.APPLIED


def apply_patches(
    tree: Path,
    patches: list[Patch],
    *,
    runner: exec_util.CommandRunner | None = None,
) -> list[PatchOutcome]:
    """Apply every patch in order, stopping at the first fatal failure."""
    return [apply_patch(tree, patch, runner=runner) for patch in patches]
