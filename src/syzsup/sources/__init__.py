"""Change sources watched by the update loop."""

from __future__ import annotations

from pathlib import Path

from .. import exec as exec_util
from .. import paths
from ..cloud import BlobStorage, ImageService
from ..dashboard import DashboardClient, PatchSet
from ..models import SupervisorConfig
from .archive import ArchiveImageSource
from .base import ChangeSource
from .dashboard import DashboardPatchSource, PatchClient
from .kernel import LocalImageSource, composite_token
from .syzkaller import SyzkallerSource

__all__ = [
    "ArchiveImageSource",
    "ChangeSource",
    "DashboardPatchSource",
    "LocalImageSource",
    "SyzkallerSource",
    "build_sources",
    "composite_token",
    "image_script_path",
]


def image_script_path(cfg: SupervisorConfig, wd: Path) -> Path:
    """Return the disk image script for local image mode.

    An unset ``image_script`` means the script shipped in the syzkaller
    checkout, which exists once the syzkaller source has been polled.
    """
    if cfg.image_script:
        return paths.abs_path(wd, cfg.image_script)
    return paths.abs_path(wd, paths.IMAGE_SCRIPT)


def build_sources(
    cfg: SupervisorConfig,
    wd: Path,
    *,
    storage: BlobStorage,
    images: ImageService,
    dashboard_client: PatchClient | None = None,
    runner: exec_util.CommandRunner | None = None,
) -> list[ChangeSource]:
    """Build the ordered change sources selected by ``cfg``.

    The syzkaller checkout always comes first. Local image mode adds the
    dashboard patch source (when enabled) ahead of the kernel builder so the
    patch token is fresh when the kernel token is composed; otherwise the
    remote archive fetcher is used.
    """
    sources: list[ChangeSource] = [
        SyzkallerSource(
            paths.abs_path(wd, paths.SYZKALLER_DIR),
            cfg.syzkaller_repo,
            cfg.syzkaller_branch,
            gopath=paths.abs_path(wd, paths.GOPATH_DIRNAME),
            runner=runner,
        )
    ]
    if not cfg.local_image:
        sources.append(
            ArchiveImageSource(
                archive_path=cfg.image_archive,
                artifact_root=wd,
                image_path=cfg.image_path,
                image_name=cfg.image_name,
                storage=storage,
                images=images,
            )
        )
        return sources

    patch_set = PatchSet()
    if cfg.dashboard_patches_enabled:
        client = dashboard_client or DashboardClient(
            cfg.dashboard_addr, cfg.name, cfg.dashboard_key
        )
        sources.append(DashboardPatchSource(client, patch_set))
    sources.append(
        LocalImageSource(
            build_dir=paths.abs_path(wd, paths.BUILD_DIRNAME),
            artifact_root=wd,
            repo=cfg.linux_git,
            branch=cfg.linux_branch,
            compiler=cfg.linux_compiler,
            userspace_dir=paths.abs_path(wd, cfg.linux_userspace),
            image_script=image_script_path(cfg, wd),
            image_path=cfg.image_path,
            image_name=cfg.image_name,
            storage=storage,
            images=images,
            patch_set=patch_set,
            config_fragment=paths.abs_path(wd, cfg.linux_config) if cfg.linux_config else None,
            runner=runner,
        )
    )
    return sources
