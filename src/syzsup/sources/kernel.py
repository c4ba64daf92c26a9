"""Local kernel image builder source."""

from __future__ import annotations

import shutil
from pathlib import Path

from .. import exec as exec_util
from .. import git, log, paths
from ..cloud import BlobStorage, ImageService
from ..dashboard import PatchSet
from ..errors import BuildFailedError, IoFailedError, PollFailedError, SupervisorFailure
from ..image import publish_image
from ..kernel import build_kernel
from ..patches import PatchOutcome, apply_patches
from .base import ChangeSource


def composite_token(revision: str, patch_token: str) -> str:
    """Combine a kernel revision with the active patch-set token.

    Example:
        >>> composite_token("abc123", "")
        'abc123'
        >>> composite_token("abc123", "p7")
        'abc123/p7'
    """
    if patch_token:
        return f"{revision}/{patch_token}"
    return revision


class LocalImageSource(ChangeSource):
    """Builds the kernel and disk image locally from a kernel branch.

    Patches from ``patch_set`` are applied before every build. Artifacts land
    in the well-known ``image/`` layout under ``artifact_root``.
    """

    name = "kernel"

    def __init__(
        self,
        *,
        build_dir: Path,
        artifact_root: Path,
        repo: str,
        branch: str,
        compiler: str,
        userspace_dir: Path,
        image_script: Path,
        image_path: str,
        image_name: str,
        storage: BlobStorage,
        images: ImageService,
        patch_set: PatchSet | None = None,
        config_fragment: Path | None = None,
        runner: exec_util.CommandRunner | None = None,
    ) -> None:
        self.build_dir = build_dir
        self.artifact_root = artifact_root
        self.repo = repo
        self.branch = branch
        self.compiler = compiler
        self.userspace_dir = userspace_dir
        self.image_script = image_script
        self.image_path = image_path
        self.image_name = image_name
        self.storage = storage
        self.images = images
        self.patch_set = patch_set if patch_set is not None else PatchSet()
        self.config_fragment = config_fragment
        self._runner = runner
        self.last_patch_outcomes: list[PatchOutcome] = []

    @property
    def tree(self) -> Path:
        return self.build_dir / paths.KERNEL_DIRNAME

    def identify(self) -> str:
        try:
            revision = git.poll(self.tree, self.repo, self.branch, runner=self._runner)
        except SupervisorFailure as exc:
            raise PollFailedError(f"failed to poll kernel repository: {exc}") from exc
        return composite_token(revision, self.patch_set.token)

    def rebuild(self) -> None:
        if not self.image_script.is_file():
            raise BuildFailedError(f"image script not found: {self.image_script}")
        try:
            revision = git.head_commit(self.tree, runner=self._runner)
        except SupervisorFailure as exc:
            raise BuildFailedError(f"failed to read kernel revision: {exc}") from exc
        self.last_patch_outcomes = apply_patches(
            self.tree, list(self.patch_set.patches), runner=self._runner
        )
        log.info(f"building kernel on {revision}...")
        try:
            build_kernel(
                self.tree,
                self.compiler,
                config_fragment=self.config_fragment,
                runner=self._runner,
            )
        except SupervisorFailure as exc:
            raise BuildFailedError(f"kernel build failed: {exc}") from exc
        vmlinux = self.tree / "vmlinux"
        bz_image = self.tree / "arch" / "x86" / "boot" / "bzImage"
        log.info("building image...")
        try:
            exec_util.run_command(
                [
                    str(self.image_script),
                    str(self.userspace_dir),
                    str(bz_image),
                    str(vmlinux),
                    revision,
                ],
                cwd=self.build_dir,
                runner=self._runner,
            )
        except SupervisorFailure as exc:
            raise BuildFailedError(f"image build failed: {exc}") from exc
        for leftover in ("disk.raw", "image.tar.gz"):
            (self.build_dir / leftover).unlink(missing_ok=True)
        self._relocate_artifacts(revision, vmlinux)
        publish_image(
            self.build_dir / "disk.tar.gz",
            self.image_path,
            self.image_name,
            storage=self.storage,
            images=self.images,
        )

    def _relocate_artifacts(self, revision: str, vmlinux: Path) -> None:
        root = self.artifact_root
        try:
            paths.ensure_dir(root / paths.IMAGE_OBJ_DIR)
            tag = root / paths.IMAGE_TAG
            tag.write_text(revision, encoding="utf-8")
            tag.chmod(0o600)
            key = self.build_dir / "key"
            if key.exists():
                shutil.move(str(key), str(root / paths.IMAGE_KEY))
            else:
                (root / paths.IMAGE_KEY).unlink(missing_ok=True)
            shutil.move(str(vmlinux), str(root / paths.IMAGE_VMLINUX))
        except OSError as exc:
            raise IoFailedError(f"failed to relocate build artifacts: {exc}") from exc
