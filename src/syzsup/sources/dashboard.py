"""Dashboard patch-set source."""

from __future__ import annotations

from typing import Protocol

from .. import log
from ..dashboard import Patch, PatchSet
from ..errors import BuildFailedError, PollFailedError
from .base import ChangeSource


class PatchClient(Protocol):
    def poll_patches(self) -> str: ...

    def get_patches(self) -> list[Patch]: ...


class DashboardPatchSource(ChangeSource):
    """Tracks the dashboard patch set and fetches it into ``patch_set``.

    The token written here feeds the kernel source's composite token, so a
    patch-set change alone triggers a kernel rebuild.
    """

    name = "dashboard"

    def __init__(self, client: PatchClient, patch_set: PatchSet) -> None:
        self.client = client
        self.patch_set = patch_set

    def identify(self) -> str:
        token = self.client.poll_patches()
        self.patch_set.token = token
        return token

    def rebuild(self) -> None:
        try:
            patches = self.client.get_patches()
        except PollFailedError as exc:
            raise BuildFailedError(f"failed to fetch patches: {exc}") from exc
        self.patch_set.patches = list(patches)
        log.info(f"fetched {len(patches)} patch(es) for patch set {self.patch_set.token!r}")
