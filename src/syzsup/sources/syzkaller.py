"""Syzkaller checkout source."""

from __future__ import annotations

import os
from pathlib import Path

from .. import exec as exec_util
from .. import git, log
from ..errors import BuildFailedError, PollFailedError, SupervisorFailure
from .base import ChangeSource


class SyzkallerSource(ChangeSource):
    """Follows the syzkaller branch; rebuilds the manager binaries with make."""

    name = "syzkaller"

    def __init__(
        self,
        checkout: Path,
        repo: str,
        branch: str,
        *,
        gopath: Path,
        runner: exec_util.CommandRunner | None = None,
    ) -> None:
        self.checkout = checkout
        self.repo = repo
        self.branch = branch
        self.gopath = gopath
        self._runner = runner

    def identify(self) -> str:
        try:
            return git.poll(self.checkout, self.repo, self.branch, runner=self._runner)
        except SupervisorFailure as exc:
            raise PollFailedError(f"failed to update syzkaller checkout: {exc}") from exc

    def rebuild(self) -> None:
        env = dict(os.environ)
        env["GOPATH"] = str(self.gopath)
        log.info(f"running make in {self.checkout}")
        try:
            exec_util.run_checked(
                exec_util.CommandRequest(argv=("make",), cwd=self.checkout, env=env),
                runner=self._runner,
            )
        except SupervisorFailure as exc:
            raise BuildFailedError(f"syzkaller build failed: {exc}") from exc
