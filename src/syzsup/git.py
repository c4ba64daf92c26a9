"""Git helper functions used by the change sources."""

import shutil
from pathlib import Path

from . import exec as exec_util
from . import log

NETWORK_TIMEOUT = 30 * 60.0


def _parse_commit(result: exec_util.CommandResult) -> str:
    commit = result.stdout.strip()
    if not commit or any(ch not in "0123456789abcdef" for ch in commit):
        raise ValueError(f"unexpected commit hash {commit!r}")
    return commit


def head_commit(repo_dir: Path, *, runner: exec_util.CommandRunner | None = None) -> str:
    """Return the full HEAD commit hash of ``repo_dir``."""
    spec = exec_util.CommandSpec(
        request=exec_util.CommandRequest(
            argv=("git", "rev-parse", "HEAD"),
            cwd=repo_dir,
            combine_output=False,
        ),
        parser=_parse_commit,
        context="git rev-parse HEAD",
    )
    return exec_util.run_typed(spec, runner=runner)


def _clone(
    repo_dir: Path, repo: str, branch: str, *, runner: exec_util.CommandRunner | None
) -> None:
    if repo_dir.exists():
        shutil.rmtree(repo_dir)
    repo_dir.parent.mkdir(parents=True, exist_ok=True)
    log.info(f"cloning {repo} ({branch}) into {repo_dir}")
    exec_util.run_command(
        ["git", "clone", "--branch", branch, "--single-branch", repo, str(repo_dir)],
        runner=runner,
        timeout=NETWORK_TIMEOUT,
    )


def poll(
    repo_dir: Path,
    repo: str,
    branch: str,
    *,
    runner: exec_util.CommandRunner | None = None,
) -> str:
    """Bring ``repo_dir`` to the tip of ``repo``/``branch`` and return HEAD.

    A missing checkout is cloned. An existing one is fetched and force-checked
    out, discarding local modifications such as previously applied patches.

    Clone and fetch count as failed after ``NETWORK_TIMEOUT`` seconds.

    Raises:
        CommandExecutionError: If git fails or times out.
    """
    if not (repo_dir / ".git").exists():
        _clone(repo_dir, repo, branch, runner=runner)
        return head_commit(repo_dir, runner=runner)
    exec_util.run_command(
        ["git", "fetch", "--no-tags", "--force", repo, branch],
        cwd=repo_dir,
        runner=runner,
        timeout=NETWORK_TIMEOUT,
    )
    exec_util.run_command(["git", "checkout", "--force", "FETCH_HEAD"], cwd=repo_dir, runner=runner)
    exec_util.run_command(["git", "reset", "--hard", "FETCH_HEAD"], cwd=repo_dir, runner=runner)
    return head_commit(repo_dir, runner=runner)
