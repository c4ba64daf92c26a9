"""Blob storage and VM image service adapters.

The supervisor only talks to these through the ``BlobStorage`` and
``ImageService`` protocols. The default adapters shell out to ``gsutil`` and
``gcloud`` through the command runner.
"""

from __future__ import annotations

import datetime as dt
import email.utils
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from . import exec as exec_util
from .errors import DependencyMissingError

_UPDATE_TIME_RE = re.compile(r"^\s*Update time:\s*(?P<value>.+?)\s*$", re.MULTILINE)
_GENERATION_RE = re.compile(r"^\s*Generation:\s*(?P<value>\d+)\s*$", re.MULTILINE)
_NOT_FOUND_MARKERS = ("was not found", "notFound", "not found")


@dataclass(frozen=True)
class BlobInfo:
    """Metadata for one stored blob.

    ``generation`` names this exact version of the blob; empty when the
    store does not report one.
    """

    path: str
    updated: dt.datetime
    generation: str = ""


class BlobStorage(Protocol):
    """Blob storage operations used by the image sources."""

    def stat(self, path: str) -> BlobInfo: ...

    def download(self, path: str, dest: Path, *, generation: str = "") -> None: ...

    def upload(self, local_file: Path, path: str) -> None: ...


class ImageService(Protocol):
    """VM image registration operations."""

    def delete_image(self, name: str) -> None: ...

    def create_image(self, name: str, source_path: str) -> None: ...


def _gs_url(path: str) -> str:
    if path.startswith("gs://"):
        return path
    return f"gs://{path.lstrip('/')}"


def parse_update_time(output: str) -> dt.datetime:
    """Parse the ``Update time`` field from ``gsutil stat`` output.

    Example:
        >>> parse_update_time("    Update time:  Tue, 01 Nov 2016 10:00:00 GMT\\n").year
        2016
    """
    match = _UPDATE_TIME_RE.search(output)
    if match is None:
        raise ValueError("missing 'Update time' in gsutil stat output")
    return email.utils.parsedate_to_datetime(match.group("value"))


def parse_stat(path: str, output: str) -> BlobInfo:
    """Build ``BlobInfo`` from ``gsutil stat`` output.

    Example:
        >>> info = parse_stat("b/a.tar.gz", "  Update time: Tue, 01 Nov 2016 10:00:00 GMT\\n"
        ...                   "  Generation: 1478 \\n")
        >>> info.generation
        '1478'
    """
    generation = _GENERATION_RE.search(output)
    return BlobInfo(
        path=path,
        updated=parse_update_time(output),
        generation=generation.group("value") if generation else "",
    )


class GsutilStorage:
    """``BlobStorage`` backed by the ``gsutil`` CLI."""

    def __init__(self, runner: exec_util.CommandRunner | None = None) -> None:
        self._runner = runner

    def stat(self, path: str) -> BlobInfo:
        spec = exec_util.CommandSpec(
            request=exec_util.CommandRequest(argv=("gsutil", "stat", _gs_url(path))),
            parser=lambda result: parse_stat(path, result.stdout),
            context=f"gsutil stat {path}",
        )
        return exec_util.run_typed(spec, runner=self._runner)

    def download(self, path: str, dest: Path, *, generation: str = "") -> None:
        url = _gs_url(path)
        if generation:
            url = f"{url}#{generation}"
        exec_util.run_command(
            ["gsutil", "-q", "cp", url, str(dest)],
            runner=self._runner,
        )

    def upload(self, local_file: Path, path: str) -> None:
        exec_util.run_command(
            ["gsutil", "-q", "cp", str(local_file), _gs_url(path)],
            runner=self._runner,
        )


class GcloudImages:
    """``ImageService`` backed by ``gcloud compute images``."""

    def __init__(self, runner: exec_util.CommandRunner | None = None) -> None:
        self._runner = runner

    def delete_image(self, name: str) -> None:
        result = exec_util.try_run_command(
            ["gcloud", "compute", "images", "delete", name, "--quiet"],
            runner=self._runner,
        )
        if result is None:
            raise DependencyMissingError("missing required command: gcloud")
        if result.returncode == 0:
            return
        if any(marker in result.output for marker in _NOT_FOUND_MARKERS):
            return
        raise exec_util.CommandExecutionError(
            exec_util.CommandRequest(argv=result.argv),
            f"failed to delete image {name}:\n{result.output.strip()}",
            result=result,
        )

    def create_image(self, name: str, source_path: str) -> None:
        exec_util.run_command(
            [
                "gcloud",
                "compute",
                "images",
                "create",
                name,
                f"--source-uri={_gs_url(source_path)}",
            ],
            runner=self._runner,
        )


def require_tools(*names: str) -> None:
    """Raise ``DependencyMissingError`` for the first tool not on ``PATH``."""
    for name in names:
        if shutil.which(name) is None:
            raise DependencyMissingError(
                f"missing required command: {name}",
                recovery_hint=f"install {name} and make sure it is on PATH",
            )
