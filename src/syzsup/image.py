"""Publish a built disk image to storage and the VM image service."""

from __future__ import annotations

from pathlib import Path

from . import log
from .cloud import BlobStorage, ImageService
from .errors import BuildFailedError, SupervisorFailure


def publish_image(
    local_file: Path,
    remote_path: str,
    image_name: str,
    *,
    storage: BlobStorage,
    images: ImageService,
) -> None:
    """Upload ``local_file`` and re-register it as ``image_name``.

    Raises:
        BuildFailedError: If the upload or image registration fails.
    """
    log.info("uploading image...")
    try:
        storage.upload(local_file, remote_path)
    except SupervisorFailure as exc:
        raise BuildFailedError(f"failed to upload image: {exc}") from exc
    log.info("creating vm image...")
    try:
        images.delete_image(image_name)
    except SupervisorFailure as exc:
        raise BuildFailedError(f"failed to delete vm image: {exc}") from exc
    try:
        images.create_image(image_name, remote_path)
    except SupervisorFailure as exc:
        raise BuildFailedError(f"failed to create vm image: {exc}") from exc
