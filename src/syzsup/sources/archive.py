"""Remote image archive source."""

from __future__ import annotations

import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath

from .. import log, paths
from ..cloud import BlobInfo, BlobStorage, ImageService
from ..errors import BuildFailedError, PollFailedError, SupervisorFailure
from ..image import publish_image
from .base import ChangeSource

RFC1123Z = "%a, %d %b %Y %H:%M:%S %z"


def _member_path(name: str) -> PurePosixPath | None:
    path = PurePosixPath(name)
    if path.is_absolute() or ".." in path.parts:
        raise BuildFailedError(f"archive member escapes the image directory: {name}")
    parts = [part for part in path.parts if part not in ("", ".")]
    if not parts:
        return None
    return PurePosixPath(*parts)


def extract_archive(archive: Path, dest: Path) -> set[str]:
    """Extract the regular files of a ``.tar.gz`` into ``dest``.

    Returns:
        Normalized member names that were extracted.

    Raises:
        BuildFailedError: If the archive is corrupt, unsafe, or misses any of
            ``paths.REQUIRED_ARCHIVE_MEMBERS``.
    """
    extracted: set[str] = set()
    try:
        with tarfile.open(archive, mode="r:gz") as tar:
            for member in tar:
                log.debug(f"extracting file: {member.name} ({member.size} bytes)")
                if member.isdir():
                    continue
                if not member.isfile():
                    log.warning(f"skipping non-regular archive member: {member.name}")
                    continue
                relative = _member_path(member.name)
                if relative is None:
                    continue
                target = dest.joinpath(*relative.parts)
                paths.ensure_dir(target.parent)
                source = tar.extractfile(member)
                if source is None:
                    continue
                with source, target.open("wb") as fh:
                    shutil.copyfileobj(source, fh)
                target.chmod(0o600)
                extracted.add(relative.as_posix())
    except (tarfile.TarError, EOFError, OSError) as exc:
        raise BuildFailedError(f"failed to extract {archive.name}: {exc}") from exc
    for need in paths.REQUIRED_ARCHIVE_MEMBERS:
        if need not in extracted:
            raise BuildFailedError(f"archive misses required file '{need}'")
    return extracted


class ArchiveImageSource(ChangeSource):
    """Downloads a prebuilt image archive whenever it is updated upstream.

    ``rebuild`` fetches the archive generation seen by the last ``identify``,
    so the applied token always names the archive that was unpacked.
    """

    name = "image archive"

    def __init__(
        self,
        *,
        archive_path: str,
        artifact_root: Path,
        image_path: str,
        image_name: str,
        storage: BlobStorage,
        images: ImageService,
    ) -> None:
        self.archive_path = archive_path
        self.artifact_root = artifact_root
        self.image_path = image_path
        self.image_name = image_name
        self.storage = storage
        self.images = images
        self._polled: BlobInfo | None = None

    def identify(self) -> str:
        try:
            info = self.storage.stat(self.archive_path)
        except SupervisorFailure as exc:
            raise PollFailedError(f"failed to stat {self.archive_path}: {exc}") from exc
        self._polled = info
        return info.updated.strftime(RFC1123Z)

    def rebuild(self) -> None:
        generation = self._polled.generation if self._polled else ""
        log.info("downloading image archive...")
        if generation:
            log.debug(f"pinned to generation {generation}")
        image_dir = self.artifact_root / paths.IMAGE_DIR
        with tempfile.TemporaryDirectory(prefix="image-", dir=self.artifact_root) as tmp:
            staging = Path(tmp)
            archive = staging / "archive.tar.gz"
            try:
                self.storage.download(self.archive_path, archive, generation=generation)
            except SupervisorFailure as exc:
                raise BuildFailedError(
                    f"failed to download {self.archive_path}: {exc}"
                ) from exc
            extracted = staging / "image"
            extracted.mkdir(mode=0o700)
            extract_archive(archive, extracted)
            try:
                if image_dir.exists():
                    shutil.rmtree(image_dir)
                extracted.rename(image_dir)
            except OSError as exc:
                raise BuildFailedError(f"failed to replace image directory: {exc}") from exc
        publish_image(
            self.artifact_root / paths.IMAGE_DISK_ARCHIVE,
            self.image_path,
            self.image_name,
            storage=self.storage,
            images=self.images,
        )
