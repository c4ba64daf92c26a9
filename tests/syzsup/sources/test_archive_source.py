from __future__ import annotations

import datetime as dt
import io
import os
import tarfile
from pathlib import Path

import pytest

from syzsup import paths
from syzsup.errors import BuildFailedError, PollFailedError
from syzsup.sources import ArchiveImageSource
from syzsup.sources.archive import extract_archive
from tests.syzsup.helpers import FakeImages, FakeStorage

ARCHIVE = "bucket/images/upstream.tar.gz"
UPDATED = dt.datetime(2016, 11, 1, 10, 0, tzinfo=dt.timezone.utc)

COMPLETE = {
    "disk.tar.gz": b"disk",
    "tag": b"abc123\n",
    "obj/vmlinux": b"elf",
    "key": b"ssh-key",
}


def make_archive(members: dict[str, bytes], *, symlink: str | None = None) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        obj = tarfile.TarInfo("obj")
        obj.type = tarfile.DIRTYPE
        tar.addfile(obj)
        for name, data in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
        if symlink is not None:
            link = tarfile.TarInfo(symlink)
            link.type = tarfile.SYMTYPE
            link.linkname = "/etc/passwd"
            tar.addfile(link)
    return buffer.getvalue()


def make_source(wd: Path, storage: FakeStorage) -> tuple[ArchiveImageSource, FakeImages]:
    images = FakeImages()
    source = ArchiveImageSource(
        archive_path=ARCHIVE,
        artifact_root=wd,
        image_path="bucket/disks/upstream.tar.gz",
        image_name="ci-upstream-image",
        storage=storage,
        images=images,
    )
    return source, images


def test_identify_returns_update_time() -> None:
    source, _images = make_source(Path("/unused"), FakeStorage(updated=UPDATED))

    assert source.identify() == "Tue, 01 Nov 2016 10:00:00 +0000"


def test_identify_failure_is_a_poll_failure() -> None:
    source, _images = make_source(Path("/unused"), FakeStorage())

    with pytest.raises(PollFailedError, match=ARCHIVE):
        source.identify()


def test_rebuild_replaces_image_directory_and_publishes(tmp_path: Path) -> None:
    paths.ensure_dir(tmp_path / paths.IMAGE_DIR)
    (tmp_path / paths.IMAGE_DIR / "stale").write_text("old")
    storage = FakeStorage(updated=UPDATED)
    storage.archive_bytes = make_archive(COMPLETE)
    source, images = make_source(tmp_path, storage)

    source.rebuild()

    image_dir = tmp_path / paths.IMAGE_DIR
    assert sorted(p.relative_to(image_dir).as_posix() for p in image_dir.rglob("*")) == [
        "disk.tar.gz",
        "key",
        "obj",
        "obj/vmlinux",
        "tag",
    ]
    assert paths.read_tag(tmp_path / paths.IMAGE_TAG) == "abc123"
    assert os.stat(tmp_path / paths.IMAGE_VMLINUX).st_mode & 0o777 == 0o600
    assert storage.downloads[0][0] == ARCHIVE
    assert storage.uploads == [
        (tmp_path / paths.IMAGE_DISK_ARCHIVE, "bucket/disks/upstream.tar.gz")
    ]
    assert images.calls[-1] == (
        "create",
        "ci-upstream-image",
        "bucket/disks/upstream.tar.gz",
    )
    assert sorted(p.name for p in tmp_path.iterdir()) == ["image"]


def test_rebuild_downloads_the_generation_that_was_identified(tmp_path: Path) -> None:
    storage = FakeStorage(updated=UPDATED, generation="1478000000000001")
    storage.archive_bytes = make_archive(COMPLETE)
    source, _images = make_source(tmp_path, storage)

    token = source.identify()
    storage.updated = UPDATED + dt.timedelta(hours=1)
    storage.generation = "1478000000000002"
    source.rebuild()

    assert token == "Tue, 01 Nov 2016 10:00:00 +0000"
    assert storage.download_generations == ["1478000000000001"]


def test_missing_member_leaves_previous_artifacts_untouched(tmp_path: Path) -> None:
    paths.ensure_dir(tmp_path / paths.IMAGE_OBJ_DIR)
    (tmp_path / paths.IMAGE_TAG).write_text("old-tag")
    storage = FakeStorage(updated=UPDATED)
    storage.archive_bytes = make_archive({"disk.tar.gz": b"disk", "tag": b"new"})
    source, images = make_source(tmp_path, storage)

    with pytest.raises(BuildFailedError, match="obj/vmlinux"):
        source.rebuild()

    assert (tmp_path / paths.IMAGE_TAG).read_text() == "old-tag"
    assert storage.uploads == []
    assert images.calls == []
    assert sorted(p.name for p in tmp_path.iterdir()) == ["image"]


def test_corrupt_archive_aborts_rebuild(tmp_path: Path) -> None:
    storage = FakeStorage(updated=UPDATED)
    storage.archive_bytes = b"\x1f\x8b not really gzip"
    source, _images = make_source(tmp_path, storage)

    with pytest.raises(BuildFailedError, match="failed to extract"):
        source.rebuild()
    assert not (tmp_path / paths.IMAGE_DIR).exists()


def test_download_failure_aborts_rebuild(tmp_path: Path) -> None:
    source, _images = make_source(tmp_path, FakeStorage(updated=UPDATED))

    with pytest.raises(BuildFailedError, match="failed to download"):
        source.rebuild()


def test_extract_normalizes_and_skips_links(tmp_path: Path) -> None:
    archive = tmp_path / "a.tar.gz"
    members = {f"./{name}": data for name, data in COMPLETE.items()}
    archive.write_bytes(make_archive(members, symlink="passwd"))
    dest = tmp_path / "out"
    dest.mkdir()

    extracted = extract_archive(archive, dest)

    assert extracted == set(COMPLETE)
    assert not (dest / "passwd").exists()


def test_extract_rejects_escaping_members(tmp_path: Path) -> None:
    archive = tmp_path / "a.tar.gz"
    archive.write_bytes(make_archive({**COMPLETE, "../evil": b"x"}))
    dest = tmp_path / "out"
    dest.mkdir()

    with pytest.raises(BuildFailedError, match="escapes"):
        extract_archive(archive, dest)
    assert not (tmp_path / "evil").exists()
