"""Path helpers for the supervisor working directory layout.

Every path here is relative to the supervisor working directory. The artifact
directory (``image/``) is consumed identically no matter which change source
produced it.
"""

import os
from pathlib import Path

from platformdirs import user_config_dir

SYZSUP_APP_NAME = "syzsup"
CONFIG_FILENAME = "config.json"
CONFIG_ENV_VAR = "SYZSUP_CONFIG"

GOPATH_DIRNAME = "gopath"
SYZKALLER_DIR = Path(GOPATH_DIRNAME) / "src" / "github.com" / "google" / "syzkaller"
MANAGER_BINARY = SYZKALLER_DIR / "bin" / "syz-manager"
IMAGE_SCRIPT = SYZKALLER_DIR / "tools" / "create-gce-image.sh"
MANAGER_CONFIG_FILENAME = "manager.cfg"
MANAGER_WORKDIR = Path("workdir")

BUILD_DIRNAME = "build"
KERNEL_DIRNAME = "linux"

IMAGE_DIR = Path("image")
IMAGE_TAG = IMAGE_DIR / "tag"
IMAGE_KEY = IMAGE_DIR / "key"
IMAGE_OBJ_DIR = IMAGE_DIR / "obj"
IMAGE_VMLINUX = IMAGE_OBJ_DIR / "vmlinux"
IMAGE_DISK_ARCHIVE = IMAGE_DIR / "disk.tar.gz"

REQUIRED_ARCHIVE_MEMBERS = ("disk.tar.gz", "tag", "obj/vmlinux")


def abs_path(wd: Path, path: str | Path) -> Path:
    """Resolve ``path`` against ``wd`` unless it is already absolute.

    Example:
        >>> abs_path(Path("/srv/sup"), "build").as_posix()
        '/srv/sup/build'
        >>> abs_path(Path("/srv/sup"), "/opt/userspace").as_posix()
        '/opt/userspace'
    """
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    return wd / candidate


def default_config_path() -> Path:
    """Return the config path used when ``--config`` is omitted.

    ``SYZSUP_CONFIG`` wins over the per-user config directory.

    Example:
        >>> default_config_path().name == CONFIG_FILENAME
        True
    """
    override = os.environ.get(CONFIG_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    return Path(user_config_dir(SYZSUP_APP_NAME)) / CONFIG_FILENAME


def read_tag(path: Path) -> str:
    """Read an artifact tag file, stripping one trailing newline.

    Example:
        >>> import tempfile
        >>> tag = Path(tempfile.mkdtemp()) / "tag"
        >>> _ = tag.write_text("abc123\\n")
        >>> read_tag(tag)
        'abc123'
    """
    text = path.read_text(encoding="utf-8")
    if text.endswith("\n"):
        text = text[:-1]
    return text


def ensure_dir(path: Path) -> None:
    """Create ``path`` and its parents if missing."""
    path.mkdir(parents=True, exist_ok=True, mode=0o700)
