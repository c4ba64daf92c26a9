"""Pydantic models for supervisor configuration data."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

LOCAL_IMAGE_ARCHIVE = "local"

SANDBOX_VALUES = ("none", "setuid", "namespace")
Sandbox = Literal["none", "setuid", "namespace"]


class SupervisorConfig(BaseModel):
    """Supervisor configuration, immutable after load.

    Keys are matched case-insensitively so configs written for the original
    ``Hub_Addr``-style spelling keep loading.

    Attributes:
        name: Manager identity reported to hub and dashboard.
        hub_addr: Hub address (optional).
        hub_key: Hub key (optional).
        image_archive: Blob path of the image archive, or ``local`` to build
            the kernel image on this machine.
        image_path: Blob path the disk image is uploaded to.
        image_name: VM image name registered with the image service.
        http_port: Port of the supervisor's own status endpoint.
        machine_type: VM machine type for the manager.
        machine_count: Number of fuzzing VMs.
        sandbox: Manager sandbox mode.
        procs: Fuzzer processes per VM.
        syzkaller_repo: Syzkaller git repository.
        syzkaller_branch: Syzkaller branch to follow.
        linux_git: Kernel git repository (local image mode).
        linux_branch: Kernel branch to follow (local image mode).
        linux_config: Kernel config fragment path; the bundled fragment is used
            when empty.
        linux_compiler: C compiler used for the kernel build.
        linux_userspace: Userspace image directory for the image script.
        image_script: Image creation script run after the kernel build; the
            syzkaller checkout's ``tools/create-gce-image.sh`` when empty.
        enable_syscalls: Syscalls enabled in the manager.
        disable_syscalls: Syscalls disabled in the manager.
        dashboard_addr: Dashboard address (optional).
        dashboard_key: Dashboard key.
        use_dashboard_patches: Apply dashboard patches to local kernel builds.

    Example:
        >>> cfg = SupervisorConfig(
        ...     name="ci",
        ...     image_archive="bucket/image.tar.gz",
        ...     image_path="bucket/disk.tar.gz",
        ...     image_name="ci-image",
        ... )
        >>> cfg.local_image
        False
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    hub_addr: str = ""
    hub_key: str = ""
    image_archive: str
    image_path: str = ""
    image_name: str
    http_port: int = Field(default=0, ge=0, le=65535)
    machine_type: str = "n1-standard-2"
    machine_count: int = Field(default=1, ge=1)
    sandbox: Sandbox = "none"
    procs: int = Field(default=1, ge=1)
    syzkaller_repo: str = "https://github.com/google/syzkaller.git"
    syzkaller_branch: str = "master"
    linux_git: str = ""
    linux_branch: str = ""
    linux_config: str = ""
    linux_compiler: str = "gcc"
    linux_userspace: str = ""
    image_script: str = ""
    enable_syscalls: list[str] = Field(default_factory=list)
    disable_syscalls: list[str] = Field(default_factory=list)
    dashboard_addr: str = ""
    dashboard_key: str = ""
    use_dashboard_patches: bool = True

    @model_validator(mode="before")
    @classmethod
    def lowercase_keys(cls, value: object) -> object:
        if isinstance(value, dict):
            return {str(key).lower(): item for key, item in value.items()}
        return value

    @field_validator(
        "name",
        "image_archive",
        "image_name",
        "linux_git",
        "linux_branch",
        "dashboard_addr",
        mode="before",
    )
    @classmethod
    def strip_strings(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("enable_syscalls", "disable_syscalls", mode="before")
    @classmethod
    def normalize_syscalls(cls, value: object) -> object:
        if value is None:
            return []
        return value

    @model_validator(mode="after")
    def check_image_mode(self) -> SupervisorConfig:
        if not self.name:
            raise ValueError("name must not be empty")
        if not self.image_name:
            raise ValueError("image_name must not be empty")
        if not self.image_path:
            raise ValueError("image_path must name the blob the disk image is uploaded to")
        if self.local_image:
            if not self.linux_git or not self.linux_branch:
                raise ValueError("local image builds require linux_git and linux_branch")
            if not self.linux_userspace:
                raise ValueError("local image builds require linux_userspace")
        elif not self.image_archive:
            raise ValueError("image_archive must name an archive or 'local'")
        return self

    @property
    def local_image(self) -> bool:
        return self.image_archive == LOCAL_IMAGE_ARCHIVE

    @property
    def dashboard_patches_enabled(self) -> bool:
        return self.local_image and self.use_dashboard_patches and bool(self.dashboard_addr)
