# ruff: noqa: E402

from __future__ import annotations

import queue
import sys
from collections import deque
from collections.abc import Callable
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from syzsup import exec as exec_util
from syzsup.cloud import BlobInfo
from syzsup.errors import BuildFailedError, PollFailedError, UnexpectedStateError
from syzsup.events import WorkerExited
from syzsup.models import SupervisorConfig
from syzsup.sources.base import ChangeSource

Handler = Callable[[exec_util.CommandRequest], exec_util.CommandResult | None]


def ok(request: exec_util.CommandRequest, stdout: str = "") -> exec_util.CommandResult:
    return exec_util.CommandResult(argv=request.argv, returncode=0, stdout=stdout)


def failed(
    request: exec_util.CommandRequest, output: str = "boom", returncode: int = 1
) -> exec_util.CommandResult:
    return exec_util.CommandResult(argv=request.argv, returncode=returncode, stdout=output)


class FakeRunner:
    """Command runner that records requests and answers through ``handler``."""

    def __init__(self, handler: Handler | None = None) -> None:
        self.handler = handler
        self.requests: list[exec_util.CommandRequest] = []

    def run(self, request: exec_util.CommandRequest) -> exec_util.CommandResult | None:
        self.requests.append(request)
        if self.handler is None:
            return ok(request)
        return self.handler(request)

    @property
    def argvs(self) -> list[tuple[str, ...]]:
        return [request.argv for request in self.requests]


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEvents:
    """Event queue whose timed ``get`` advances a fake clock instead of sleeping."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.items: deque[object] = deque()
        self.waits: list[float | None] = []

    def put(self, item: object) -> None:
        self.items.append(item)

    def get(self, block: bool = True, timeout: float | None = None) -> object:
        self.waits.append(timeout)
        if self.items:
            return self.items.popleft()
        if timeout is not None:
            self.clock.advance(timeout)
        raise queue.Empty


class FakeSource(ChangeSource):
    """Change source returning scripted tokens and logging every call."""

    def __init__(self, name: str, token: str, journal: list[str]) -> None:
        self.name = name
        self.token = token
        self.journal = journal
        self.fail_identify = False
        self.fail_rebuild = False
        self.identify_calls = 0
        self.rebuild_calls = 0

    def identify(self) -> str:
        self.identify_calls += 1
        if self.fail_identify:
            raise PollFailedError(f"{self.name} unreachable")
        return self.token

    def rebuild(self) -> None:
        self.rebuild_calls += 1
        self.journal.append(f"rebuild:{self.name}")
        if self.fail_rebuild:
            raise BuildFailedError(f"{self.name} build broke")


class FakeWorker:
    """In-memory stand-in for ``ManagerSupervisor``."""

    def __init__(
        self,
        journal: list[str],
        clock: FakeClock,
        *,
        events: FakeEvents | None = None,
        min_uptime: float = 300.0,
        exits_on_kill: bool = True,
    ) -> None:
        self.journal = journal
        self.clock = clock
        self.events = events
        self.min_uptime = min_uptime
        self.exits_on_kill = exits_on_kill
        self.pid: int | None = None
        self.port = 0
        self.stopping = False
        self.started_at = 0.0
        self._next_pid = 100

    @property
    def running(self) -> bool:
        return self.pid is not None

    def start(self, config_path: Path, port: int) -> object:
        assert self.pid is None, "second manager started"
        self._next_pid += 1
        self.pid = self._next_pid
        self.port = port
        self.stopping = False
        self.started_at = self.clock()
        self.journal.append(f"start:{port}")
        return self.pid

    def interrupt(self) -> None:
        self.stopping = True
        self.journal.append("interrupt")

    def request_stop(self) -> None:
        if self.stopping:
            self.kill()
            return
        self.interrupt()

    def kill(self) -> None:
        self.stopping = True
        self.journal.append("kill")
        if self.exits_on_kill and self.events is not None and self.pid is not None:
            self.events.put(WorkerExited(pid=self.pid, returncode=-9))

    def exit_event(self, returncode: int = 0) -> WorkerExited:
        assert self.pid is not None
        return WorkerExited(pid=self.pid, returncode=returncode)

    def handle_exit(self, event: WorkerExited) -> float:
        if self.pid is None or event.pid != self.pid:
            raise UnexpectedStateError(f"spurious manager stop signal (pid {event.pid})")
        self.pid = None
        self.port = 0
        self.journal.append("exited")
        uptime = self.clock() - self.started_at
        if self.stopping or uptime >= self.min_uptime:
            return 0.0
        return self.min_uptime - uptime


class FakeStorage:
    def __init__(self, updated: object = None, generation: str = "") -> None:
        self.updated = updated
        self.generation = generation
        self.uploads: list[tuple[Path, str]] = []
        self.downloads: list[tuple[str, Path]] = []
        self.download_generations: list[str] = []
        self.archive_bytes: bytes | None = None

    def stat(self, path: str) -> BlobInfo:
        if self.updated is None:
            raise PollFailedError(f"no such object: {path}")
        return BlobInfo(path=path, updated=self.updated, generation=self.generation)

    def download(self, path: str, dest: Path, *, generation: str = "") -> None:
        self.downloads.append((path, dest))
        self.download_generations.append(generation)
        if self.archive_bytes is None:
            raise PollFailedError(f"no such object: {path}")
        dest.write_bytes(self.archive_bytes)

    def upload(self, local_file: Path, path: str) -> None:
        self.uploads.append((local_file, path))


class FakeImages:
    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []

    def delete_image(self, name: str) -> None:
        self.calls.append(("delete", name))

    def create_image(self, name: str, source_path: str) -> None:
        self.calls.append(("create", name, source_path))


def make_config(**overrides: object) -> SupervisorConfig:
    payload: dict[str, object] = {
        "name": "ci-upstream",
        "hub_addr": "hub.example.com:1234",
        "hub_key": "hubkey",
        "image_archive": "bucket/images/upstream.tar.gz",
        "image_path": "bucket/disks/upstream.tar.gz",
        "image_name": "ci-upstream-image",
        "machine_type": "n1-highcpu-2",
        "machine_count": 4,
        "sandbox": "namespace",
        "procs": 8,
        "enable_syscalls": ["open", "read"],
        "disable_syscalls": ["reboot"],
    }
    payload.update(overrides)
    return SupervisorConfig.model_validate(payload)


def make_local_config(**overrides: object) -> SupervisorConfig:
    payload: dict[str, object] = {
        "image_archive": "local",
        "linux_git": "https://git.example.com/linux.git",
        "linux_branch": "master",
        "linux_userspace": "wheezy",
        "dashboard_addr": "dash.example.com",
        "dashboard_key": "dashkey",
    }
    payload.update(overrides)
    return make_config(**payload)
