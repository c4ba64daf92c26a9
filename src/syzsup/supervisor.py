"""Lifecycle management for the supervised syz-manager process."""

from __future__ import annotations

import queue
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable

from . import log
from .errors import DependencyMissingError, IoFailedError, UnexpectedStateError
from .events import LoopEvent, WorkerExited
from .status import ManagerStatus

MIN_UPTIME_SECONDS = 5 * 60

PopenFactory = Callable[..., "subprocess.Popen[bytes]"]


@dataclass
class ManagerProcess:
    """A running manager. ``stopping`` is set once a graceful stop was sent."""

    popen: subprocess.Popen[bytes]
    port: int
    started_at: float
    stopping: bool = False

    @property
    def pid(self) -> int:
        return self.popen.pid


class ManagerSupervisor:
    """Starts, stops and watches at most one manager process.

    Exit notifications are posted to ``events`` by a per-process watcher
    thread; everything else runs on the update loop's thread.
    """

    def __init__(
        self,
        events: queue.SimpleQueue[LoopEvent],
        *,
        binary: Path,
        cwd: Path,
        status: ManagerStatus,
        log_path: Path | None = None,
        min_uptime: float = MIN_UPTIME_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        popen: PopenFactory = subprocess.Popen,
    ) -> None:
        self.events = events
        self.binary = binary
        self.cwd = cwd
        self.status = status
        self.log_path = log_path
        self.min_uptime = min_uptime
        self._clock = clock
        self._popen = popen
        self.process: ManagerProcess | None = None

    @property
    def running(self) -> bool:
        return self.process is not None

    def start(self, config_path: Path, port: int) -> ManagerProcess:
        """Launch the manager with ``config_path`` and begin watching it.

        Raises:
            UnexpectedStateError: If a manager is already running.
            DependencyMissingError: If the manager binary does not exist.
            IoFailedError: If the process cannot be spawned.
        """
        if self.process is not None:
            raise UnexpectedStateError(
                f"refusing to start a second manager (pid {self.process.pid} is running)"
            )
        argv = [str(self.binary), f"-config={config_path}"]
        output: IO[str] | None = None
        try:
            if self.log_path is not None:
                output = self.log_path.open("a", encoding="utf-8")
            popen = self._popen(
                argv,
                cwd=self.cwd,
                stdin=subprocess.DEVNULL,
                stdout=output if output is not None else subprocess.DEVNULL,
                stderr=subprocess.STDOUT,
            )
        except FileNotFoundError as exc:
            if output is not None:
                output.close()
            raise DependencyMissingError(f"manager binary not found: {self.binary}") from exc
        except OSError as exc:
            if output is not None:
                output.close()
            raise IoFailedError(f"failed to start syz-manager: {exc}") from exc
        self.process = ManagerProcess(popen=popen, port=port, started_at=self._clock())
        self.status.set_port(port)
        watcher = threading.Thread(
            target=self._watch,
            args=(popen, output),
            name=f"syzsup-manager-{popen.pid}",
            daemon=True,
        )
        watcher.start()
        log.info(f"started syz-manager (pid {popen.pid}, http port {port})")
        return self.process

    def _watch(self, popen: subprocess.Popen[bytes], output: IO[str] | None) -> None:
        try:
            returncode = popen.wait()
        except Exception as exc:  # noqa: BLE001 - reported to the loop as an exit
            event = WorkerExited(pid=popen.pid, returncode=None, error=str(exc))
        else:
            event = WorkerExited(pid=popen.pid, returncode=returncode)
        if output is not None:
            output.close()
        self.events.put(event)

    def interrupt(self) -> None:
        """Send the graceful stop signal (SIGINT) to the running manager."""
        process = self.process
        if process is None:
            return
        process.stopping = True
        self._signal(process, signal.SIGINT)

    def request_stop(self) -> None:
        """Ask the manager to stop; a repeated request escalates to SIGKILL."""
        process = self.process
        if process is None:
            return
        if process.stopping:
            log.warning("killing syz-manager...")
            self.kill()
            return
        log.info("stopping syz-manager...")
        self.interrupt()

    def kill(self) -> None:
        process = self.process
        if process is None:
            return
        process.stopping = True
        self._signal(process, signal.SIGKILL)

    def _signal(self, process: ManagerProcess, signum: int) -> None:
        try:
            process.popen.send_signal(signum)
        except ProcessLookupError:
            log.debug(f"syz-manager (pid {process.pid}) already gone")

    def handle_exit(self, event: WorkerExited) -> float:
        """Record a manager exit and return the crash-loop hold in seconds.

        The hold is non-zero when the manager died on its own before
        ``min_uptime`` elapsed; it lasts until ``min_uptime`` after its start.

        Raises:
            UnexpectedStateError: If no manager is believed running, or the
                event belongs to a different process.
        """
        process = self.process
        if process is None:
            raise UnexpectedStateError(
                f"spurious manager stop signal (pid {event.pid}, {event.describe()})"
            )
        if process.pid != event.pid:
            raise UnexpectedStateError(
                f"manager stop signal for pid {event.pid}, but pid {process.pid} is running"
            )
        self.process = None
        self.status.clear()
        log.info(f"syz-manager exited with {event.describe()}")
        uptime = self._clock() - process.started_at
        if process.stopping or uptime >= self.min_uptime:
            return 0.0
        return self.min_uptime - uptime
