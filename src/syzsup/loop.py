"""The update loop: poll change sources, rebuild, restart the manager.

Every wake-up goes through one decision point fed by a single event queue:
a timer (queue timeout), the manager exit watcher, and operator signals. A
rebuild only ever runs once the previous manager is confirmed gone.
"""

from __future__ import annotations

import queue
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Protocol, Sequence

from . import log
from .errors import SupervisorFailure
from .events import LoopEvent, SignalEvent, SignalKind, TimerExpired, WorkerExited
from .manager_config import choose_unused_port, write_manager_config
from .models import SupervisorConfig
from .sources.base import ChangeSource

ERROR_DELAY = 15 * 60.0
IDLE_DELAY = 60 * 60.0
STOP_DELAY = 60.0
HEALTHY_DELAY = 6 * 60 * 60.0
SHUTDOWN_TIMEOUT = 60.0
KILL_GRACE = 10.0


class LoopState(str, Enum):
    SLEEPING = "sleeping"
    POLLING = "polling"
    EVALUATING = "evaluating"
    STOPPING_WORKER = "stopping_worker"
    BUILDING = "building"
    STARTING_WORKER = "starting_worker"


@dataclass
class SourceState:
    """Applied vs. observed token for one change source."""

    applied: str = ""
    observed: str = ""

    @property
    def changed(self) -> bool:
        return self.applied != self.observed


class WorkerControl(Protocol):
    """Process supervision operations the loop relies on."""

    @property
    def running(self) -> bool: ...

    def start(self, config_path: Path, port: int) -> object: ...

    def interrupt(self) -> None: ...

    def request_stop(self) -> None: ...

    def kill(self) -> None: ...

    def handle_exit(self, event: WorkerExited) -> float: ...


ConfigWriter = Callable[[SupervisorConfig, int, Path, Path], object]


class UpdateLoop:
    """State machine driving stop, rebuild and restart of the manager."""

    def __init__(
        self,
        sources: Sequence[ChangeSource],
        worker: WorkerControl,
        events: queue.SimpleQueue[LoopEvent],
        *,
        cfg: SupervisorConfig,
        root: Path,
        config_path: Path,
        choose_port: Callable[[], int] = choose_unused_port,
        write_config: ConfigWriter = write_manager_config,
        clock: Callable[[], float] = time.monotonic,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
        kill_grace: float = KILL_GRACE,
    ) -> None:
        names = [source.name for source in sources]
        if len(set(names)) != len(names):
            raise ValueError(f"change source names must be unique: {names}")
        self.sources = list(sources)
        self.worker = worker
        self.events = events
        self.cfg = cfg
        self.root = root
        self.config_path = config_path
        self._choose_port = choose_port
        self._write_config = write_config
        self._clock = clock
        self.shutdown_timeout = shutdown_timeout
        self.kill_grace = kill_grace
        self.states = {name: SourceState() for name in names}
        self.state = LoopState.SLEEPING
        self.delay = 0.0
        self.already_polled = False
        self.restart_not_before: float | None = None

    def _enter(self, state: LoopState) -> None:
        if state is not self.state:
            log.trace(f"state {self.state.value} -> {state.value}")
        self.state = state

    def _sleep(self, delay: float) -> None:
        self.delay = delay
        self._enter(LoopState.SLEEPING)

    def run(self) -> int:
        """Run until a shutdown signal completes; return the exit code."""
        while True:
            code = self.step(self.wait())
            if code is not None:
                return code

    def wait(self) -> LoopEvent:
        """Block until the delay elapses or an event arrives."""
        if self.delay <= 0:
            return TimerExpired()
        log.info(f"sleep for {_format_delay(self.delay)}")
        try:
            return self.events.get(timeout=self.delay)
        except queue.Empty:
            return TimerExpired()

    def step(self, event: LoopEvent) -> int | None:
        """Handle one wake-up. Returns an exit code once the loop must end.

        Raises:
            UnexpectedStateError: If a manager exit arrives while none runs.
        """
        if isinstance(event, SignalEvent):
            if event.kind is SignalKind.SHUTDOWN:
                return self.shutdown()
            log.info("poll requested by signal")
        elif isinstance(event, WorkerExited):
            self._on_worker_exit(event)
        if self._restart_held():
            return None
        self.cycle()
        return None

    def _on_worker_exit(self, event: WorkerExited) -> None:
        hold = self.worker.handle_exit(event)
        if hold > 0:
            self.restart_not_before = self._clock() + hold
            log.warning(
                f"syz-manager exited too quickly, holding restarts for {_format_delay(hold)}"
            )

    def _restart_held(self) -> bool:
        if self.restart_not_before is None or self.worker.running:
            return False
        remaining = self.restart_not_before - self._clock()
        if remaining <= 0:
            self.restart_not_before = None
            return False
        log.info(f"restart held after a quick manager exit ({_format_delay(remaining)} left)")
        self._sleep(remaining)
        return True

    def cycle(self) -> None:
        """Run one poll/evaluate/stop-or-build/start pass."""
        if not self.already_polled:
            if not self._poll():
                self._sleep(ERROR_DELAY)
                return
        self._enter(LoopState.EVALUATING)
        changed = [source for source in self.sources if self.states[source.name].changed]
        for source in changed:
            state = self.states[source.name]
            log.info(f"{source.name} changed {state.applied!r} -> {state.observed!r}")
        if not changed and self.worker.running:
            log.debug("nothing changed")
            self._sleep(IDLE_DELAY)
            return

        if self.worker.running:
            self._enter(LoopState.STOPPING_WORKER)
            self.worker.request_stop()
            self.already_polled = True
            self._sleep(STOP_DELAY)
            return
        self.already_polled = False

        self._enter(LoopState.BUILDING)
        for source in changed:
            state = self.states[source.name]
            log.info(f"building {source.name}...")
            try:
                source.rebuild()
            except (SupervisorFailure, OSError) as exc:
                log.error(f"building {source.name} failed: {exc}")
                self._sleep(ERROR_DELAY)
                return
            state.applied = state.observed
            log.success(f"built {source.name} at {state.applied!r}")

        self._start_worker()

    def _poll(self) -> bool:
        self._enter(LoopState.POLLING)
        log.info("polling...")
        for source in self.sources:
            try:
                token = source.identify()
            except (SupervisorFailure, OSError) as exc:
                log.error(f"failed to poll {source.name}: {exc}")
                return False
            self.states[source.name].observed = token
            log.debug(f"{source.name}: {token!r}")
        return True

    def _start_worker(self) -> None:
        self._enter(LoopState.STARTING_WORKER)
        try:
            port = self._choose_port()
            self._write_config(self.cfg, port, self.config_path, self.root)
            log.info("starting syz-manager...")
            self.worker.start(self.config_path, port)
        except SupervisorFailure as exc:
            log.error(f"failed to start syz-manager: {exc}")
            self._sleep(ERROR_DELAY)
            return
        self._sleep(HEALTHY_DELAY)

    def shutdown(self) -> int:
        """Stop the manager and return the exit code.

        The whole shutdown takes at most ``shutdown_timeout`` seconds. SIGKILL
        goes out on a second shutdown signal or once only ``kill_grace``
        seconds are left, and the remainder is spent waiting for the exit.
        """
        log.info("shutdown requested")
        if not self.worker.running:
            return 0
        log.info("shutting down syz-manager...")
        self.worker.interrupt()
        give_up_at = self._clock() + self.shutdown_timeout
        deadline = give_up_at - self.kill_grace
        killed = False
        while self.worker.running:
            remaining = deadline - self._clock()
            if remaining <= 0:
                if killed:
                    log.error("syz-manager did not exit after SIGKILL; exiting anyway")
                    break
                log.warning("syz-manager did not stop in time, killing it")
                self.worker.kill()
                killed = True
                deadline = give_up_at
                continue
            try:
                event = self.events.get(timeout=remaining)
            except queue.Empty:
                continue
            if isinstance(event, WorkerExited):
                self.worker.handle_exit(event)
            elif (
                isinstance(event, SignalEvent)
                and event.kind is SignalKind.SHUTDOWN
                and not killed
            ):
                log.warning("second shutdown signal, killing syz-manager")
                self.worker.kill()
                killed = True
                deadline = give_up_at
        return 0


def _format_delay(seconds: float) -> str:
    """Render a delay the way operators read it.

    Example:
        >>> _format_delay(3600)
        '1h0m0s'
        >>> _format_delay(90.5)
        '1m30s'
    """
    total = int(round(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"
