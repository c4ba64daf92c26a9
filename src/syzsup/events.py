"""Events delivered to the update loop's single wait point."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SignalKind(str, Enum):
    POLL_NOW = "poll_now"
    SHUTDOWN = "shutdown"


@dataclass(frozen=True)
class SignalEvent:
    """An operator signal translated by the signal controller."""

    kind: SignalKind
    signum: int | None = None


@dataclass(frozen=True)
class WorkerExited:
    """Posted once by the watcher thread when a manager process ends."""

    pid: int
    returncode: int | None
    error: str | None = None

    def describe(self) -> str:
        if self.error:
            return f"error: {self.error}"
        if self.returncode is None:
            return "unknown status"
        if self.returncode < 0:
            return f"signal {-self.returncode}"
        return f"exit status {self.returncode}"


@dataclass(frozen=True)
class TimerExpired:
    """Synthesized when the sleep delay elapses without another event."""


LoopEvent = SignalEvent | WorkerExited | TimerExpired
