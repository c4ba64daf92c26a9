"""Translate operator signals into update loop events."""

from __future__ import annotations

import queue
import signal
from types import FrameType
from typing import Callable

from .events import LoopEvent, SignalEvent, SignalKind

POLL_SIGNALS = (signal.SIGUSR1,)
SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

_Handler = Callable[[int, FrameType | None], object] | int | None


class SignalController:
    """Installs handlers that only enqueue events.

    ``SimpleQueue.put`` is reentrant, so handlers may fire while the loop is
    blocked in ``get``.
    """

    def __init__(
        self,
        events: queue.SimpleQueue[LoopEvent],
        *,
        poll_signals: tuple[int, ...] = POLL_SIGNALS,
        shutdown_signals: tuple[int, ...] = SHUTDOWN_SIGNALS,
    ) -> None:
        self.events = events
        self._kinds: dict[int, SignalKind] = {}
        for signum in poll_signals:
            self._kinds[signum] = SignalKind.POLL_NOW
        for signum in shutdown_signals:
            self._kinds[signum] = SignalKind.SHUTDOWN
        self._previous: dict[int, _Handler] = {}

    def handle(self, signum: int, _frame: FrameType | None = None) -> None:
        kind = self._kinds.get(signum)
        if kind is None:
            return
        self.events.put(SignalEvent(kind=kind, signum=signum))

    def install(self) -> None:
        for signum in self._kinds:
            if signum in self._previous:
                continue
            self._previous[signum] = signal.signal(signum, self.handle)

    def uninstall(self) -> None:
        for signum, previous in self._previous.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous.clear()

    def __enter__(self) -> SignalController:
        self.install()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.uninstall()
