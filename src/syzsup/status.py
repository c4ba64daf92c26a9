"""Thread-safe view of the running manager for status reporting."""

from __future__ import annotations

import threading


class ManagerStatus:
    """Holds the manager's HTTP port; 0 while no manager runs.

    Written only by the update loop, read from any thread.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._port = 0

    def port(self) -> int:
        with self._lock:
            return self._port

    def set_port(self, port: int) -> None:
        with self._lock:
            self._port = port

    def clear(self) -> None:
        self.set_port(0)
