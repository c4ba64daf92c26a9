"""Change source contract.

A change source reports an opaque token for the current state of one input
and knows how to rebuild local artifacts when that token changes. The update
loop only ever sees this two-method contract; new inputs are added by
subclassing, not by touching the loop.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class ChangeSource(ABC):
    """Abstract base for every input the supervisor watches.

    ``identify`` must not modify the artifacts ``rebuild`` produces and must not
    retry internally; failures raise ``SupervisorFailure`` and the loop retries
    the whole cycle later. ``rebuild`` must be idempotent.
    """

    name: str

    @abstractmethod
    def identify(self) -> str:
        """Return the token describing the current upstream state."""
        ...

    @abstractmethod
    def rebuild(self) -> None:
        """Bring local artifacts up to the last identified token."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
