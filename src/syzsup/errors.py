"""Supervisor failure contracts.

Components raise SupervisorFailure on expected poll/build/runtime failures.
The update loop catches them at cycle granularity and retries later; the CLI
turns the ones that escape the loop into a fatal exit. Programmer bugs raise
normal exceptions.
"""

from __future__ import annotations

from typing import Literal

SupervisorFailureCode = Literal[
    "validation_failed",
    "dependency_missing",
    "poll_failed",
    "build_failed",
    "external_command_failed",
    "io_failed",
    "unexpected_state",
]


class SupervisorFailure(Exception):
    """Expected failure: validation, polling, building or runtime error.

    Use ``raise SupervisorFailure(...) from exc`` to chain a causing exception;
    it is available as ``__cause__``.
    """

    def __init__(
        self,
        code: SupervisorFailureCode,
        message: str,
        *,
        recovery_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.recovery_hint = recovery_hint


class ValidationFailedError(SupervisorFailure):
    """Validation failed (invalid config, constraint violation)."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("validation_failed", message, recovery_hint=recovery_hint)


class DependencyMissingError(SupervisorFailure):
    """Required executable, client or credential is unavailable."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("dependency_missing", message, recovery_hint=recovery_hint)


class PollFailedError(SupervisorFailure):
    """A change source could not determine its current token."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("poll_failed", message, recovery_hint=recovery_hint)


class BuildFailedError(SupervisorFailure):
    """A change source could not rebuild its artifacts."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("build_failed", message, recovery_hint=recovery_hint)


class ExternalCommandFailedError(SupervisorFailure):
    """External command (git, make, gsutil, etc.) failed."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("external_command_failed", message, recovery_hint=recovery_hint)


class IoFailedError(SupervisorFailure):
    """I/O operation failed (read, write, rename)."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("io_failed", message, recovery_hint=recovery_hint)


class UnexpectedStateError(SupervisorFailure):
    """Unexpected or inconsistent internal state."""

    def __init__(self, message: str, *, recovery_hint: str | None = None) -> None:
        super().__init__("unexpected_state", message, recovery_hint=recovery_hint)
