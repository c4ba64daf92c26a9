"""Running git, make, gsutil and the other build tools the sources shell out to."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generic, Mapping, Protocol, TypeVar

from . import log
from .errors import ExternalCommandFailedError

ParsedT = TypeVar("ParsedT")


@dataclass(frozen=True)
class CommandRequest:
    """Typed command invocation request.

    ``combine_output`` folds stderr into stdout so failures carry the full
    transcript of build tools. ``input_bytes`` is written to stdin unchanged.
    """

    argv: tuple[str, ...]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    input_bytes: bytes | None = None
    combine_output: bool = True
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one command; ``stdout`` holds the combined transcript by default."""

    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str = ""
    timed_out: bool = False

    @property
    def output(self) -> str:
        if self.stderr:
            return f"{self.stdout}{self.stderr}"
        return self.stdout


class CommandRunner(Protocol):
    """Anything that can run a ``CommandRequest``; tests substitute fakes."""

    def run(self, request: CommandRequest) -> CommandResult | None: ...


def _decode_output(data: bytes | str | None) -> str:
    """Decode captured output; bytes that are not UTF-8 become U+FFFD."""
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")


class SubprocessCommandRunner:
    """Runs requests with ``subprocess.run``. A missing executable yields ``None``.

    Pipes stay binary so stdin gets ``input_bytes`` verbatim and compiler
    output in any encoding is captured without raising.
    """

    def run(self, request: CommandRequest) -> CommandResult | None:
        run_kwargs: dict[str, object] = {
            "cwd": request.cwd,
            "env": request.env,
            "check": False,
            "stdout": subprocess.PIPE,
            "stderr": subprocess.STDOUT if request.combine_output else subprocess.PIPE,
        }
        if request.input_bytes is not None:
            run_kwargs["input"] = request.input_bytes
        else:
            run_kwargs["stdin"] = subprocess.DEVNULL
        if request.timeout_seconds is not None:
            run_kwargs["timeout"] = request.timeout_seconds
        try:
            completed = subprocess.run(list(request.argv), **run_kwargs)
        except FileNotFoundError:
            return None
        except subprocess.TimeoutExpired as exc:
            return CommandResult(
                argv=request.argv,
                returncode=124,
                stdout=_decode_output(exc.stdout),
                stderr=_decode_output(exc.stderr),
                timed_out=True,
            )

        return CommandResult(
            argv=request.argv,
            returncode=completed.returncode,
            stdout=_decode_output(completed.stdout),
            stderr=_decode_output(completed.stderr),
        )


_DEFAULT_COMMAND_RUNNER: CommandRunner = SubprocessCommandRunner()


@dataclass(frozen=True)
class CommandSpec(Generic[ParsedT]):
    """A request paired with the parser that turns its output into a value."""

    request: CommandRequest
    parser: Callable[[CommandResult], ParsedT]
    context: str | None = None


class CommandExecutionError(ExternalCommandFailedError):
    """Raised when a command is missing or exits non-zero."""

    def __init__(
        self,
        request: CommandRequest,
        detail: str,
        result: CommandResult | None = None,
    ) -> None:
        super().__init__(detail)
        self.request = request
        self.detail = detail
        self.result = result


class CommandParseError(ExternalCommandFailedError):
    """Raised when a command succeeded but its output made no sense."""

    def __init__(self, request: CommandRequest, detail: str, context: str | None = None) -> None:
        super().__init__(detail)
        self.request = request
        self.detail = detail
        self.context = context


def run_with_runner(
    request: CommandRequest, *, runner: CommandRunner | None = None
) -> CommandResult | None:
    """Run ``request`` on ``runner`` (or the subprocess runner) with trace logging."""
    active_runner = runner or _DEFAULT_COMMAND_RUNNER
    log.trace(f"exec: {' '.join(request.argv)} (cwd={request.cwd or '.'})")
    return active_runner.run(request)


def _missing_command_detail(request: CommandRequest) -> str:
    argv = request.argv
    if not argv:
        return "missing required command"
    return f"missing required command: {argv[0]}"


def _command_failure_detail(request: CommandRequest, result: CommandResult) -> str:
    output = result.output.strip()
    command_text = " ".join(request.argv)
    reason = "timed out" if result.timed_out else f"exit status {result.returncode}"
    if output:
        return f"failed to run {command_text}: {reason}\n{output}"
    return f"failed to run {command_text}: {reason}"


def run_checked(
    request: CommandRequest, *, runner: CommandRunner | None = None
) -> CommandResult:
    """Run a command and raise ``CommandExecutionError`` unless it exits zero."""
    result = run_with_runner(request, runner=runner)
    if result is None:
        raise CommandExecutionError(request, _missing_command_detail(request))
    if result.returncode != 0:
        raise CommandExecutionError(
            request,
            _command_failure_detail(request, result),
            result=result,
        )
    return result


def run_typed(
    spec: CommandSpec[ParsedT], *, runner: CommandRunner | None = None
) -> ParsedT:
    """Run ``spec`` and return its parsed output.

    Raises:
        CommandExecutionError: If the command is missing or fails.
        CommandParseError: If the parser rejects the output.
    """
    result = run_checked(spec.request, runner=runner)
    try:
        return spec.parser(result)
    except CommandParseError:
        raise
    except Exception as exc:
        context = f" ({spec.context})" if spec.context else ""
        raise CommandParseError(
            spec.request,
            f"failed to parse command output{context}: {exc}",
            context=spec.context,
        ) from exc


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    *,
    runner: CommandRunner | None = None,
    input_bytes: bytes | None = None,
    timeout: float | None = None,
) -> str:
    """Run a command and return its combined output.

    Args:
        cmd: Program and arguments.
        cwd: Directory to run in; the current one when omitted.
        runner: Runner to use instead of the subprocess runner.
        input_bytes: Data written to the command's stdin.
        timeout: Seconds after which the command counts as failed.

    Returns:
        Combined stdout/stderr of the command.

    Raises:
        CommandExecutionError: If the command is missing or exits non-zero.
    """
    result = run_checked(
        CommandRequest(
            argv=tuple(cmd), cwd=cwd, input_bytes=input_bytes, timeout_seconds=timeout
        ),
        runner=runner,
    )
    return result.output


def try_run_command(
    cmd: list[str],
    cwd: Path | None = None,
    *,
    runner: CommandRunner | None = None,
    input_bytes: bytes | None = None,
) -> CommandResult | None:
    """Run a command whose failure the caller wants to inspect.

    Returns ``None`` when the executable is missing; non-zero exits are
    returned, not raised.
    """
    return run_with_runner(
        CommandRequest(argv=tuple(cmd), cwd=cwd, input_bytes=input_bytes),
        runner=runner,
    )
