"""Tests for typed command execution helpers."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from syzsup import exec as exec_util
from tests.syzsup.helpers import FakeRunner, failed, ok


def test_subprocess_command_runner_combines_output(monkeypatch: pytest.MonkeyPatch) -> None:
    """Runner folds stderr into stdout and closes stdin by default."""
    calls: dict[str, object] = {}

    def fake_run(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[bytes]:
        calls["argv"] = argv
        calls["kwargs"] = kwargs
        return subprocess.CompletedProcess(argv, 0, stdout=b"built\n", stderr=None)

    monkeypatch.setattr(subprocess, "run", fake_run)

    request = exec_util.CommandRequest(
        argv=("make",),
        cwd=Path("/tmp"),
        env={"GOPATH": "/tmp/gopath"},
        timeout_seconds=5.0,
    )
    result = exec_util.SubprocessCommandRunner().run(request)

    assert result == exec_util.CommandResult(argv=("make",), returncode=0, stdout="built\n")
    assert calls["argv"] == ["make"]
    run_kwargs = calls["kwargs"]
    assert isinstance(run_kwargs, dict)
    assert run_kwargs["cwd"] == Path("/tmp")
    assert run_kwargs["env"] == {"GOPATH": "/tmp/gopath"}
    assert run_kwargs["stderr"] == subprocess.STDOUT
    assert run_kwargs["stdin"] == subprocess.DEVNULL
    assert run_kwargs["timeout"] == 5.0
    assert "input" not in run_kwargs


def test_subprocess_command_runner_feeds_input(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: dict[str, object] = {}

    def fake_run(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[bytes]:
        calls.update(kwargs)
        return subprocess.CompletedProcess(argv, 0, stdout=b"", stderr=b"warn\n")

    monkeypatch.setattr(subprocess, "run", fake_run)

    request = exec_util.CommandRequest(
        argv=("patch", "-p1"), input_bytes=b"diff", combine_output=False
    )
    result = exec_util.SubprocessCommandRunner().run(request)

    assert result is not None
    assert result.stderr == "warn\n"
    assert calls["input"] == b"diff"
    assert calls["stderr"] == subprocess.PIPE
    assert "stdin" not in calls


def test_subprocess_command_runner_replaces_undecodable_output() -> None:
    result = exec_util.SubprocessCommandRunner().run(
        exec_util.CommandRequest(argv=("sh", "-c", "printf 'cc: \\377\\n'; exit 2"))
    )

    assert result is not None
    assert result.returncode == 2
    assert result.stdout == "cc: \ufffd\n"


def test_subprocess_command_runner_returns_none_when_missing_executable(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def fake_run(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[bytes]:
        del argv, kwargs
        raise FileNotFoundError

    monkeypatch.setattr(subprocess, "run", fake_run)

    assert exec_util.SubprocessCommandRunner().run(exec_util.CommandRequest(argv=("nope",))) is None


def test_subprocess_command_runner_reports_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_run(argv: list[str], **kwargs: object) -> subprocess.CompletedProcess[bytes]:
        raise subprocess.TimeoutExpired(argv, 1.0, output=b"partial")

    monkeypatch.setattr(subprocess, "run", fake_run)

    result = exec_util.SubprocessCommandRunner().run(
        exec_util.CommandRequest(argv=("sleep", "10"), timeout_seconds=1.0)
    )

    assert result is not None
    assert result.timed_out is True
    assert result.returncode == 124
    assert result.stdout == "partial"


def test_run_checked_raises_with_output_on_failure() -> None:
    runner = FakeRunner(lambda request: failed(request, "compile error\n", returncode=2))

    with pytest.raises(exec_util.CommandExecutionError) as excinfo:
        exec_util.run_checked(exec_util.CommandRequest(argv=("make",)), runner=runner)

    assert excinfo.value.code == "external_command_failed"
    assert "exit status 2" in excinfo.value.detail
    assert "compile error" in excinfo.value.detail
    assert excinfo.value.result is not None


def test_run_checked_raises_for_missing_command() -> None:
    runner = FakeRunner(lambda _request: None)

    with pytest.raises(exec_util.CommandExecutionError, match="missing required command: git"):
        exec_util.run_checked(exec_util.CommandRequest(argv=("git", "status")), runner=runner)


def test_run_typed_wraps_parser_errors() -> None:
    runner = FakeRunner(lambda request: ok(request, "not-a-number"))
    spec = exec_util.CommandSpec(
        request=exec_util.CommandRequest(argv=("count",)),
        parser=lambda result: int(result.stdout),
        context="count output",
    )

    with pytest.raises(exec_util.CommandParseError) as excinfo:
        exec_util.run_typed(spec, runner=runner)

    assert excinfo.value.context == "count output"
    assert "failed to parse command output (count output)" in excinfo.value.detail


def test_run_command_returns_output_and_passes_cwd(tmp_path: Path) -> None:
    runner = FakeRunner(lambda request: ok(request, "done"))

    output = exec_util.run_command(["make", "-j", "4"], cwd=tmp_path, runner=runner)

    assert output == "done"
    assert runner.requests[0].argv == ("make", "-j", "4")
    assert runner.requests[0].cwd == tmp_path


def test_try_run_command_returns_failures_without_raising() -> None:
    runner = FakeRunner(lambda request: failed(request, "nope"))

    result = exec_util.try_run_command(["patch", "--dry-run"], runner=runner, input_bytes=b"diff")

    assert result is not None
    assert result.returncode == 1
    assert runner.requests[0].input_bytes == b"diff"
