from __future__ import annotations

import pytest

import syzsup.log as syzsup_log


def test_level_comes_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SYZSUP_LOG_LEVEL", "warn")

    assert syzsup_log.configured_level() is syzsup_log.LogLevel.WARNING


def test_unknown_level_falls_back_to_info() -> None:
    syzsup_log.set_level("chatty")

    assert syzsup_log.configured_level() is syzsup_log.LogLevel.INFO


def test_messages_below_level_are_dropped(capsys: pytest.CaptureFixture[str]) -> None:
    syzsup_log.set_level("info")

    syzsup_log.debug("hidden detail")
    syzsup_log.info("polling...")
    syzsup_log.error("failed to poll syzkaller: timeout")

    captured = capsys.readouterr()
    assert "hidden detail" not in captured.out
    assert "polling..." in captured.out
    assert "failed to poll syzkaller: timeout" in captured.err


def test_lines_carry_timestamp(capsys: pytest.CaptureFixture[str]) -> None:
    syzsup_log.success("built kernel at 'abc123'")

    line = capsys.readouterr().out.strip()
    date, clock, message = line.split(" ", 2)
    assert len(date.split("/")) == 3
    assert len(clock.split(":")) == 3
    assert message == "built kernel at 'abc123'"


def test_no_color_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SYZSUP_NO_COLOR", raising=False)
    monkeypatch.delenv("NO_COLOR", raising=False)
    assert syzsup_log._no_color() is False

    syzsup_log.set_no_color(True)
    assert syzsup_log._no_color() is True

    syzsup_log.set_no_color(False)
    monkeypatch.setenv("NO_COLOR", "1")
    assert syzsup_log._no_color() is True
