"""Timestamped, leveled terminal logging for the supervisor.

Warnings and errors go to stderr, everything else to stdout. The level is read
from ``SYZSUP_LOG_LEVEL`` on first use unless ``set_level`` ran earlier.
"""

from __future__ import annotations

import datetime as dt
import os
import sys
from enum import IntEnum

from rich.console import Console
from rich.text import Text


class LogLevel(IntEnum):
    TRACE = 10
    DEBUG = 20
    INFO = 30
    SUCCESS = 35
    WARNING = 40
    ERROR = 50


_LEVEL_BY_NAME = {
    "trace": LogLevel.TRACE,
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "success": LogLevel.SUCCESS,
    "warning": LogLevel.WARNING,
    "warn": LogLevel.WARNING,
    "error": LogLevel.ERROR,
}
LEVEL_NAMES = tuple(name for name in _LEVEL_BY_NAME if name != "warn")

_STYLES = {
    LogLevel.TRACE: "dim",
    LogLevel.DEBUG: "cyan",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "bold red",
}
_TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"

_configured_level: LogLevel | None = None
_no_color_override: bool | None = None


def _parse_level(value: str | None) -> LogLevel:
    name = (value or "").strip().lower()
    return _LEVEL_BY_NAME.get(name, LogLevel.INFO)


def configured_level() -> LogLevel:
    global _configured_level
    if _configured_level is None:
        _configured_level = _parse_level(os.environ.get("SYZSUP_LOG_LEVEL"))
    return _configured_level


def set_level(value: str | None) -> None:
    """Set the active level by name; unknown names mean ``info``."""
    global _configured_level
    _configured_level = _parse_level(value)


def set_no_color(value: bool) -> None:
    """Force colour off (``True``) or defer to the environment again."""
    global _no_color_override
    _no_color_override = True if value else None


def _no_color() -> bool:
    if _no_color_override is not None:
        return _no_color_override
    return bool(os.environ.get("NO_COLOR") or os.environ.get("SYZSUP_NO_COLOR"))


def emit(level: LogLevel, message: str, *, style: str | None = None) -> None:
    if level < configured_level():
        return
    line = Text(dt.datetime.now().strftime(_TIMESTAMP_FORMAT) + " ", style="dim")
    line.append(message, style=style or _STYLES.get(level, ""))
    console = Console(
        file=sys.stderr if level >= LogLevel.WARNING else sys.stdout,
        soft_wrap=True,
        highlight=False,
        no_color=_no_color(),
    )
    console.print(line)


def trace(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.TRACE, message, style=style)


def debug(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.DEBUG, message, style=style)


def info(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.INFO, message, style=style)


def success(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.SUCCESS, message, style=style)


def warning(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.WARNING, message, style=style)


def error(message: str, *, style: str | None = None) -> None:
    emit(LogLevel.ERROR, message, style=style)
