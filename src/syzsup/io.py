"""Plain console output for command results and fatal startup errors."""

from __future__ import annotations

import sys
from typing import NoReturn


def say(message: str) -> None:
    """Print a command result to stdout.

    Example:
        >>> say("wrote manager.cfg")
        wrote manager.cfg
    """
    print(message)


def die(message: str, code: int = 1) -> NoReturn:
    """Report a fatal error on stderr and exit with ``code``.

    Used for failures that make supervision impossible: a bad config, a
    missing tool, no working directory.
    """
    print(f"error: {message}", file=sys.stderr)
    sys.exit(code)
