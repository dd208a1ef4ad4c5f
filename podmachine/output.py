"""Progress lines for the CLI.

Everything here goes to stderr: stdout carries only command results
(`ip`, `url`, `status`) so they can be captured by scripts. Colour is
used only on a terminal and is turned off by NO_COLOR.
"""

import os
import sys

RED = "\033[0;31m"
GREEN = "\033[0;32m"
YELLOW = "\033[1;33m"
NC = "\033[0m"


def _colour(code: str, text: str) -> str:
    if os.environ.get("NO_COLOR") or not sys.stderr.isatty():
        return text
    return f"{code}{text}{NC}"


def log_step(msg: str) -> None:
    print(_colour(YELLOW, f"-> {msg}"), file=sys.stderr)


def log_success(msg: str) -> None:
    print(_colour(GREEN, f"OK {msg}"), file=sys.stderr)


def die(msg: str, code: int = 1) -> None:
    """Report a failed command and exit."""
    print(_colour(RED, f"ERROR: {msg}"), file=sys.stderr)
    sys.exit(code)
