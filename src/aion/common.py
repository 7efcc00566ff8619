"""Terminal output helpers shared by the CLI client and the API launcher."""

import os
import sys
from enum import Enum
from typing import (
    Any,
    Optional,
    TextIO,
)

RESET = "\033[0m"


class Color(Enum):
    """
    ANSI foreground colors used for transcript lines.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    GREY = "\033[90m"


def supports_color(stream: Optional[TextIO] = None) -> bool:
    """
    Whether escape codes should be written to *stream* (stdout by default).

    ``NO_COLOR`` disables colors and ``FORCE_COLOR`` enables them; otherwise only terminals
    get colored output.
    """
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    isatty = getattr(stream or sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def paint(text: str, color: Color, enabled: bool = True) -> str:
    """Wrap *text* in the escape codes for *color*."""
    if not enabled:
        return text
    return f"{color.value}{text}{RESET}"


def echo(text: str, color: Color, *args: Any, file: Optional[TextIO] = None, **kwargs: Any) -> None:
    """
    Print text in color, or plainly when the target stream is not a terminal.

    Args:
        text: The text to print
        color: The color to use
        args: Additional positional arguments for print
        file: Target stream (stdout by default)
        kwargs: Additional keyword arguments for print
    """
    stream = file or sys.stdout
    print(paint(text, color, supports_color(stream)), *args, file=stream, **kwargs)
