"""Optional ANSI colouring for the prompt and command echoed before execution.

Colours are enabled by setting the ``KINDER_COLORS`` environment variable to ``on``.
"""

import os

_RESET = "\033[0m"
_PROMPT = "\033[1;48;5;19m"
_COMMAND = "\033[1;48;5;33m"
_INFO = "\033[1;48;5;34m"


def color_on() -> bool:
    """Return True when KINDER_COLORS is set to "on" (case-insensitive)."""
    return os.environ.get("KINDER_COLORS", "").lower() == "on"


def _paint(style: str, text: str) -> str:
    if not color_on():
        return text
    return f"{style}{text}{_RESET}"


def prompt(hostname: str) -> str:
    """Return the command prompt, coloured when colours are enabled."""
    return _paint(_PROMPT, hostname)


def command(text: str) -> str:
    """Return the command text with its arguments, coloured when enabled."""
    return _paint(_COMMAND, text)


def info(text: str) -> str:
    """Return a generic message, coloured when enabled."""
    return _paint(_INFO, text)