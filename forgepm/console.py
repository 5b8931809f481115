"""
User-facing console output.

Status lines for every pipeline stage go through Console so commands and
the package manager share one output policy. Errors and warnings are
written to stderr, everything else to stdout. Colors are only used when
the stream is a terminal.
"""

import sys
from typing import TextIO

_COLORS = {
    "info": "\033[36m",
    "success": "\033[32m",
    "warning": "\033[33m",
    "error": "\033[31m",
}
_RESET = "\033[0m"


class Console:
    """Console writer with optional prompt support."""

    def __init__(
        self,
        out: TextIO | None = None,
        err: TextIO | None = None,
        interactive: bool = True,
    ):
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.interactive = interactive

    def _write(self, stream: TextIO, level: str, message: str) -> None:
        if stream.isatty() and level in _COLORS:
            message = f"{_COLORS[level]}{message}{_RESET}"
        print(message, file=stream)

    def line(self, message: str = "") -> None:
        self._write(self.out, "line", message)

    def info(self, message: str) -> None:
        self._write(self.out, "info", message)

    def success(self, message: str) -> None:
        self._write(self.out, "success", message)

    def warning(self, message: str) -> None:
        self._write(self.err, "warning", f"Warning: {message}")

    def error(self, message: str) -> None:
        self._write(self.err, "error", f"Error: {message}")

    def ask(self, question: str, default: str = "") -> str:
        """
        Prompt the operator for a line of input.

        Non-interactive consoles (``--noconfirm``) always return ``default``.

        Args:
            question: Prompt text
            default: Answer used when input is empty or unavailable

        Returns:
            The stripped answer
        """
        if not self.interactive:
            return default
        try:
            answer = input(question)
        except EOFError:
            return default
        return answer.strip() or default

    def confirm(self, question: str, default: bool = True) -> bool:
        """Ask a yes/no question."""
        suffix = " [Y/n] " if default else " [y/N] "
        answer = self.ask(question + suffix, "y" if default else "n")
        return answer.lower().startswith("y")
