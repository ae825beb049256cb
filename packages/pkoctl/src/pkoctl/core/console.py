"""User-facing status lines rendered with rich."""

from __future__ import annotations

import sys
from typing import IO

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.text import Text

_LEVEL_STYLES = {
    "INFO": "blue",
    "SUCCESS": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "DEBUG": "magenta",
}


class Console:
    """Colored `[LEVEL] message` lines on stderr and plain results on stdout.

    Messages are wrapped in `rich.text.Text` so that brackets coming from
    kubectl or helm output are never interpreted as rich markup.
    """

    def __init__(
        self,
        debug: bool = False,
        quiet: bool = False,
        color: bool = True,
        stderr: IO[str] | None = None,
        stdout: IO[str] | None = None,
    ) -> None:
        self.debug_enabled = debug
        self.quiet = quiet
        self._err = RichConsole(
            file=stderr if stderr is not None else sys.stderr,
            highlight=False,
            no_color=not color,
            soft_wrap=True,
        )
        self._out = RichConsole(
            file=stdout if stdout is not None else sys.stdout,
            highlight=False,
            no_color=not color,
            soft_wrap=True,
        )

    def _line(self, level: str, message: str) -> None:
        text = Text()
        text.append(f"[{level}]", style=_LEVEL_STYLES[level])
        text.append(f" {message}")
        self._err.print(text)

    def info(self, message: str) -> None:
        if not self.quiet:
            self._line("INFO", message)

    def success(self, message: str) -> None:
        if not self.quiet:
            self._line("SUCCESS", message)

    def warning(self, message: str) -> None:
        self._line("WARNING", message)

    def error(self, message: str) -> None:
        self._line("ERROR", message)

    def debug(self, message: str) -> None:
        if self.debug_enabled:
            self._line("DEBUG", message)

    def header(self, title: str) -> None:
        if not self.quiet:
            self._err.print(Panel.fit(Text(title), style="bold blue"))

    def section(self, title: str) -> None:
        if not self.quiet:
            self._err.print(Text(f"=== {title} ===", style="bold"))

    def block(self, body: str) -> None:
        """Raw multi-line tool output (describe, logs, tables)."""
        if body and not self.quiet:
            self._err.print(Text(body.rstrip("\n")))

    def echo(self, message: str = "") -> None:
        self._out.print(Text(message))
