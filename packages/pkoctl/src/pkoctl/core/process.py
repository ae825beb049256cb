from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Sequence

from ..logging import log_event

if TYPE_CHECKING:
    from .context import RunContext

EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def ok(self) -> bool:
        return self.code == 0

    @property
    def combined_output(self) -> str:
        return (self.stdout + self.stderr).strip()


Runner = Callable[..., CommandResult]


def run_command(
    cmd: Sequence[str],
    cwd: Path | None = None,
    timeout_seconds: int = 0,
    input_text: str | None = None,
    ctx: RunContext | None = None,
) -> CommandResult:
    """Run one external command; non-zero exits are returned, never raised."""
    argv = [str(part) for part in cmd]
    started = time.monotonic()
    try:
        proc = subprocess.run(
            argv,
            cwd=cwd,
            input=input_text,
            text=True,
            capture_output=True,
            check=False,
            timeout=(timeout_seconds if timeout_seconds > 0 else None),
        )
        result = CommandResult(
            code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_ms=int((time.monotonic() - started) * 1000),
        )
    except subprocess.TimeoutExpired as exc:
        stdout = exc.stdout.decode() if isinstance(exc.stdout, bytes) else (exc.stdout or "")
        stderr = exc.stderr.decode() if isinstance(exc.stderr, bytes) else (exc.stderr or "")
        result = CommandResult(
            code=EXIT_TIMEOUT,
            stdout=stdout,
            stderr=(stderr + f"\ncommand timed out after {timeout_seconds}s").strip(),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
    except FileNotFoundError:
        result = CommandResult(
            code=EXIT_NOT_FOUND,
            stdout="",
            stderr=f"{argv[0]}: command not found",
            duration_ms=int((time.monotonic() - started) * 1000),
        )
    if ctx is not None:
        log_event(
            ctx,
            "info",
            "process",
            "run-command",
            command=" ".join(argv),
            code=result.code,
            duration_ms=result.duration_ms,
        )
    return result
