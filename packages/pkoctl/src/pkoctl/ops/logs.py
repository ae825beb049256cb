"""Background `kubectl logs -f` streaming bounded by a cancellation token."""

from __future__ import annotations

import subprocess
import threading
from typing import TYPE_CHECKING, Callable, Sequence

if TYPE_CHECKING:
    from ..core.console import Console

FOLLOW_MAX_SECONDS = 30.0


class LogFollower:
    """Streams a child process's output to the console until stopped.

    `stop()` is idempotent: it sets the token, terminates the child and
    escalates to kill if it does not exit promptly. A timer stops the follower
    on its own after `max_seconds`.
    """

    def __init__(
        self,
        argv: Sequence[str],
        console: Console,
        max_seconds: float = FOLLOW_MAX_SECONDS,
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ) -> None:
        self.argv = [str(part) for part in argv]
        self.console = console
        self.max_seconds = max_seconds
        self.cancel = threading.Event()
        self._popen = popen
        self._proc: subprocess.Popen | None = None
        self._pump: threading.Thread | None = None
        self._timer: threading.Timer | None = None

    def start(self) -> "LogFollower":
        try:
            self._proc = self._popen(
                self.argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except OSError as exc:
            self.console.warning(f"Could not follow logs: {exc}")
            return self
        self._pump = threading.Thread(target=self._drain, name="pkoctl-log-follower", daemon=True)
        self._pump.start()
        self._timer = threading.Timer(self.max_seconds, self.stop)
        self._timer.daemon = True
        self._timer.start()
        return self

    def _drain(self) -> None:
        proc = self._proc
        if proc is None or proc.stdout is None:
            return
        for line in proc.stdout:
            if self.cancel.is_set():
                break
            self.console.block(line)

    def stop(self) -> None:
        self.cancel.set()
        if self._timer is not None:
            self._timer.cancel()
        proc = self._proc
        if proc is not None and proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
        if self._pump is not None and self._pump is not threading.current_thread():
            self._pump.join(timeout=5)

    def __enter__(self) -> "LogFollower":
        return self.start()

    def __exit__(self, *_exc: object) -> None:
        self.stop()
