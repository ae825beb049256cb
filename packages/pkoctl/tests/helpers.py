from __future__ import annotations

import io
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from pkoctl.config.settings import Settings
from pkoctl.core.console import Console
from pkoctl.core.context import RunContext
from pkoctl.core.process import CommandResult
from pkoctl.core.prompt import CannedPrompt, Prompt
from pkoctl.ops.toolbox import Toolbox

ALL_TOOLS = frozenset({"docker", "kubectl", "kind", "helm", "aws"})


def result(code: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(code=code, stdout=stdout, stderr=stderr, duration_ms=0)


NOT_FOUND = result(1, stderr='Error from server (NotFound): resource "x" not found')


@dataclass(frozen=True)
class Call:
    argv: list[str]
    input_text: str | None = None

    @property
    def line(self) -> str:
        return " ".join(self.argv)


class FakeRunner:
    """Scripted stand-in for `run_command`.

    Rules match on the joined argv prefix; the most recently added rule wins.
    A rule with several results hands them out in order and repeats the last.
    """

    def __init__(self, default: CommandResult | None = None) -> None:
        self.default = default or result()
        self.calls: list[Call] = []
        self._rules: list[tuple[str, deque[CommandResult]]] = []

    def on(self, prefix: str, *results: CommandResult) -> "FakeRunner":
        self._rules.append((prefix, deque(results or (result(),))))
        return self

    def __call__(
        self,
        cmd: Sequence[str],
        cwd: Path | None = None,
        timeout_seconds: int = 0,
        input_text: str | None = None,
        ctx: object = None,
    ) -> CommandResult:
        call = Call([str(part) for part in cmd], input_text)
        self.calls.append(call)
        for prefix, queue in reversed(self._rules):
            if call.line.startswith(prefix):
                return queue[0] if len(queue) == 1 else queue.popleft()
        return self.default

    def lines(self, prefix: str = "") -> list[str]:
        return [call.line for call in self.calls if call.line.startswith(prefix)]

    def ran(self, prefix: str) -> bool:
        return bool(self.lines(prefix))

    def index(self, prefix: str) -> int:
        for idx, call in enumerate(self.calls):
            if call.line.startswith(prefix):
                return idx
        raise AssertionError(f"no call starting with {prefix!r}; calls: {[c.line for c in self.calls]}")

    def inputs(self, prefix: str) -> list[str]:
        return [call.input_text or "" for call in self.calls if call.line.startswith(prefix)]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@dataclass
class FakeFollower:
    argv: list[str]
    entered: bool = False
    exited: bool = False

    def __enter__(self) -> "FakeFollower":
        self.entered = True
        return self

    def __exit__(self, *_exc: object) -> None:
        self.exited = True


@dataclass
class Harness:
    ctx: RunContext
    runner: FakeRunner
    clock: FakeClock
    tools: Toolbox
    stderr: io.StringIO
    stdout: io.StringIO
    followers: list[FakeFollower] = field(default_factory=list)

    @property
    def err(self) -> str:
        return self.stderr.getvalue()

    @property
    def out(self) -> str:
        return self.stdout.getvalue()


def make_harness(
    cwd: Path,
    settings: Settings | None = None,
    *,
    runner: FakeRunner | None = None,
    prompt: Prompt | None = None,
    tools: Iterable[str] = ALL_TOOLS,
    output_format: str = "text",
) -> Harness:
    stderr, stdout = io.StringIO(), io.StringIO()
    settings = settings or Settings(attended=False)
    console = Console(debug=settings.debug, color=False, stderr=stderr, stdout=stdout)
    ctx = RunContext.from_args(
        settings,
        run_id="pytest-run",
        output_format=output_format,  # type: ignore[arg-type]
        cwd=cwd,
        console=console,
        prompt=prompt or CannedPrompt(),
    )
    runner = runner or FakeRunner()
    clock = FakeClock()
    available = frozenset(tools)
    followers: list[FakeFollower] = []

    def follow(argv: Sequence[str]) -> FakeFollower:
        follower = FakeFollower(list(argv))
        followers.append(follower)
        return follower

    toolbox = Toolbox.from_context(
        ctx,
        runner=runner,
        which=lambda name: f"/usr/local/bin/{name}" if name in available else None,
        sleep=clock.sleep,
        clock=clock,
        follower=follow,  # type: ignore[arg-type]
    )
    return Harness(ctx, runner, clock, toolbox, stderr, stdout, followers)
