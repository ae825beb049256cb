from __future__ import annotations

import shutil
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Sequence

from ..core.process import Runner, run_command
from .adapters import Aws, Docker, Helm, Kind, Kubectl
from .logs import LogFollower

if TYPE_CHECKING:
    from ..core.context import RunContext

FollowerFactory = Callable[[Sequence[str]], LogFollower]


@dataclass(frozen=True)
class Toolbox:
    """Every external collaborator a command talks to, injectable as a unit."""

    ctx: RunContext
    kubectl: Kubectl
    helm: Helm
    kind: Kind
    docker: Docker
    aws: Aws
    which: Callable[[str], "str | None"]
    sleep: Callable[[float], None]
    clock: Callable[[], float]
    follower: FollowerFactory

    @classmethod
    def from_context(
        cls,
        ctx: RunContext,
        runner: Runner = run_command,
        which: Callable[[str], "str | None"] = shutil.which,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        follower: FollowerFactory | None = None,
    ) -> "Toolbox":
        def _follow(argv: Sequence[str]) -> LogFollower:
            return LogFollower(argv, ctx.console)

        return cls(
            ctx=ctx,
            kubectl=Kubectl(ctx, runner),
            helm=Helm(ctx, runner),
            kind=Kind(ctx, runner),
            docker=Docker(ctx, runner),
            aws=Aws(ctx, runner),
            which=which,
            sleep=sleep,
            clock=clock,
            follower=follower or _follow,
        )

    @property
    def console(self):
        return self.ctx.console

    @property
    def settings(self):
        return self.ctx.settings
