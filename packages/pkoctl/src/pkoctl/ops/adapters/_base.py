from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ...config.envfile import mask_secret_assignments
from ...core.process import CommandResult, Runner, run_command

if TYPE_CHECKING:
    from ...core.context import RunContext


@dataclass(frozen=True)
class CliAdapter:
    ctx: RunContext
    runner: Runner = field(default=run_command)
    bin_name: str = ""

    def argv(self, *args: object) -> list[str]:
        return [self.bin_name, *[str(a) for a in args]]

    def run(self, *args: object, timeout_seconds: int = 0, input_text: str | None = None) -> CommandResult:
        """Read-only call; always executed, also in dry-run mode."""
        return self.runner(
            self.argv(*args),
            cwd=self.ctx.cwd,
            timeout_seconds=timeout_seconds,
            input_text=input_text,
            ctx=self.ctx,
        )

    def effect(self, *args: object, timeout_seconds: int = 0, input_text: str | None = None) -> CommandResult:
        """Mutating or blocking call; skipped with a `DRY-RUN` line in dry-run mode."""
        if self.ctx.dry_run:
            self.ctx.console.info(f"DRY-RUN {mask_secret_assignments(' '.join(self.argv(*args)))}")
            return CommandResult(0, "", "", 0)
        return self.run(*args, timeout_seconds=timeout_seconds, input_text=input_text)
