from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from ..config.settings import Settings
from .console import Console
from .prompt import ConsolePrompt, Prompt, UnattendedPrompt

OutputFormat = Literal["text", "json"]


@dataclass(frozen=True)
class RunContext:
    run_id: str
    settings: Settings
    cwd: Path
    output_format: OutputFormat
    verbose: bool
    quiet: bool
    log_json: bool
    console: Console = field(compare=False)
    prompt: Prompt = field(compare=False)

    @property
    def attended(self) -> bool:
        return self.settings.attended

    @property
    def dry_run(self) -> bool:
        return self.settings.dry_run

    @classmethod
    def from_args(
        cls,
        settings: Settings,
        run_id: str | None = None,
        output_format: OutputFormat = "text",
        verbose: bool = False,
        quiet: bool = False,
        log_json: bool = False,
        color: bool = True,
        cwd: Path | None = None,
        console: Console | None = None,
        prompt: Prompt | None = None,
    ) -> "RunContext":
        default_run = f"pkoctl-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}"
        resolved_run_id = run_id or os.environ.get("RUN_ID", default_run)
        resolved_console = console or Console(debug=settings.debug, quiet=quiet, color=color)
        if prompt is None:
            prompt = ConsolePrompt() if settings.attended else UnattendedPrompt()
        return cls(
            run_id=resolved_run_id,
            settings=settings,
            cwd=(cwd or Path.cwd()).resolve(),
            output_format=output_format,
            verbose=verbose,
            quiet=quiet,
            log_json=log_json,
            console=resolved_console,
            prompt=prompt,
        )

    def with_settings(self, settings: Settings) -> "RunContext":
        return RunContext(
            run_id=self.run_id,
            settings=settings,
            cwd=self.cwd,
            output_format=self.output_format,
            verbose=self.verbose,
            quiet=self.quiet,
            log_json=self.log_json,
            console=self.console,
            prompt=self.prompt,
        )
