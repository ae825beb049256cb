from __future__ import annotations

from dataclasses import dataclass

from ...core.process import CommandResult
from ._base import CliAdapter


@dataclass(frozen=True)
class Docker(CliAdapter):
    bin_name: str = "docker"

    def copy_into(self, source: str, container: str, target: str) -> CommandResult:
        return self.effect("cp", source, f"{container}:{target}")

    def exec(self, container: str, *command: str) -> CommandResult:
        return self.effect("exec", container, *command)
