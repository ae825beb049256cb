from __future__ import annotations

from dataclasses import dataclass

from ...core.process import CommandResult
from ._base import CliAdapter


@dataclass(frozen=True)
class Kind(CliAdapter):
    bin_name: str = "kind"

    def clusters(self) -> list[str]:
        result = self.run("get", "clusters")
        return [line.strip() for line in result.stdout.splitlines() if line.strip()] if result.ok else []

    def has_cluster(self, name: str) -> bool:
        return name in self.clusters()

    def create_cluster(self, config_path: str, wait: str = "300s") -> CommandResult:
        return self.effect("create", "cluster", f"--config={config_path}", f"--wait={wait}")

    def delete_cluster(self, name: str) -> CommandResult:
        return self.effect("delete", "cluster", f"--name={name}")

    def version(self) -> str:
        result = self.run("version")
        return result.stdout.strip() if result.ok else ""
