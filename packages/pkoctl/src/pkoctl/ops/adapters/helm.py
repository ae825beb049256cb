from __future__ import annotations

from dataclasses import dataclass

from ...core.process import CommandResult
from ._base import CliAdapter


@dataclass(frozen=True)
class Helm(CliAdapter):
    bin_name: str = "helm"

    def install(self, release: str, chart: str, namespace: str, *extra: str, timeout_seconds: int = 0) -> CommandResult:
        return self.effect("install", release, chart, "--namespace", namespace, *extra, timeout_seconds=timeout_seconds)

    def upgrade_install(self, release: str, chart: str, namespace: str, *extra: str) -> CommandResult:
        return self.effect("upgrade", "--install", release, chart, "--namespace", namespace, *extra)

    def render_dry_run(self, release: str, chart: str, namespace: str, *extra: str) -> CommandResult:
        """`helm install --dry-run --debug` only renders, so it runs even in dry-run mode."""
        return self.run("install", release, chart, "--namespace", namespace, "--dry-run", "--debug", *extra)

    def uninstall(self, release: str, namespace: str, *extra: str) -> CommandResult:
        return self.effect("uninstall", release, "--namespace", namespace, *extra)

    def releases(self, namespace: str | None = None) -> list[str]:
        scope = ["--namespace", namespace] if namespace else ["--all-namespaces"]
        result = self.run("list", *scope, "-q")
        return result.stdout.split() if result.ok else []
