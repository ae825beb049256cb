from __future__ import annotations

import json
from dataclasses import dataclass

from ...core.probe import Probe
from ...core.process import EXIT_NOT_FOUND, EXIT_TIMEOUT, CommandResult
from ._base import CliAdapter

_NOT_FOUND_MARKERS = ("not found", "notfound", "doesn't have a resource type", "no matches for kind")


def _ns(namespace: str | None) -> list[str]:
    return ["-n", namespace] if namespace else []


@dataclass(frozen=True)
class Kubectl(CliAdapter):
    bin_name: str = "kubectl"

    def exists(self, kind: str, name: str, namespace: str | None = None) -> Probe:
        result = self.run("get", kind, name, *_ns(namespace), "-o", "name", timeout_seconds=30)
        if result.ok:
            return Probe.SUCCESS
        if result.code in {EXIT_TIMEOUT, EXIT_NOT_FOUND}:
            return Probe.UNKNOWN
        lowered = result.combined_output.lower()
        if any(marker in lowered for marker in _NOT_FOUND_MARKERS):
            return Probe.FAILURE
        return Probe.UNKNOWN

    def jsonpath(self, kind: str, name: str, path: str, namespace: str | None = None) -> str | None:
        result = self.run("get", kind, name, *_ns(namespace), "-o", f"jsonpath={path}", timeout_seconds=30)
        return result.stdout.strip() if result.ok else None

    def get_json(self, kind: str, name: str | None = None, namespace: str | None = None, *extra: str) -> dict | None:
        args = ["get", kind, *([name] if name else []), *_ns(namespace), *extra, "-o", "json"]
        result = self.run(*args, timeout_seconds=30)
        if not result.ok:
            return None
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError:
            return None
        return payload if isinstance(payload, dict) else None

    def list_names(self, kind: str, namespace: str | None = None, selector: str | None = None) -> list[str]:
        args = ["get", kind, *_ns(namespace)]
        if selector:
            args += ["-l", selector]
        result = self.run(*args, "-o", "jsonpath={.items[*].metadata.name}", timeout_seconds=30)
        return result.stdout.split() if result.ok else []

    def namespaces_with(self, kind: str) -> list[str]:
        result = self.run("get", kind, "-A", "-o", "jsonpath={.items[*].metadata.namespace}", timeout_seconds=30)
        if not result.ok:
            return []
        return sorted(set(result.stdout.split()))

    def table(self, *args: str) -> str:
        result = self.run("get", *args)
        return result.combined_output

    def apply_text(self, yaml_text: str) -> CommandResult:
        return self.effect("apply", "-f", "-", input_text=yaml_text)

    def apply_url(self, url: str, *extra: str) -> CommandResult:
        return self.effect("apply", *extra, "-f", url)

    def apply_file(self, path: str) -> CommandResult:
        return self.effect("apply", "-f", path)

    def delete(self, kind: str, name: str | None = None, namespace: str | None = None, *extra: str) -> CommandResult:
        args = ["delete", kind, *([name] if name else []), *_ns(namespace), "--ignore-not-found=true", *extra]
        return self.effect(*args)

    def describe(self, kind: str, name: str, namespace: str | None = None) -> str:
        return self.run("describe", kind, name, *_ns(namespace)).combined_output

    def wait(self, target: str, condition: str, timeout: str, namespace: str | None = None, *extra: str) -> CommandResult:
        return self.effect("wait", f"--for={condition}", target, *_ns(namespace), *extra, f"--timeout={timeout}")

    def logs(self, target: str, namespace: str | None = None, tail: int | None = None, *extra: str) -> str:
        args = ["logs", target, *_ns(namespace), *extra]
        if tail is not None:
            args.append(f"--tail={tail}")
        return self.run(*args, timeout_seconds=60).combined_output

    def events_for(self, name: str, namespace: str) -> str:
        result = self.run(
            "get", "events", "-n", namespace, "--field-selector", f"involvedObject.name={name}",
            "--sort-by=.lastTimestamp",
        )
        return result.combined_output

    def cluster_info(self, context: str | None = None) -> CommandResult:
        args = ["cluster-info"] + (["--context", context] if context else [])
        return self.run(*args, timeout_seconds=30)

    def current_context(self) -> str:
        result = self.run("config", "current-context")
        return result.stdout.strip() if result.ok else ""

    def patch(self, kind: str, name: str, patch: dict, namespace: str | None = None, patch_type: str = "merge") -> CommandResult:
        return self.effect("patch", kind, name, *_ns(namespace), "--type", patch_type, "-p", json.dumps(patch))

    def create_namespace(self, name: str) -> CommandResult:
        rendered = self.run("create", "namespace", name, "--dry-run=client", "-o", "yaml")
        if not rendered.ok:
            return rendered
        return self.apply_text(rendered.stdout)
