"""Fail-fast checks for required binaries and a reachable cluster."""

from __future__ import annotations

import re
import shutil
from typing import TYPE_CHECKING, Callable, Iterable

from ..errors import PrerequisiteError
from .probe import Probe

if TYPE_CHECKING:
    from ..ops.adapters.docker import Docker
    from ..ops.adapters.helm import Helm
    from ..ops.adapters.kubectl import Kubectl

Which = Callable[[str], "str | None"]

HELM_MIN_VERSION = (3, 8)
_HELM_VERSION_RE = re.compile(r"v(?P<major>\d+)\.(?P<minor>\d+)")


def missing_commands(commands: Iterable[str], which: Which = shutil.which) -> list[str]:
    return [name for name in commands if which(name) is None]


def check_prerequisites(
    commands: Iterable[str],
    probe: Callable[[], Probe] | None = None,
    which: Which = shutil.which,
) -> None:
    """Raise `PrerequisiteError` on the first missing command or a failed probe."""
    for name in commands:
        if which(name) is None:
            raise PrerequisiteError(f"{name} is not installed. Please install {name} first.")
    if probe is not None and probe() is not Probe.SUCCESS:
        raise PrerequisiteError("cannot access Kubernetes cluster. Please ensure you have a running cluster.")


def cluster_probe(kubectl: Kubectl, timeout_seconds: int = 10) -> Probe:
    result = kubectl.run("cluster-info", timeout_seconds=timeout_seconds)
    if result.ok:
        return Probe.SUCCESS
    if result.code in {124, 127}:
        return Probe.UNKNOWN
    return Probe.FAILURE


def parse_helm_version(text: str) -> tuple[int, int] | None:
    match = _HELM_VERSION_RE.search(text)
    if match is None:
        return None
    return int(match.group("major")), int(match.group("minor"))


def helm_version_ok(helm: Helm) -> bool:
    result = helm.run("version", "--short")
    if not result.ok:
        return False
    version = parse_helm_version(result.stdout)
    return version is not None and version >= HELM_MIN_VERSION


def docker_daemon_probe(docker: Docker) -> Probe:
    result = docker.run("info", timeout_seconds=30)
    if result.ok:
        return Probe.SUCCESS
    if result.code in {124, 127}:
        return Probe.UNKNOWN
    return Probe.FAILURE
