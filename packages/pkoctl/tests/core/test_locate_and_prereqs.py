from __future__ import annotations

from pathlib import Path

import pytest

from helpers import FakeRunner, make_harness, result
from pkoctl.config.settings import Settings
from pkoctl.core.locate import (
    OPERATOR_DEPLOYMENT,
    find_operator_namespace,
    find_stack_namespaces,
    first_match,
    locate_namespace,
    namespace_candidates,
)
from pkoctl.core.prereqs import (
    check_prerequisites,
    cluster_probe,
    docker_daemon_probe,
    helm_version_ok,
    missing_commands,
    parse_helm_version,
)
from pkoctl.core.probe import Probe
from pkoctl.errors import PrerequisiteError


def test_locator_returns_the_namespace_that_holds_the_resource() -> None:
    asked: list[str] = []

    def exists(kind: str, name: str, namespace: str) -> Probe:
        asked.append(namespace)
        return Probe.SUCCESS if namespace == "ns-b" else Probe.FAILURE

    assert locate_namespace(["ns-a", "ns-b"], "deployment", "op", exists) == "ns-b"
    assert asked == ["ns-a", "ns-b"]


def test_locator_treats_unknown_as_not_found() -> None:
    assert locate_namespace(["ns-a"], "deployment", "op", lambda *_: Probe.UNKNOWN) is None


def test_first_match_stops_at_first_hit() -> None:
    calls: list[str] = []

    def strategy(value):
        def run():
            calls.append(str(value))
            return value

        return run

    assert first_match([strategy(None), strategy("b"), strategy("c")]) == "b"
    assert calls == ["None", "b"]


def test_namespace_candidates_keep_order_and_drop_duplicates() -> None:
    assert namespace_candidates("pulumi-system", "", "pko", "pulumi-system") == ["pulumi-system", "pko"]


def test_find_operator_namespace_falls_back_to_known_namespaces(tmp_path: Path) -> None:
    runner = FakeRunner(default=result(1, stderr="Error from server (NotFound): not found"))
    runner.on(f"kubectl get deployment {OPERATOR_DEPLOYMENT} -n pulumi-kubernetes-operator -o name", result())
    h = make_harness(tmp_path, Settings(attended=False, operator_namespace="custom-ops"), runner=runner)
    assert find_operator_namespace(h.ctx.settings, h.tools.kubectl) == "pulumi-kubernetes-operator"
    assert [line.split(" -n ")[1].split()[0] for line in runner.lines("kubectl get deployment")] == [
        "custom-ops",
        "pulumi-kubernetes-operator",
    ]


def test_find_stack_namespaces_lists_unique_namespaces(tmp_path: Path) -> None:
    runner = FakeRunner().on("kubectl get stacks.pulumi.com -A", result(stdout="b a b"))
    h = make_harness(tmp_path, runner=runner)
    assert find_stack_namespaces(h.tools.kubectl) == ["a", "b"]


def test_missing_commands_reports_all_absent_tools() -> None:
    available = {"kubectl"}
    which = lambda name: name if name in available else None  # noqa: E731
    assert missing_commands(["kind", "kubectl", "helm"], which=which) == ["kind", "helm"]


def test_check_prerequisites_names_the_first_missing_command() -> None:
    with pytest.raises(PrerequisiteError, match="kind is not installed"):
        check_prerequisites(["kubectl", "kind", "helm"], which=lambda name: None if name != "kubectl" else name)


def test_check_prerequisites_requires_a_successful_probe() -> None:
    with pytest.raises(PrerequisiteError, match="cannot access Kubernetes cluster"):
        check_prerequisites(["kubectl"], probe=lambda: Probe.UNKNOWN, which=lambda name: name)
    check_prerequisites(["kubectl"], probe=lambda: Probe.SUCCESS, which=lambda name: name)


@pytest.mark.parametrize(
    ("code", "expected"),
    [(0, Probe.SUCCESS), (1, Probe.FAILURE), (124, Probe.UNKNOWN), (127, Probe.UNKNOWN)],
)
def test_cluster_probe_is_tri_state(tmp_path: Path, code: int, expected: Probe) -> None:
    runner = FakeRunner().on("kubectl cluster-info", result(code))
    h = make_harness(tmp_path, runner=runner)
    assert cluster_probe(h.tools.kubectl) is expected
    assert docker_daemon_probe(h.tools.docker) is Probe.SUCCESS


@pytest.mark.parametrize(
    ("text", "parsed", "ok"),
    [
        ("v3.14.2+gc309b6f", (3, 14), True),
        ("v3.8.0", (3, 8), True),
        ("v3.7.2+g663a896", (3, 7), False),
        ("v4.0.0", (4, 0), True),
        ("garbage", None, False),
    ],
)
def test_helm_version_gate(tmp_path: Path, text: str, parsed, ok: bool) -> None:
    assert parse_helm_version(text) == parsed
    runner = FakeRunner().on("helm version --short", result(stdout=text))
    h = make_harness(tmp_path, runner=runner)
    assert helm_version_ok(h.tools.helm) is ok
