from __future__ import annotations

import json
from pathlib import Path

import pytest

from helpers import FakeRunner, make_harness, result
from pkoctl.config.settings import Settings
from pkoctl.core.probe import Probe


def _dry(tmp_path: Path, runner: FakeRunner | None = None):
    return make_harness(tmp_path, Settings(attended=False, dry_run=True), runner=runner)


def test_effects_are_printed_not_run_in_dry_run(tmp_path: Path) -> None:
    h = _dry(tmp_path)
    assert h.tools.kubectl.apply_url("https://example.invalid/install.yaml").ok
    assert h.tools.helm.uninstall("demo", "ns").ok
    assert h.tools.kind.delete_cluster("demo").ok
    assert h.runner.calls == []
    assert "[INFO] DRY-RUN kubectl apply -f https://example.invalid/install.yaml" in h.err
    assert "DRY-RUN helm uninstall demo --namespace ns" in h.err
    assert "DRY-RUN kind delete cluster --name=demo" in h.err


def test_reads_still_run_in_dry_run(tmp_path: Path) -> None:
    runner = FakeRunner().on("kind get clusters", result(stdout="demo\nother\n"))
    h = _dry(tmp_path, runner)
    assert h.tools.kind.clusters() == ["demo", "other"]
    assert h.tools.kind.has_cluster("demo")
    assert h.tools.helm.render_dry_run("r", "./chart", "ns").ok
    assert runner.lines("helm install r ./chart --namespace ns --dry-run --debug")


def test_dry_run_line_masks_secret_assignments(tmp_path: Path) -> None:
    h = _dry(tmp_path)
    h.tools.helm.upgrade_install("r", "./c", "ns", "--set", "aws.secretAccessKey=abc123")
    assert "secretAccessKey=***" in h.err
    assert "abc123" not in h.err


def test_create_namespace_renders_then_applies(tmp_path: Path) -> None:
    runner = FakeRunner().on("kubectl create namespace demo", result(stdout="kind: Namespace\n"))
    h = make_harness(tmp_path, runner=runner)
    assert h.tools.kubectl.create_namespace("demo").ok
    assert runner.lines() == [
        "kubectl create namespace demo --dry-run=client -o yaml",
        "kubectl apply -f -",
    ]
    assert runner.inputs("kubectl apply") == ["kind: Namespace\n"]


@pytest.mark.parametrize(
    ("res", "expected"),
    [
        (result(0, stdout="stack.pulumi.com/s"), Probe.SUCCESS),
        (result(1, stderr='Error from server (NotFound): stacks.pulumi.com "s" not found'), Probe.FAILURE),
        (result(1, stderr='error: the server doesn\'t have a resource type "stacks"'), Probe.FAILURE),
        (result(1, stderr="Unable to connect to the server: dial tcp: i/o timeout"), Probe.UNKNOWN),
        (result(124), Probe.UNKNOWN),
    ],
)
def test_exists_is_tri_state(tmp_path: Path, res, expected: Probe) -> None:
    h = make_harness(tmp_path, runner=FakeRunner().on("kubectl get stack s -n ns", res))
    assert h.tools.kubectl.exists("stack", "s", "ns") is expected


def test_get_json_and_jsonpath_tolerate_errors(tmp_path: Path) -> None:
    runner = (
        FakeRunner()
        .on("kubectl get stack good", result(stdout=json.dumps({"kind": "Stack"})))
        .on("kubectl get stack garbled", result(stdout="{not json"))
        .on("kubectl get stack missing", result(1))
    )
    kubectl = make_harness(tmp_path, runner=runner).tools.kubectl
    assert kubectl.get_json("stack", "good", "ns") == {"kind": "Stack"}
    assert kubectl.get_json("stack", "garbled", "ns") is None
    assert kubectl.get_json("stack", "missing", "ns") is None
    assert kubectl.jsonpath("stack", "missing", "{.status}", "ns") is None


def test_kubectl_helpers_build_expected_argv(tmp_path: Path) -> None:
    h = make_harness(tmp_path)
    k = h.tools.kubectl
    k.delete("secret", "aws-credentials", "ns")
    k.wait("nodes", "condition=Ready", "300s", None, "--all")
    k.patch("svc", "argocd-server", {"spec": {"type": "NodePort"}}, "argocd")
    k.logs("deployment/op", "ops", tail=20)
    k.list_names("pods", "ns", "pulumi.com/stack-name=s")
    assert h.runner.lines() == [
        "kubectl delete secret aws-credentials -n ns --ignore-not-found=true",
        "kubectl wait --for=condition=Ready nodes --all --timeout=300s",
        'kubectl patch svc argocd-server -n argocd --type merge -p {"spec": {"type": "NodePort"}}',
        "kubectl logs deployment/op -n ops --tail=20",
        "kubectl get pods -n ns -l pulumi.com/stack-name=s -o jsonpath={.items[*].metadata.name}",
    ]


def test_helm_release_queries(tmp_path: Path) -> None:
    runner = (
        FakeRunner()
        .on("helm list --namespace ns -q", result(stdout="one\ntwo\n"))
        .on("helm list --all-namespaces -q", result(stdout="one\ntwo\nthree\n"))
    )
    helm = make_harness(tmp_path, runner=runner).tools.helm
    assert helm.releases("ns") == ["one", "two"]
    assert helm.releases() == ["one", "two", "three"]


def test_aws_queries_drop_none_and_failures(tmp_path: Path) -> None:
    runner = (
        FakeRunner()
        .on("aws s3api list-buckets", result(stdout="aws-resources-abc\tNone\n"))
        .on("aws ec2 describe-vpcs", result(255, stderr="Unable to locate credentials"))
    )
    aws = make_harness(tmp_path, runner=runner).tools.aws
    assert aws.buckets_matching("aws-resources") == ["aws-resources-abc"]
    assert aws.vpcs_tagged("aws-resources", "us-west-2") == []
