from __future__ import annotations

import argparse
from typing import TYPE_CHECKING

from ..core.poll import OPERATOR_AVAILABLE, PollOutcome
from ..core.prereqs import helm_version_ok, parse_helm_version
from ..core.sequence import Step, StepSkipped
from ..errors import PrerequisiteError, StepFailed
from ._shared import OPERATOR_DEPLOYMENT, OPERATOR_LABEL, OPERATOR_RELEASE, Flow, add_common_flags, finish

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

OPERATOR_CHART = "oci://ghcr.io/pulumi/helm-charts/pulumi-kubernetes-operator"
OPERATOR_SET_FLAGS = (
    "operator.gracefulShutdownTimeoutDuration=5m",
    "operator.maxConcurrentReconciles=10",
    "operator.leaderElection.enabled=true",
)
PULUMI_CRDS = ("stacks.pulumi.com", "workspaces.pulumi.com", "programs.pulumi.com", "updates.pulumi.com")


def quickstart_manifest_url(version: str) -> str:
    return (
        "https://raw.githubusercontent.com/pulumi/pulumi-kubernetes-operator/"
        f"refs/tags/v{version.lstrip('v')}/deploy/quickstart/install.yaml"
    )


def _ready_replicas(raw: str | None) -> int:
    try:
        return int(raw or 0)
    except ValueError:
        return 0


class InstallOperator(Flow):
    name = "install-operator"
    title = "Installing Pulumi Kubernetes Operator"

    def __init__(self, tools: Toolbox) -> None:
        super().__init__(tools)
        self.namespace = self.settings.operator_namespace
        self.version = self.settings.operator_version

    def steps(self) -> list[Step]:
        return [
            Step("prerequisites", self.check_prerequisites, "kubectl, helm 3.8+ and a reachable cluster"),
            Step("namespace", self.create_namespace, f"operator namespace {self.namespace}"),
            Step("install", self.install, "helm OCI chart with manifest fallback"),
            Step("verify", self.verify_installation, "wait for the controller deployment"),
            Step("operator-info", self.display_operator_info),
            Step("health", self.check_operator_health, "operator pod readiness"),
        ]

    def check_prerequisites(self) -> bool:
        self.console.info("Checking prerequisites...")
        self.require("kubectl", "helm", cluster=True)
        version_text = self.helm.run("version", "--short").stdout.strip()
        if not helm_version_ok(self.helm):
            self.console.info(f"Current version: {version_text or 'unknown'}, Required: v3.8+")
            raise PrerequisiteError(
                f"Helm version {version_text or 'unknown'} is too old. Need Helm 3.8+ for OCI registry support."
            )
        major, minor = parse_helm_version(version_text) or (0, 0)
        self.console.info(f"Helm version v{major}.{minor} is compatible (3.8+ required)")
        self.console.success("Prerequisites check passed!")
        return True

    def create_namespace(self) -> bool:
        self.console.info(f"Creating operator namespace '{self.namespace}'...")
        result = self.kubectl.create_namespace(self.namespace)
        if not result.ok:
            self.console.block(result.combined_output)
            raise StepFailed(f"Failed to create namespace {self.namespace}")
        self.console.success(f"Namespace '{self.namespace}' ready!")
        return True

    def install_via_helm(self) -> bool:
        self.console.info(f"Installing Pulumi Kubernetes Operator {self.version} via Helm OCI...")
        extra: list[str] = ["--version", self.version, "--create-namespace"]
        for flag in OPERATOR_SET_FLAGS:
            extra += ["--set", flag]
        extra += ["--wait", "--timeout=300s"]
        result = self.helm.install(OPERATOR_RELEASE, OPERATOR_CHART, self.namespace, *extra)
        if result.ok:
            self.console.success("Pulumi Kubernetes Operator installed successfully via Helm!")
            return True
        self.console.block(result.combined_output)
        self.console.error("Helm installation failed. Trying alternative method...")
        return False

    def install_via_manifest(self) -> bool:
        self.console.info(f"Installing Pulumi Kubernetes Operator {self.version} via manifest...")
        result = self.kubectl.apply_url(quickstart_manifest_url(self.version))
        if not result.ok:
            self.console.block(result.combined_output)
            raise StepFailed("Manifest installation of the operator failed")
        self.console.success("Pulumi Kubernetes Operator installed successfully via manifest!")
        return True

    def install(self) -> bool:
        if self.install_via_helm():
            return True
        self.console.warning("Helm installation failed, trying manifest installation...")
        return self.install_via_manifest()

    def _available(self) -> str | None:
        return self.kubectl.jsonpath(
            "deployment",
            OPERATOR_DEPLOYMENT,
            '{.status.conditions[?(@.type=="Available")].status}',
            self.namespace,
        ) or None

    def verify_installation(self) -> bool:
        if self.ctx.dry_run:
            raise StepSkipped("dry-run: nothing was installed")
        self.console.info("Verifying Pulumi Operator installation...")
        self.console.info("Waiting for operator deployment to be available...")
        result = self.poll(
            self._available,
            lambda status: status == "True",
            lambda _status: False,
            OPERATOR_AVAILABLE,
            on_tick=lambda _s, _n, elapsed: self.console.info(f"Waiting for operator... ({int(elapsed)}s elapsed)"),
        )
        if result.outcome is PollOutcome.TIMED_OUT:
            self.console.warning(f"Operator deployment not available after {int(OPERATOR_AVAILABLE[1])}s")
        ready = _ready_replicas(
            self.kubectl.jsonpath("deployment", OPERATOR_DEPLOYMENT, "{.status.readyReplicas}", self.namespace)
        )
        if ready >= 1:
            self.console.success("Pulumi Operator is running successfully!")
            return True
        self.console.error(f"Pulumi Operator is not ready. Status: {ready}")
        self.console.error("Operator verification failed. Checking logs...")
        self.console.block(self.kubectl.describe("deployment", OPERATOR_DEPLOYMENT, self.namespace))
        raise StepFailed("Operator verification failed")

    def display_operator_info(self) -> bool:
        if self.ctx.dry_run:
            raise StepSkipped("dry-run")
        self.console.info("Operator Information:")
        self.show("deployment", OPERATOR_DEPLOYMENT, "-n", self.namespace)
        self.show("pods", "-n", self.namespace, "-l", OPERATOR_LABEL)
        self.console.info("Operator logs (last 10 lines):")
        self.console.block(self.kubectl.logs(f"deployment/{OPERATOR_DEPLOYMENT}", self.namespace, tail=10))
        self.console.info("Custom Resource Definitions:")
        crds = [line for line in self.kubectl.table("crd").splitlines() if "pulumi" in line]
        if crds:
            self.console.block("\n".join(crds))
        else:
            self.console.warning("No Pulumi CRDs found")
        return True

    def check_operator_health(self) -> bool:
        if self.ctx.dry_run:
            raise StepSkipped("dry-run")
        self.console.info("Checking operator health...")
        pods = self.kubectl.list_names("pods", self.namespace, OPERATOR_LABEL) or self.kubectl.list_names(
            "pods", self.namespace, "app.kubernetes.io/component=controller"
        )
        if not pods:
            self.console.error("Could not find operator pod")
            self.show("pods", "-n", self.namespace)
            return False
        pod = pods[0]
        ready = self.kubectl.jsonpath("pod", pod, '{.status.conditions[?(@.type=="Ready")].status}', self.namespace)
        if ready == "True":
            self.console.success("Operator pod is healthy and ready!")
        else:
            self.console.warning(f"Operator pod status: {ready or 'False'}")
            self.console.block(self.kubectl.describe("pod", pod, self.namespace))
        return True

    def epilogue(self) -> None:
        ns = self.namespace
        out = self.console
        out.info("Installation completed successfully!")
        out.info("Next steps:")
        out.echo("1. Configure your AWS credentials and Pulumi access token:")
        out.echo("   cp .env.example .env")
        out.echo("   # Edit .env with your actual credentials")
        out.echo()
        out.echo("2. Point the stack commands at this operator namespace if needed:")
        out.echo(f"   export OPERATOR_NAMESPACE={ns}")
        out.echo()
        out.echo("3. Deploy AWS resources using the operator:")
        out.echo("   pkoctl deploy-stack")
        out.echo()
        out.info("Useful commands:")
        out.echo(f"- Check operator status: kubectl get deployment {OPERATOR_DEPLOYMENT} -n {ns}")
        out.echo(f"- View operator logs: kubectl logs -f deployment/{OPERATOR_DEPLOYMENT} -n {ns}")
        out.echo("- List Pulumi stacks: kubectl get stacks -A")
        out.echo("- Check CRDs: kubectl get crd | grep pulumi")
        out.success("Pulumi Kubernetes Operator installation completed!")


def configure_install_operator_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("install-operator", help="install the Pulumi Kubernetes Operator")
    add_common_flags(p)
    p.add_argument("--operator-namespace", help="namespace for the operator (OPERATOR_NAMESPACE)")


def run_install_operator_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    return finish(ctx, InstallOperator(tools).run())
