from __future__ import annotations

import argparse
from typing import TYPE_CHECKING, Optional

from ..core.locate import find_operator_namespace, find_stack_namespaces, namespace_candidates
from ..core.poll import STACK_DESTROY, PollOutcome
from ..core.probe import Probe
from ..core.sequence import SequenceCancelled, Step, StepSkipped
from ..errors import StepFailed
from ..ops import manifests
from ._shared import OPERATOR_DEPLOYMENT, OPERATOR_LABEL, OPERATOR_RELEASE, WORKSPACE_LABEL, Flow, add_common_flags, finish
from .install_operator import PULUMI_CRDS

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

SYSTEM_NAMESPACES = frozenset({"kube-system", "default", "kube-public", "kube-node-lease"})
LEGACY_OPERATOR_NAMESPACES = ("pulumi-system", "pulumi-kubernetes-operator")
STACK_MANAGER_RBAC = "pulumi-stack-manager"
HELM_RETRY_PAUSE_SECONDS = 60


def namespaces_to_delete(stack_namespace: str, operator_namespace: str) -> list[str]:
    """Candidate namespaces for removal, never including the cluster's own."""
    candidates = namespace_candidates(stack_namespace, operator_namespace, *LEGACY_OPERATOR_NAMESPACES)
    return sorted(ns for ns in candidates if ns not in SYSTEM_NAMESPACES)


class Cleanup(Flow):
    name = "cleanup"
    title = "Pulumi Kubernetes Operator AWS Demo Cleanup"

    def __init__(self, tools: Toolbox, delete_cluster: bool | None = None) -> None:
        super().__init__(tools)
        self.delete_cluster = delete_cluster
        self.cluster_deleted = False
        self._reachable: bool | None = None

    def steps(self) -> list[Step]:
        return [
            Step("confirm", self.confirm_cleanup, "ask before deleting anything"),
            Step("stacks", self.cleanup_stacks, "destroy Pulumi stacks and their Helm releases"),
            Step("kubernetes-resources", self.cleanup_kubernetes_resources, "configmap, secrets, service account, RBAC"),
            Step("operator", self.uninstall_operator, "operator release, workloads and CRDs"),
            Step("namespaces", self.cleanup_namespaces, "stack and operator namespaces"),
            Step("cluster", self.cleanup_cluster, "the local kind cluster, if requested"),
            Step("verify-aws", self.verify_aws_cleanup, "look for leftover S3, VPC and IAM resources"),
        ]

    def _skip_without_cluster(self, what: str) -> None:
        if self.tools.which("kubectl") is None:
            self.console.warning(f"kubectl not found. Skipping {what}.")
            raise StepSkipped("kubectl not installed")
        if self._reachable is None:
            self._reachable = self.cluster_reachable()
        if not self._reachable:
            self.console.warning(f"Cannot connect to Kubernetes cluster. Skipping {what}.")
            raise StepSkipped("cluster unreachable")

    def _stack_namespaces(self) -> list[str]:
        if self.tools.which("kubectl") is None or not self.cluster_reachable():
            return []
        if self.kubectl.exists("crd", "stacks.pulumi.com") is not Probe.SUCCESS:
            return []
        return find_stack_namespaces(self.kubectl)

    def confirm_cleanup(self) -> bool:
        s = self.settings
        out = self.console
        out.info("Configuration:")
        out.info(f"  Operator namespace: {s.operator_namespace}")
        out.info(f"  Stack namespace: {s.stack_namespace}")
        out.info(f"  Cluster name: {s.cluster_name}")
        out.info(f"  Project name: {s.project_name}")
        if not self.ctx.attended:
            return True
        out.warning("This will delete:")
        out.echo(f"  - Pulumi stacks and AWS resources in namespace(s): {' '.join(self._stack_namespaces())}")
        out.echo("  - Kubernetes secrets and configmaps")
        out.echo(f"  - Pulumi Kubernetes Operator in namespace: {s.operator_namespace}")
        out.echo("  - Associated Kubernetes namespaces")
        out.echo("  - Local Kubernetes cluster (if requested)")
        out.warning("AWS resources will be permanently deleted!")
        if not self.ctx.prompt.confirm("Are you sure you want to continue?", default=False):
            out.info("Cleanup cancelled.")
            raise SequenceCancelled("cleanup declined")
        out.info("Starting cleanup process...")
        return True

    def _stack_state(self, name: str, ns: str) -> Optional[str]:
        probe = self.kubectl.exists("stack", name, ns)
        if probe is Probe.FAILURE:
            return "deleted"
        if probe is Probe.UNKNOWN:
            return None
        return self.kubectl.jsonpath("stack", name, "{.status.lastUpdate.state}", ns) or "unknown"

    def _dump_workspace_logs(self, name: str, ns: str) -> None:
        pods = self.kubectl.list_names("pods", ns, f"{WORKSPACE_LABEL}={name}")
        if pods:
            self.console.info(f"Recent logs from workspace pod {pods[0]}:")
            self.console.block(self.kubectl.logs(pods[0], ns, tail=20))

    def wait_for_destroy(self, name: str, ns: str) -> bool:
        """Poll `status.lastUpdate.state` until the stack is gone, failed or out of time."""
        if self.ctx.dry_run:
            self.console.info(f"DRY-RUN not waiting for stack {name} to be destroyed")
            return True
        result = self.poll(
            lambda: self._stack_state(name, ns),
            lambda state: state == "deleted",
            lambda state: state == "failed",
            STACK_DESTROY,
            on_tick=lambda state, _n, elapsed: self.console.info(
                f"Stack {name} still destroying... ({int(elapsed)}s elapsed, status: {state or 'unknown'})"
            ),
        )
        if result.outcome is PollOutcome.SUCCEEDED:
            self.console.success(f"Stack {name} destroyed successfully")
            return True
        if result.outcome is PollOutcome.FAILED:
            self.console.error(f"Stack {name} destruction failed. Check the workspace pod logs for details.")
            self._dump_workspace_logs(name, ns)
            return False
        self.console.error(f"Stack {name} cleanup timed out. AWS resources may still exist.")
        self.console.error("Check AWS console and consider manual cleanup.")
        return False

    def _uninstall_release(self, release: str, ns: str) -> None:
        self.console.info(f"Initiating graceful uninstall of Helm release: {release} in namespace {ns}...")
        self.console.info("Allowing Pulumi stack to complete AWS resource cleanup before Helm uninstall...")
        if self.helm.uninstall(release, ns, "--timeout=20m", "--wait").ok:
            self.console.success(f"Successfully uninstalled Helm release: {release}")
            return
        self.console.warning(f"Helm uninstall encountered issues for {release}, checking stack status...")
        if not self.kubectl.list_names("stacks", ns):
            return
        self.console.info("Stacks still exist, allowing more time for AWS resource cleanup...")
        self.tools.sleep(HELM_RETRY_PAUSE_SECONDS)
        if self.helm.uninstall(release, ns, "--timeout=10m", "--wait").ok:
            self.console.success(f"Successfully uninstalled Helm release: {release} on retry")
        else:
            self.console.warning(f"Helm uninstall failed for {release}, will proceed with manual cleanup...")

    def _delete_remaining_stack(self, name: str, ns: str) -> bool:
        self.console.info(f"Gracefully deleting remaining stack {name} in namespace {ns}...")
        if self.kubectl.delete("stack", name, ns, "--timeout=1200s").ok:
            return True
        self.console.warning(f"Stack deletion timed out for {name}, checking status...")
        state = self._stack_state(name, ns)
        if state == "destroying":
            self.console.info(f"Stack {name} is being destroyed, waiting for completion...")
            return self.wait_for_destroy(name, ns)
        self.console.warning(f"Stack {name} status: {state or 'unknown'}")
        return state == "deleted"

    def _cleanup_stack_namespace(self, ns: str) -> bool:
        self.console.info(f"Processing stacks in namespace: {ns}")
        clean = True
        stacks = self.kubectl.list_names("stacks", ns)
        if stacks:
            self.console.info("Checking stack status before cleanup...")
        for name in stacks:
            state = self._stack_state(name, ns)
            self.console.info(f"Stack {name} status: {state or 'unknown'}")
            if state == "destroying":
                self.console.info(f"Stack {name} is already being destroyed, monitoring progress...")
                clean = self.wait_for_destroy(name, ns) and clean

        if self.tools.which("helm") is not None:
            self.console.info(f"Checking for Helm releases in namespace {ns}...")
            for release in self.helm.releases(ns):
                self._uninstall_release(release, ns)

        remaining = self.kubectl.list_names("stacks", ns)
        if remaining:
            self.console.info("Found remaining stacks after Helm cleanup, handling gracefully...")
        for name in remaining:
            clean = self._delete_remaining_stack(name, ns) and clean

        leftover = [] if self.ctx.dry_run else self.kubectl.list_names("stacks", ns)
        if leftover:
            self.console.warning(f"{len(leftover)} stacks may still remain in namespace {ns}")
            self.console.info("Remaining stacks:")
            self.show("stacks", "-n", ns)
            return False
        self.console.success(f"All stacks cleaned up successfully in namespace {ns}")
        self.console.info(f"Cleaning up any orphaned workspace pods in {ns}...")
        for pod in self.kubectl.list_names("pods", ns, WORKSPACE_LABEL):
            self.console.info(f"Deleting orphaned workspace pod: {pod}")
            self.kubectl.delete("pod", pod, ns, "--timeout=60s")
        return clean

    def cleanup_stacks(self) -> bool:
        self.console.info("Cleaning up Pulumi stacks...")
        self._skip_without_cluster("stack cleanup")
        if self.kubectl.exists("crd", "stacks.pulumi.com") is not Probe.SUCCESS:
            self.console.info("Stack CRD not found. No Pulumi stacks to clean up.")
            raise StepSkipped("no Stack CRD")
        namespaces = find_stack_namespaces(self.kubectl)
        if not namespaces:
            self.console.info("No Pulumi stacks found, skipping...")
            raise StepSkipped("no stacks")
        results = [self._cleanup_stack_namespace(ns) for ns in namespaces]
        self.console.info("Note: AWS resources should be cleaned up automatically by Pulumi's destroyOnFinalize.")
        self.console.info("If any AWS resources remain, check the workspace pod logs and AWS console.")
        if not all(results):
            raise StepFailed("some stacks could not be destroyed")
        self.console.success("Pulumi stacks cleanup completed!")
        return True

    def cleanup_kubernetes_resources(self) -> bool:
        self.console.info("Cleaning up Kubernetes resources...")
        self._skip_without_cluster("Kubernetes resource cleanup")
        s = self.settings
        namespaces = sorted(namespace_candidates(s.stack_namespace, s.operator_namespace, *LEGACY_OPERATOR_NAMESPACES))
        for ns in namespaces:
            if self.kubectl.exists("namespace", ns) is not Probe.SUCCESS:
                self.console.info(f"Namespace {ns} does not exist, skipping...")
                continue
            self.console.info(f"Cleaning up resources in namespace: {ns}")
            self.kubectl.delete("program", manifests.PROGRAM_NAME, ns)
            self.kubectl.delete("configmap", manifests.PROGRAM_NAME, ns)
            self.kubectl.delete("secret", manifests.AWS_SECRET, ns)
            self.kubectl.delete("secret", manifests.TOKEN_SECRET, ns)
            self.kubectl.delete("serviceaccount", manifests.SERVICE_ACCOUNT, ns)
        self.console.info("Cleaning up cluster-wide RBAC resources...")
        self.kubectl.delete("clusterrole", STACK_MANAGER_RBAC)
        self.kubectl.delete("clusterrolebinding", STACK_MANAGER_RBAC)
        self.kubectl.delete("clusterrolebinding", manifests.AUTH_DELEGATOR_BINDING)
        self.console.success("Kubernetes resources cleaned up!")
        return True

    def uninstall_operator(self) -> bool:
        self.console.info("Uninstalling Pulumi Kubernetes Operator...")
        self._skip_without_cluster("operator uninstall")
        operator_ns = find_operator_namespace(self.settings, self.kubectl)
        if operator_ns is None:
            self.console.info("Pulumi Kubernetes Operator not found, skipping...")
            raise StepSkipped("operator not installed")
        self.console.info(f"Found operator in namespace: {operator_ns}")
        if self.tools.which("helm") is not None:
            self.console.info("Attempting Helm uninstallation...")
            self.helm.uninstall(OPERATOR_RELEASE, operator_ns)
        self.kubectl.delete("deployment", OPERATOR_DEPLOYMENT, operator_ns)
        for selector in (OPERATOR_LABEL, "app.kubernetes.io/component=controller"):
            self.kubectl.delete("pods", None, operator_ns, "-l", selector, "--force", "--grace-period=0")
        for kind in ("service", "configmap", "secret"):
            self.kubectl.delete(kind, None, operator_ns, "-l", OPERATOR_LABEL)
        self.console.info("Deleting Pulumi CRDs...")
        for crd in PULUMI_CRDS:
            if self.kubectl.exists("crd", crd) is Probe.SUCCESS:
                self.kubectl.delete("crd", crd)
        self.console.success("Pulumi Kubernetes Operator uninstalled!")
        return True

    def cleanup_namespaces(self) -> bool:
        self.console.info("Cleaning up namespaces...")
        self._skip_without_cluster("namespace cleanup")
        for ns in namespaces_to_delete(self.settings.stack_namespace, self.settings.operator_namespace):
            if self.kubectl.exists("namespace", ns) is not Probe.SUCCESS:
                continue
            self.console.info(f"Deleting namespace: {ns}")
            if self.kubectl.delete("namespace", ns, None, "--timeout=300s").ok:
                continue
            self.console.warning(f"Force deleting namespace {ns}...")
            self.kubectl.patch("namespace", ns, {"metadata": {"finalizers": []}})
            self.kubectl.delete("namespace", ns, None, "--force", "--grace-period=0")
        self.console.success("Namespaces cleaned up!")
        return True

    def cleanup_cluster(self) -> bool:
        name = self.settings.cluster_name
        if self.tools.which("kind") is None:
            self.console.info("kind not found. Skipping cluster cleanup.")
            raise StepSkipped("kind not installed")
        if not self.tools.kind.has_cluster(name):
            self.console.info(f"Cluster '{name}' not found. Skipping cluster cleanup.")
            raise StepSkipped("no such cluster")
        delete = self.delete_cluster
        if delete is None:
            delete = self.ctx.prompt.confirm("Do you want to delete the local Kubernetes cluster?", default=False)
        if not delete:
            self.console.info("Keeping Kubernetes cluster...")
            self.console.info(f"To delete it later, run: kind delete cluster --name {name}")
            return True
        self.console.info("Deleting local Kubernetes cluster...")
        result = self.tools.kind.delete_cluster(name)
        if not result.ok:
            self.console.block(result.combined_output)
            raise StepFailed(f"Failed to delete kind cluster '{name}'")
        self.cluster_deleted = True
        self.console.success("Kubernetes cluster deleted successfully!")
        return True

    def verify_aws_cleanup(self) -> bool:
        self.console.info("Verifying AWS resource cleanup...")
        if self.tools.which("aws") is None:
            self.console.info("AWS CLI not found. Please manually verify AWS resource cleanup in the console.")
            raise StepSkipped("aws CLI not installed")
        aws = self.tools.aws
        project = self.settings.project_name
        self.console.info("Checking for remaining AWS resources...")
        buckets = aws.buckets_matching(project)
        if buckets:
            self.console.warning(f"Found remaining S3 buckets: {' '.join(buckets)}")
            self.console.warning("You may need to manually delete these buckets from the AWS console.")
            self.console.info("Note: S3 buckets must be empty before they can be deleted.")
        else:
            self.console.success("No matching S3 buckets found.")
        vpcs = aws.vpcs_tagged(project, self.settings.aws_region)
        if vpcs:
            self.console.warning(f"Found remaining VPCs: {' '.join(vpcs)}")
            self.console.warning("You may need to manually delete these VPCs from the AWS console.")
        else:
            self.console.success("No matching VPCs found.")
        roles = aws.roles_matching(project)
        if roles:
            self.console.warning(f"Found remaining IAM roles: {' '.join(roles)}")
            self.console.warning("You may need to manually delete these roles from the AWS console.")
        else:
            self.console.success("No matching IAM roles found.")
        self.console.info("Please check your AWS console to ensure all resources have been deleted.")
        return True

    def epilogue(self) -> None:
        out = self.console
        out.success("Cleanup completed!")
        out.info("What was cleaned up:")
        out.echo("  - Pulumi stacks and AWS resources")
        out.echo("  - Kubernetes secrets and configmaps")
        out.echo("  - RBAC resources (ClusterRoles and ClusterRoleBindings)")
        out.echo("  - Pulumi Kubernetes Operator")
        out.echo("  - Kubernetes namespaces")
        if self.cluster_deleted:
            out.echo("  - Local Kubernetes cluster")
        out.info("Namespace information:")
        out.echo(f"  - Operator was in: {self.settings.operator_namespace}")
        out.echo(f"  - Stacks were in: {self.settings.stack_namespace}")
        out.warning("Important reminders:")
        out.echo("  - Check your AWS console to verify all resources are deleted")
        out.echo("  - Review your AWS bill to ensure no unexpected charges")
        out.echo("  - Consider setting up AWS billing alerts for future projects")
        out.info("Thank you for trying the Pulumi Kubernetes Operator demo!")


def configure_cleanup_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("cleanup", help="destroy stacks, uninstall the operator and remove namespaces")
    add_common_flags(p)
    group = p.add_mutually_exclusive_group()
    group.add_argument("--delete-cluster", dest="delete_cluster", action="store_true", default=None,
                       help="also delete the kind cluster without asking")
    group.add_argument("--keep-cluster", dest="delete_cluster", action="store_false",
                       help="keep the kind cluster without asking")


def run_cleanup_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    return finish(ctx, Cleanup(tools, delete_cluster=ns.delete_cluster).run())
