from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from ..core.locate import find_operator_namespace
from ..core.poll import STACK_APPEAR, STACK_READY, PollOutcome
from ..core.probe import Probe
from ..core.sequence import Step, StepSkipped
from ..errors import ConfigError, PrerequisiteError, StepFailed
from ..ops import manifests
from ._shared import OPERATOR_DEPLOYMENT, WORKSPACE_LABEL, Flow, add_common_flags, finish

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

REQUIRED_VARIABLES = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_REGION", "PULUMI_ACCESS_TOKEN")


def ready_condition(stack: dict[str, Any] | None) -> dict[str, Any] | None:
    """The `Ready` entry of `status.conditions`, or None while it is absent."""
    if not stack:
        return None
    for condition in (stack.get("status") or {}).get("conditions") or []:
        if isinstance(condition, dict) and condition.get("type") == "Ready":
            return condition
    return None


class DeployStack(Flow):
    name = "deploy-stack"
    title = "Deploying AWS resources using Pulumi Kubernetes Operator"

    def __init__(self, tools: Toolbox) -> None:
        super().__init__(tools)
        self.operator_namespace = self.settings.operator_namespace

    @property
    def stack_name(self) -> str:
        return self.settings.stack_name

    @property
    def namespace(self) -> str:
        return self.settings.stack_namespace

    def steps(self) -> list[Step]:
        return [
            Step("prerequisites", self.check_prerequisites, "kubectl, cluster, operator and env file"),
            Step("environment", self.check_environment, "AWS credentials and Pulumi token"),
            Step("secrets", self.create_secrets, "credentials and access token secrets"),
            Step("manifests", self.apply_manifests, "namespace, service account, Program and Stack"),
            Step("monitor", self.monitor_deployment, "follow logs and wait for Ready"),
            Step("stack-info", self.display_stack_info),
            Step("validate-aws", self.validate_aws_resources, "look up S3 buckets and VPCs"),
        ]

    def _env_file(self) -> Path:
        path = self.settings.env_file
        return path if path.is_absolute() else self.ctx.cwd / path

    def check_prerequisites(self) -> bool:
        self.console.info("Checking prerequisites...")
        self.require("kubectl", cluster=True)
        found = find_operator_namespace(self.settings, self.kubectl)
        if found is None:
            self.console.info("Available deployments across all namespaces:")
            deployments = [line for line in self.kubectl.table("deployments", "-A").splitlines() if "pulumi" in line]
            self.console.block("\n".join(deployments) or "No pulumi-related deployments found")
            raise PrerequisiteError(
                "Pulumi Kubernetes Operator is not installed. Please run 'pkoctl install-operator' first."
            )
        if found != self.operator_namespace:
            self.console.warning(f"Operator found in namespace '{found}' instead of '{self.operator_namespace}'")
            self.operator_namespace = found
        self.console.info(f"Found Pulumi operator in namespace: {found}")
        env_file = self._env_file()
        if not env_file.is_file():
            self.console.info("Please copy .env.example to .env and configure your AWS credentials")
            raise PrerequisiteError(f"Environment file {self.settings.env_file} not found")
        self.console.success("Prerequisites check passed!")
        return True

    def check_environment(self) -> bool:
        self.console.info("Checking required environment variables...")
        missing = self.settings.missing(REQUIRED_VARIABLES)
        if missing:
            raise ConfigError("missing required environment variables: " + ", ".join(missing))
        self.console.success("Environment variables loaded successfully!")
        return True

    def create_secrets(self) -> bool:
        self.console.info("Creating Kubernetes secrets...")
        created = self.kubectl.create_namespace(self.namespace)
        if not created.ok:
            self.console.block(created.combined_output)
            raise StepFailed(f"Failed to create namespace {self.namespace}")
        docs = [manifests.credentials_secret(self.settings), manifests.access_token_secret(self.settings)]
        applied = self.kubectl.apply_text(manifests.render_all(docs))
        if not applied.ok:
            self.console.block(applied.combined_output)
            raise StepFailed("Failed to create the AWS credentials and Pulumi token secrets")
        self.console.success("Secrets created successfully!")
        return True

    def apply_manifests(self) -> bool:
        self.console.info("Deploying Pulumi stack...")
        docs = [
            manifests.namespace(self.namespace),
            *manifests.service_account(self.namespace),
            manifests.program(self.settings),
            manifests.stack(self.settings),
        ]
        self.console.debug("Rendered manifests:\n" + manifests.render_all(docs))
        applied = self.kubectl.apply_text(manifests.render_all(docs))
        if not applied.ok:
            self.console.block(applied.combined_output)
            raise StepFailed("Failed to apply the stack manifests")
        self.console.success("Stack manifests applied successfully!")
        return True

    def _stack_present(self) -> Optional[str]:
        return "present" if self.kubectl.exists("stack", self.stack_name, self.namespace) is Probe.SUCCESS else None

    def _ready(self) -> Optional[dict[str, Any]]:
        return ready_condition(self.kubectl.get_json("stack", self.stack_name, self.namespace))

    def _log_argv(self) -> list[str]:
        pods = self.kubectl.list_names("pods", self.namespace, f"{WORKSPACE_LABEL}={self.stack_name}")
        if pods:
            self.console.info("Found workspace pod(s) for stack. Following workspace logs...")
            return self.kubectl.argv("logs", "-f", "-l", f"{WORKSPACE_LABEL}={self.stack_name}", "-n", self.namespace)
        self.console.info("No workspace pods found yet. Following operator logs...")
        return self.kubectl.argv("logs", "-f", f"deployment/{OPERATOR_DEPLOYMENT}", "-n", self.operator_namespace)

    def _report_tick(self, condition: Optional[dict[str, Any]], _attempts: int, elapsed: float) -> None:
        if condition is None:
            self.console.info(f"Waiting for Ready condition to appear... ({int(elapsed)}s elapsed)")
            return
        self.console.info(f"Stack Ready condition status: {condition.get('status')} ({int(elapsed)}s elapsed)")
        if condition.get("message"):
            self.console.info(f"Message: {condition['message']}")

    def _dump_stack_diagnostics(self) -> None:
        self.console.block(self.kubectl.describe("stack", self.stack_name, self.namespace))
        self.console.info("Stack events:")
        self.console.block(self.kubectl.events_for(self.stack_name, self.namespace))

    def wait_for_stack(self) -> bool:
        self.console.info(f"Waiting for stack '{self.stack_name}' to be created in namespace '{self.namespace}'...")
        appeared = self.poll(
            self._stack_present,
            lambda _present: True,
            lambda _present: False,
            STACK_APPEAR,
            on_tick=lambda _s, _n, elapsed: self.console.info(f"Waiting for stack to appear... ({int(elapsed)}s elapsed)"),
        )
        if not appeared.succeeded:
            self.console.error(f"Stack '{self.stack_name}' not found in namespace '{self.namespace}'")
            self.console.info("Searching for stacks in all namespaces...")
            listing = self.kubectl.table("stacks", "--all-namespaces", "--no-headers").strip()
            if listing:
                self.console.info("Found the following stacks:")
                self.console.block(listing)
            else:
                self.console.error("No stacks found in any namespace")
            raise StepFailed(f"Stack {self.stack_name} was not created within {int(STACK_APPEAR[1])}s")

        self.console.info(f"Monitoring stack '{self.stack_name}' in namespace '{self.namespace}'")
        with self.tools.follower(self._log_argv()):
            result = self.poll(
                self._ready,
                lambda condition: condition.get("status") == "True",
                lambda condition: condition.get("status") == "False",
                STACK_READY,
                on_tick=self._report_tick,
            )

        message = (result.last_status or {}).get("message", "")
        if result.outcome is PollOutcome.SUCCEEDED:
            self.console.success("Pulumi stack deployment succeeded!")
            if message:
                self.console.info(f"Message: {message}")
            return True
        if result.outcome is PollOutcome.FAILED:
            self.console.error("Pulumi stack deployment failed!")
            if message:
                self.console.error(f"Message: {message}")
            self._dump_stack_diagnostics()
            raise StepFailed(f"Stack {self.stack_name} reported Ready=False")
        self.console.warning(f"Timeout waiting for stack deployment to complete ({result.message})")
        self.console.info(f"The operator may still be working; check with: kubectl get stack {self.stack_name} -n {self.namespace} -w")
        self.console.block(self.kubectl.describe("stack", self.stack_name, self.namespace))
        raise StepFailed(f"Stack {self.stack_name} did not become Ready within {int(STACK_READY[1])}s")

    def monitor_deployment(self) -> bool:
        if self.ctx.dry_run:
            raise StepSkipped("dry-run: no Stack was applied")
        self.console.info("Monitoring stack deployment...")
        self.console.info(f"Operator namespace: {self.operator_namespace}")
        self.console.info(f"Stack namespace: {self.namespace}")
        self.console.info("Recent operator logs:")
        self.console.block(self.kubectl.logs(f"deployment/{OPERATOR_DEPLOYMENT}", self.operator_namespace, tail=20))
        return self.wait_for_stack()

    def display_stack_info(self) -> bool:
        if self.ctx.dry_run:
            raise StepSkipped("dry-run")
        self.console.info("Stack deployment information:")
        status = self.kubectl.run("get", "stack", self.stack_name, "-n", self.namespace)
        if not status.ok:
            raise StepFailed("Failed to get stack status")
        self.console.block(status.stdout)
        self.console.info("Stack details:")
        self.console.block(self.kubectl.describe("stack", self.stack_name, self.namespace))
        self.console.info("Stack outputs:")
        stack = self.kubectl.get_json("stack", self.stack_name, self.namespace) or {}
        outputs = (stack.get("status") or {}).get("outputs")
        if outputs:
            self.console.block(json.dumps(outputs, indent=2, sort_keys=True))
        else:
            self.console.warning("No outputs available yet. Stack may still be deploying or outputs not configured.")
        self.console.info("Workspace information:")
        pods = self.kubectl.table("pods", "-n", self.namespace, "-l", f"{WORKSPACE_LABEL}={self.stack_name}")
        self.console.block(pods or "No workspace pods found")
        return True

    def validate_aws_resources(self) -> bool:
        if self.tools.which("aws") is None:
            self.console.info("AWS CLI not found. Skipping AWS resource validation.")
            self.console.info("You can manually check your AWS console to verify resource creation.")
            raise StepSkipped("aws CLI not installed")
        if self.ctx.dry_run:
            raise StepSkipped("dry-run")
        self.console.info("Validating AWS resources...")
        project = self.settings.project_name
        buckets = self.tools.aws.buckets_matching(project)
        if buckets:
            self.console.success(f"Found S3 buckets: {' '.join(buckets)}")
        else:
            self.console.warning("No matching S3 buckets found (this may be normal if using custom names)")
        vpcs = self.tools.aws.vpcs_tagged(project, self.settings.aws_region)
        if vpcs:
            self.console.success(f"Found VPCs: {' '.join(vpcs)}")
        else:
            self.console.warning("No matching VPCs found (this may be normal if using custom tags)")
        return True

    def epilogue(self) -> None:
        out = self.console
        name, ns, op_ns = self.stack_name, self.namespace, self.operator_namespace
        out.info("Deployment completed successfully!")
        out.info("Namespace Information:")
        out.echo(f"- Operator running in: {op_ns}")
        out.echo(f"- Stack deployed to: {ns}")
        out.echo()
        out.info("Next steps:")
        out.echo("1. Check the AWS console to verify your resources were created")
        out.echo(f"2. Monitor the stack: kubectl get stack {name} -n {ns}")
        out.echo(f"3. View stack outputs: kubectl get stack {name} -n {ns} -o jsonpath='{{.status.outputs}}'")
        out.echo(f"4. Check workspace pods: kubectl get pods -n {ns} -l {WORKSPACE_LABEL}={name}")
        out.echo(f"5. Check operator logs: kubectl logs -f deployment/{OPERATOR_DEPLOYMENT} -n {op_ns}")
        out.echo()
        out.info("To clean up resources:")
        out.echo("   pkoctl cleanup")
        out.warning("Remember: AWS resources will incur costs. Clean up when done!")
        if self.settings.debug:
            self.show_debug_info()

    def on_failure(self) -> None:
        self.console.error("Stack deployment did not complete.")
        self.console.info("Troubleshooting:")
        self.console.echo(f"- Check operator logs: kubectl logs deployment/{OPERATOR_DEPLOYMENT} -n {self.operator_namespace}")
        self.console.echo(f"- Describe the stack: kubectl describe stack {self.stack_name} -n {self.namespace}")
        self.console.echo("- Re-run with --debug for more detail")
        if self.settings.debug:
            self.show_debug_info()

    def show_debug_info(self) -> None:
        env_file = self._env_file()
        out = self.console
        out.info("Debug Information:")
        out.echo("==================")
        out.echo(f"Current directory: {self.ctx.cwd}")
        out.echo(f"Environment file: {self.settings.env_file} (exists: {'yes' if env_file.is_file() else 'no'})")
        out.echo(f"Operator namespace: {self.operator_namespace}")
        out.echo(f"Stack namespace: {self.namespace}")
        out.echo(f"Stack name: {self.stack_name}")
        out.echo(f"kubectl context: {self.kubectl.current_context() or 'none'}")


def configure_deploy_stack_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("deploy-stack", help="deploy the AWS resources Stack through the operator")
    add_common_flags(p)
    p.add_argument("--namespace", help="namespace for the Stack resources (STACK_NAMESPACE)")
    p.add_argument("--operator-namespace", help="namespace where the operator runs (OPERATOR_NAMESPACE)")
    p.add_argument("--stack-name", help="name of the Stack resource (STACK_NAME)")


def run_deploy_stack_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    return finish(ctx, DeployStack(tools).run())
