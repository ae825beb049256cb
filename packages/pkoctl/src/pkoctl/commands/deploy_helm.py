from __future__ import annotations

import argparse
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.probe import Probe
from ..core.sequence import Step, StepSkipped
from ..errors import ConfigError, PrerequisiteError, StepFailed
from ..ops import manifests
from ._shared import Flow, add_common_flags, finish

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

DEFAULT_CHART = "./helm-chart"
STACK_CRD = "stacks.pulumi.com"
REQUIRED_VARIABLES = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY")


class DeployHelm(Flow):
    name = "deploy-helm"
    title = "Pulumi AWS Helm Chart Deployment"

    def __init__(
        self,
        tools: Toolbox,
        release: str | None = None,
        values_file: str | None = None,
        chart: str = DEFAULT_CHART,
    ) -> None:
        super().__init__(tools)
        self.release = release or self.settings.project_name
        self.namespace = self.settings.stack_namespace
        self.values_file = values_file
        self.chart = chart

    def _path(self, raw: str) -> Path:
        path = Path(raw)
        return path if path.is_absolute() else self.ctx.cwd / path

    def steps(self) -> list[Step]:
        return [
            Step("chart", self.check_chart, f"chart directory {self.chart}"),
            Step("prerequisites", self.check_prerequisites, "kubectl, helm, cluster and the Stack CRD"),
            Step("validate-env", self.validate_env_vars, "AWS credentials"),
            Step("deploy", self.deploy_chart, "helm upgrade --install with generated values"),
        ]

    def check_chart(self) -> bool:
        if not self._path(self.chart).is_dir():
            raise PrerequisiteError(f"Helm chart not found at: {self.chart}")
        self.console.info(f"Using release name: {self.release}")
        self.console.info(f"Using namespace: {self.namespace}")
        return True

    def check_prerequisites(self) -> bool:
        self.console.info("Checking prerequisites...")
        self.require("kubectl", "helm", cluster=True)
        if self.kubectl.exists("crd", STACK_CRD) is not Probe.SUCCESS:
            self.console.warning("Pulumi Kubernetes Operator CRD not found")
            self.console.warning("Install it with: pkoctl install-operator")
            if not self.ctx.prompt.confirm("Continue anyway?", default=False):
                raise PrerequisiteError(f"CRD {STACK_CRD} is not installed")
        self.console.info("Prerequisites check completed")
        return True

    def validate_env_vars(self) -> bool:
        if self.ctx.dry_run:
            self.console.warning("Skipping environment validation in dry-run mode")
            raise StepSkipped("dry-run")
        self.console.info("Validating environment variables...")
        missing = self.settings.missing(REQUIRED_VARIABLES)
        if missing:
            for var in missing:
                self.console.error(f"  - {var}")
            self.console.error("Please set these variables in your .env file or shell environment")
            raise ConfigError("missing required environment variables: " + ", ".join(missing))
        self.console.info("Environment variables validated")
        self.console.info(f"AWS Region: {self.settings.aws_region}")
        self.console.info(f"Project Name: {self.settings.project_name}")
        self.console.info(f"Stack Name: {self.settings.pulumi_stack}")
        self.console.info(f"Operator Namespace: {self.settings.operator_namespace}")
        return True

    def _base_values(self) -> dict:
        if self.values_file:
            custom = self._path(self.values_file)
            if custom.is_file():
                return manifests.load_values(custom)
            self.console.warning(f"Values file {self.values_file} not found; using the chart defaults")
        chart_values = self._path(self.chart) / "values.yaml"
        return manifests.load_values(chart_values) if chart_values.is_file() else {}

    def write_values(self) -> Path:
        values = manifests.helm_values(self.settings, self._base_values(), self.namespace)
        fd, name = tempfile.mkstemp(prefix="pkoctl-values-", suffix=".yaml")
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(manifests.render(values))
        return Path(name)

    def deploy_chart(self) -> bool:
        self.console.info("Preparing Helm deployment...")
        values_path = self.write_values()
        self.console.info("Generated temporary values file with environment configuration")
        chart = str(self._path(self.chart))
        try:
            if self.ctx.dry_run:
                result = self.helm.render_dry_run(self.release, chart, self.namespace, "--values", str(values_path))
            else:
                result = self.helm.upgrade_install(
                    self.release, chart, self.namespace, "--create-namespace", "--values", str(values_path)
                )
        finally:
            values_path.unlink(missing_ok=True)
            self.console.info("Cleaned up temporary files")
        if not result.ok:
            self.console.block(result.combined_output)
            raise StepFailed("Helm deployment failed")
        if self.ctx.dry_run:
            self.console.block(result.stdout)
            self.console.info("Dry run completed successfully!")
            return True
        self.console.info("Helm chart deployed successfully!")
        self.console.info(f"Release name: {self.release}")
        self.console.info(f"Namespace: {self.namespace}")
        self.console.info(f"AWS Region: {self.settings.aws_region}")
        self.console.info(f"Project: {self.settings.project_name}")
        self.console.info(f"Environment: {self.settings.pulumi_stack}")
        return True

    def epilogue(self) -> None:
        if self.ctx.dry_run:
            return
        out, ns, s = self.console, self.namespace, self.settings
        out.section("Pulumi AWS Helm Chart Deployment")
        out.info("Deployment completed! Here's what you can do next:")
        out.echo("Check the stack status:")
        out.echo(f"  kubectl get stack -n {ns}")
        out.echo("View the stack details:")
        out.echo(f"  kubectl describe stack {s.project_name} -n {ns}")
        out.echo("Monitor the logs:")
        out.echo(f"  kubectl logs -l auto.pulumi.com/component=workspace -n {ns} -f")
        out.echo("Check all resources:")
        out.echo(f"  kubectl get all -n {ns}")
        out.echo("View AWS resources in console:")
        out.echo(f"  Region: {s.aws_region}")
        out.echo(f"  Look for resources tagged with Project: {s.project_name}")
        out.echo("To uninstall:")
        out.echo(f"  helm uninstall {self.release} -n {ns}")
        out.echo("Environment used:")
        out.echo(f"  Environment File: {s.env_file}")
        out.echo(f"  AWS Region: {s.aws_region}")
        out.echo(f"  Project Name: {s.project_name}")
        out.echo(f"  Stack Name: {s.pulumi_stack}")
        out.echo(f"  Operator Namespace: {s.operator_namespace}")
        out.echo(f"  Stack Namespace: {ns}")


def configure_deploy_helm_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("deploy-helm", help="deploy the AWS resources through the local Helm chart")
    add_common_flags(p)
    p.add_argument("-n", "--name", dest="release", help="Helm release name (default: PROJECT_NAME)")
    p.add_argument("--namespace", help="Kubernetes namespace (default: STACK_NAMESPACE)")
    p.add_argument("-f", "--values", dest="values_file", help="values file for the Helm chart")
    p.add_argument("--chart", default=DEFAULT_CHART, help=f"chart directory (default: {DEFAULT_CHART})")


def run_deploy_helm_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    flow = DeployHelm(tools, release=ns.release, values_file=ns.values_file, chart=ns.chart)
    return finish(ctx, flow.run())
