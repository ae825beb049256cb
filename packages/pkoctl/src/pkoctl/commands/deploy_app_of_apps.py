from __future__ import annotations

import argparse
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.probe import Probe
from ..core.sequence import Step
from ..errors import ConfigError, PrerequisiteError, StepFailed
from ..ops import manifests
from ._shared import Flow, add_common_flags, finish

if TYPE_CHECKING:
    from ..config.settings import Settings
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

DEFAULT_APP_FILE = "argocd/app-of-apps.yaml"
ARGOCD_SERVER = "argocd-server"
APPLY_SETTLE_SECONDS = 5


class DeployAppOfApps(Flow):
    name = "deploy-app-of-apps"
    title = "Pulumi Operator AWS - App of Apps Deployment"

    def __init__(self, tools: Toolbox, app_file: str = DEFAULT_APP_FILE) -> None:
        super().__init__(tools)
        self.app_file = app_file
        self.argocd_namespace = self.settings.argocd_namespace
        self.namespace = self.settings.stack_namespace

    def steps(self) -> list[Step]:
        return [
            Step("prerequisites", self.check_prerequisites, "kubectl, cluster and a running ArgoCD"),
            Step("aws-credentials", self.setup_aws_credentials, f"aws-credentials secret in {self.namespace}"),
            Step("apply", self.deploy_app_of_apps, f"apply {self.app_file}"),
            Step("monitor", self.monitor_deployment, "list applications and access info"),
        ]

    def _app_path(self) -> Path:
        path = Path(self.app_file)
        return path if path.is_absolute() else self.ctx.cwd / path

    def check_prerequisites(self) -> bool:
        self.console.info("Checking prerequisites...")
        self.require("kubectl", cluster=True)
        if self.kubectl.exists("namespace", self.argocd_namespace) is not Probe.SUCCESS:
            self.console.error("Please install ArgoCD first: pkoctl install-argocd")
            raise PrerequisiteError(f"ArgoCD namespace '{self.argocd_namespace}' not found.")
        if self.kubectl.exists("deployment", ARGOCD_SERVER, self.argocd_namespace) is not Probe.SUCCESS:
            self.console.error("Please install ArgoCD first: pkoctl install-argocd")
            raise PrerequisiteError(
                f"ArgoCD server deployment not found in namespace '{self.argocd_namespace}'."
            )
        self.console.success("Prerequisites check passed")
        return True

    def _credentials(self) -> Settings:
        """Settings carrying AWS credentials, asking for them when attended."""
        settings = self.settings
        if settings.aws_access_key_id and settings.aws_secret_access_key:
            self.console.info("Creating AWS credentials secret from environment variables...")
            return settings
        self.console.warning("AWS credentials not found in environment variables")
        if not self.ctx.attended:
            raise ConfigError("AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY must be set when running unattended")
        self.console.info("Please provide your AWS credentials:")
        prompt = self.ctx.prompt
        key_id = prompt.ask("AWS Access Key ID")
        secret = prompt.ask("AWS Secret Access Key", secret=True)
        region = prompt.ask("AWS Region [us-west-2]", default="us-west-2")
        if not key_id or not secret:
            raise ConfigError("AWS credentials cannot be empty")
        return settings.replace(aws_access_key_id=key_id, aws_secret_access_key=secret, aws_region=region)

    def setup_aws_credentials(self) -> bool:
        self.console.info("Setting up AWS credentials...")
        if self.kubectl.exists("namespace", self.namespace) is not Probe.SUCCESS:
            self.console.info(f"Creating namespace: {self.namespace}")
            created = self.kubectl.create_namespace(self.namespace)
            if not created.ok:
                self.console.block(created.combined_output)
                raise StepFailed(f"Failed to create namespace {self.namespace}")
        if self.kubectl.exists("secret", manifests.AWS_SECRET, self.namespace) is Probe.SUCCESS:
            self.console.info(f"AWS credentials secret already exists in namespace {self.namespace}")
            return True
        self.console.info("AWS credentials secret not found, creating...")
        settings = self._credentials()
        applied = self.kubectl.apply_text(manifests.render(manifests.credentials_secret(settings, self.namespace)))
        if not applied.ok:
            self.console.block(applied.combined_output)
            raise StepFailed("Failed to create the aws-credentials secret")
        self.console.success("AWS credentials secret created")
        return True

    def deploy_app_of_apps(self) -> bool:
        self.console.info("Deploying Pulumi Operator AWS App of Apps...")
        path = self._app_path()
        if not path.is_file():
            self.console.error("Please ensure the argocd directory exists with app-of-apps.yaml")
            raise StepFailed(f"App of Apps file not found: {path}")
        self.console.info("Applying App of Apps configuration...")
        applied = self.kubectl.apply_file(str(path))
        if not applied.ok:
            self.console.block(applied.combined_output)
            raise StepFailed("Failed to deploy App of Apps")
        self.console.success("App of Apps deployed successfully!")
        if not self.ctx.dry_run:
            self.tools.sleep(APPLY_SETTLE_SECONDS)
        self.console.info("ArgoCD Applications created:")
        self.show("applications", "-n", self.argocd_namespace, "-o", "wide")
        return True

    def monitor_deployment(self) -> bool:
        ns = self.argocd_namespace
        out = self.console
        out.info("Deployment monitoring commands:")
        out.echo(f"  - Watch applications: kubectl get applications -n {ns} -w")
        out.echo(f"  - Check specific app: kubectl describe application <app-name> -n {ns}")
        out.echo("  - View ArgoCD UI for detailed status and logs")
        node_port = None if self.kind_cluster() else self.kubectl.jsonpath(
            "svc", ARGOCD_SERVER, "{.spec.ports[0].nodePort}", ns
        )
        if node_port:
            out.info(f"ArgoCD UI access: http://localhost:{node_port}")
        else:
            out.info("To access ArgoCD UI:")
            out.echo(f"  kubectl port-forward svc/{ARGOCD_SERVER} -n {ns} 8080:443")
            out.echo("  Then open: https://localhost:8080")
        out.warning("Important:")
        out.echo("  - Monitor the deployment in ArgoCD UI")
        out.echo("  - The stack will create AWS resources that may incur charges")
        out.echo("  - Check AWS console to verify resource creation")
        return True

    def epilogue(self) -> None:
        self.console.success("App of Apps deployment completed!")
        self.console.info("The Pulumi Operator and AWS stack are now being managed by ArgoCD")
        self.console.info("Check the ArgoCD UI for deployment progress and status")


def configure_deploy_app_of_apps_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("deploy-app-of-apps", help="deploy the ArgoCD App of Apps for the operator and stack")
    add_common_flags(p)
    p.add_argument("--app-file", default=DEFAULT_APP_FILE, help=f"App of Apps manifest (default: {DEFAULT_APP_FILE})")
    p.add_argument("--namespace", help="namespace for the stack credentials (STACK_NAMESPACE)")


def run_deploy_app_of_apps_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    return finish(ctx, DeployAppOfApps(tools, app_file=ns.app_file).run())
