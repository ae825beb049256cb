from __future__ import annotations

import argparse
from typing import TYPE_CHECKING

from ..core.prereqs import missing_commands
from ..core.sequence import Step, StepStatus
from ..errors import PrerequisiteError, StepFailed
from ._shared import Flow, add_common_flags, finish
from .deploy_app_of_apps import DEFAULT_APP_FILE, DeployAppOfApps
from .install_argocd import CREDENTIALS_FILE, InstallArgoCD
from .setup_cluster import SetupCluster

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

REQUIRED_TOOLS = ("kind", "kubectl", "helm", "aws")


class Quickstart(Flow):
    """setup-cluster, install-argocd and deploy-app-of-apps as one run.

    Each nested command runs unattended so that its own failure ends it; the
    question of whether to go on belongs to the outer sequence.
    """

    name = "quickstart"
    title = "Pulumi Kubernetes Operator AWS Demo - Quickstart"

    def __init__(self, tools: Toolbox, app_file: str = DEFAULT_APP_FILE) -> None:
        super().__init__(tools)
        self.app_file = app_file

    def steps(self) -> list[Step]:
        return [
            Step("prerequisites", self.check_prerequisites, ", ".join(REQUIRED_TOOLS)),
            Step("environment", self.check_environment, "env file presence"),
            Step("setup-cluster", lambda: self._nested(SetupCluster(self.tools)), "local kind cluster"),
            Step(
                "install-argocd",
                lambda: self._nested(InstallArgoCD(self.tools, offer_app_of_apps=False, app_file=self.app_file)),
                "ArgoCD for GitOps management",
            ),
            Step(
                "deploy-app-of-apps",
                lambda: self._nested(DeployAppOfApps(self.tools, app_file=self.app_file)),
                "operator and stack via the App of Apps",
            ),
        ]

    def check_prerequisites(self) -> bool:
        self.console.info("This will:")
        self.console.echo("  1. Set up a local Kubernetes cluster (kind)")
        self.console.echo("  2. Install ArgoCD for GitOps")
        self.console.echo("  3. Deploy the Pulumi Operator and AWS stack via the App of Apps")
        self.console.warning("This will create AWS resources that may incur charges")
        self.console.info("Checking prerequisites...")
        missing = missing_commands(REQUIRED_TOOLS, which=self.tools.which)
        if missing:
            self.console.error("Please install the missing tools and try again")
            raise PrerequisiteError(f"Missing required tools: {' '.join(missing)}")
        self.console.success("All required tools are available")
        return True

    def check_environment(self) -> bool:
        self.console.info("Checking environment configuration...")
        env_file = self.settings.env_file
        if not env_file.is_absolute():
            env_file = self.ctx.cwd / env_file
        if env_file.is_file():
            self.console.success(f"Found .env file: {self.settings.env_file}")
        else:
            self.console.warning("No .env file found. Using default values.")
            self.console.info("You can create a .env file to customize the configuration")
        return True

    def _nested(self, flow: Flow) -> bool:
        self.console.section(f"Running {flow.name}...")
        report = flow.run(attended=False)
        self.console.echo(report.render_summary())
        if not report.ok:
            failed = ", ".join(report.names(StepStatus.FAILED)) or "unknown step"
            self.console.error("Check the output above for details")
            raise StepFailed(f"{flow.name} failed at: {failed}")
        self.console.success(f"{flow.name} completed successfully!")
        return True

    def epilogue(self) -> None:
        s = self.settings
        out = self.console
        out.success("Quickstart completed successfully!")
        out.info("What was set up:")
        out.echo("  - Local Kubernetes cluster (kind)")
        out.echo("  - ArgoCD for GitOps management")
        out.echo("  - App of Apps pattern deployment")
        out.echo("  - Pulumi Kubernetes Operator (via GitOps)")
        out.echo("  - AWS resources stack (via GitOps)")
        out.info("Next steps:")
        out.echo(f"  - Monitor GitOps deployments: kubectl get applications -n {s.argocd_namespace}")
        out.echo(f"  - Access ArgoCD UI (see credentials in {CREDENTIALS_FILE})")
        out.echo(f"  - Wait for stack deployment: kubectl get stacks -n {s.stack_namespace} -w")
        out.echo(
            f"  - Check workspace pod logs: kubectl logs -n {s.stack_namespace} -l pulumi.com/stack-name={s.stack_name} -f"
        )
        out.echo("  - Check AWS console for created resources")
        out.echo("  - When done, run: pkoctl cleanup")
        out.warning("Remember: AWS resources are running and may incur charges!")

    def on_failure(self) -> None:
        self.console.error("Quickstart did not complete; see the summary below.")


def configure_quickstart_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("quickstart", help="cluster, ArgoCD and App of Apps in one go")
    add_common_flags(p)
    p.add_argument("--app-file", default=DEFAULT_APP_FILE, help=f"App of Apps manifest (default: {DEFAULT_APP_FILE})")


def run_quickstart_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    return finish(ctx, Quickstart(tools, app_file=ns.app_file).run())
