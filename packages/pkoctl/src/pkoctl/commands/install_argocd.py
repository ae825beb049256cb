from __future__ import annotations

import argparse
import base64
import binascii
import os
from typing import TYPE_CHECKING

from ..core.probe import Probe
from ..core.sequence import Step, StepSkipped
from ..errors import StepFailed
from ._shared import Flow, add_common_flags, finish
from .deploy_app_of_apps import ARGOCD_SERVER, DEFAULT_APP_FILE, DeployAppOfApps

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

ARGOCD_DEPLOYMENTS = (ARGOCD_SERVER, "argocd-applicationset-controller", "argocd-repo-server")
ADMIN_SECRET = "argocd-initial-admin-secret"
CREDENTIALS_FILE = "argocd-credentials.txt"
APP_OF_APPS_QUESTION = "Do you want to deploy the Pulumi Operator AWS suite via ArgoCD App of Apps?"


def argocd_manifest_url(version: str) -> str:
    return f"https://raw.githubusercontent.com/argoproj/argo-cd/{version}/manifests/install.yaml"


def decode_password(encoded: str | None) -> str | None:
    if not encoded:
        return None
    try:
        return base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None


class InstallArgoCD(Flow):
    name = "install-argocd"
    title = "ArgoCD Installation"

    def __init__(self, tools: Toolbox, offer_app_of_apps: bool = True, app_file: str = DEFAULT_APP_FILE) -> None:
        super().__init__(tools)
        self.namespace = self.settings.argocd_namespace
        self.version = self.settings.argocd_version
        self.offer_app_of_apps = offer_app_of_apps
        self.app_file = app_file
        self.skip_install = False
        self.app_of_apps_deployed = False
        self.password: str | None = None
        self.on_kind = False

    def steps(self) -> list[Step]:
        return [
            Step("prerequisites", self.check_prerequisites, "kubectl and a reachable cluster"),
            Step("existing-install", self.check_existing_installation, "offer a reinstall when present"),
            Step("install", self.install_argocd, f"ArgoCD {self.version} manifests"),
            Step("wait", self.wait_for_argocd, "server, applicationset controller and repo server"),
            Step("access", self.setup_argocd_access, "admin password and UI access"),
            Step("app-of-apps", self.offer_app_deployment, "optionally deploy the App of Apps"),
        ]

    def check_prerequisites(self) -> bool:
        self.console.info("Checking prerequisites...")
        self.console.info(f"ArgoCD namespace: {self.namespace}")
        self.console.info(f"ArgoCD version: {self.version}")
        self.require("kubectl", cluster=True)
        self.console.success("Prerequisites check passed")
        return True

    def check_existing_installation(self) -> bool:
        if self.kubectl.exists("namespace", self.namespace) is not Probe.SUCCESS:
            return True
        if self.kubectl.exists("deployment", ARGOCD_SERVER, self.namespace) is not Probe.SUCCESS:
            return True
        self.console.warning(f"ArgoCD appears to already be installed in namespace: {self.namespace}")
        if self.ctx.prompt.confirm("Do you want to reinstall ArgoCD?", default=False):
            self.console.warning("Proceeding with reinstallation...")
            return True
        self.console.info("ArgoCD installation skipped by user choice")
        self.skip_install = True
        return True

    def _skip_if_kept(self) -> None:
        if self.skip_install:
            raise StepSkipped("existing installation kept")

    def install_argocd(self) -> bool:
        self._skip_if_kept()
        self.console.info("Installing ArgoCD...")
        if self.kubectl.exists("namespace", self.namespace) is Probe.SUCCESS:
            self.console.info(f"ArgoCD namespace already exists: {self.namespace}")
        else:
            self.console.info(f"Creating ArgoCD namespace: {self.namespace}")
            created = self.kubectl.create_namespace(self.namespace)
            if not created.ok:
                self.console.block(created.combined_output)
                raise StepFailed(f"Failed to create namespace {self.namespace}")
        self.console.info("Applying ArgoCD manifests...")
        applied = self.kubectl.apply_url(argocd_manifest_url(self.version), "-n", self.namespace)
        if not applied.ok:
            self.console.block(applied.combined_output)
            raise StepFailed("Failed to apply the ArgoCD manifests")
        self.console.success("ArgoCD manifests applied")
        return True

    def wait_for_argocd(self) -> bool:
        self._skip_if_kept()
        self.console.info("Waiting for ArgoCD to be ready...")
        for deployment in ARGOCD_DEPLOYMENTS:
            self.console.info(f"Waiting for {deployment} deployment...")
            ready = self.kubectl.wait(f"deployment/{deployment}", "condition=available", "300s", self.namespace)
            if not ready.ok:
                self.console.block(ready.combined_output)
                raise StepFailed(f"Deployment {deployment} did not become available within 300s")
        self.console.success("ArgoCD is ready!")
        return True

    def _write_credentials(self, password: str) -> None:
        path = self.ctx.cwd / CREDENTIALS_FILE
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(f"admin\n{password}\n")
        os.chmod(path, 0o600)
        self.console.info(f"Credentials also saved to: {CREDENTIALS_FILE}")

    def setup_argocd_access(self) -> bool:
        self._skip_if_kept()
        if self.ctx.dry_run:
            raise StepSkipped("dry-run: no admin secret yet")
        out = self.console
        out.info("Setting up ArgoCD access...")
        out.info("Retrieving ArgoCD admin password...")
        self.password = decode_password(self.kubectl.jsonpath("secret", ADMIN_SECRET, "{.data.password}", self.namespace))
        if self.password is None:
            raise StepFailed(f"Could not read the admin password from secret {ADMIN_SECRET}")
        self.on_kind = self.kind_cluster()
        if self.on_kind:
            out.info("Kind cluster detected - setting up port-forward access...")
            out.success("ArgoCD access configured!")
            out.info("ArgoCD Access Information (Kind cluster):")
            out.echo("  - Username: admin")
            out.echo(f"  - Password: {self.password}")
            out.info("To access ArgoCD UI, run this command in a separate terminal:")
            out.echo(f"  kubectl port-forward svc/{ARGOCD_SERVER} -n {self.namespace} 8080:443")
            out.info("Then open your browser to:")
            out.echo("  https://localhost:8080")
            out.warning("Note: You may need to accept the self-signed certificate in your browser")
        else:
            out.info("Non-Kind cluster detected - setting up NodePort access...")
            patched = self.kubectl.patch("svc", ARGOCD_SERVER, {"spec": {"type": "NodePort"}}, self.namespace)
            if not patched.ok:
                out.block(patched.combined_output)
                raise StepFailed(f"Failed to expose {ARGOCD_SERVER} as a NodePort service")
            node_port = self.kubectl.jsonpath("svc", ARGOCD_SERVER, "{.spec.ports[0].nodePort}", self.namespace)
            out.success("ArgoCD access configured!")
            out.info("ArgoCD Access Information:")
            out.echo(f"  - URL: http://localhost:{node_port or '<node-port>'}")
            out.echo("  - Username: admin")
            out.echo(f"  - Password: {self.password}")
        out.warning("Please save the password above - you'll need it to access ArgoCD!")
        self._write_credentials(self.password)
        return True

    def offer_app_deployment(self) -> bool:
        if not self.offer_app_of_apps:
            raise StepSkipped("App of Apps is deployed separately")
        if not self.ctx.prompt.confirm(APP_OF_APPS_QUESTION, default=True):
            self.console.info("Skipping App of Apps deployment")
            raise StepSkipped("declined")
        report = DeployAppOfApps(self.tools, app_file=self.app_file).run()
        self.console.echo(report.render_summary())
        self.app_of_apps_deployed = report.ok
        return report.ok

    def epilogue(self) -> None:
        out = self.console
        if self.skip_install:
            return
        out.success("ArgoCD installation completed successfully!")
        out.info("Next steps:")
        out.echo("  1. Access ArgoCD UI at the URL shown above")
        out.echo("  2. Login with the admin credentials")
        if self.app_of_apps_deployed:
            out.echo("  3. Monitor the App of Apps deployment in ArgoCD UI")
            out.echo(f"  4. Check application status: kubectl get applications -n {self.namespace}")
        else:
            out.echo(f"  3. Deploy manually: kubectl apply -f {self.app_file}")
            out.echo("  4. Or create ArgoCD Applications via the UI")
        label = "For Kind clusters, remember to use port-forward:" if self.on_kind else (
            "For non-Kind clusters, you can also use port-forward:"
        )
        out.info(label)
        out.echo(f"  kubectl port-forward svc/{ARGOCD_SERVER} -n {self.namespace} 8080:443")
        out.echo("  Then access: https://localhost:8080")


def configure_install_argocd_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("install-argocd", help="install ArgoCD and optionally the App of Apps")
    add_common_flags(p)
    p.add_argument("--app-file", default=DEFAULT_APP_FILE, help=f"App of Apps manifest (default: {DEFAULT_APP_FILE})")
    p.add_argument(
        "--no-app-of-apps",
        dest="offer_app_of_apps",
        action="store_false",
        help="do not offer to deploy the App of Apps afterwards",
    )


def run_install_argocd_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    flow = InstallArgoCD(tools, offer_app_of_apps=ns.offer_app_of_apps, app_file=ns.app_file)
    return finish(ctx, flow.run())
