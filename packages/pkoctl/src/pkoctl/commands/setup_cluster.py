from __future__ import annotations

import argparse
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from ..core.prereqs import docker_daemon_probe
from ..core.probe import Probe
from ..core.sequence import Step, StepSkipped
from ..errors import PrerequisiteError, StepFailed
from ..ops.manifests import kind_cluster_config, render
from ._shared import Flow, add_common_flags, finish

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

INGRESS_MANIFEST = "https://raw.githubusercontent.com/kubernetes/ingress-nginx/main/deploy/static/provider/kind/deploy.yaml"
DEFAULT_IMAGE_TAR = "pulumi-image.tar"


class SetupCluster(Flow):
    name = "setup-cluster"
    title = "Setting up local Kubernetes cluster for Pulumi Operator demo"

    def __init__(self, tools: Toolbox, image_tar: str | None = None) -> None:
        super().__init__(tools)
        self.image_tar = image_tar
        self.cluster = self.settings.cluster_name
        self.node = f"{self.cluster}-control-plane"

    def steps(self) -> list[Step]:
        return [
            Step("prerequisites", self.check_prerequisites, "docker, docker daemon, kubectl and kind"),
            Step("create-cluster", self.create_cluster, "recreate the kind cluster"),
            Step("configure-kubectl", self.configure_kubectl, "select the context and wait for nodes"),
            Step("ingress-controller", self.install_ingress_controller, "NGINX ingress for kind"),
            Step("load-image", self.load_image, "import a local image tarball into the node"),
            Step("cluster-info", self.display_cluster_info),
        ]

    def check_prerequisites(self) -> bool:
        self.console.info("Checking prerequisites...")
        self.require("docker")
        if docker_daemon_probe(self.tools.docker) is not Probe.SUCCESS:
            raise PrerequisiteError("Docker daemon is not running. Please start Docker first.")
        self.require("kubectl", "kind")
        self.console.info(f"kind is already installed: {self.tools.kind.version()}")
        self.console.success("Prerequisites check passed!")
        return True

    def create_cluster(self) -> bool:
        kind = self.tools.kind
        if kind.has_cluster(self.cluster):
            self.console.warning(f"Cluster '{self.cluster}' already exists. Deleting...")
            deleted = kind.delete_cluster(self.cluster)
            if not deleted.ok:
                self.console.block(deleted.combined_output)
                raise StepFailed(f"Failed to delete existing cluster '{self.cluster}'")
        self.console.info(f"Creating kind cluster '{self.cluster}'...")
        with tempfile.NamedTemporaryFile("w", suffix="-kind-config.yaml", delete=False, encoding="utf-8") as handle:
            handle.write(render(kind_cluster_config(self.cluster)))
            config_path = Path(handle.name)
        try:
            created = kind.create_cluster(str(config_path), wait="300s")
        finally:
            config_path.unlink(missing_ok=True)
        if not created.ok:
            self.console.block(created.combined_output)
            raise StepFailed(f"Failed to create kind cluster '{self.cluster}'")
        self.console.success(f"Kind cluster '{self.cluster}' created successfully!")
        return True

    def configure_kubectl(self) -> bool:
        self.console.info("Configuring kubectl...")
        info = self.kubectl.effect("cluster-info", "--context", f"kind-{self.cluster}", timeout_seconds=60)
        self.console.block(info.stdout)
        if not info.ok:
            raise StepFailed(f"Cannot reach cluster context kind-{self.cluster}")
        self.console.info("Waiting for nodes to be ready...")
        ready = self.kubectl.wait("nodes", "condition=Ready", "300s", None, "--all")
        if not ready.ok:
            self.console.block(ready.combined_output)
            raise StepFailed("Nodes did not become Ready within 300s")
        self.console.success("kubectl configured and cluster is ready!")
        return True

    def install_ingress_controller(self) -> bool:
        self.console.info("Installing NGINX Ingress Controller...")
        applied = self.kubectl.apply_url(INGRESS_MANIFEST)
        if not applied.ok:
            self.console.block(applied.combined_output)
            raise StepFailed("Failed to apply the NGINX Ingress Controller manifests")
        self.console.info("Waiting for ingress controller to be ready...")
        ready = self.kubectl.wait(
            "pod",
            "condition=ready",
            "300s",
            "ingress-nginx",
            "--selector=app.kubernetes.io/component=controller",
        )
        if not ready.ok:
            self.console.block(ready.combined_output)
            raise StepFailed("Ingress controller did not become ready within 300s")
        self.console.success("NGINX Ingress Controller installed successfully!")
        return True

    def load_image(self) -> bool:
        tarball = Path(self.image_tar or DEFAULT_IMAGE_TAR)
        if not tarball.is_absolute():
            tarball = self.ctx.cwd / tarball
        if not tarball.is_file():
            if self.image_tar:
                raise StepFailed(f"Image tarball not found: {tarball}")
            raise StepSkipped(f"no {DEFAULT_IMAGE_TAR} in {self.ctx.cwd}")
        self.console.info(f"Loading image from {tarball.name}...")
        copied = self.tools.docker.copy_into(str(tarball), self.node, f"/{tarball.name}")
        if not copied.ok:
            self.console.block(copied.combined_output)
            raise StepFailed(f"Failed to copy {tarball.name} into {self.node}")
        imported = self.tools.docker.exec(self.node, "ctr", "-n", "k8s.io", "images", "import", f"/{tarball.name}")
        if not imported.ok:
            self.console.block(imported.combined_output)
            raise StepFailed(f"Failed to import {tarball.name} into the node image store")
        self.console.success("Image loaded successfully!")
        return True

    def display_cluster_info(self) -> bool:
        out = self.console
        out.info("Cluster Information:")
        out.echo("====================")
        out.echo(f"Cluster Name: {self.cluster}")
        client = self.kubectl.run("version", "--client")
        out.echo(f"Kubernetes Version: {client.stdout.strip() or 'unknown'}")
        out.echo("Nodes:")
        out.echo(self.kubectl.table("nodes", "-o", "wide"))
        out.echo()
        out.echo(f"Cluster Context: kind-{self.cluster}")
        out.echo()
        out.info("To interact with this cluster, use:")
        out.echo(f"  kubectl --context kind-{self.cluster} get nodes")
        out.echo()
        out.info("To delete this cluster when done:")
        out.echo(f"  kind delete cluster --name {self.cluster}")
        return True

    def epilogue(self) -> None:
        self.console.success("Cluster setup completed successfully!")
        self.console.info("Next steps:")
        self.console.echo("1. Run 'pkoctl install-operator' to install the Pulumi Kubernetes Operator")
        self.console.echo("2. Configure your AWS credentials in .env file")
        self.console.echo("3. Run 'pkoctl deploy-stack' or 'pkoctl deploy-helm' to deploy AWS resources")


def configure_setup_cluster_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("setup-cluster", help="create the local kind cluster with an NGINX ingress")
    add_common_flags(p)
    p.add_argument("--cluster-name", help="kind cluster name (CLUSTER_NAME)")
    p.add_argument("--image-tar", help=f"image tarball to import into the node (default: {DEFAULT_IMAGE_TAR} if present)")


def run_setup_cluster_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    return finish(ctx, SetupCluster(tools, image_tar=ns.image_tar).run())
