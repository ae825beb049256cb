from __future__ import annotations

import argparse
from typing import TYPE_CHECKING, Callable, Optional, TypeVar

from ..cli.output import emit
from ..core.locate import OPERATOR_DEPLOYMENT
from ..core.poll import PollResult, poll_until
from ..core.prereqs import check_prerequisites, cluster_probe
from ..core.probe import Probe
from ..core.sequence import SequenceReport, Sequencer, Step
from ..errors import PrerequisiteError

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox

T = TypeVar("T")

OPERATOR_RELEASE = "pulumi-kubernetes-operator"
OPERATOR_LABEL = "app.kubernetes.io/name=pulumi-kubernetes-operator"
WORKSPACE_LABEL = "pulumi.com/stack-name"


def add_common_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--env-file", default=None, help="environment file to load (default: .env)")
    parser.add_argument("--dry-run", action="store_true", help="print mutating commands instead of running them")
    parser.add_argument("--yes", "-y", action="store_true", help="run unattended: never prompt, abort on failure")
    parser.add_argument("--debug", action="store_true", help="print [DEBUG] diagnostics (same as DEBUG=1)")


def finish(ctx: RunContext, report: SequenceReport) -> int:
    if ctx.output_format == "json":
        emit(report.to_payload(ctx.run_id, ctx.dry_run), as_json=True)
    else:
        ctx.console.echo()
        ctx.console.echo(report.render_summary())
    return report.exit_code


class Flow:
    """One command: an ordered list of steps sharing a toolbox."""

    name = ""
    title = ""

    def __init__(self, tools: Toolbox) -> None:
        self.tools = tools
        self.ctx = tools.ctx
        self.settings = tools.ctx.settings
        self.console = tools.ctx.console
        self.kubectl = tools.kubectl
        self.helm = tools.helm

    def steps(self) -> list[Step]:
        raise NotImplementedError

    def epilogue(self) -> None:
        """Printed after a fully successful run."""

    def on_failure(self) -> None:
        """Printed after a failed run."""

    def sequencer(self, attended: bool | None = None) -> Sequencer:
        return Sequencer(self.ctx.attended if attended is None else attended, self.ctx.prompt, self.console)

    def run(self, attended: bool | None = None) -> SequenceReport:
        self.console.header(self.title)
        report = self.sequencer(attended).run(self.steps(), command=self.name)
        if report.cancelled:
            return report
        if report.ok:
            self.epilogue()
        else:
            self.on_failure()
        return report

    def require(self, *commands: str, cluster: bool = False) -> None:
        probe: Optional[Callable[[], Probe]] = None
        if cluster:
            probe = lambda: cluster_probe(self.kubectl)  # noqa: E731
        try:
            check_prerequisites(commands, probe=probe, which=self.tools.which)
        except PrerequisiteError:
            if cluster and self.tools.which("kubectl") is not None:
                self.console.info(f"Current kubectl context: {self.kubectl.current_context() or 'none'}")
            raise

    def kind_cluster(self) -> bool:
        """True when the current cluster looks like a local kind cluster."""
        info = self.kubectl.cluster_info()
        if "kind" in info.stdout:
            return True
        return self.tools.which("kind") is not None and bool(self.tools.kind.clusters())

    def cluster_reachable(self) -> bool:
        if self.tools.which("kubectl") is None:
            return False
        return cluster_probe(self.kubectl) is Probe.SUCCESS

    def poll(
        self,
        fetch: Callable[[], Optional[T]],
        success: Callable[[T], bool],
        failure: Callable[[T], bool],
        timing: tuple[float, float],
        on_tick: Callable[[Optional[T], int, float], None] | None = None,
    ) -> PollResult[T]:
        interval, timeout = timing
        return poll_until(
            fetch,
            success,
            failure,
            interval,
            timeout,
            clock=self.tools.clock,
            sleep=self.tools.sleep,
            on_tick=on_tick,
            on_error=lambda exc: self.console.debug(f"status fetch failed: {exc}"),
        )

    def show(self, *get_args: str) -> None:
        self.console.block(self.kubectl.table(*get_args))
