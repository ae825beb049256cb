from __future__ import annotations

import argparse
from typing import TYPE_CHECKING

from ..cli.output import emit
from ._shared import add_common_flags

if TYPE_CHECKING:
    from ..core.context import RunContext
    from ..ops.toolbox import Toolbox


def config_payload(ctx: RunContext) -> dict[str, object]:
    return {
        "schema_version": 1,
        "tool": "pkoctl",
        "status": "ok",
        "run_id": ctx.run_id,
        "settings": ctx.settings.describe(),
    }


def configure_config_parser(sub: argparse._SubParsersAction) -> None:
    p = sub.add_parser("config", help="configuration commands")
    config_sub = p.add_subparsers(dest="config_cmd", required=True)
    show = config_sub.add_parser("show", help="print the resolved settings with secrets redacted")
    add_common_flags(show)
    for flag, var in (
        ("--namespace", "STACK_NAMESPACE"),
        ("--operator-namespace", "OPERATOR_NAMESPACE"),
        ("--stack-name", "STACK_NAME"),
        ("--cluster-name", "CLUSTER_NAME"),
    ):
        show.add_argument(flag, help=f"override {var}")


def run_config_command(ctx: RunContext, ns: argparse.Namespace, tools: Toolbox) -> int:
    if ctx.output_format == "json":
        emit(config_payload(ctx), as_json=True)
        return 0
    for key, value in ctx.settings.describe().items():
        if isinstance(value, bool):
            value = str(value).lower()
        ctx.console.echo(f"{key}={value}")
    return 0
