from __future__ import annotations

import argparse
import importlib
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Callable, MutableMapping

from .. import __version__
from ..config.envfile import MergePolicy, load_env_file, merge_into_environ
from ..config.settings import DEFAULT_ENV_FILE, Settings
from ..core.console import Console
from ..core.context import RunContext
from ..core.prompt import Prompt
from ..errors import ScriptError
from ..exit_codes import ERR_INTERNAL, ERR_INTERRUPTED, ERR_USAGE
from ..logging import log_event
from ..ops.toolbox import Toolbox
from .constants import COMMANDS, FILE_WINS_COMMANDS, NONINTERACTIVE_ENV, OVERRIDE_FLAGS
from .output import emit, render_error, version_payload

ToolboxFactory = Callable[[RunContext], Toolbox]

_TRUTHY = {"1", "true", "yes", "on"}


def _import_attr(module_name: str, attr: str):
    return getattr(importlib.import_module(module_name), attr)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="pkoctl",
        description="Pulumi Kubernetes Operator demo orchestration: cluster, operator, stacks and cleanup.",
    )
    p.add_argument("--version", action="version", version=f"pkoctl {__version__}")
    p.add_argument("--format", choices=["text", "json"], default="text", help="output format")
    p.add_argument("--run-id", help="run identifier used in logs and reports")
    p.add_argument("--no-color", action="store_true", help="disable colored output")
    p.add_argument("--log-json", action="store_true", help="emit verbose audit events as JSON lines")
    vg = p.add_mutually_exclusive_group()
    vg.add_argument("--verbose", action="store_true", help="log every external command")
    vg.add_argument("--quiet", action="store_true", help="only emit warnings and errors")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version", help="print the pkoctl version")
    for _name, module_name, hook, _runner in COMMANDS:
        _import_attr(module_name, hook)(sub)
    return p


def _truthy(raw: str | None) -> bool:
    return str(raw or "").strip().lower() in _TRUTHY


def _overrides(ns: argparse.Namespace) -> dict[str, str]:
    out: dict[str, str] = {}
    for attr, var in OVERRIDE_FLAGS:
        value = getattr(ns, attr, None)
        if value:
            out[var] = value
    return out


def build_context(
    ns: argparse.Namespace,
    console: Console,
    environ: MutableMapping[str, str],
    cwd: Path | None = None,
    prompt: Prompt | None = None,
) -> RunContext:
    """Load the env file, export it with the command's merge policy and resolve settings."""
    root = (cwd or Path.cwd()).resolve()
    env_name = Path(getattr(ns, "env_file", None) or DEFAULT_ENV_FILE)
    env_path = env_name if env_name.is_absolute() else root / env_name
    env_file = load_env_file(env_path, console)
    policy = MergePolicy.FILE_WINS if ns.cmd in FILE_WINS_COMMANDS else MergePolicy.KEEP_EXISTING
    merge_into_environ(env_file.values, environ, policy)

    attended = not (getattr(ns, "yes", False) or any(_truthy(environ.get(var)) for var in NONINTERACTIVE_ENV))
    settings = Settings.resolve(
        environ,
        env_file.values,
        _overrides(ns),
        env_file=env_name,
        attended=attended,
        dry_run=getattr(ns, "dry_run", False),
        debug=getattr(ns, "debug", False),
    )
    console.debug_enabled = settings.debug
    if settings.legacy_namespace_used:
        console.warning("NAMESPACE is deprecated; set STACK_NAMESPACE instead.")
    return RunContext.from_args(
        settings,
        run_id=ns.run_id,
        output_format=ns.format,
        verbose=ns.verbose,
        quiet=ns.quiet,
        log_json=ns.log_json,
        color=not ns.no_color,
        cwd=root,
        console=console,
        prompt=prompt,
    )


def _raise_interrupt(_signum: int, _frame: object) -> None:
    raise KeyboardInterrupt


def _install_sigterm() -> Callable[[], None] | None:
    if threading.current_thread() is not threading.main_thread():
        return None
    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    return lambda: signal.signal(signal.SIGTERM, previous)


def _runner_for(cmd: str):
    for name, module_name, _hook, runner in COMMANDS:
        if name == cmd:
            return _import_attr(module_name, runner)
    return None


def main(
    argv: list[str] | None = None,
    toolbox_factory: ToolboxFactory = Toolbox.from_context,
    environ: MutableMapping[str, str] | None = None,
    cwd: Path | None = None,
    prompt: Prompt | None = None,
) -> int:
    parser = build_parser()
    ns = parser.parse_args(argv)
    as_json = ns.format == "json"
    if ns.cmd == "version":
        if as_json:
            emit(version_payload(__version__), as_json=True)
        else:
            print(f"pkoctl {__version__}")
        return 0

    console = Console(debug=getattr(ns, "debug", False), quiet=ns.quiet, color=not ns.no_color)
    restore_signal = _install_sigterm()
    try:
        ctx = build_context(ns, console, os.environ if environ is None else environ, cwd=cwd, prompt=prompt)
        log_event(ctx, "info", "cli", "start", command=ns.cmd, dry_run=ctx.dry_run, attended=ctx.attended)
        runner = _runner_for(ns.cmd)
        if runner is None:
            parser.print_usage(sys.stderr)
            return ERR_USAGE
        code = runner(ctx, ns, toolbox_factory(ctx))
        log_event(ctx, "info", "cli", "finish", command=ns.cmd, exit_code=code)
        return code
    except ScriptError as exc:
        if as_json:
            print(render_error(as_json=True, message=exc.message, code=exc.code, kind=exc.kind), file=sys.stderr)
        else:
            console.error(exc.message)
        return exc.code
    except KeyboardInterrupt:
        if as_json:
            print(render_error(as_json=True, message="interrupted", code=ERR_INTERRUPTED, kind="interrupted"), file=sys.stderr)
        else:
            console.error("Script interrupted")
        return ERR_INTERRUPTED
    except Exception as exc:  # pragma: no cover
        message = f"internal error: {exc}"
        if as_json:
            print(render_error(as_json=True, message=message, code=ERR_INTERNAL, kind="internal"), file=sys.stderr)
        else:
            console.error(message)
        return ERR_INTERNAL
    finally:
        if restore_signal is not None:
            restore_signal()


if __name__ == "__main__":
    raise SystemExit(main())
