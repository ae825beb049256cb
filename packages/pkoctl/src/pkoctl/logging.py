from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from .config.envfile import mask_secret_assignments

if TYPE_CHECKING:
    from .core.context import RunContext


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _clean(value: object) -> object:
    return mask_secret_assignments(value) if isinstance(value, str) else value


def log_event(ctx: RunContext, level: str, component: str, action: str, **fields: object) -> None:
    """Structured audit line on stderr; emitted only in verbose mode."""
    if not ctx.verbose:
        return
    clean = {key: _clean(value) for key, value in fields.items()}
    payload = {
        "ts": utc_now_iso(),
        "level": level,
        "run_id": ctx.run_id,
        "component": component,
        "action": action,
        **clean,
    }
    if ctx.log_json:
        sys.stderr.write(json.dumps(payload, sort_keys=True) + "\n")
        return
    core = f"ts={payload['ts']} level={level} run_id={ctx.run_id} component={component} action={action}"
    extras = " ".join(f"{key}={value}" for key, value in sorted(clean.items()))
    sys.stderr.write((core if not extras else f"{core} {extras}") + "\n")
