"""Flat KEY=value environment files (`.env`).

Parsing is pure: the same text always yields the same mapping. Merging into a
process environment is a separate, explicit step with a caller-chosen
`MergePolicy`, so the precedence between file values and already-exported
variables is never implicit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, MutableMapping

from ..errors import ConfigError

if TYPE_CHECKING:
    from ..core.console import Console

SECRET_MARKERS = ("ACCESS_KEY", "SECRET", "TOKEN", "PASSWORD")
REDACTED = "***"

_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_SECRET_ASSIGNMENT_RE = re.compile(
    r"(?P<key>[A-Za-z0-9_]*(?:" + "|".join(SECRET_MARKERS) + r")[A-Za-z0-9_]*)=(?P<value>[^\s,]*)",
    re.IGNORECASE,
)


class MergePolicy(str, Enum):
    KEEP_EXISTING = "keep-existing"
    FILE_WINS = "file-wins"


@dataclass(frozen=True)
class EnvFile:
    path: Path
    values: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    exists: bool = False


def is_secret_key(name: str) -> bool:
    upper = name.upper()
    return any(marker in upper for marker in SECRET_MARKERS)


def redact(name: str, value: str) -> str:
    return REDACTED if is_secret_key(name) else value


def redacted_items(values: Mapping[str, str]) -> dict[str, str]:
    return {key: redact(key, value) for key, value in values.items()}


def mask_secret_assignments(text: str) -> str:
    """Replace the value of every `SECRET_LIKE=value` fragment in free text."""

    return _SECRET_ASSIGNMENT_RE.sub(lambda match: f"{match.group('key')}={REDACTED}", text)


def _strip_inline_comment(line: str) -> str:
    """Drop a ` # comment` tail; only a value that starts with a quote can contain one."""
    eq = line.find("=")
    if eq < 0:
        return line
    head, value = line[: eq + 1], line[eq + 1 :]
    body = value.lstrip()
    if body[:1] in {"'", '"'}:
        close = body.find(body[0], 1)
        rest = body[close + 1 :].lstrip() if close > 0 else ""
        if close > 0 and (not rest or rest.startswith("#")):
            return head + body[: close + 1]
    for idx, ch in enumerate(value):
        if ch == "#" and idx > 0 and value[idx - 1].isspace():
            return head + value[:idx]
    return line


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def parse_env_line(raw: str) -> tuple[str, str] | None:
    line = raw.strip()
    if not line or line.startswith("#"):
        return None
    line = _strip_inline_comment(line).strip()
    if line.startswith("export "):
        line = line[len("export ") :].lstrip()
    if "=" not in line:
        return None
    key, value = line.split("=", 1)
    if not _KEY_RE.match(key):
        return None
    return key, _unquote(value.strip())


def parse_env_text(text: str) -> dict[str, str]:
    values: dict[str, str] = {}
    for raw in text.splitlines():
        parsed = parse_env_line(raw)
        if parsed is not None:
            key, value = parsed
            values[key] = value
    return values


def load_env_file(path: Path | str, console: Console | None = None) -> EnvFile:
    env_path = Path(path)
    if not env_path.is_file():
        if console is not None:
            console.warning(f"Environment file {env_path} not found. Using shell environment variables.")
        return EnvFile(path=env_path)
    try:
        text = env_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read environment file '{env_path}': {exc.strerror or exc}") from exc
    values = parse_env_text(text)
    if console is not None:
        console.info(f"Loading environment variables from {env_path}")
        for key, value in values.items():
            console.info(f"Loaded {key}={redact(key, value)}")
    return EnvFile(path=env_path, values=MappingProxyType(dict(values)), exists=True)


def merge_into_environ(
    values: Mapping[str, str],
    environ: MutableMapping[str, str],
    policy: MergePolicy = MergePolicy.KEEP_EXISTING,
) -> list[str]:
    written: list[str] = []
    for key, value in values.items():
        if policy is MergePolicy.KEEP_EXISTING and environ.get(key):
            continue
        environ[key] = value
        written.append(key)
    return written

