from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Mapping

from ..contracts.json_output import schema_errors
from ..errors import ConfigError
from .envfile import redact

DEFAULT_ENV_FILE = ".env"
LEGACY_NAMESPACE_VAR = "NAMESPACE"

# Settings field -> (environment variable, default)
_ENV_FIELDS: dict[str, tuple[str, str]] = {
    "cluster_name": ("CLUSTER_NAME", "pulumi-aws-demo"),
    "operator_namespace": ("OPERATOR_NAMESPACE", "pulumi-system"),
    "stack_namespace": ("STACK_NAMESPACE", "pulumi-aws-demo"),
    "stack_name": ("STACK_NAME", "aws-resources"),
    "project_name": ("PROJECT_NAME", "aws-resources"),
    "pulumi_stack": ("PULUMI_STACK", "dev"),
    "aws_region": ("AWS_REGION", "us-west-2"),
    "aws_access_key_id": ("AWS_ACCESS_KEY_ID", ""),
    "aws_secret_access_key": ("AWS_SECRET_ACCESS_KEY", ""),
    "pulumi_access_token": ("PULUMI_ACCESS_TOKEN", ""),
    "argocd_namespace": ("ARGOCD_NAMESPACE", "argocd"),
    "argocd_version": ("ARGOCD_VERSION", "stable"),
    "operator_version": ("OPERATOR_VERSION", "2.2.0"),
    "kind_version": ("KIND_VERSION", "v0.30.0"),
}

_TRUTHY = {"1", "true", "yes", "on"}


def _truthy(raw: str | None) -> bool:
    return str(raw or "").strip().lower() in _TRUTHY


def _first(name: str, layers: tuple[Mapping[str, str], ...]) -> str | None:
    for layer in layers:
        value = layer.get(name)
        if value:
            return value
    return None


@dataclass(frozen=True)
class Settings:
    """Configuration resolved once at startup.

    Precedence for every variable is CLI override, then process environment,
    then the env file, then the built-in default. The stack namespace consults
    `STACK_NAMESPACE` across all of those layers before falling back to the
    legacy `NAMESPACE` variable.
    """

    cluster_name: str = "pulumi-aws-demo"
    operator_namespace: str = "pulumi-system"
    stack_namespace: str = "pulumi-aws-demo"
    stack_name: str = "aws-resources"
    project_name: str = "aws-resources"
    pulumi_stack: str = "dev"
    aws_region: str = "us-west-2"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""
    pulumi_access_token: str = ""
    argocd_namespace: str = "argocd"
    argocd_version: str = "stable"
    operator_version: str = "2.2.0"
    kind_version: str = "v0.30.0"
    env_file: Path = Path(DEFAULT_ENV_FILE)
    attended: bool = True
    dry_run: bool = False
    debug: bool = False
    legacy_namespace_used: bool = False

    @classmethod
    def resolve(
        cls,
        environ: Mapping[str, str],
        env_file_values: Mapping[str, str] | None = None,
        overrides: Mapping[str, str] | None = None,
        *,
        env_file: Path | str = DEFAULT_ENV_FILE,
        attended: bool = True,
        dry_run: bool = False,
        debug: bool = False,
    ) -> "Settings":
        layers = (dict(overrides or {}), dict(environ), dict(env_file_values or {}))
        values: dict[str, object] = {}
        for attr, (var, default) in _ENV_FIELDS.items():
            values[attr] = _first(var, layers) or default
        legacy_used = False
        if _first("STACK_NAMESPACE", layers) is None:
            legacy = _first(LEGACY_NAMESPACE_VAR, layers)
            if legacy:
                values["stack_namespace"] = legacy
                legacy_used = True
        settings = cls(
            **values,  # type: ignore[arg-type]
            env_file=Path(env_file),
            attended=attended,
            dry_run=dry_run or _truthy(environ.get("PKOCTL_DRY_RUN")),
            debug=debug or _truthy(environ.get("DEBUG")),
            legacy_namespace_used=legacy_used,
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        errors = schema_errors(self.as_env(redacted=True), "settings.schema.json")
        if errors:
            raise ConfigError("invalid configuration: " + "; ".join(errors))

    def as_env(self, redacted: bool = False) -> dict[str, str]:
        out: dict[str, str] = {}
        for attr, (var, _default) in _ENV_FIELDS.items():
            value = str(getattr(self, attr))
            out[var] = redact(var, value) if redacted and value else value
        return out

    def missing(self, required: tuple[str, ...] | list[str]) -> list[str]:
        env = self.as_env()
        return [name for name in required if not env.get(name)]

    def describe(self) -> dict[str, object]:
        payload: dict[str, object] = dict(self.as_env(redacted=True))
        payload["ENV_FILE"] = str(self.env_file)
        payload["attended"] = self.attended
        payload["dry_run"] = self.dry_run
        payload["debug"] = self.debug
        return payload

    def replace(self, **changes: object) -> "Settings":
        data = asdict(self)
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ValueError(f"unknown settings fields: {sorted(unknown)}")
        data.update(changes)
        return Settings(**data)  # type: ignore[arg-type]
