"""Kubernetes, kind and Helm documents built as plain dicts and dumped with PyYAML."""

from __future__ import annotations

import base64
import copy
import time
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import yaml

from ..config.settings import Settings
from ..errors import ConfigError

SERVICE_ACCOUNT = "pulumi"
AUTH_DELEGATOR_BINDING = "pulumi:system:auth-delegator"
AWS_SECRET = "aws-credentials"
TOKEN_SECRET = "pulumi-access-token"
TOKEN_KEY = "accessToken"
PROGRAM_NAME = "pulumi-program"


def kind_cluster_config(cluster_name: str) -> dict[str, Any]:
    return {
        "kind": "Cluster",
        "apiVersion": "kind.x-k8s.io/v1alpha4",
        "name": cluster_name,
        "nodes": [
            {
                "role": "control-plane",
                "extraPortMappings": [
                    {"containerPort": 80, "hostPort": 8080, "protocol": "TCP"},
                    {"containerPort": 443, "hostPort": 8443, "protocol": "TCP"},
                ],
                "kubeadmConfigPatches": [
                    render(
                        {
                            "kind": "InitConfiguration",
                            "nodeRegistration": {"kubeletExtraArgs": {"node-labels": "ingress-ready=true"}},
                        }
                    )
                ],
            }
        ],
    }


def namespace(name: str) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": name, "labels": {"app.kubernetes.io/managed-by": "pkoctl"}},
    }


def service_account(stack_namespace: str) -> list[dict[str, Any]]:
    """The workspace service account and its auth-delegator binding."""
    return [
        {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {"name": SERVICE_ACCOUNT, "namespace": stack_namespace},
        },
        {
            "apiVersion": "rbac.authorization.k8s.io/v1",
            "kind": "ClusterRoleBinding",
            "metadata": {"name": AUTH_DELEGATOR_BINDING},
            "roleRef": {
                "apiGroup": "rbac.authorization.k8s.io",
                "kind": "ClusterRole",
                "name": "system:auth-delegator",
            },
            "subjects": [{"kind": "ServiceAccount", "name": SERVICE_ACCOUNT, "namespace": stack_namespace}],
        },
    ]


def _secret(name: str, ns: str, data: Mapping[str, str]) -> dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "Opaque",
        "metadata": {"name": name, "namespace": ns},
        "stringData": dict(data),
    }


def credentials_secret(settings: Settings, ns: str | None = None) -> dict[str, Any]:
    return _secret(
        AWS_SECRET,
        ns or settings.stack_namespace,
        {
            "AWS_ACCESS_KEY_ID": settings.aws_access_key_id,
            "AWS_SECRET_ACCESS_KEY": settings.aws_secret_access_key,
            "AWS_REGION": settings.aws_region,
        },
    )


def access_token_secret(settings: Settings) -> dict[str, Any]:
    return _secret(TOKEN_SECRET, settings.stack_namespace, {TOKEN_KEY: settings.pulumi_access_token})


def program(settings: Settings) -> dict[str, Any]:
    project = settings.project_name
    tags = {"Project": project, "ManagedBy": "pulumi-kubernetes-operator"}
    return {
        "apiVersion": "pulumi.com/v1",
        "kind": "Program",
        "metadata": {"name": PROGRAM_NAME, "namespace": settings.stack_namespace},
        "program": {
            "resources": {
                "bucket": {
                    "type": "aws:s3:BucketV2",
                    "properties": {"bucketPrefix": f"{project}-", "forceDestroy": True, "tags": tags},
                },
                "vpc": {
                    "type": "aws:ec2:Vpc",
                    "properties": {
                        "cidrBlock": "10.0.0.0/16",
                        "enableDnsHostnames": True,
                        "enableDnsSupport": True,
                        "tags": {**tags, "Name": f"{project}-vpc"},
                    },
                },
                "role": {
                    "type": "aws:iam:Role",
                    "properties": {
                        "namePrefix": f"{project}-",
                        "assumeRolePolicy": (
                            '{"Version":"2012-10-17","Statement":[{"Effect":"Allow",'
                            '"Principal":{"Service":"ec2.amazonaws.com"},"Action":"sts:AssumeRole"}]}'
                        ),
                        "tags": tags,
                    },
                },
            },
            "outputs": {
                "bucketName": "${bucket.id}",
                "vpcId": "${vpc.id}",
                "roleArn": "${role.arn}",
            },
        },
    }


def stack(settings: Settings) -> dict[str, Any]:
    def env_ref(key: str, secret: str, secret_key: str) -> tuple[str, dict[str, Any]]:
        return key, {"type": "Secret", "secret": {"name": secret, "key": secret_key}}

    env_refs = dict(
        [
            env_ref("AWS_ACCESS_KEY_ID", AWS_SECRET, "AWS_ACCESS_KEY_ID"),
            env_ref("AWS_SECRET_ACCESS_KEY", AWS_SECRET, "AWS_SECRET_ACCESS_KEY"),
            env_ref("AWS_REGION", AWS_SECRET, "AWS_REGION"),
            env_ref("PULUMI_ACCESS_TOKEN", TOKEN_SECRET, TOKEN_KEY),
        ]
    )
    return {
        "apiVersion": "pulumi.com/v1",
        "kind": "Stack",
        "metadata": {"name": settings.stack_name, "namespace": settings.stack_namespace},
        "spec": {
            "serviceAccountName": SERVICE_ACCOUNT,
            "stack": settings.pulumi_stack,
            "programRef": {"name": PROGRAM_NAME},
            "destroyOnFinalize": True,
            "refresh": True,
            "envRefs": env_refs,
            "config": {"aws:region": settings.aws_region},
        },
    }


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def deep_merge(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(dict(base))
    for key, value in overlay.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_values(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except OSError as exc:
        raise ConfigError(f"cannot read values file '{path}': {exc.strerror or exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"values file '{path}' is not valid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"values file '{path}': root must be a mapping")
    return data


def helm_values(
    settings: Settings,
    base_values: Mapping[str, Any],
    release_namespace: str,
    now: Callable[[], float] = time.time,
) -> dict[str, Any]:
    """Overlay settings-derived sections on the chart's base values."""
    project = settings.project_name
    environment = settings.pulumi_stack
    generated = {
        "global": {"namespace": {"name": release_namespace}},
        "aws": {
            "region": settings.aws_region,
            "credentials": {
                "secretName": AWS_SECRET,
                "accessKeyId": _b64(settings.aws_access_key_id),
                "secretAccessKey": _b64(settings.aws_secret_access_key),
                "awsRegion": _b64(settings.aws_region),
            },
        },
        "pulumi": {
            "backend": {"useLocal": True},
            "project": {"name": project},
            "stack": {"name": project, "environment": environment},
        },
        "project": {
            "name": project,
            "environment": environment,
            "bucketName": f"{project}-{environment}-bucket-{int(now())}",
        },
        "operatorNamespace": settings.operator_namespace,
    }
    return deep_merge(base_values, generated)


def render(doc: Mapping[str, Any]) -> str:
    return yaml.safe_dump(dict(doc), sort_keys=False, default_flow_style=False)


def render_all(docs: Iterable[Mapping[str, Any]]) -> str:
    return yaml.safe_dump_all([dict(doc) for doc in docs], sort_keys=False, default_flow_style=False)
