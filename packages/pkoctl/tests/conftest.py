from __future__ import annotations

import socket
from pathlib import Path

import pytest
from hypothesis import settings
from hypothesis.database import DirectoryBasedExampleDatabase

from helpers import Harness, make_harness
from pkoctl.config.settings import Settings

_ALLOWED_MARKERS = {"unit", "integration", "slow"}

_ROOT = Path(__file__).resolve().parents[3]
_HYPOTHESIS_DB = _ROOT / "artifacts/pkoctl/.hypothesis/examples"
_HYPOTHESIS_DB.parent.mkdir(parents=True, exist_ok=True)
settings.register_profile("pkoctl", database=DirectoryBasedExampleDatabase(_HYPOTHESIS_DB))
settings.load_profile("pkoctl")

_ENV_VARS = (
    "CLUSTER_NAME",
    "OPERATOR_NAMESPACE",
    "STACK_NAMESPACE",
    "NAMESPACE",
    "STACK_NAME",
    "PROJECT_NAME",
    "PULUMI_STACK",
    "AWS_REGION",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "PULUMI_ACCESS_TOKEN",
    "ARGOCD_NAMESPACE",
    "ARGOCD_VERSION",
    "OPERATOR_VERSION",
    "KIND_VERSION",
    "DEBUG",
    "CI",
    "PKOCTL_NONINTERACTIVE",
    "PKOCTL_DRY_RUN",
    "RUN_ID",
    "FORCE_COLOR",
)


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        names = {mark.name for mark in item.iter_markers()}
        if not names.intersection(_ALLOWED_MARKERS):
            item.add_marker("unit")


@pytest.fixture(autouse=True)
def no_network_for_unit(request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch) -> None:
    if request.node.get_closest_marker("integration") or request.node.get_closest_marker("slow"):
        return

    def _blocked(*_args: object, **_kwargs: object) -> socket.socket:
        raise RuntimeError("network disabled in unit tests")

    def _blocked_connect(*_args: object, **_kwargs: object) -> None:
        raise RuntimeError("network disabled in unit tests")

    monkeypatch.setattr(socket, "create_connection", _blocked)
    monkeypatch.setattr(socket.socket, "connect", _blocked_connect)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def credentials() -> Settings:
    return Settings(
        attended=False,
        aws_access_key_id="AKIAEXAMPLE",
        aws_secret_access_key="wJalrXUtnFEMI",
        pulumi_access_token="pul-0123456789",
    )


@pytest.fixture
def harness(tmp_path: Path) -> Harness:
    return make_harness(tmp_path)
