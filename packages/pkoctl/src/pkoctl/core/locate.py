"""Ordered first-match lookups for namespaces and resources."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable, Optional

from .probe import Probe

if TYPE_CHECKING:
    from ..config.settings import Settings
    from ..ops.adapters.kubectl import Kubectl

Strategy = Callable[[], Optional[str]]
ExistsFn = Callable[[str, str, str], Probe]

OPERATOR_DEPLOYMENT = "pulumi-kubernetes-operator-controller-manager"
OPERATOR_FALLBACK_NAMESPACES = ("pulumi-kubernetes-operator", "pulumi-system")
STACK_RESOURCE = "stacks.pulumi.com"


def first_match(strategies: Iterable[Strategy]) -> str | None:
    for strategy in strategies:
        found = strategy()
        if found is not None:
            return found
    return None


def namespace_candidates(*names: str) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for name in names:
        if name and name not in seen:
            seen.add(name)
            ordered.append(name)
    return ordered


def _probe_in(namespace: str, kind: str, name: str, exists: ExistsFn) -> Strategy:
    def strategy() -> str | None:
        return namespace if exists(kind, name, namespace) is Probe.SUCCESS else None

    return strategy


def locate_namespace(candidates: Iterable[str], kind: str, name: str, exists: ExistsFn) -> str | None:
    return first_match(_probe_in(ns, kind, name, exists) for ns in candidates)


def find_operator_namespace(settings: Settings, kubectl: Kubectl) -> str | None:
    candidates = namespace_candidates(settings.operator_namespace, *OPERATOR_FALLBACK_NAMESPACES)
    return locate_namespace(candidates, "deployment", OPERATOR_DEPLOYMENT, kubectl.exists)


def find_stack_namespaces(kubectl: Kubectl) -> list[str]:
    return kubectl.namespaces_with(STACK_RESOURCE)
