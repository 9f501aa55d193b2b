"""Generation of Namespace resources for deployed kustomizations."""

from collections.abc import Iterable

from .flux import Namespace, ObjectMeta
from .substitution import ResolvedKustomization

__all__ = ["SYSTEM_NAMESPACES", "is_system_namespace", "generate_namespaces"]

SYSTEM_NAMESPACES = frozenset(
    {"default", "flux-system", "kube-system", "kube-public", "kube-node-lease"}
)


def is_system_namespace(name: str) -> bool:
    """Return True for namespaces that exist in every cluster."""
    return name in SYSTEM_NAMESPACES or name.startswith("kube-")


def namespace_names(resolved: Iterable[ResolvedKustomization]) -> list[str]:
    """Return the sorted namespaces to create for enabled kustomizations."""
    names: set[str] = set()
    for item in resolved:
        if not item.enabled:
            continue
        config = item.kustomization.namespace
        if config is None or not config.create:
            continue
        if not is_system_namespace(item.namespace):
            names.add(item.namespace)
    return sorted(names)


def generate_namespaces(resolved: Iterable[ResolvedKustomization]) -> list[Namespace]:
    """Return Namespace documents for the namespaces of enabled kustomizations."""
    return [Namespace(metadata=ObjectMeta(name=name)) for name in namespace_names(resolved)]
