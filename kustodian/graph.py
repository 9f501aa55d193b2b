"""Dependency graph of kustomizations across a set of templates.

The graph has one node per kustomization, identified by
`<template>-<kustomization>`, with an edge to every kustomization it depends
on. Raw references to resources outside the template set are not part of
the graph.

Structural problems are accumulated so that a caller can report every
problem in one pass, then cycles are detected with a depth first search
that also yields the topological order used for deployment.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
import logging

from .exceptions import DependencyCycleException, DependencyGraphException
from .manifest import (
    CrossTemplateRef,
    InvalidReferenceError,
    RawExternalRef,
    Template,
    WithinTemplateRef,
    parse_dependency_ref,
)

__all__ = [
    "GraphNode",
    "GraphError",
    "Cycle",
    "CycleDetectionResult",
    "build_graph",
    "detect_cycles",
    "validate_dependencies",
]

_LOGGER = logging.getLogger(__name__)

CYCLE_ARROW = " → "


def node_id(template_name: str, kustomization_name: str) -> str:
    """Return the graph node id of a kustomization."""
    return f"{template_name}-{kustomization_name}"


@dataclass
class GraphNode:
    """A kustomization in the dependency graph."""

    id: str
    """The node id `<template>-<kustomization>`."""

    template: str
    """Name of the template declaring the kustomization."""

    kustomization: str
    """Name of the kustomization within its template."""

    dependencies: list[str] = field(default_factory=list)
    """Ids of nodes this node depends on, in declaration order."""


@dataclass
class GraphError(ABC):
    """A structural problem found while building the graph."""

    source: str
    """Id of the node declaring the faulty reference."""

    @property
    @abstractmethod
    def message(self) -> str:
        """Describe the problem."""


@dataclass
class MalformedReferenceError(GraphError):
    """A dependency reference that could not be parsed."""

    reference: str
    reason: str

    @property
    def message(self) -> str:
        return f"Kustomization '{self.source}': {self.reason}"


@dataclass
class SelfReferenceError(GraphError):
    """A kustomization that depends on itself."""

    @property
    def message(self) -> str:
        return f"Kustomization '{self.source}' cannot depend on itself"


@dataclass
class MissingReferenceError(GraphError):
    """A dependency on a kustomization that does not exist."""

    target: str

    @property
    def message(self) -> str:
        return (
            f"Kustomization '{self.source}' depends on '{self.target}' "
            "which does not exist"
        )


@dataclass
class Cycle:
    """A dependency cycle, the first and last node of the path are the same."""

    path: list[str]

    @property
    def message(self) -> str:
        return f"Dependency cycle detected: {CYCLE_ARROW.join(self.path)}"


@dataclass
class CycleDetectionResult:
    """Result of running cycle detection over the graph."""

    cycles: list[Cycle]
    """Every cycle found, empty for an acyclic graph."""

    topological_order: list[str] | None
    """Node ids with dependencies before dependents, None when cycles exist."""


def build_graph(
    templates: Iterable[Template],
) -> tuple[dict[str, GraphNode], list[GraphError]]:
    """Build the dependency graph for all kustomizations of the templates.

    Errors do not stop the build, the returned graph holds every edge that
    could be resolved.
    """
    templates = list(templates)
    nodes: dict[str, GraphNode] = {}
    for template in templates:
        for ks in template.kustomizations:
            ks_id = node_id(template.name, ks.name)
            nodes[ks_id] = GraphNode(
                id=ks_id, template=template.name, kustomization=ks.name
            )

    errors: list[GraphError] = []
    for template in templates:
        for ks in template.kustomizations:
            node = nodes[node_id(template.name, ks.name)]
            for value in ks.depends_on:
                try:
                    ref = parse_dependency_ref(value)
                except InvalidReferenceError as err:
                    errors.append(
                        MalformedReferenceError(
                            source=node.id, reference=str(value), reason=err.message
                        )
                    )
                    continue
                match ref:
                    case RawExternalRef():
                        continue
                    case WithinTemplateRef(kustomization=target_ks):
                        target = node_id(template.name, target_ks)
                    case CrossTemplateRef(template=target_template, kustomization=target_ks):
                        target = node_id(target_template, target_ks)
                if target == node.id:
                    errors.append(SelfReferenceError(source=node.id))
                elif target not in nodes:
                    errors.append(MissingReferenceError(source=node.id, target=target))
                else:
                    node.dependencies.append(target)

    _LOGGER.debug("Built graph with %d nodes and %d errors", len(nodes), len(errors))
    return nodes, errors


class _Color(Enum):
    WHITE = 0
    GRAY = 1
    BLACK = 2


def detect_cycles(nodes: dict[str, GraphNode]) -> CycleDetectionResult:
    """Find all cycles and the topological order of the graph.

    Every unvisited node is a new root so disconnected components are
    covered. A back edge to a node on the current path yields a cycle and
    the search continues so that independent cycles are all reported.
    """
    color = {node: _Color.WHITE for node in nodes}
    order: list[str] = []
    cycles: list[Cycle] = []

    for root in nodes:
        if color[root] != _Color.WHITE:
            continue
        color[root] = _Color.GRAY
        path = [root]
        stack: list[Iterator[str]] = [iter(nodes[root].dependencies)]
        while stack:
            if (dep := next(stack[-1], None)) is None:
                stack.pop()
                current = path.pop()
                color[current] = _Color.BLACK
                order.append(current)
                continue
            if dep not in nodes:
                continue
            if color[dep] == _Color.GRAY:
                start = path.index(dep)
                cycles.append(Cycle(path=[*path[start:], dep]))
            elif color[dep] == _Color.WHITE:
                color[dep] = _Color.GRAY
                path.append(dep)
                stack.append(iter(nodes[dep].dependencies))

    if cycles:
        _LOGGER.debug("Found %d dependency cycles", len(cycles))
        return CycleDetectionResult(cycles=cycles, topological_order=None)
    return CycleDetectionResult(cycles=[], topological_order=order)


def validate_dependencies(templates: Iterable[Template]) -> list[str]:
    """Validate the dependency graph and return the topological order.

    Raises DependencyGraphException with every structural error, or
    DependencyCycleException with every cycle.
    """
    nodes, errors = build_graph(templates)
    if errors:
        raise DependencyGraphException(errors)
    result = detect_cycles(nodes)
    if result.cycles:
        raise DependencyCycleException(result.cycles)
    return result.topological_order or []
