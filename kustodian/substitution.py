"""Resolution of substitution values and `${name}` interpolation.

Values for a kustomization are merged from lowest to highest precedence:

1. Template version entry defaults.
2. Kustomization substitution defaults.
3. Cluster values for the template.
4. Values injected by substitution providers after resolution.

The last tier is applied by the plugin registry during the after resolve
hook, see `kustodian.plugins`.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
import re
from typing import Any

from .enablement import resolve_enabled, resolve_preservation
from .manifest import (
    CORE_SUBSTITUTION_TYPES,
    DEFAULT_NAMESPACE,
    Kustomization,
    PreservationPolicy,
    Substitution,
    Template,
    TemplateConfig,
)

__all__ = [
    "SUBSTITUTION_PATTERN",
    "ResolvedKustomization",
    "SubstitutionValidation",
    "resolve_values",
    "resolve_kustomization",
    "substitute",
    "extract_variables",
    "required_substitutions",
    "validate_substitutions",
    "external_substitutions",
]

_LOGGER = logging.getLogger(__name__)

SUBSTITUTION_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

NAMESPACE_VARIABLE = "namespace"


@dataclass
class ResolvedKustomization:
    """A kustomization resolved against a cluster."""

    template: Template
    kustomization: Kustomization

    values: dict[str, str] = field(default_factory=dict)
    """Substitution values, mutated by providers during the after resolve hook."""

    namespace: str = DEFAULT_NAMESPACE
    """The target namespace."""

    enabled: bool = True
    preservation: PreservationPolicy = field(default_factory=PreservationPolicy)

    @property
    def name(self) -> str:
        """The identity name `<template>-<kustomization>`."""
        return self.kustomization.identity(self.template.name)


@dataclass
class SubstitutionValidation:
    """Result of checking cluster values against declared substitutions."""

    missing: list[str] = field(default_factory=list)
    """Substitutions without a default and without a cluster value."""

    unused: list[str] = field(default_factory=list)
    """Cluster values that no substitution declares."""

    @property
    def valid(self) -> bool:
        return not self.missing


def resolve_values(
    template: Template,
    kustomization: Kustomization,
    cluster_values: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge the template, kustomization and cluster tiers of values."""
    cluster_values = cluster_values or {}
    values: dict[str, str] = {}
    declared: list[str] = []
    for version in template.versions:
        declared.append(version.name)
        if version.default is not None:
            values[version.name] = version.default
    for sub in kustomization.substitutions:
        declared.append(sub.name)
        if sub.default is not None:
            values[sub.name] = sub.default
    for name in declared:
        if name in cluster_values:
            values[name] = cluster_values[name]
    return values


def resolve_kustomization(
    template: Template,
    kustomization: Kustomization,
    template_config: TemplateConfig | None,
) -> ResolvedKustomization:
    """Resolve values, namespace, enablement and preservation of a kustomization."""
    cluster_values = template_config.values if template_config is not None else {}
    values = resolve_values(template, kustomization, cluster_values)
    namespace = (
        kustomization.namespace.default
        if kustomization.namespace is not None
        else DEFAULT_NAMESPACE
    )
    values.setdefault(NAMESPACE_VARIABLE, namespace)
    return ResolvedKustomization(
        template=template,
        kustomization=kustomization,
        values=values,
        namespace=namespace,
        enabled=resolve_enabled(kustomization, template_config),
        preservation=resolve_preservation(kustomization, template_config),
    )


def _substitute_string(text: str, values: Mapping[str, str]) -> str:
    return SUBSTITUTION_PATTERN.sub(
        lambda match: values.get(match.group(1), match.group(0)), text
    )


def substitute(value: Any, values: Mapping[str, str]) -> Any:
    """Replace `${name}` tokens in all string leaves of a value.

    Mappings and sequences are walked recursively and a new structure is
    returned. Tokens without a value are kept verbatim.
    """
    if isinstance(value, str):
        return _substitute_string(value, values)
    if isinstance(value, Mapping):
        return {key: substitute(item, values) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [substitute(item, values) for item in value]
    return value


def extract_variables(text: str) -> list[str]:
    """Return the distinct variable names referenced in text, in order."""
    return list(dict.fromkeys(SUBSTITUTION_PATTERN.findall(text)))


def required_substitutions(kustomization: Kustomization) -> list[str]:
    """Return the names of substitutions that have no default."""
    return [sub.name for sub in kustomization.substitutions if sub.default is None]


def validate_substitutions(
    kustomization: Kustomization, cluster_values: Mapping[str, str] | None = None
) -> SubstitutionValidation:
    """Check cluster values against the declared substitutions."""
    cluster_values = cluster_values or {}
    declared = {sub.name for sub in kustomization.substitutions}
    return SubstitutionValidation(
        missing=[
            name
            for name in required_substitutions(kustomization)
            if name not in cluster_values
        ],
        unused=[name for name in cluster_values if name not in declared],
    )


def external_substitutions(
    resolved: Iterable[ResolvedKustomization],
) -> dict[str, list[Substitution]]:
    """Group substitutions needing an external provider by their type.

    Only enabled kustomizations are considered.
    """
    groups: dict[str, list[Substitution]] = {}
    for item in resolved:
        if not item.enabled:
            continue
        for sub in item.kustomization.substitutions:
            if (sub_type := sub.substitution_type) in CORE_SUBSTITUTION_TYPES:
                continue
            groups.setdefault(sub_type, []).append(sub)
    return groups
