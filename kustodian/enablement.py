"""Resolution of kustomization enablement and preservation for a cluster.

Templates are opt-in: a template not listed by the cluster has every one of
its kustomizations disabled. Within a listed template each kustomization
uses its own `enabled` default unless the cluster overrides it.

Preservation decides which resource kinds are labeled so that Flux does not
prune them when a kustomization is disabled.
"""

from collections.abc import Iterable
from dataclasses import dataclass
import logging

from .exceptions import EnablementException
from .graph import node_id
from .manifest import (
    Cluster,
    CrossTemplateRef,
    InvalidReferenceError,
    Kustomization,
    KustomizationOverride,
    PreservationMode,
    PreservationPolicy,
    RawExternalRef,
    Template,
    TemplateConfig,
    WithinTemplateRef,
    parse_dependency_ref,
)

__all__ = [
    "DEFAULT_STATEFUL_RESOURCES",
    "DisabledDependencyError",
    "get_template_config",
    "resolve_enabled",
    "resolve_preservation",
    "preserved_resource_kinds",
    "validate_enablement",
    "check_enablement",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_STATEFUL_RESOURCES = ("PersistentVolumeClaim", "Secret", "ConfigMap")
"""Resource kinds holding state, protected by the stateful preservation mode."""


def get_template_config(cluster: Cluster, template_name: str) -> TemplateConfig | None:
    """Return the cluster configuration of a template, None when not listed."""
    return cluster.get_template_config(template_name)


def _override(
    kustomization: Kustomization, template_config: TemplateConfig
) -> bool | KustomizationOverride | None:
    return template_config.kustomizations.get(kustomization.name)


def resolve_enabled(
    kustomization: Kustomization, template_config: TemplateConfig | None
) -> bool:
    """Return whether a kustomization is deployed to the cluster.

    A missing template config means the template is not deployed at all.
    """
    if template_config is None:
        return False
    override = _override(kustomization, template_config)
    if isinstance(override, bool):
        return override
    if override is not None and override.enabled is not None:
        return override.enabled
    return kustomization.enabled


def resolve_preservation(
    kustomization: Kustomization, template_config: TemplateConfig | None
) -> PreservationPolicy:
    """Return the preservation policy of a kustomization for the cluster.

    A cluster override replaces the mode and inherits the template's
    keep_resources when it does not list its own.
    """
    template_policy = kustomization.preservation or PreservationPolicy()
    if template_config is None:
        return template_policy
    override = _override(kustomization, template_config)
    if not isinstance(override, KustomizationOverride) or override.preservation is None:
        return template_policy
    keep_resources = override.preservation.keep_resources
    if keep_resources is None:
        keep_resources = template_policy.keep_resources
    return PreservationPolicy(mode=override.preservation.mode, keep_resources=keep_resources)


def preserved_resource_kinds(policy: PreservationPolicy) -> list[str]:
    """Return the resource kinds protected from deletion by the policy."""
    match policy.mode:
        case PreservationMode.NONE:
            return []
        case PreservationMode.STATEFUL:
            return list(DEFAULT_STATEFUL_RESOURCES)
        case PreservationMode.CUSTOM:
            return list(policy.keep_resources or [])
    raise ValueError(f"Unknown preservation mode: {policy.mode}")


@dataclass
class DisabledDependencyError:
    """An enabled kustomization that depends on a disabled one."""

    source: str
    """Id of the enabled kustomization."""

    target: str
    """Id of the disabled dependency."""

    @property
    def message(self) -> str:
        return (
            f"Enabled kustomization '{self.source}' depends on disabled "
            f"kustomization '{self.target}'. Either enable '{self.target}' "
            f"or disable '{self.source}'."
        )


def validate_enablement(
    cluster: Cluster, templates: Iterable[Template]
) -> list[DisabledDependencyError]:
    """Return every dependency of an enabled kustomization that is disabled.

    Raw references are outside the template set and are not checked. Malformed
    or missing references are left to the dependency graph validation.
    """
    templates = list(templates)
    enabled: dict[str, bool] = {}
    for template in templates:
        template_config = get_template_config(cluster, template.name)
        for ks in template.kustomizations:
            enabled[node_id(template.name, ks.name)] = resolve_enabled(
                ks, template_config
            )

    errors: list[DisabledDependencyError] = []
    for template in templates:
        for ks in template.kustomizations:
            source = node_id(template.name, ks.name)
            if not enabled[source]:
                continue
            for value in ks.depends_on:
                try:
                    ref = parse_dependency_ref(value)
                except InvalidReferenceError:
                    continue
                match ref:
                    case RawExternalRef():
                        continue
                    case WithinTemplateRef(kustomization=target_ks):
                        target = node_id(template.name, target_ks)
                    case CrossTemplateRef(template=target_template, kustomization=target_ks):
                        target = node_id(target_template, target_ks)
                if enabled.get(target) is False:
                    errors.append(DisabledDependencyError(source=source, target=target))
    return errors


def check_enablement(cluster: Cluster, templates: Iterable[Template]) -> None:
    """Raise EnablementException if an enabled kustomization has a disabled dependency."""
    if errors := validate_enablement(cluster, templates):
        _LOGGER.debug("Cluster '%s' has %d enablement errors", cluster.name, len(errors))
        raise EnablementException(errors)
