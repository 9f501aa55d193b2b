"""Generation of Flux manifests for a cluster.

The generator validates the dependency graph and enablement, resolves every
kustomization of the templates the cluster lists, lets plugins adjust the
resolved values, then builds a Flux Kustomization for every enabled
kustomization along with the cluster level resources.

Example usage:

```python
from kustodian.generator import Generator, GenerateOptions
from kustodian.plugins import PluginRegistry

generator = Generator(registry=PluginRegistry())
result = await generator.generate(cluster, templates, GenerateOptions())
for item in result.kustomizations:
    print(item.name, item.manifest.spec.path)
```
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

from .enablement import check_enablement, get_template_config, preserved_resource_kinds
from .exceptions import HookException, InputException
from .flux import (
    DEFAULT_HEALTH_CHECK_API_VERSION,
    DEFAULT_INTERVAL,
    DEFAULT_NAMESPACE,
    DEFAULT_SOURCE_NAME,
    DEFAULT_TIMEOUT,
    GIT_REPOSITORY,
    OCI_REPOSITORY,
    CustomHealthCheck,
    DependsOn,
    FluxKustomization,
    FluxKustomizationSpec,
    HealthCheck,
    Namespace,
    OCIRepository,
    ObjectMeta,
    Patch,
    PostBuild,
    SourceRef,
    generate_controller_patches,
    generate_oci_repository,
    preservation_patches,
)
from .graph import validate_dependencies
from .hooks import ADDITIONAL_FILES, AFTER_RESOLVE, BEFORE_WRITE, HookContext
from .manifest import (
    Cluster,
    CrossTemplateRef,
    InvalidReferenceError,
    RawExternalRef,
    Template,
    WithinTemplateRef,
    parse_dependency_ref,
)
from .namespace import generate_namespaces
from .plugins import PluginRegistry
from .substitution import ResolvedKustomization, resolve_kustomization

__all__ = [
    "DEFAULT_BASE_PATH",
    "GeneratorOptions",
    "GenerateOptions",
    "GenerationSettings",
    "GeneratedKustomization",
    "GenerationResult",
    "Generator",
    "generate_kustomization",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_PATH = "./templates"
DEFAULT_OUTPUT_DIR = "output"


@dataclass
class GeneratorOptions:
    """Generator wide defaults, overridden by cluster defaults."""

    base_path: str = DEFAULT_BASE_PATH
    """Path of the templates directory within the source artifact."""

    interval: str = DEFAULT_INTERVAL
    timeout: str = DEFAULT_TIMEOUT
    flux_namespace: str = DEFAULT_NAMESPACE
    source_repository_name: str = DEFAULT_SOURCE_NAME


@dataclass
class GenerateOptions:
    """Options for a single generation run."""

    output_dir: Path = field(default_factory=lambda: Path(DEFAULT_OUTPUT_DIR))
    """Directory the output writer places the result in."""

    skip_validation: bool = False
    """Skip the dependency graph and enablement validation."""

    include_preserved: bool = False
    """Also emit disabled kustomizations that preserve resources."""


@dataclass
class GenerationSettings:
    """Effective settings for generating the manifests of a cluster."""

    base_path: str
    interval: str
    timeout: str
    flux_namespace: str
    source_repository_name: str
    source_kind: str

    @classmethod
    def for_cluster(cls, cluster: Cluster, options: GeneratorOptions) -> "GenerationSettings":
        """Combine the generator options with the cluster defaults."""
        defaults = cluster.defaults
        return cls(
            base_path=options.base_path,
            interval=(
                defaults and defaults.flux_reconciliation_interval
            ) or options.interval,
            timeout=(defaults and defaults.flux_reconciliation_timeout) or options.timeout,
            flux_namespace=(defaults and defaults.flux_namespace) or options.flux_namespace,
            source_repository_name=(
                defaults and defaults.oci_repository_name
            ) or options.source_repository_name,
            source_kind=OCI_REPOSITORY if cluster.oci is not None else GIT_REPOSITORY,
        )


@dataclass
class GeneratedKustomization:
    """A generated Flux Kustomization and the template it belongs to."""

    name: str
    template: str
    manifest: FluxKustomization
    preserved: bool = False
    """True when generated for a disabled kustomization to keep its resources."""


@dataclass
class GenerationResult:
    """Everything generated for a cluster."""

    cluster: str
    output_dir: Path
    kustomizations: list[GeneratedKustomization] = field(default_factory=list)
    oci_repository: OCIRepository | None = None
    namespaces: list[Namespace] = field(default_factory=list)
    controller_patches: list[Patch] | None = None
    additional_files: dict[str, Any] = field(default_factory=dict)
    """Documents contributed by plugins, keyed by path relative to output_dir."""


def manifest_path(resolved: ResolvedKustomization, base_path: str) -> str:
    """Return the path of the kustomization within the source artifact."""
    template = resolved.template
    path = resolved.kustomization.path.removeprefix("./")
    return f"{base_path}/{template.source_path or template.name}/{path}"


def _depends_on(resolved: ResolvedKustomization) -> list[DependsOn]:
    entries = []
    for value in resolved.kustomization.depends_on:
        try:
            ref = parse_dependency_ref(value)
        except InvalidReferenceError as err:
            raise InputException(f"Kustomization '{resolved.name}': {err}") from err
        match ref:
            case RawExternalRef(name=name, namespace=namespace):
                entries.append(DependsOn(name=name, namespace=namespace))
            case WithinTemplateRef(kustomization=kustomization):
                entries.append(DependsOn(name=f"{resolved.template.name}-{kustomization}"))
            case CrossTemplateRef(template=template, kustomization=kustomization):
                entries.append(DependsOn(name=f"{template}-{kustomization}"))
    return entries


def generate_kustomization(
    resolved: ResolvedKustomization,
    settings: GenerationSettings,
    preserved_kinds: list[str] | None = None,
    preserved: bool = False,
) -> FluxKustomization:
    """Build the Flux Kustomization for a resolved kustomization.

    Preservation patches are added for each of the preserved kinds. A
    preserved kustomization is never pruned.
    """
    ks = resolved.kustomization
    namespace = resolved.namespace
    depends_on = _depends_on(resolved)
    health_checks = [
        HealthCheck(
            api_version=check.api_version or DEFAULT_HEALTH_CHECK_API_VERSION,
            kind=check.kind,
            name=check.name,
            namespace=check.namespace or namespace,
        )
        for check in ks.health_checks
    ]
    custom_health_checks = [
        CustomHealthCheck(
            api_version=expr.api_version,
            kind=expr.kind,
            namespace=expr.namespace or namespace,
            current=expr.current,
            failed=expr.failed,
        )
        for expr in ks.health_check_exprs
    ]
    patches = preservation_patches(preserved_kinds or [])
    return FluxKustomization(
        metadata=ObjectMeta(name=resolved.name, namespace=settings.flux_namespace),
        spec=FluxKustomizationSpec(
            interval=settings.interval,
            target_namespace=namespace,
            path=manifest_path(resolved, settings.base_path),
            prune=ks.prune and not preserved,
            wait=ks.wait,
            source_ref=SourceRef(
                kind=settings.source_kind, name=settings.source_repository_name
            ),
            timeout=ks.timeout or settings.timeout,
            retry_interval=ks.retry_interval,
            depends_on=depends_on or None,
            post_build=PostBuild(substitute=dict(resolved.values)) if resolved.values else None,
            health_checks=health_checks or None,
            custom_health_checks=custom_health_checks or None,
            patches=patches or None,
        ),
    )


class Generator:
    """Generates the Flux manifests of clusters from templates."""

    def __init__(
        self,
        options: GeneratorOptions | None = None,
        registry: PluginRegistry | None = None,
    ) -> None:
        """Initialize Generator."""
        self._options = options or GeneratorOptions()
        self._registry = registry or PluginRegistry()

    def resolve(
        self, cluster: Cluster, templates: Iterable[Template]
    ) -> list[ResolvedKustomization]:
        """Resolve every kustomization of the templates listed by the cluster."""
        resolved = []
        for template in templates:
            if (template_config := get_template_config(cluster, template.name)) is None:
                _LOGGER.debug(
                    "Template '%s' not listed by cluster '%s'", template.name, cluster.name
                )
                continue
            for ks in template.kustomizations:
                resolved.append(resolve_kustomization(template, ks, template_config))
        return resolved

    async def generate(
        self,
        cluster: Cluster,
        templates: Iterable[Template],
        options: GenerateOptions | None = None,
    ) -> GenerationResult:
        """Generate the manifests for a cluster."""
        options = options or GenerateOptions()
        templates = list(templates)
        if not options.skip_validation:
            validate_dependencies(templates)
            check_enablement(cluster, templates)

        settings = GenerationSettings.for_cluster(cluster, self._options)
        dispatcher = self._registry.dispatcher
        context = HookContext(
            cluster=cluster,
            templates=templates,
            kustomizations=self.resolve(cluster, templates),
        )
        context = await dispatcher.dispatch(AFTER_RESOLVE, context)

        result = GenerationResult(cluster=cluster.name, output_dir=options.output_dir)
        for resolved in context.kustomizations:
            if resolved.enabled:
                manifest = generate_kustomization(resolved, settings)
                preserved = False
            elif options.include_preserved and (
                kinds := preserved_resource_kinds(resolved.preservation)
            ):
                manifest = generate_kustomization(
                    resolved, settings, kinds, preserved=True
                )
                preserved = True
            else:
                continue
            result.kustomizations.append(
                GeneratedKustomization(
                    name=resolved.name,
                    template=resolved.template.name,
                    manifest=manifest,
                    preserved=preserved,
                )
            )
        if cluster.oci is not None:
            result.oci_repository = generate_oci_repository(
                cluster,
                cluster.oci,
                repository_name=settings.source_repository_name,
                flux_namespace=settings.flux_namespace,
                interval=settings.interval,
            )
        result.controller_patches = generate_controller_patches(cluster.flux)
        result.namespaces = generate_namespaces(context.kustomizations)
        _LOGGER.debug(
            "Generated %d kustomizations for cluster '%s'",
            len(result.kustomizations),
            cluster.name,
        )

        context.result = result
        context = await dispatcher.dispatch(BEFORE_WRITE, context)
        if context.result is None:
            raise HookException(BEFORE_WRITE, "the generation result was removed")
        result = context.result
        if additional_files := context.get_extension(ADDITIONAL_FILES, dict):
            result.additional_files.update(additional_files)
        return result
