"""Representation of kustodian Template and Cluster resources.

Templates are reusable bundles of kustomizations and Clusters select which
templates are deployed and with what values. Objects here are plain data: they
are built by the loader from already parsed YAML documents and consumed by the
generator.
"""

from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin
from mashumaro.codecs.yaml import yaml_encode
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "Template",
    "Kustomization",
    "Cluster",
    "TemplateConfig",
    "Substitution",
    "DependencyRef",
    "parse_substitution",
    "parse_dependency_ref",
]

_LOGGER = logging.getLogger(__name__)


KUSTODIAN_DOMAIN = "kustodian.io"
TEMPLATE_KIND = "Template"
CLUSTER_KIND = "Cluster"
DEFAULT_NAMESPACE = "default"


def _check_kind(doc: dict[str, Any], kind: str) -> None:
    """Assert that the resource has the expected apiVersion group and kind."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(KUSTODIAN_DOMAIN):
        raise InputException(f"Invalid object expected '{KUSTODIAN_DOMAIN}': {doc}")
    if doc.get("kind") != kind:
        raise InputException(f"Invalid object expected kind '{kind}': {doc}")


def _metadata_name(cls: type, doc: dict[str, Any]) -> str:
    if not (metadata := doc.get("metadata")):
        raise InputException(f"Invalid {cls.__name__} missing metadata: {doc}")
    if not (name := metadata.get("name")):
        raise InputException(f"Invalid {cls.__name__} missing metadata.name: {doc}")
    return str(name)


def _string_values(values: dict[str, Any] | None) -> dict[str, str]:
    """Coerce scalar YAML values into the strings used for substitution."""
    result: dict[str, str] = {}
    for key, value in (values or {}).items():
        if isinstance(value, bool):
            result[key] = "true" if value else "false"
        else:
            result[key] = str(value)
    return result


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all model objects."""

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True


@dataclass
class RegistryConfig(BaseManifest):
    """Container registry used to look up image versions."""

    image: str
    """Full image reference, e.g. ghcr.io/org/image."""

    type: str | None = None
    """Registry API flavor, e.g. dockerhub or ghcr."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "RegistryConfig":
        if not (image := doc.get("image")):
            raise InputException(f"Invalid {cls.__name__} missing image: {doc}")
        return cls(image=image, type=doc.get("type"))


@dataclass
class HelmConfig(BaseManifest):
    """Helm chart repository used to look up chart versions."""

    chart: str
    """Chart name."""

    repository: str | None = None
    """Helm repository URL."""

    oci: str | None = None
    """OCI registry URL holding the chart."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "HelmConfig":
        if not (chart := doc.get("chart")):
            raise InputException(f"Invalid {cls.__name__} missing chart: {doc}")
        repository = doc.get("repository")
        oci = doc.get("oci")
        if repository is None and oci is None:
            raise InputException(
                f"Invalid {cls.__name__} requires either repository or oci: {doc}"
            )
        if oci is not None and not oci.startswith("oci://"):
            raise InputException(f"Invalid {cls.__name__} oci must be oci://: {doc}")
        return cls(chart=chart, repository=repository, oci=oci)


@dataclass(kw_only=True)
class VersionEntry(BaseManifest):
    """A template-wide version variable shared by all kustomizations."""

    name: str
    """The substitution variable name."""

    default: str | None = None
    """The version used when the cluster does not override it."""

    constraint: str | None = None
    """Semver constraint such as ^1.0.0."""

    tag_pattern: str | None = None
    """Regex pattern for filtering valid tags."""

    exclude_prerelease: bool | None = None
    """Whether pre-release versions are ignored."""


@dataclass(kw_only=True)
class ImageVersionEntry(VersionEntry):
    """Version entry tracking a container image."""

    registry: RegistryConfig


@dataclass(kw_only=True)
class HelmVersionEntry(VersionEntry):
    """Version entry tracking a helm chart."""

    helm: HelmConfig


def parse_version_entry(doc: dict[str, Any]) -> VersionEntry:
    """Parse a version entry discriminated by its registry or helm payload."""
    if not (name := doc.get("name")):
        raise InputException(f"Invalid version entry missing name: {doc}")
    registry = doc.get("registry")
    helm = doc.get("helm")
    if (registry is None) == (helm is None):
        raise InputException(
            f"Invalid version entry '{name}' requires exactly one of registry or helm: {doc}"
        )
    common: dict[str, Any] = {
        "name": name,
        "default": None if doc.get("default") is None else str(doc["default"]),
        "constraint": doc.get("constraint"),
        "tag_pattern": doc.get("tag_pattern"),
        "exclude_prerelease": doc.get("exclude_prerelease"),
    }
    if registry is not None:
        return ImageVersionEntry(registry=RegistryConfig.parse_doc(registry), **common)
    return HelmVersionEntry(helm=HelmConfig.parse_doc(helm), **common)


@dataclass(kw_only=True)
class Substitution(BaseManifest):
    """A named template variable with an optional default."""

    type_name: ClassVar[str] = "generic"
    """The `type` discriminator in template documents."""

    name: str
    """The variable name referenced as ${name}."""

    default: str | None = None
    """The value used when no higher precedence value is supplied."""

    @property
    def substitution_type(self) -> str:
        """The type used to select a substitution provider."""
        return self.type_name


@dataclass(kw_only=True)
class GenericSubstitution(Substitution):
    """A plain value substitution."""

    type_name: ClassVar[str] = "generic"

    secret: str | None = None
    preserve_case: bool | None = None


@dataclass(kw_only=True)
class VersionSubstitution(Substitution):
    """A container image version substitution."""

    type_name: ClassVar[str] = "version"

    registry: RegistryConfig | None = None
    constraint: str | None = None
    tag_pattern: str | None = None
    exclude_prerelease: bool | None = None


@dataclass(kw_only=True)
class HelmSubstitution(Substitution):
    """A helm chart version substitution."""

    type_name: ClassVar[str] = "helm"

    helm: HelmConfig | None = None
    constraint: str | None = None
    tag_pattern: str | None = None
    exclude_prerelease: bool | None = None


@dataclass(kw_only=True)
class NamespaceSubstitution(Substitution):
    """A substitution holding a kubernetes namespace name."""

    type_name: ClassVar[str] = "namespace"


@dataclass(kw_only=True)
class OnePasswordSubstitution(Substitution):
    """A secret resolved from a 1Password vault by an external provider."""

    type_name: ClassVar[str] = "1password"

    ref: str | None = None
    """Secret reference op://vault/item[/section]/field."""

    item: str | None = None
    field: str | None = None
    section: str | None = None


@dataclass(kw_only=True)
class DopplerSubstitution(Substitution):
    """A secret resolved from a Doppler project by an external provider."""

    type_name: ClassVar[str] = "doppler"

    secret: str
    project: str | None = None
    config: str | None = None


@dataclass(kw_only=True)
class PluginSubstitution(Substitution):
    """A substitution of a type contributed by a plugin."""

    plugin_type: str
    """The `type` of the substitution, matched against registered providers."""

    options: dict[str, Any] = field(default_factory=dict)
    """Provider specific fields, validated by the provider."""

    @property
    def substitution_type(self) -> str:
        return self.plugin_type


CORE_SUBSTITUTION_TYPES = frozenset(
    {
        GenericSubstitution.type_name,
        VersionSubstitution.type_name,
        HelmSubstitution.type_name,
        NamespaceSubstitution.type_name,
    }
)


def _optional_str(doc: dict[str, Any], key: str) -> str | None:
    if (value := doc.get(key)) is None:
        return None
    return str(value)


def parse_substitution(doc: dict[str, Any]) -> Substitution:
    """Parse a substitution document using its `type` as the discriminator.

    Documents without a type are generic substitutions. Any unknown type is
    kept as a PluginSubstitution so that providers can be added without
    changes to the model.
    """
    if not (name := doc.get("name")):
        raise InputException(f"Invalid substitution missing name: {doc}")
    sub_type = doc.get("type") or GenericSubstitution.type_name
    default = _optional_str(doc, "default")
    if sub_type == GenericSubstitution.type_name:
        return GenericSubstitution(
            name=name,
            default=default,
            secret=doc.get("secret"),
            preserve_case=doc.get("preserve_case"),
        )
    if sub_type == VersionSubstitution.type_name:
        registry = doc.get("registry")
        return VersionSubstitution(
            name=name,
            default=default,
            registry=RegistryConfig.parse_doc(registry) if registry else None,
            constraint=doc.get("constraint"),
            tag_pattern=doc.get("tag_pattern"),
            exclude_prerelease=doc.get("exclude_prerelease"),
        )
    if sub_type == HelmSubstitution.type_name:
        helm = doc.get("helm")
        return HelmSubstitution(
            name=name,
            default=default,
            helm=HelmConfig.parse_doc(helm) if helm else None,
            constraint=doc.get("constraint"),
            tag_pattern=doc.get("tag_pattern"),
            exclude_prerelease=doc.get("exclude_prerelease"),
        )
    if sub_type == NamespaceSubstitution.type_name:
        return NamespaceSubstitution(name=name, default=default)
    if sub_type == OnePasswordSubstitution.type_name:
        ref = doc.get("ref")
        if ref is None and (doc.get("item") is None or doc.get("field") is None):
            raise InputException(
                f"Invalid 1password substitution '{name}' requires ref or item and field: {doc}"
            )
        return OnePasswordSubstitution(
            name=name,
            default=default,
            ref=ref,
            item=doc.get("item"),
            field=doc.get("field"),
            section=doc.get("section"),
        )
    if sub_type == DopplerSubstitution.type_name:
        if not (secret := doc.get("secret")):
            raise InputException(
                f"Invalid doppler substitution '{name}' missing secret: {doc}"
            )
        return DopplerSubstitution(
            name=name,
            default=default,
            secret=secret,
            project=doc.get("project"),
            config=doc.get("config"),
        )
    options = {k: v for k, v in doc.items() if k not in ("type", "name", "default")}
    return PluginSubstitution(
        name=name, default=default, plugin_type=sub_type, options=options
    )


@dataclass(frozen=True)
class WithinTemplateRef:
    """Dependency on a kustomization of the declaring template."""

    kustomization: str


@dataclass(frozen=True)
class CrossTemplateRef:
    """Dependency on a kustomization of another template."""

    template: str
    kustomization: str


@dataclass(frozen=True)
class RawExternalRef:
    """Dependency on a Flux Kustomization outside the known templates."""

    name: str
    namespace: str


DependencyRef = WithinTemplateRef | CrossTemplateRef | RawExternalRef


class InvalidReferenceError(ValueError):
    """A dependency reference that cannot be parsed."""

    def __init__(self, reference: Any, message: str) -> None:
        super().__init__(message)
        self.reference = reference
        self.message = message


def parse_dependency_ref(value: Any) -> DependencyRef:
    """Parse a dependency reference.

    Accepted forms are a kustomization name (`db`), a template qualified
    name (`secrets/doppler`), or a raw mapping
    `{raw: {name: ..., namespace: ...}}`. Already parsed references are
    returned unchanged.
    """
    if isinstance(value, (WithinTemplateRef, CrossTemplateRef, RawExternalRef)):
        return value
    if isinstance(value, dict):
        raw = value.get("raw")
        if not isinstance(raw, dict) or not raw.get("name") or not raw.get("namespace"):
            raise InvalidReferenceError(
                value,
                f"Invalid raw dependency reference: {value} - expected raw.name and raw.namespace",
            )
        return RawExternalRef(name=raw["name"], namespace=raw["namespace"])
    if not isinstance(value, str):
        raise InvalidReferenceError(value, f"Invalid dependency reference: {value!r}")
    trimmed = value.strip()
    if not trimmed:
        raise InvalidReferenceError(value, "Empty dependency reference")
    parts = trimmed.split("/")
    if len(parts) == 1:
        return WithinTemplateRef(kustomization=trimmed)
    if len(parts) == 2:
        template, kustomization = parts
        if not template or not kustomization:
            raise InvalidReferenceError(
                value,
                f"Invalid dependency reference format: '{value}' - both template "
                "and kustomization names must be non-empty",
            )
        return CrossTemplateRef(template=template, kustomization=kustomization)
    raise InvalidReferenceError(
        value,
        f"Invalid dependency reference format: '{value}' - expected "
        "'kustomization' or 'template/kustomization'",
    )


@dataclass
class NamespaceConfig(BaseManifest):
    """Target namespace of a kustomization."""

    default: str
    """The namespace name."""

    create: bool = True
    """Whether a Namespace resource should be generated."""


@dataclass
class HealthCheck(BaseManifest):
    """A resource Flux waits on before marking the kustomization ready."""

    kind: str
    name: str
    namespace: str | None = None
    api_version: str | None = None


@dataclass
class HealthCheckExpr(BaseManifest):
    """A CEL based custom health check."""

    api_version: str
    kind: str
    namespace: str | None = None
    current: str | None = None
    """CEL expression for when the resource is healthy."""

    failed: str | None = None
    """CEL expression for when the resource has failed."""


class PreservationMode(StrEnum):
    """How resources of a disabled kustomization are protected from deletion."""

    NONE = "none"
    STATEFUL = "stateful"
    CUSTOM = "custom"


@dataclass
class PreservationPolicy(BaseManifest):
    """Preservation policy applied when a kustomization is disabled."""

    mode: PreservationMode = PreservationMode.STATEFUL
    keep_resources: list[str] | None = None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "PreservationPolicy":
        mode = doc.get("mode", PreservationMode.STATEFUL.value)
        try:
            preservation_mode = PreservationMode(mode)
        except ValueError:
            raise InputException(f"Invalid preservation mode '{mode}': {doc}")
        return cls(mode=preservation_mode, keep_resources=doc.get("keep_resources"))


@dataclass
class Kustomization(BaseManifest):
    """A deployable unit of a template.

    Each kustomization becomes one Flux Kustomization named
    `<template>-<kustomization>`.
    """

    name: str
    """The name of the kustomization, unique within the template."""

    path: str
    """Path of the manifests relative to the template directory."""

    namespace: NamespaceConfig | None = None
    """The target namespace configuration."""

    substitutions: list[Substitution] = field(default_factory=list)
    """Variables substituted into the manifests after build."""

    depends_on: list[str | RawExternalRef | WithinTemplateRef | CrossTemplateRef] = (
        field(default_factory=list)
    )
    """Declared dependency references, parsed when the graph is built."""

    health_checks: list[HealthCheck] = field(default_factory=list)
    health_check_exprs: list[HealthCheckExpr] = field(default_factory=list)

    prune: bool = True
    wait: bool = True
    timeout: str | None = None
    retry_interval: str | None = None

    enabled: bool = True
    """Template default for whether the kustomization is deployed."""

    preservation: PreservationPolicy | None = None
    """Template default preservation policy."""

    def identity(self, template_name: str) -> str:
        """Globally unique identity of this kustomization."""
        return f"{template_name}-{self.name}"

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Kustomization":
        """Parse a Kustomization from a template spec entry."""
        if not (name := doc.get("name")):
            raise InputException(f"Invalid {cls.__name__} missing name: {doc}")
        if not (path := doc.get("path")):
            raise InputException(f"Invalid {cls.__name__} '{name}' missing path: {doc}")
        namespace: NamespaceConfig | None = None
        if (ns_doc := doc.get("namespace")) is not None:
            if not isinstance(ns_doc, dict) or not ns_doc.get("default"):
                raise InputException(
                    f"Invalid {cls.__name__} '{name}' namespace missing default: {doc}"
                )
            namespace = NamespaceConfig(
                default=ns_doc["default"], create=ns_doc.get("create", True)
            )
        depends_on: list[str | RawExternalRef | WithinTemplateRef | CrossTemplateRef] = []
        for dep in doc.get("depends_on") or ():
            if isinstance(dep, dict):
                # Raw refs are structured so are checked here, strings are
                # checked by the dependency graph builder.
                try:
                    depends_on.append(parse_dependency_ref(dep))  # type: ignore[arg-type]
                except InvalidReferenceError as err:
                    raise InputException(f"Invalid {cls.__name__} '{name}': {err}")
            else:
                depends_on.append(str(dep))
        health_checks = []
        for check in doc.get("health_checks") or ():
            if not check.get("kind") or not check.get("name"):
                raise InputException(
                    f"Invalid {cls.__name__} '{name}' health check missing kind or name: {check}"
                )
            health_checks.append(
                HealthCheck(
                    kind=check["kind"],
                    name=check["name"],
                    namespace=check.get("namespace"),
                    api_version=check.get("api_version"),
                )
            )
        health_check_exprs = []
        for expr in doc.get("health_check_exprs") or ():
            if not expr.get("api_version") or not expr.get("kind"):
                raise InputException(
                    f"Invalid {cls.__name__} '{name}' health check expression missing "
                    f"api_version or kind: {expr}"
                )
            health_check_exprs.append(
                HealthCheckExpr(
                    api_version=expr["api_version"],
                    kind=expr["kind"],
                    namespace=expr.get("namespace"),
                    current=expr.get("current"),
                    failed=expr.get("failed"),
                )
            )
        preservation: PreservationPolicy | None = None
        if (preservation_doc := doc.get("preservation")) is not None:
            preservation = PreservationPolicy.parse_doc(preservation_doc)
        return cls(
            name=name,
            path=path,
            namespace=namespace,
            substitutions=[
                parse_substitution(sub) for sub in doc.get("substitutions") or ()
            ],
            depends_on=depends_on,
            health_checks=health_checks,
            health_check_exprs=health_check_exprs,
            prune=doc.get("prune", True),
            wait=doc.get("wait", True),
            timeout=doc.get("timeout"),
            retry_interval=doc.get("retry_interval"),
            enabled=doc.get("enabled", True),
            preservation=preservation,
        )


@dataclass
class Template(BaseManifest):
    """A reusable bundle of kustomizations and shared version variables."""

    name: str
    """The name of the template."""

    kustomizations: list[Kustomization] = field(default_factory=list)
    """The kustomizations in declaration order."""

    versions: list[ImageVersionEntry | HelmVersionEntry] = field(default_factory=list)
    """Template-wide version variables."""

    source_path: str | None = None
    """Directory of the template relative to the templates root."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Template":
        """Parse a Template from a kustodian resource document."""
        _check_kind(doc, TEMPLATE_KIND)
        name = _metadata_name(cls, doc)
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        if not (kustomizations := spec.get("kustomizations")):
            raise InputException(
                f"Invalid {cls.__name__} '{name}' missing spec.kustomizations: {doc}"
            )
        parsed = [Kustomization.parse_doc(ks) for ks in kustomizations]
        seen: set[str] = set()
        for ks in parsed:
            if ks.name in seen:
                raise InputException(
                    f"Invalid {cls.__name__} '{name}' has duplicate kustomization '{ks.name}'"
                )
            seen.add(ks.name)
        return cls(
            name=name,
            kustomizations=parsed,
            versions=[parse_version_entry(v) for v in spec.get("versions") or ()],
        )


@dataclass
class GitConfig(BaseManifest):
    """Git repository the cluster configuration is tracked in."""

    owner: str
    repository: str
    branch: str = "main"
    path: str | None = None


@dataclass
class OciConfig(BaseManifest):
    """OCI registry Flux pulls the generated artifact from."""

    registry: str
    repository: str
    tag_strategy: str = "git-sha"
    """One of cluster, git-sha, version or manual."""

    tag: str | None = None
    secret_ref: str | None = None
    provider: str = "generic"
    insecure: bool = False


@dataclass
class KustomizationOverride(BaseManifest):
    """Per-cluster override of a template kustomization."""

    enabled: bool | None = None
    preservation: PreservationPolicy | None = None


@dataclass
class TemplateConfig(BaseManifest):
    """A template deployed to a cluster.

    A template is deployed only when the cluster lists it.
    """

    name: str
    values: dict[str, str] = field(default_factory=dict)
    """Substitution values overriding template defaults."""

    kustomizations: dict[str, bool | KustomizationOverride] = field(
        default_factory=dict
    )
    """Per-kustomization overrides, a boolean shorthand or an override object."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "TemplateConfig":
        if not (name := doc.get("name")):
            raise InputException(f"Invalid {cls.__name__} missing name: {doc}")
        overrides: dict[str, bool | KustomizationOverride] = {}
        for ks_name, override in (doc.get("kustomizations") or {}).items():
            if isinstance(override, bool):
                overrides[ks_name] = override
            elif isinstance(override, dict):
                preservation = override.get("preservation")
                overrides[ks_name] = KustomizationOverride(
                    enabled=override.get("enabled"),
                    preservation=(
                        PreservationPolicy.parse_doc(preservation)
                        if preservation is not None
                        else None
                    ),
                )
            else:
                raise InputException(
                    f"Invalid {cls.__name__} '{name}' override for '{ks_name}': {override}"
                )
        return cls(
            name=name, values=_string_values(doc.get("values")), kustomizations=overrides
        )


@dataclass
class FluxControllerSettings(BaseManifest):
    """Tuning for a single Flux controller."""

    concurrent: int | None = None
    requeue_dependency: str | None = None


@dataclass
class FluxControllersConfig(BaseManifest):
    """Tuning shared by all Flux controllers with per-controller overrides."""

    concurrent: int | None = None
    requeue_dependency: str | None = None
    kustomize_controller: FluxControllerSettings | None = None
    helm_controller: FluxControllerSettings | None = None
    source_controller: FluxControllerSettings | None = None


@dataclass
class FluxConfig(BaseManifest):
    """Flux system configuration of a cluster."""

    controllers: FluxControllersConfig | None = None


@dataclass
class ClusterDefaults(BaseManifest):
    """Cluster level overrides of generator defaults."""

    flux_namespace: str | None = None
    oci_repository_name: str | None = None
    oci_registry_secret_name: str | None = None
    flux_reconciliation_interval: str | None = None
    flux_reconciliation_timeout: str | None = None


@dataclass
class PluginConfig(BaseManifest):
    """Configuration handed to a plugin for a cluster."""

    name: str
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class Cluster(BaseManifest):
    """A deployment target selecting templates and their values."""

    name: str
    """The name of the cluster."""

    git: GitConfig | None = None
    oci: OciConfig | None = None

    templates: list[TemplateConfig] = field(default_factory=list)
    """Templates deployed to this cluster."""

    flux: FluxConfig | None = None
    defaults: ClusterDefaults | None = None
    plugins: list[PluginConfig] = field(default_factory=list)

    def get_template_config(self, template_name: str) -> TemplateConfig | None:
        """Return the configuration for a template, or None if not deployed."""
        for template_config in self.templates:
            if template_config.name == template_name:
                return template_config
        return None

    def get_plugin_config(self, name: str) -> dict[str, Any] | None:
        """Return the configuration for a plugin by name."""
        for plugin in self.plugins:
            if plugin.name == name:
                return plugin.config
        return None

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Cluster":
        """Parse a Cluster from a kustodian resource document."""
        _check_kind(doc, CLUSTER_KIND)
        name = _metadata_name(cls, doc)
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        git = spec.get("git")
        oci = spec.get("oci")
        if git is None and oci is None:
            raise InputException(
                f"Invalid {cls.__name__} '{name}' requires either spec.git or spec.oci"
            )
        try:
            return cls(
                name=name,
                git=GitConfig.from_dict(git) if git is not None else None,
                oci=OciConfig.from_dict(oci) if oci is not None else None,
                templates=[
                    TemplateConfig.parse_doc(t) for t in spec.get("templates") or ()
                ],
                flux=FluxConfig.from_dict(spec["flux"]) if spec.get("flux") else None,
                defaults=(
                    ClusterDefaults.from_dict(spec["defaults"])
                    if spec.get("defaults")
                    else None
                ),
                plugins=[PluginConfig.from_dict(p) for p in spec.get("plugins") or ()],
            )
        except (ValueError, TypeError, KeyError) as err:
            raise InputException(f"Invalid {cls.__name__} '{name}': {err}") from err
