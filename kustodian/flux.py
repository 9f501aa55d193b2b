"""Flux resource documents produced by the generator.

The documents are dataclasses serialized with mashumaro using the field
aliases of the Kubernetes API, so `to_dict()` returns a document ready to be
dumped as YAML or JSON. Fields left as None are omitted.
"""

from dataclasses import dataclass, field
import json
import logging

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig

from .exceptions import ConfigurationException
from .manifest import (
    Cluster,
    FluxConfig,
    FluxControllersConfig,
    FluxControllerSettings,
    OciConfig,
)

__all__ = [
    "FluxKustomization",
    "OCIRepository",
    "Namespace",
    "Patch",
    "preservation_patches",
    "generate_oci_repository",
    "generate_controller_patches",
]

_LOGGER = logging.getLogger(__name__)

KUSTOMIZE_API_VERSION = "kustomize.toolkit.fluxcd.io/v1"
SOURCE_API_VERSION = "source.toolkit.fluxcd.io/v1"
GIT_REPOSITORY = "GitRepository"
OCI_REPOSITORY = "OCIRepository"

DEFAULT_INTERVAL = "10m"
DEFAULT_TIMEOUT = "5m"
DEFAULT_NAMESPACE = "flux-system"
DEFAULT_SOURCE_NAME = "flux-system"
DEFAULT_HEALTH_CHECK_API_VERSION = "apps/v1"
DEFAULT_OCI_TAG = "latest"

PRESERVE_LABEL = "kustodian.io/preserve"

FLUX_CONTROLLERS = ("kustomize-controller", "helm-controller", "source-controller")
CONTROLLER_ARGS_PATH = "/spec/template/spec/containers/0/args/-"


@dataclass
class FluxDocument(DataClassDictMixin):
    """Base class for generated documents."""

    class Config(BaseConfig):
        serialize_by_alias = True
        omit_none = True


@dataclass(kw_only=True)
class ObjectMeta(FluxDocument):
    """Object metadata."""

    name: str
    namespace: str | None = None


@dataclass(kw_only=True)
class SourceRef(FluxDocument):
    """Reference to the source holding the manifests."""

    kind: str
    name: str


@dataclass(kw_only=True)
class DependsOn(FluxDocument):
    """A Flux Kustomization that must be ready first."""

    name: str
    namespace: str | None = None


@dataclass(kw_only=True)
class PostBuild(FluxDocument):
    """Variables substituted by Flux after kustomize build."""

    substitute: dict[str, str]


@dataclass(kw_only=True)
class HealthCheck(FluxDocument):
    """A resource Flux waits to become ready."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    name: str
    namespace: str


@dataclass(kw_only=True)
class CustomHealthCheck(FluxDocument):
    """A CEL expression based health check."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    namespace: str | None = None
    current: str | None = None
    failed: str | None = None


@dataclass(kw_only=True)
class PatchTarget(FluxDocument):
    """Selector for the resources a patch applies to."""

    kind: str
    name: str | None = None


@dataclass(kw_only=True)
class Patch(FluxDocument):
    """A strategic merge or JSON patch applied by kustomize."""

    patch: str
    target: PatchTarget


@dataclass(kw_only=True)
class FluxKustomizationSpec(FluxDocument):
    """Spec of a Flux Kustomization."""

    interval: str
    target_namespace: str | None = field(
        default=None, metadata=field_options(alias="targetNamespace")
    )
    path: str
    prune: bool = True
    wait: bool = True
    source_ref: SourceRef = field(metadata=field_options(alias="sourceRef"))
    timeout: str | None = None
    retry_interval: str | None = field(
        default=None, metadata=field_options(alias="retryInterval")
    )
    depends_on: list[DependsOn] | None = field(
        default=None, metadata=field_options(alias="dependsOn")
    )
    post_build: PostBuild | None = field(
        default=None, metadata=field_options(alias="postBuild")
    )
    health_checks: list[HealthCheck] | None = field(
        default=None, metadata=field_options(alias="healthChecks")
    )
    custom_health_checks: list[CustomHealthCheck] | None = field(
        default=None, metadata=field_options(alias="customHealthChecks")
    )
    patches: list[Patch] | None = None


@dataclass(kw_only=True)
class FluxKustomization(FluxDocument):
    """A Flux Kustomization resource."""

    api_version: str = field(
        default=KUSTOMIZE_API_VERSION, metadata=field_options(alias="apiVersion")
    )
    kind: str = "Kustomization"
    metadata: ObjectMeta
    spec: FluxKustomizationSpec


@dataclass(kw_only=True)
class OCIRepositoryRef(FluxDocument):
    """The artifact version to pull."""

    tag: str | None = None
    digest: str | None = None
    semver: str | None = None


@dataclass(kw_only=True)
class SecretRef(FluxDocument):
    """Reference to a secret in the source namespace."""

    name: str


@dataclass(kw_only=True)
class OCIRepositorySpec(FluxDocument):
    """Spec of a Flux OCIRepository."""

    interval: str
    url: str
    ref: OCIRepositoryRef
    provider: str = "generic"
    secret_ref: SecretRef | None = field(
        default=None, metadata=field_options(alias="secretRef")
    )
    insecure: bool | None = None


@dataclass(kw_only=True)
class OCIRepository(FluxDocument):
    """A Flux OCIRepository resource."""

    api_version: str = field(
        default=SOURCE_API_VERSION, metadata=field_options(alias="apiVersion")
    )
    kind: str = OCI_REPOSITORY
    metadata: ObjectMeta
    spec: OCIRepositorySpec


@dataclass(kw_only=True)
class Namespace(FluxDocument):
    """A Kubernetes Namespace resource."""

    api_version: str = field(default="v1", metadata=field_options(alias="apiVersion"))
    kind: str = "Namespace"
    metadata: ObjectMeta


def preservation_patches(kinds: list[str]) -> list[Patch]:
    """Return patches labeling resources of each kind to be kept by Flux."""
    return [
        Patch(
            patch=(
                "\n"
                "apiVersion: v1\n"
                f"kind: {kind}\n"
                "metadata:\n"
                "  labels:\n"
                f'    {PRESERVE_LABEL}: "true"\n'
            ),
            target=PatchTarget(kind=kind),
        )
        for kind in kinds
    ]


def oci_tag(cluster: Cluster, oci: OciConfig) -> str:
    """Return the artifact tag selected by the tag strategy."""
    if oci.tag_strategy == "cluster":
        return cluster.name
    if oci.tag_strategy == "manual":
        if not oci.tag:
            raise ConfigurationException(
                f"Cluster '{cluster.name}' uses the manual OCI tag strategy but no tag is set"
            )
        return oci.tag
    # Replaced by the tag pushed from CI.
    return DEFAULT_OCI_TAG


def generate_oci_repository(
    cluster: Cluster,
    oci: OciConfig,
    repository_name: str = DEFAULT_SOURCE_NAME,
    flux_namespace: str = DEFAULT_NAMESPACE,
    interval: str = DEFAULT_INTERVAL,
) -> OCIRepository:
    """Build the OCIRepository the cluster pulls generated manifests from."""
    return OCIRepository(
        metadata=ObjectMeta(name=repository_name, namespace=flux_namespace),
        spec=OCIRepositorySpec(
            interval=interval,
            url=f"oci://{oci.registry}/{oci.repository}",
            ref=OCIRepositoryRef(tag=oci_tag(cluster, oci)),
            provider=oci.provider or "generic",
            secret_ref=SecretRef(name=oci.secret_ref) if oci.secret_ref else None,
            insecure=True if oci.insecure else None,
        ),
    )


def _controller_settings(
    controllers: FluxControllersConfig, controller: str
) -> FluxControllerSettings:
    specific: FluxControllerSettings | None = getattr(
        controllers, controller.replace("-", "_")
    )
    concurrent = controllers.concurrent
    requeue_dependency = controllers.requeue_dependency
    if specific is not None:
        if specific.concurrent is not None:
            concurrent = specific.concurrent
        if specific.requeue_dependency is not None:
            requeue_dependency = specific.requeue_dependency
    return FluxControllerSettings(
        concurrent=concurrent, requeue_dependency=requeue_dependency
    )


def generate_controller_patches(flux_config: FluxConfig | None) -> list[Patch] | None:
    """Build patches adding tuning arguments to the Flux controllers.

    Each controller uses its own settings and falls back to the shared ones.
    Returns None when no controller has any setting.
    """
    if flux_config is None or (controllers := flux_config.controllers) is None:
        return None
    patches: list[Patch] = []
    for controller in FLUX_CONTROLLERS:
        settings = _controller_settings(controllers, controller)
        args = []
        if settings.concurrent is not None:
            args.append(f"--concurrent={settings.concurrent}")
        if settings.requeue_dependency is not None:
            args.append(f"--requeue-dependency={settings.requeue_dependency}")
        if not args:
            continue
        operations = [
            {"op": "add", "path": CONTROLLER_ARGS_PATH, "value": arg} for arg in args
        ]
        patches.append(
            Patch(
                patch=json.dumps(operations),
                target=PatchTarget(kind="Deployment", name=controller),
            )
        )
    return patches or None
