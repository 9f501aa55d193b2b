"""Tests for generating Flux manifests for a cluster."""

from pathlib import Path

import pytest

from kustodian.exceptions import (
    ConfigurationException,
    DependencyCycleException,
    DependencyGraphException,
    EnablementException,
    HookException,
)
from kustodian.flux import Namespace, ObjectMeta
from kustodian.generator import GenerateOptions, Generator, GeneratorOptions
from kustodian.hooks import ADDITIONAL_FILES, BEFORE_WRITE, HookContext
from kustodian.manifest import (
    Cluster,
    ClusterDefaults,
    FluxConfig,
    FluxControllersConfig,
    HealthCheck,
    HealthCheckExpr,
    Kustomization,
    KustomizationOverride,
    NamespaceConfig,
    OciConfig,
    PreservationMode,
    PreservationPolicy,
    RawExternalRef,
    Template,
    TemplateConfig,
)
from kustodian.plugins import PluginRegistry


async def test_generate_nginx_prod(nginx_template: Template, prod_cluster: Cluster) -> None:
    """Test generating the nginx template for the prod cluster."""
    result = await Generator().generate(prod_cluster, [nginx_template])
    assert result.cluster == "prod"
    assert result.output_dir == Path("output")
    assert len(result.kustomizations) == 1
    item = result.kustomizations[0]
    assert item.name == "nginx-deployment"
    assert item.template == "nginx"
    assert not item.preserved
    spec = item.manifest.spec
    assert spec.post_build is not None
    assert spec.post_build.substitute["replicas"] == "5"
    assert spec.path == "./templates/nginx/deployment"
    assert result.oci_repository is None
    assert result.controller_patches is None
    assert result.namespaces == []


async def test_generate_nginx_dev(nginx_template: Template, dev_cluster: Cluster) -> None:
    """Test a cluster without templates generates no manifests."""
    result = await Generator().generate(dev_cluster, [nginx_template])
    assert result.kustomizations == []


async def test_manifest_document(nginx_template: Template, prod_cluster: Cluster) -> None:
    """Test the complete Flux Kustomization document."""
    result = await Generator().generate(prod_cluster, [nginx_template])
    assert result.kustomizations[0].manifest.to_dict() == {
        "apiVersion": "kustomize.toolkit.fluxcd.io/v1",
        "kind": "Kustomization",
        "metadata": {"name": "nginx-deployment", "namespace": "flux-system"},
        "spec": {
            "interval": "10m",
            "targetNamespace": "default",
            "path": "./templates/nginx/deployment",
            "prune": True,
            "wait": True,
            "sourceRef": {"kind": "GitRepository", "name": "flux-system"},
            "timeout": "5m",
            "postBuild": {"substitute": {"replicas": "5", "namespace": "default"}},
        },
    }


def _app_templates() -> list[Template]:
    return [
        Template(
            name="app",
            source_path="apps/app",
            kustomizations=[
                Kustomization(name="config", path="config"),
                Kustomization(
                    name="server",
                    path="./server",
                    namespace=NamespaceConfig(default="app"),
                    depends_on=[
                        "config",
                        "secrets/doppler",
                        RawExternalRef(name="legacy", namespace="gitops-system"),
                    ],
                    health_checks=[
                        HealthCheck(kind="Deployment", name="server"),
                        HealthCheck(
                            kind="StatefulSet",
                            name="db",
                            namespace="data",
                            api_version="apps/v1beta1",
                        ),
                    ],
                    health_check_exprs=[
                        HealthCheckExpr(
                            api_version="cert-manager.io/v1",
                            kind="Certificate",
                            current="status.conditions.all(c, c.status == 'True')",
                            failed="status.conditions.any(c, c.status == 'False')",
                        )
                    ],
                    wait=False,
                    timeout="15m",
                    retry_interval="1m",
                ),
            ],
        ),
        Template(
            name="secrets",
            kustomizations=[
                Kustomization(
                    name="doppler",
                    path="./doppler",
                    namespace=NamespaceConfig(default="secrets"),
                )
            ],
        ),
    ]


async def test_dependency_rendering() -> None:
    """Test dependsOn entries in declaration order."""
    cluster = Cluster(
        name="prod",
        templates=[TemplateConfig(name="app"), TemplateConfig(name="secrets")],
    )
    result = await Generator().generate(cluster, _app_templates())
    server = next(item for item in result.kustomizations if item.name == "app-server")
    assert server.manifest.to_dict()["spec"]["dependsOn"] == [
        {"name": "app-config"},
        {"name": "secrets-doppler"},
        {"name": "legacy", "namespace": "gitops-system"},
    ]


async def test_kustomization_fields() -> None:
    """Test health checks, timing and the source path of a kustomization."""
    cluster = Cluster(
        name="prod",
        oci=OciConfig(registry="ghcr.io", repository="fleet"),
        templates=[TemplateConfig(name="app"), TemplateConfig(name="secrets")],
    )
    result = await Generator().generate(cluster, _app_templates())
    assert [item.name for item in result.kustomizations] == [
        "app-config",
        "app-server",
        "secrets-doppler",
    ]
    config = result.kustomizations[0].manifest.to_dict()["spec"]
    assert config["path"] == "./templates/apps/app/config"
    assert "dependsOn" not in config
    assert "healthChecks" not in config

    spec = result.kustomizations[1].manifest.to_dict()["spec"]
    assert spec["path"] == "./templates/apps/app/server"
    assert spec["sourceRef"] == {"kind": "OCIRepository", "name": "flux-system"}
    assert spec["targetNamespace"] == "app"
    assert spec["wait"] is False
    assert spec["timeout"] == "15m"
    assert spec["retryInterval"] == "1m"
    assert spec["healthChecks"] == [
        {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "name": "server",
            "namespace": "app",
        },
        {
            "apiVersion": "apps/v1beta1",
            "kind": "StatefulSet",
            "name": "db",
            "namespace": "data",
        },
    ]
    assert spec["customHealthChecks"] == [
        {
            "apiVersion": "cert-manager.io/v1",
            "kind": "Certificate",
            "namespace": "app",
            "current": "status.conditions.all(c, c.status == 'True')",
            "failed": "status.conditions.any(c, c.status == 'False')",
        }
    ]
    assert "patches" not in spec

    assert result.oci_repository is not None
    assert result.oci_repository.spec.ref.tag == "latest"
    assert [ns.metadata.name for ns in result.namespaces] == ["app", "secrets"]


async def test_cluster_defaults() -> None:
    """Test cluster defaults override the generator options."""
    cluster = Cluster(
        name="prod",
        oci=OciConfig(registry="ghcr.io", repository="fleet"),
        templates=[TemplateConfig(name="secrets")],
        defaults=ClusterDefaults(
            flux_namespace="gitops-system",
            oci_repository_name="fleet",
            flux_reconciliation_interval="30m",
        ),
    )
    generator = Generator(
        options=GeneratorOptions(interval="1m", timeout="2m", base_path="./catalog")
    )
    result = await generator.generate(cluster, _app_templates()[1:])
    data = result.kustomizations[0].manifest.to_dict()
    assert data["metadata"] == {"name": "secrets-doppler", "namespace": "gitops-system"}
    assert data["spec"]["interval"] == "30m"
    assert data["spec"]["timeout"] == "2m"
    assert data["spec"]["path"] == "./catalog/secrets/doppler"
    assert data["spec"]["sourceRef"] == {"kind": "OCIRepository", "name": "fleet"}
    assert result.oci_repository is not None
    assert result.oci_repository.metadata.name == "fleet"
    assert result.oci_repository.metadata.namespace == "gitops-system"
    assert result.oci_repository.spec.interval == "30m"


async def test_controller_patches() -> None:
    """Test controller patches are part of the result."""
    cluster = Cluster(
        name="prod",
        flux=FluxConfig(controllers=FluxControllersConfig(concurrent=5)),
    )
    result = await Generator().generate(cluster, [])
    assert result.controller_patches is not None
    assert len(result.controller_patches) == 3


async def test_template_opt_in() -> None:
    """Test kustomizations of templates the cluster does not list are skipped."""
    cluster = Cluster(name="prod", templates=[TemplateConfig(name="secrets")])
    result = await Generator().generate(cluster, _app_templates())
    assert [item.name for item in result.kustomizations] == ["secrets-doppler"]


async def test_enablement_conflict() -> None:
    """Test an enabled kustomization depending on a disabled one fails."""
    cluster = Cluster(name="prod", templates=[TemplateConfig(name="app")])
    with pytest.raises(EnablementException, match="'secrets-doppler'"):
        await Generator().generate(cluster, _app_templates())


async def test_skip_validation() -> None:
    """Test validation can be skipped."""
    cluster = Cluster(name="prod", templates=[TemplateConfig(name="app")])
    result = await Generator().generate(
        cluster, _app_templates(), GenerateOptions(skip_validation=True)
    )
    assert [item.name for item in result.kustomizations] == ["app-config", "app-server"]


async def test_dependency_errors() -> None:
    """Test structural dependency errors fail generation."""
    template = Template(
        name="app",
        kustomizations=[Kustomization(name="a", path="./a", depends_on=["missing"])],
    )
    cluster = Cluster(name="prod", templates=[TemplateConfig(name="app")])
    with pytest.raises(DependencyGraphException, match="'app-missing' which does not exist"):
        await Generator().generate(cluster, [template])


async def test_dependency_cycle() -> None:
    """Test a dependency cycle fails generation."""
    template = Template(
        name="app",
        kustomizations=[
            Kustomization(name="a", path="./a", depends_on=["b"]),
            Kustomization(name="b", path="./b", depends_on=["a"]),
        ],
    )
    cluster = Cluster(name="prod", templates=[TemplateConfig(name="app")])
    with pytest.raises(DependencyCycleException, match="app-a → app-b → app-a"):
        await Generator().generate(cluster, [template])


async def test_manual_tag_required(nginx_template: Template) -> None:
    """Test the manual tag strategy without a tag fails generation."""
    cluster = Cluster(
        name="prod",
        oci=OciConfig(registry="ghcr.io", repository="fleet", tag_strategy="manual"),
        templates=[TemplateConfig(name="nginx")],
    )
    with pytest.raises(ConfigurationException):
        await Generator().generate(cluster, [nginx_template])


def _preserved_template() -> Template:
    return Template(
        name="db",
        kustomizations=[
            Kustomization(name="postgres", path="./postgres"),
            Kustomization(
                name="redis",
                path="./redis",
                preservation=PreservationPolicy(mode=PreservationMode.NONE),
            ),
        ],
    )


async def test_disabled_not_emitted() -> None:
    """Test disabled kustomizations are not emitted by default."""
    cluster = Cluster(
        name="prod",
        templates=[
            TemplateConfig(name="db", kustomizations={"postgres": False, "redis": False})
        ],
    )
    result = await Generator().generate(cluster, [_preserved_template()])
    assert result.kustomizations == []


async def test_include_preserved() -> None:
    """Test disabled kustomizations with preserved kinds get label patches."""
    cluster = Cluster(
        name="prod",
        templates=[
            TemplateConfig(
                name="db",
                kustomizations={
                    "postgres": KustomizationOverride(enabled=False),
                    "redis": False,
                },
            )
        ],
    )
    result = await Generator().generate(
        cluster, [_preserved_template()], GenerateOptions(include_preserved=True)
    )
    assert len(result.kustomizations) == 1
    item = result.kustomizations[0]
    assert item.name == "db-postgres"
    assert item.preserved
    assert item.manifest.spec.prune is False
    assert item.manifest.to_dict()["spec"]["prune"] is False
    patches = item.manifest.spec.patches
    assert patches is not None
    assert [patch.target.kind for patch in patches] == [
        "PersistentVolumeClaim",
        "Secret",
        "ConfigMap",
    ]
    assert 'kustodian.io/preserve: "true"' in patches[0].patch


async def test_enabled_kustomization_has_no_patches() -> None:
    """Test preservation never applies to enabled kustomizations."""
    cluster = Cluster(name="prod", templates=[TemplateConfig(name="db")])
    result = await Generator().generate(
        cluster, [_preserved_template()], GenerateOptions(include_preserved=True)
    )
    assert [item.name for item in result.kustomizations] == ["db-postgres", "db-redis"]
    for item in result.kustomizations:
        assert item.manifest.spec.patches is None
        assert not item.preserved
        assert item.manifest.spec.prune is True


async def test_idempotent(nginx_template: Template, prod_cluster: Cluster) -> None:
    """Test generating twice produces identical documents."""
    templates = [nginx_template, *_app_templates()]
    cluster = Cluster(
        name="prod",
        oci=OciConfig(registry="ghcr.io", repository="fleet", tag_strategy="cluster"),
        templates=[
            *prod_cluster.templates,
            TemplateConfig(name="app", values={"extra": "x"}),
            TemplateConfig(name="secrets"),
        ],
    )
    generator = Generator()
    first = await generator.generate(cluster, templates)
    second = await generator.generate(cluster, templates)
    assert [item.manifest.to_dict() for item in first.kustomizations] == [
        item.manifest.to_dict() for item in second.kustomizations
    ]
    assert first.oci_repository is not None
    assert second.oci_repository is not None
    assert first.oci_repository.to_dict() == second.oci_repository.to_dict()
    assert first.namespaces == second.namespaces


async def test_hooks_after_resolve(nginx_template: Template, prod_cluster: Cluster) -> None:
    """Test values changed after resolve are used in the manifests."""

    def inject(event: str, context: HookContext) -> HookContext:
        for resolved in context.kustomizations:
            resolved.values["replicas"] = "7"
        return context

    registry = PluginRegistry()
    registry.register_hook("generator:after_resolve", inject)
    result = await Generator(registry=registry).generate(prod_cluster, [nginx_template])
    post_build = result.kustomizations[0].manifest.spec.post_build
    assert post_build is not None
    assert post_build.substitute["replicas"] == "7"


async def test_hooks_before_write(nginx_template: Template, prod_cluster: Cluster) -> None:
    """Test hooks may add files to the result before it is written."""

    async def attach(event: str, context: HookContext) -> HookContext:
        assert context.result is not None
        assert [item.name for item in context.result.kustomizations] == [
            "nginx-deployment"
        ]
        context.set_extension(
            ADDITIONAL_FILES,
            {"auth/namespace.yaml": Namespace(metadata=ObjectMeta(name="auth"))},
        )
        return context

    registry = PluginRegistry()
    registry.register_hook(BEFORE_WRITE, attach)
    result = await Generator(registry=registry).generate(
        prod_cluster, [nginx_template], GenerateOptions(output_dir=Path("/tmp/out"))
    )
    assert result.output_dir == Path("/tmp/out")
    assert list(result.additional_files) == ["auth/namespace.yaml"]


async def test_hook_removes_result(nginx_template: Template, prod_cluster: Cluster) -> None:
    """Test a before write hook must keep the result."""

    def clear(event: str, context: HookContext) -> HookContext:
        context.result = None
        return context

    registry = PluginRegistry()
    registry.register_hook(BEFORE_WRITE, clear)
    with pytest.raises(HookException, match="generation result was removed"):
        await Generator(registry=registry).generate(prod_cluster, [nginx_template])
