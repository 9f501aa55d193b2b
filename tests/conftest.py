"""Shared fixtures for kustodian tests."""

from pathlib import Path

import pytest

from kustodian.manifest import (
    Cluster,
    GenericSubstitution,
    Kustomization,
    NamespaceConfig,
    OciConfig,
    Template,
    TemplateConfig,
)

TESTDATA = Path(__file__).parent / "testdata"


@pytest.fixture(name="testdata_project")
def testdata_project_fixture() -> Path:
    """Path to the example project used by the loader and cli tests."""
    return TESTDATA / "project"


@pytest.fixture(name="nginx_template")
def nginx_template_fixture() -> Template:
    """A template with a single deployment kustomization."""
    return Template(
        name="nginx",
        kustomizations=[
            Kustomization(
                name="deployment",
                path="./deployment",
                substitutions=[GenericSubstitution(name="replicas", default="2")],
            )
        ],
    )


@pytest.fixture(name="database_template")
def database_template_fixture() -> Template:
    """A template with kustomizations depending on each other."""
    return Template(
        name="database",
        kustomizations=[
            Kustomization(
                name="operator",
                path="./operator",
                namespace=NamespaceConfig(default="database"),
            ),
            Kustomization(
                name="cluster",
                path="./cluster",
                namespace=NamespaceConfig(default="database"),
                depends_on=["operator"],
            ),
        ],
    )


@pytest.fixture(name="prod_cluster")
def prod_cluster_fixture() -> Cluster:
    """A cluster deploying nginx with a value override."""
    return Cluster(
        name="prod",
        templates=[TemplateConfig(name="nginx", values={"replicas": "5"})],
    )


@pytest.fixture(name="dev_cluster")
def dev_cluster_fixture() -> Cluster:
    """A cluster deploying no templates."""
    return Cluster(name="dev", templates=[])


@pytest.fixture(name="oci_config")
def oci_config_fixture() -> OciConfig:
    """OCI source configuration."""
    return OciConfig(registry="ghcr.io", repository="example/manifests")
