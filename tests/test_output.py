"""Tests for writing generation results."""

import json
from pathlib import Path

import pytest
import yaml

from kustodian.exceptions import OutputException
from kustodian.flux import Namespace, ObjectMeta
from kustodian.generator import GenerateOptions, GenerationResult, Generator
from kustodian.manifest import (
    Cluster,
    FluxConfig,
    FluxControllersConfig,
    NamespaceConfig,
    OciConfig,
    Template,
    TemplateConfig,
)
from kustodian.output import ROOT_KUSTOMIZATION, serialize, write_generation_result


@pytest.fixture(name="result")
async def result_fixture(nginx_template: Template, tmp_path: Path) -> GenerationResult:
    """A generation result with every kind of output."""
    nginx_template.kustomizations[0].namespace = NamespaceConfig(default="web")
    cluster = Cluster(
        name="prod",
        oci=OciConfig(registry="ghcr.io", repository="fleet", tag_strategy="cluster"),
        templates=[TemplateConfig(name="nginx", values={"replicas": "5"})],
        flux=FluxConfig(controllers=FluxControllersConfig(concurrent=4)),
    )
    result = await Generator().generate(
        cluster, [nginx_template], GenerateOptions(output_dir=tmp_path / "prod")
    )
    result.additional_files["auth/namespace.yaml"] = Namespace(
        metadata=ObjectMeta(name="auth")
    )
    return result


def test_serialize_yaml() -> None:
    """Test serializing a document to YAML."""
    doc = Namespace(metadata=ObjectMeta(name="web"))
    assert serialize(doc) == (
        "---\napiVersion: v1\nkind: Namespace\nmetadata:\n  name: web\n"
    )


def test_serialize_yaml_list() -> None:
    """Test serializing several documents to a YAML stream."""
    docs = [
        Namespace(metadata=ObjectMeta(name="a")),
        Namespace(metadata=ObjectMeta(name="b")),
    ]
    assert [doc["metadata"]["name"] for doc in yaml.safe_load_all(serialize(docs))] == [
        "a",
        "b",
    ]


def test_serialize_json() -> None:
    """Test serializing documents to JSON."""
    doc = Namespace(metadata=ObjectMeta(name="web"))
    assert json.loads(serialize(doc, "json")) == {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": "web"},
    }
    assert json.loads(serialize([doc], "json")) == [json.loads(serialize(doc, "json"))]
    assert json.loads(serialize({"a": 1}, "json")) == {"a": 1}


def test_serialize_unknown_format() -> None:
    """Test an unsupported format is rejected."""
    with pytest.raises(OutputException, match="Unsupported output format 'toml'"):
        serialize({}, "toml")


async def test_write_result(result: GenerationResult) -> None:
    """Test the files written for a result."""
    written = await write_generation_result(result)
    output_dir = result.output_dir
    assert sorted(path.relative_to(output_dir).as_posix() for path in written) == [
        "auth/namespace.yaml",
        "flux-system/patches.yaml",
        "kustomization.yaml",
        "namespaces.yaml",
        "nginx/nginx-deployment.yaml",
        "oci-repository.yaml",
    ]

    root = yaml.safe_load((output_dir / "kustomization.yaml").read_text())
    assert root["apiVersion"] == "kustomize.config.k8s.io/v1beta1"
    assert root["kind"] == "Kustomization"
    assert root["resources"] == [
        "auth/namespace.yaml",
        "namespaces.yaml",
        "nginx/nginx-deployment.yaml",
        "oci-repository.yaml",
    ]
    assert [patch["target"]["name"] for patch in root["patches"]] == [
        "kustomize-controller",
        "helm-controller",
        "source-controller",
    ]

    manifest = yaml.safe_load((output_dir / "nginx/nginx-deployment.yaml").read_text())
    assert manifest["metadata"]["name"] == "nginx-deployment"
    assert manifest["spec"]["postBuild"]["substitute"]["replicas"] == "5"

    repo = yaml.safe_load((output_dir / "oci-repository.yaml").read_text())
    assert repo["spec"]["ref"] == {"tag": "prod"}

    namespaces = list(yaml.safe_load_all((output_dir / "namespaces.yaml").read_text()))
    assert [ns["metadata"]["name"] for ns in namespaces] == ["web"]


async def test_write_result_json(result: GenerationResult) -> None:
    """Test resources are written as JSON while the root stays YAML."""
    result.additional_files.clear()
    written = await write_generation_result(result, "json")
    output_dir = result.output_dir
    assert output_dir / "kustomization.yaml" in written
    manifest = json.loads((output_dir / "nginx/nginx-deployment.json").read_text())
    assert manifest["kind"] == "Kustomization"
    root = yaml.safe_load((output_dir / "kustomization.yaml").read_text())
    assert root["resources"] == [
        "namespaces.json",
        "nginx/nginx-deployment.json",
        "oci-repository.json",
    ]


async def test_write_result_idempotent(result: GenerationResult) -> None:
    """Test writing the same result twice gives the same files."""
    await write_generation_result(result)
    first = {
        path: path.read_text()
        for path in result.output_dir.rglob("*")
        if path.is_file()
    }
    await write_generation_result(result)
    second = {
        path: path.read_text()
        for path in result.output_dir.rglob("*")
        if path.is_file()
    }
    assert first == second


async def test_additional_file_outside_output(result: GenerationResult) -> None:
    """Test additional files must stay within the output directory."""
    result.additional_files["../escape.yaml"] = {"kind": "ConfigMap"}
    with pytest.raises(OutputException, match="must be relative"):
        await write_generation_result(result)


@pytest.mark.parametrize(
    "path",
    [
        "kustomization.yaml",
        "flux-system/patches.yaml",
        "oci-repository.yaml",
        "namespaces.yaml",
        "nginx/nginx-deployment.yaml",
        "./nginx/nginx-deployment.yaml",
    ],
)
async def test_additional_file_conflict(result: GenerationResult, path: str) -> None:
    """Test additional files may not replace generated files."""
    result.additional_files[path] = {"kind": "ConfigMap"}
    with pytest.raises(OutputException, match="conflicts with a generated file"):
        await write_generation_result(result)
    assert not (result.output_dir / ROOT_KUSTOMIZATION).exists()


async def test_empty_result(tmp_path: Path) -> None:
    """Test a result without manifests still writes the root kustomization."""
    result = GenerationResult(cluster="dev", output_dir=tmp_path)
    written = await write_generation_result(result)
    assert written == [tmp_path / "kustomization.yaml"]
    root = yaml.safe_load((tmp_path / "kustomization.yaml").read_text())
    assert root["resources"] == []
    assert "patches" not in root
