"""Writer for generation results.

Writes the generated documents for a cluster into a directory:

```
<output_dir>/
  kustomization.yaml            # lists every resource file below
  oci-repository.yaml
  namespaces.yaml
  flux-system/patches.yaml      # controller patches, also inlined in kustomization.yaml
  <template>/<name>.yaml
```

Files are written in YAML or JSON, the root kustomization.yaml is always YAML.
"""

from collections.abc import Iterable
import json
import logging
from pathlib import Path, PurePosixPath
from typing import Any

import aiofiles
import yaml
from mashumaro import DataClassDictMixin

from .exceptions import OutputException
from .generator import GenerationResult

__all__ = ["FORMATS", "serialize", "write_generation_result"]

_LOGGER = logging.getLogger(__name__)

YAML = "yaml"
JSON = "json"
FORMATS = (YAML, JSON)

ROOT_KUSTOMIZATION = "kustomization.yaml"
KUSTOMIZE_CONFIG_API_VERSION = "kustomize.config.k8s.io/v1beta1"
OCI_REPOSITORY_FILE = "oci-repository"
NAMESPACES_FILE = "namespaces"
PATCHES_FILE = "flux-system/patches"


def _to_obj(doc: Any) -> Any:
    if isinstance(doc, DataClassDictMixin):
        return doc.to_dict()
    if isinstance(doc, (list, tuple)):
        return [_to_obj(item) for item in doc]
    return doc


def serialize(doc: Any, fmt: str = YAML) -> str:
    """Serialize a document, or a list of documents, to YAML or JSON.

    A list is written as a multi document YAML stream or as a JSON array.
    """
    obj = _to_obj(doc)
    if fmt == JSON:
        return json.dumps(obj, indent=2) + "\n"
    if fmt != YAML:
        raise OutputException(f"Unsupported output format '{fmt}'")
    if isinstance(doc, (list, tuple)):
        return yaml.dump_all(obj, sort_keys=False, explicit_start=True)
    return yaml.dump(obj, sort_keys=False, explicit_start=True)


def _format_for(path: str, fmt: str) -> str:
    suffix = PurePosixPath(path).suffix
    if suffix in (".yaml", ".yml"):
        return YAML
    if suffix == ".json":
        return JSON
    return fmt


def result_files(result: GenerationResult, fmt: str = YAML) -> dict[str, str]:
    """Return the serialized resource files of a result keyed by relative path."""
    files: dict[str, str] = {}
    for item in result.kustomizations:
        files[f"{item.template}/{item.name}.{fmt}"] = serialize(item.manifest, fmt)
    if result.oci_repository is not None:
        files[f"{OCI_REPOSITORY_FILE}.{fmt}"] = serialize(result.oci_repository, fmt)
    if result.namespaces:
        files[f"{NAMESPACES_FILE}.{fmt}"] = serialize(result.namespaces, fmt)
    reserved = {ROOT_KUSTOMIZATION, f"{PATCHES_FILE}.{fmt}"}
    for path, doc in result.additional_files.items():
        posix_path = PurePosixPath(path)
        if posix_path.is_absolute() or ".." in posix_path.parts:
            raise OutputException(f"Additional file path must be relative: {path}")
        normalized = posix_path.as_posix()
        if normalized in reserved or normalized in files:
            raise OutputException(
                f"Additional file path conflicts with a generated file: {path}"
            )
        files[normalized] = serialize(doc, _format_for(path, fmt))
    return files


def root_kustomization(
    resources: Iterable[str], result: GenerationResult
) -> dict[str, Any]:
    """Return the kustomize config listing the resources of the output."""
    doc: dict[str, Any] = {
        "apiVersion": KUSTOMIZE_CONFIG_API_VERSION,
        "kind": "Kustomization",
        "resources": sorted(resources),
    }
    if result.controller_patches:
        doc["patches"] = _to_obj(result.controller_patches)
    return doc


async def _write(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(str(path), mode="w") as output_file:
            await output_file.write(content)
    except OSError as err:
        raise OutputException(f"Failed to write {path}: {err}") from err


async def write_generation_result(
    result: GenerationResult, fmt: str = YAML
) -> list[Path]:
    """Write the result to its output directory and return the written paths."""
    if fmt not in FORMATS:
        raise OutputException(f"Unsupported output format '{fmt}'")
    output_dir = Path(result.output_dir)
    files = result_files(result, fmt)
    written: list[Path] = []
    for relative_path, content in sorted(files.items()):
        path = output_dir / relative_path
        await _write(path, content)
        written.append(path)
    if result.controller_patches:
        path = output_dir / f"{PATCHES_FILE}.{fmt}"
        await _write(path, serialize(result.controller_patches, fmt))
        written.append(path)

    resources = [
        path for path in files if _format_for(path, "") in FORMATS
    ]
    root = output_dir / ROOT_KUSTOMIZATION
    await _write(root, serialize(root_kustomization(resources, result)))
    written.append(root)
    _LOGGER.debug("Wrote %d files to %s", len(written), output_dir)
    return written
