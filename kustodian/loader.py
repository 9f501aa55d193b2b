"""Loader for kustodian projects on the filesystem.

A project has the layout:

```
<project>/
  templates/<name>/template.yaml
  clusters/<name>/cluster.yaml
```

Template directories may be nested, the directory of a template relative to
`templates/` becomes its `source_path` so generated Flux paths point at the
manifests next to the template definition.
"""

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any

import aiofiles
from aiofiles.ospath import exists, isdir
import yaml

from .exceptions import InputException
from .manifest import Cluster, Template

__all__ = ["Project", "load_project", "TEMPLATE_FILE", "CLUSTER_FILE"]

_LOGGER = logging.getLogger(__name__)

TEMPLATES_DIR = "templates"
CLUSTERS_DIR = "clusters"
TEMPLATE_FILE = "template.yaml"
CLUSTER_FILE = "cluster.yaml"


@dataclass
class Project:
    """The templates and clusters of a project."""

    path: Path
    templates: list[Template] = field(default_factory=list)
    clusters: list[Cluster] = field(default_factory=list)

    def get_cluster(self, name: str) -> Cluster:
        """Return the cluster with the given name."""
        for cluster in self.clusters:
            if cluster.name == name:
                return cluster
        names = ", ".join(cluster.name for cluster in self.clusters)
        raise InputException(f"Cluster '{name}' not found in project (found: {names})")


async def _read_doc(path: Path) -> dict[str, Any]:
    """Read the single YAML document in a file."""
    try:
        async with aiofiles.open(str(path)) as doc_file:
            content = await doc_file.read()
    except OSError as err:
        raise InputException(f"Failed to read file {path}: {err}") from err
    try:
        doc = yaml.safe_load(content)
    except yaml.YAMLError as err:
        raise InputException(f"Invalid YAML in file {path}: {err}") from err
    if not isinstance(doc, dict):
        raise InputException(f"Expected a mapping in file {path}")
    return doc


async def load_template(path: Path, templates_root: Path) -> Template:
    """Load a template definition file."""
    doc = await _read_doc(path)
    try:
        template = Template.parse_doc(doc)
    except InputException as err:
        raise InputException(f"Invalid template file {path}: {err}") from err
    template.source_path = path.parent.relative_to(templates_root).as_posix()
    return template


async def load_cluster(path: Path) -> Cluster:
    """Load a cluster definition file."""
    doc = await _read_doc(path)
    try:
        return Cluster.parse_doc(doc)
    except InputException as err:
        raise InputException(f"Invalid cluster file {path}: {err}") from err


async def load_project(path: Path | str) -> Project:
    """Load all templates and clusters of a project directory."""
    root = Path(path).expanduser().resolve()
    if not await isdir(root):
        raise InputException(f"Project path is not a directory: {root}")
    _LOGGER.debug("Loading project from %s", root)

    project = Project(path=root)
    templates_root = root / TEMPLATES_DIR
    if await isdir(templates_root):
        for template_file in sorted(templates_root.rglob(TEMPLATE_FILE)):
            project.templates.append(await load_template(template_file, templates_root))

    clusters_root = root / CLUSTERS_DIR
    if await isdir(clusters_root):
        for cluster_dir in sorted(clusters_root.iterdir()):
            cluster_file = cluster_dir / CLUSTER_FILE
            if await exists(cluster_file):
                project.clusters.append(await load_cluster(cluster_file))

    names = [template.name for template in project.templates]
    if duplicates := sorted({name for name in names if names.count(name) > 1}):
        raise InputException(f"Duplicate template names: {', '.join(duplicates)}")
    _LOGGER.debug(
        "Loaded %d templates and %d clusters",
        len(project.templates),
        len(project.clusters),
    )
    return project
