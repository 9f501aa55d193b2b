"""Kustodian validate action."""

from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
import logging
import pathlib
import sys
from typing import cast

from kustodian import loader
from kustodian.enablement import check_enablement, get_template_config, resolve_enabled
from kustodian.exceptions import ConfigurationException
from kustodian.graph import validate_dependencies
from kustodian.manifest import CORE_SUBSTITUTION_TYPES, Cluster, Template
from kustodian.substitution import validate_substitutions

_LOGGER = logging.getLogger(__name__)


def cluster_errors(cluster: Cluster, templates: list[Template]) -> list[str]:
    """Return the substitution problems of the templates deployed to a cluster.

    Substitutions resolved by providers are not required to have a value.
    """
    errors: list[str] = []
    for template in templates:
        if (template_config := get_template_config(cluster, template.name)) is None:
            continue
        versions = {version.name for version in template.versions}
        external = set()
        for ks in template.kustomizations:
            external.update(
                sub.name
                for sub in ks.substitutions
                if sub.substitution_type not in CORE_SUBSTITUTION_TYPES
            )
        unused = set(template_config.values) - versions
        for ks in template.kustomizations:
            result = validate_substitutions(ks, template_config.values)
            unused &= set(result.unused)
            if not resolve_enabled(ks, template_config):
                continue
            for name in result.missing:
                if name in external or name in versions:
                    continue
                errors.append(
                    f"Cluster '{cluster.name}': kustomization "
                    f"'{ks.identity(template.name)}' requires a value for '{name}'"
                )
        for name in sorted(unused):
            _LOGGER.warning(
                "Cluster '%s' sets value '%s' not used by template '%s'",
                cluster.name,
                name,
                template.name,
            )
    return errors


class ValidateAction:
    """Kustodian validate action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "validate",
                help="Validate templates and clusters",
                description="""Checks the dependency graph of all templates, then
                    for each cluster checks that no enabled kustomization depends on
                    a disabled one and that every required substitution has a value.""",
            ),
        )
        args.add_argument(
            "--path",
            type=pathlib.Path,
            default=pathlib.Path("."),
            help="Path to the project containing templates/ and clusters/",
        )
        args.add_argument("--cluster", help="Only validate the named cluster")
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path,
        cluster: str | None,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        project = await loader.load_project(path)
        order = validate_dependencies(project.templates)
        _LOGGER.debug("Deployment order: %s", order)

        clusters = [project.get_cluster(cluster)] if cluster else project.clusters
        errors: list[str] = []
        for target in clusters:
            check_enablement(target, project.templates)
            if target_errors := cluster_errors(target, project.templates):
                errors.extend(target_errors)
                continue
            print(f"Cluster {target.name} is valid", file=sys.stdout)
        if errors:
            raise ConfigurationException("\n".join(errors))
