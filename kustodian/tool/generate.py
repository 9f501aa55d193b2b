"""Kustodian generate action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
    BooleanOptionalAction,
)
import logging
import pathlib
import sys
from typing import cast

from kustodian import loader, output
from kustodian.generator import GenerateOptions, Generator
from kustodian.plugins import PluginRegistry

_LOGGER = logging.getLogger(__name__)


class GenerateAction:
    """Kustodian generate action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "generate",
                help="Generate Flux manifests for clusters",
                description="""Generates Flux Kustomization and OCIRepository
                    manifests for the templates deployed to a cluster. Output for
                    each cluster is written to a directory named after it.""",
            ),
        )
        args.add_argument(
            "--path",
            type=pathlib.Path,
            default=pathlib.Path("."),
            help="Path to the project containing templates/ and clusters/",
        )
        clusters = args.add_mutually_exclusive_group(required=True)
        clusters.add_argument("--cluster", help="Name of the cluster to generate")
        clusters.add_argument(
            "--all",
            dest="all_clusters",
            action="store_true",
            help="Generate for all clusters in the project",
        )
        args.add_argument(
            "--output-dir",
            type=pathlib.Path,
            default=pathlib.Path("output"),
            help="Directory the manifests of each cluster are written under",
        )
        args.add_argument(
            "--format",
            dest="output_format",
            choices=output.FORMATS,
            default=output.YAML,
            help="Format of the generated files",
        )
        args.add_argument(
            "--dry-run",
            action=BooleanOptionalAction,
            default=False,
            help="Print the generated files instead of writing them",
        )
        args.add_argument(
            "--skip-validation",
            action=BooleanOptionalAction,
            default=False,
            help="Skip dependency and enablement validation",
        )
        args.add_argument(
            "--include-preserved",
            action=BooleanOptionalAction,
            default=False,
            help="Emit disabled kustomizations that preserve stateful resources",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path,
        cluster: str | None,
        all_clusters: bool,
        output_dir: pathlib.Path,
        output_format: str,
        dry_run: bool,
        skip_validation: bool,
        include_preserved: bool,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        project = await loader.load_project(path)
        clusters = project.clusters if all_clusters else [project.get_cluster(cluster or "")]
        generator = Generator(registry=PluginRegistry())
        for target in clusters:
            options = GenerateOptions(
                output_dir=output_dir / target.name,
                skip_validation=skip_validation,
                include_preserved=include_preserved,
            )
            result = await generator.generate(target, project.templates, options)
            _LOGGER.info(
                "Generated %d kustomizations for cluster %s",
                len(result.kustomizations),
                target.name,
            )
            if dry_run:
                for relative_path, content in sorted(
                    output.result_files(result, output_format).items()
                ):
                    print(f"# {options.output_dir / relative_path}", file=sys.stdout)
                    print(content, end="", file=sys.stdout)
                continue
            written = await output.write_generation_result(result, output_format)
            print(
                f"Wrote {len(written)} files for cluster {target.name} to {options.output_dir}",
                file=sys.stdout,
            )
