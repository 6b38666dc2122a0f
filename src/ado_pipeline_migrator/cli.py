"""
Command-line interface for the Azure DevOps pipeline migration tool.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from . import credentials
from .ado_client import AzureDevOpsEndpoint
from .config import EndpointConfig, MigrationOptions
from .exceptions import MigrationError
from .orchestrator import PipelineMigrator
from .utils import parse_name_pairs, setup_logging

if TYPE_CHECKING:
    from .orchestrator import MigrationResult

logger: logging.Logger = logging.getLogger(__name__)


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description=(
            "Migrate service connections, variable groups, task groups and pipelines between Azure DevOps projects"
        )
    )

    _ = parser.add_argument("source_org", help="Source organization/collection URL (e.g. https://dev.azure.com/org)")
    _ = parser.add_argument("source_project", help="Source project name")
    _ = parser.add_argument("target_org", help="Target organization/collection URL")
    _ = parser.add_argument("target_project", help="Target project name")

    _ = parser.add_argument(
        "--source-pass-token", help=f"Path for the source PAT in pass (default: {credentials.DEFAULT_SOURCE_PASS_PATH})"
    )
    _ = parser.add_argument(
        "--target-pass-token", help=f"Path for the target PAT in pass (default: {credentials.DEFAULT_TARGET_PASS_PATH})"
    )

    for name in ("service-connections", "variable-groups", "task-groups", "build-pipelines", "release-pipelines"):
        _ = parser.add_argument(f"--skip-{name}", action="store_true", help=f"Do not migrate {name.replace('-', ' ')}")

    _ = parser.add_argument(
        "--release-pipeline",
        action="append",
        dest="release_pipelines",
        help="Only migrate the release pipeline with this name. Can be specified multiple times.",
    )
    _ = parser.add_argument(
        "--repo-map",
        action="append",
        help='Repository name mapping (format: "source_name:target_name"). Can be specified multiple times.',
    )
    _ = parser.add_argument(
        "--workers", type=int, default=1, help="Number of definitions rewritten in parallel (default: 1)"
    )
    _ = parser.add_argument("--mappings-out", type=Path, help="Write the resulting id mappings to this JSON file")
    _ = parser.add_argument(
        "--stop-on-error", action="store_true", help="Abort the whole run when a pass fails to create definitions"
    )
    _ = parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


def _build_options(args: argparse.Namespace) -> MigrationOptions:
    repositories = parse_name_pairs(args.repo_map) or {"*": "*"}
    release_pipelines: list[str] | None = args.release_pipelines
    return MigrationOptions(
        migrate_service_connections=not args.skip_service_connections,
        migrate_variable_groups=not args.skip_variable_groups,
        migrate_task_groups=not args.skip_task_groups,
        migrate_build_pipelines=not args.skip_build_pipelines,
        migrate_release_pipelines=not args.skip_release_pipelines,
        release_pipelines=tuple(release_pipelines) if release_pipelines else None,
        repositories=repositories,
        max_workers=args.workers,
        stop_on_error=args.stop_on_error,
    )


def _print_migration_report(result: MigrationResult) -> None:
    """Print a per-pass summary of the migration."""
    print("=" * 60)
    print(f"Pipeline migration {'PASSED' if result.success else 'FAILED'}")
    print("=" * 60)
    for pass_result in result.passes:
        print(
            f"{pass_result.kind}: created={pass_result.created}, updated={pass_result.updated}, "
            f"reused={pass_result.reused}, excluded={pass_result.excluded}, state={pass_result.state}"
        )
        if pass_result.error:
            print(f"  ERROR: {pass_result.error}")

    warnings = result.warnings
    if warnings:
        print(f"\n{len(warnings)} warning(s):")
        for warning in warnings:
            print(f"  - {warning.category}: {warning}")


def write_mappings(result: MigrationResult, path: Path) -> None:
    """Write every mapping table of the run to a JSON file."""
    data = {str(kind): table.to_dict() for kind, table in result.mappings.items()}
    path.write_text(json.dumps(data, indent=2) + "\n")
    logger.info(f"Wrote mappings of {len(data)} kind(s) to {path}")


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = parse_arguments(argv)

    verbose: bool = getattr(args, "verbose", False)
    setup_logging(verbose=verbose)

    try:
        source_config = EndpointConfig(
            organization_url=args.source_org,
            project=args.source_project,
            token=credentials.get_token(
                args.source_pass_token, credentials.SOURCE_TOKEN_ENV_VAR, credentials.DEFAULT_SOURCE_PASS_PATH
            ),
        )
        target_config = EndpointConfig(
            organization_url=args.target_org,
            project=args.target_project,
            token=credentials.get_token(
                args.target_pass_token, credentials.TARGET_TOKEN_ENV_VAR, credentials.DEFAULT_TARGET_PASS_PATH
            ),
        )
        source_config.validate("source")
        target_config.validate("target")

        migrator = PipelineMigrator(
            AzureDevOpsEndpoint(source_config),
            AzureDevOpsEndpoint(target_config),
            _build_options(args),
        )
        result = migrator.migrate()

        if args.mappings_out:
            write_mappings(result, args.mappings_out)

    except (MigrationError, credentials.PassError, ValueError):
        logger.exception("Migration failed")
        sys.exit(1)

    _print_migration_report(result)
    sys.exit(0 if result.success else 1)
