"""Migration orchestrator that runs the per-kind passes in dependency order.

Migration Flow
--------------
Each entity kind is migrated by one pass. Later passes consume the mapping
tables produced by earlier ones, so the passes run strictly in this order:

    ServiceConnections -> VariableGroups -> TaskGroups -> BuildPipelines -> ReleasePipelines

A pass moves through these states:

    NOT_STARTED -> LISTED -> FILTERED -> [VERSION_RESOLVED] -> GATED
                -> REWRITTEN -> SUBMITTED -> RECONCILED

Listed
    Source and target definitions of the kind are listed, plus whatever the
    rewriter needs for name-based fallback (service connections, repositories,
    agent queues, deployment groups).

Filtered
    Source definitions that already exist by name in the target are dropped.

Version resolved (task groups only)
    Major version 1 definitions are created first; higher versions are applied
    onto the created root with the same name afterwards.

Gated
    Pipelines that use task groups or variable groups are excluded when that
    kind was not migrated in this run at all (its mapping table is absent).

Rewritten
    Every reference field of every remaining definition is translated to the
    target id. Definitions are independent of each other, so this runs on a
    bounded thread pool.

Submitted
    The batch is created in the target.

Reconciled
    Target definitions that existed before this pass are matched to source
    definitions by name and added to the mapping table, so a re-run against a
    populated target creates nothing and still yields a complete table.

Mapping Tables
--------------
A disabled pass leaves its mapping table absent (None), which is different
from an empty table: absence makes the gate exclude dependent pipelines,
while an empty table only produces per-field lookup misses.

Error Handling
--------------
- Configuration errors abort before any pass runs
- Lookup misses and malformed input become MigrationWarnings, never exceptions
- A failed create ends its pass without a mapping table; later passes still
  run and their gate excludes the dependants. With stop_on_error the whole
  run aborts instead.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar

from .exceptions import ConfigurationError, CreationError, MigrationError
from .filters import filter_new, map_by_name, reconcile_existing
from .gate import admit
from .mapping import MappingTable
from .models import Definition, EntityKind, GitRepo, MigrationWarning, ServiceConnection, TaskGroup
from .repositories import repository_mapping, resolve_repositories
from .rewriter import ReferenceRewriter, RewriteContext
from .versions import partition_versions

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .config import MigrationOptions
    from .protocols import DefinitionEndpoint

logger: logging.Logger = logging.getLogger(__name__)

D = TypeVar("D", bound=Definition)


class PassState(StrEnum):
    NOT_STARTED = "not_started"
    LISTED = "listed"
    FILTERED = "filtered"
    VERSION_RESOLVED = "version_resolved"
    GATED = "gated"
    REWRITTEN = "rewritten"
    SUBMITTED = "submitted"
    RECONCILED = "reconciled"


@dataclass
class PassResult:
    """Outcome of migrating one entity kind."""

    kind: EntityKind
    state: PassState = PassState.NOT_STARTED
    created: int = 0
    updated: int = 0
    reused: int = 0
    excluded: int = 0
    warnings: list[MigrationWarning] = field(default_factory=list)
    mapping: MappingTable | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class MigrationResult:
    """Result of a migration run."""

    passes: list[PassResult] = field(default_factory=list)
    mappings: dict[EntityKind, MappingTable] = field(default_factory=dict)
    """Mapping tables by kind. A kind that is missing was not migrated."""

    @property
    def success(self) -> bool:
        return all(p.success for p in self.passes)

    @property
    def warnings(self) -> list[MigrationWarning]:
        return [w for p in self.passes for w in p.warnings]

    def mapping_for(self, kind: EntityKind) -> MappingTable | None:
        return self.mappings.get(kind)


class PipelineMigrator:
    """Migrates pipeline-related definitions from a source project to a target project.

    Usage:
        source = AzureDevOpsEndpoint(source_config)
        target = AzureDevOpsEndpoint(target_config)
        migrator = PipelineMigrator(source, target, MigrationOptions())
        result = migrator.migrate()

    The migrator keeps no state between runs; everything is returned in
    MigrationResult.
    """

    _source: DefinitionEndpoint
    _target: DefinitionEndpoint
    _options: MigrationOptions

    def __init__(self, source: DefinitionEndpoint, target: DefinitionEndpoint, options: MigrationOptions) -> None:
        self._source = source
        self._target = target
        self._options = options

    def migrate(self) -> MigrationResult:
        """Run every enabled pass in dependency order.

        Raises:
            ConfigurationError: If the run is misconfigured; nothing is migrated
            MigrationError: If a pass fails and stop_on_error is set
        """
        self._validate()
        started = time.monotonic()
        logger.info(f"Starting pipeline migration {self._source.name} -> {self._target.name}")

        passes: list[tuple[EntityKind, bool, Callable[[PassResult, MigrationResult], MappingTable]]] = [
            (
                EntityKind.SERVICE_CONNECTION,
                self._options.migrate_service_connections,
                self._migrate_service_connections,
            ),
            (EntityKind.VARIABLE_GROUP, self._options.migrate_variable_groups, self._migrate_variable_groups),
            (EntityKind.TASK_GROUP, self._options.migrate_task_groups, self._migrate_task_groups),
            (EntityKind.BUILD_DEFINITION, self._options.migrate_build_pipelines, self._migrate_build_pipelines),
            (
                EntityKind.RELEASE_DEFINITION,
                self._options.migrate_release_pipelines,
                self._migrate_release_pipelines,
            ),
        ]

        result = MigrationResult()
        for kind, enabled, migrate_pass in passes:
            if not enabled:
                logger.info(f"Skipping {kind} pass (disabled)")
                continue
            self._run_pass(kind, migrate_pass, result)

        logger.info(f"Pipeline migration done in {time.monotonic() - started:.1f}s")
        for pass_result in result.passes:
            logger.info(
                f"{pass_result.kind}: {pass_result.state}, created={pass_result.created}, "
                f"updated={pass_result.updated}, reused={pass_result.reused}, excluded={pass_result.excluded}, "
                f"warnings={len(pass_result.warnings)}"
            )
        return result

    def _validate(self) -> None:
        self._options.validate()
        if self._source.name.lower() == self._target.name.lower():
            msg = f"Source and target must be different projects, both are {self._source.name}"
            raise ConfigurationError(msg)
        if not any(
            (
                self._options.migrate_service_connections,
                self._options.migrate_variable_groups,
                self._options.migrate_task_groups,
                self._options.migrate_build_pipelines,
                self._options.migrate_release_pipelines,
            )
        ):
            msg = "All passes are disabled, nothing to migrate"
            raise ConfigurationError(msg)

    def _run_pass(
        self,
        kind: EntityKind,
        migrate_pass: Callable[[PassResult, MigrationResult], MappingTable],
        result: MigrationResult,
    ) -> None:
        logger.info(f"Processing {kind}s...")
        pass_result = PassResult(kind=kind)
        result.passes.append(pass_result)

        try:
            table = migrate_pass(pass_result, result)
        except MigrationError as e:
            pass_result.error = str(e)
            warning = MigrationWarning(
                category="creation_failed" if isinstance(e, CreationError) else "listing_failed",
                kind=kind,
                entity_name="",
                entity_id="",
                message=f"{kind} pass failed in state {pass_result.state}: {e}",
            )
            pass_result.warnings.append(warning)
            logger.exception(f"{kind} pass failed, dependent pipelines will be skipped")
            if self._options.stop_on_error:
                raise
            return

        pass_result.mapping = table
        result.mappings[kind] = table

    def _list(self, kind: EntityKind) -> tuple[list[Definition], list[Definition]]:
        return self._source.list_definitions(kind), self._target.list_definitions(kind)

    def _submit_and_reconcile(
        self,
        kind: EntityKind,
        candidates: Sequence[Definition],
        source: Sequence[Definition],
        target: Sequence[Definition],
        pass_result: PassResult,
    ) -> MappingTable:
        fresh = self._target.create_definitions(kind, candidates) if candidates else []
        pass_result.state = PassState.SUBMITTED
        pass_result.created = len(fresh)

        table = MappingTable(kind, fresh)
        existing = reconcile_existing(source, target, fresh)
        table.extend(existing)
        pass_result.reused = len(existing)
        pass_result.state = PassState.RECONCILED
        return table

    def _rewrite_all(self, definitions: Sequence[D], context: RewriteContext, pass_result: PassResult) -> list[D]:
        """Rewrite copies of definitions on the worker pool, one worker per definition."""
        rewriter = ReferenceRewriter(context)
        candidates = [d.copy() for d in definitions]

        with ThreadPoolExecutor(max_workers=self._options.max_workers) as executor:
            futures = [executor.submit(rewriter.rewrite, candidate) for candidate in candidates]
            for future in as_completed(futures):
                pass_result.warnings.extend(future.result())

        pass_result.state = PassState.REWRITTEN
        return candidates

    def _gate(self, definitions: Sequence[D], pass_result: PassResult, result: MigrationResult) -> list[D]:
        admitted, warnings = admit(
            definitions,
            result.mapping_for(EntityKind.TASK_GROUP),
            result.mapping_for(EntityKind.VARIABLE_GROUP),
        )
        pass_result.warnings.extend(warnings)
        pass_result.excluded = len(definitions) - len(admitted)
        pass_result.state = PassState.GATED
        return admitted

    def _migrate_service_connections(self, pass_result: PassResult, result: MigrationResult) -> MappingTable:
        kind = EntityKind.SERVICE_CONNECTION
        source, target = self._list(kind)
        pass_result.state = PassState.LISTED

        to_migrate = filter_new(source, target)
        pass_result.state = PassState.FILTERED

        candidates = [d.copy() for d in to_migrate]
        return self._submit_and_reconcile(kind, candidates, source, target, pass_result)

    def _migrate_variable_groups(self, pass_result: PassResult, result: MigrationResult) -> MappingTable:
        kind = EntityKind.VARIABLE_GROUP
        source, target = self._list(kind)
        pass_result.state = PassState.LISTED

        to_migrate = filter_new(source, target)
        pass_result.state = PassState.FILTERED

        candidates = [d.copy() for d in to_migrate]
        for candidate in candidates:
            # Azure DevOps Services only accepts variable groups shared with a project
            candidate.payload["variableGroupProjectReferences"] = [
                {
                    "name": candidate.name,
                    "description": candidate.payload.get("description") or "",
                    "projectReference": {"name": self._target.project},
                }
            ]
        return self._submit_and_reconcile(kind, candidates, source, target, pass_result)

    def _migrate_task_groups(self, pass_result: PassResult, result: MigrationResult) -> MappingTable:
        kind = EntityKind.TASK_GROUP
        source, target = self._list(kind)
        pass_result.state = PassState.LISTED

        to_migrate = [d for d in filter_new(source, target) if isinstance(d, TaskGroup)]
        pass_result.state = PassState.FILTERED

        chains = partition_versions(to_migrate)
        pass_result.warnings.extend(chains.warnings)
        pass_result.excluded = len(chains.orphans)
        pass_result.state = PassState.VERSION_RESOLVED

        roots = [d.copy() for d in chains.root]
        fresh = self._target.create_definitions(kind, roots) if roots else []
        pass_result.created = len(fresh)

        if chains.updates:
            current = [d for d in self._target.list_definitions(kind) if isinstance(d, TaskGroup)]
            root_targets = [d for d in current if d.major_version == 1]
            skipped = self._target.update_task_group_versions(
                current, root_targets, [d.copy() for d in chains.updates]
            )
            for update in skipped:
                warning = MigrationWarning.for_definition(
                    update,
                    "malformed_input",
                    f"No target root task group to apply version {update.major_version} onto, skipping",
                )
                logger.warning(str(warning))
                pass_result.warnings.append(warning)
            pass_result.updated = len(chains.updates) - len(skipped)
        pass_result.state = PassState.SUBMITTED

        final = [d for d in self._target.list_definitions(kind) if d.name]
        table = MappingTable(kind, fresh)
        existing = reconcile_existing(source, final, fresh)
        table.extend(existing)
        pass_result.reused = len(existing)
        pass_result.state = PassState.RECONCILED
        return table

    def _migrate_build_pipelines(self, pass_result: PassResult, result: MigrationResult) -> MappingTable:
        kind = EntityKind.BUILD_DEFINITION
        source, target = self._list(kind)
        source_connections, target_connections = self._list(EntityKind.SERVICE_CONNECTION)
        source_repos, target_repos = self._list(EntityKind.GIT_REPO)
        pass_result.state = PassState.LISTED

        to_migrate = filter_new(source, target)
        pass_result.state = PassState.FILTERED

        admitted = self._gate(to_migrate, pass_result, result)

        repo_matches = resolve_repositories(
            [r for r in source_repos if isinstance(r, GitRepo)],
            [r for r in target_repos if isinstance(r, GitRepo)],
            self._options.repositories,
        )
        repo_table = repository_mapping(repo_matches)
        result.mappings[EntityKind.GIT_REPO] = repo_table

        context = RewriteContext(
            source_service_connections=[c for c in source_connections if isinstance(c, ServiceConnection)],
            target_service_connections=[c for c in target_connections if isinstance(c, ServiceConnection)],
            target_repositories=[r for r in target_repos if isinstance(r, GitRepo)],
            service_connection_mapping=result.mapping_for(EntityKind.SERVICE_CONNECTION),
            task_group_mapping=result.mapping_for(EntityKind.TASK_GROUP),
            variable_group_mapping=result.mapping_for(EntityKind.VARIABLE_GROUP),
            repository_mapping=repo_table,
        )
        candidates = self._rewrite_all(admitted, context, pass_result)
        return self._submit_and_reconcile(kind, candidates, source, target, pass_result)

    def _migrate_release_pipelines(self, pass_result: PassResult, result: MigrationResult) -> MappingTable:
        kind = EntityKind.RELEASE_DEFINITION
        source, target = self._list(kind)
        source_connections, target_connections = self._list(EntityKind.SERVICE_CONNECTION)
        agent_pools = MappingTable(EntityKind.AGENT_POOL, map_by_name(*self._list(EntityKind.AGENT_POOL)))
        deployment_groups = MappingTable(
            EntityKind.DEPLOYMENT_GROUP, map_by_name(*self._list(EntityKind.DEPLOYMENT_GROUP))
        )
        result.mappings[EntityKind.AGENT_POOL] = agent_pools
        result.mappings[EntityKind.DEPLOYMENT_GROUP] = deployment_groups
        pass_result.state = PassState.LISTED

        to_migrate = filter_new(source, target)
        if self._options.release_pipelines is not None:
            allowed = {name.lower() for name in self._options.release_pipelines}
            to_migrate = [d for d in to_migrate if d.name.lower() in allowed]
            logger.info(f"{len(to_migrate)} release pipeline(s) left after applying the allow-list")
        pass_result.state = PassState.FILTERED

        admitted = self._gate(to_migrate, pass_result, result)

        context = RewriteContext(
            source_service_connections=[c for c in source_connections if isinstance(c, ServiceConnection)],
            target_service_connections=[c for c in target_connections if isinstance(c, ServiceConnection)],
            service_connection_mapping=result.mapping_for(EntityKind.SERVICE_CONNECTION),
            task_group_mapping=result.mapping_for(EntityKind.TASK_GROUP),
            variable_group_mapping=result.mapping_for(EntityKind.VARIABLE_GROUP),
            agent_pool_mapping=agent_pools,
            deployment_group_mapping=deployment_groups,
        )
        candidates = self._rewrite_all(admitted, context, pass_result)
        return self._submit_and_reconcile(kind, candidates, source, target, pass_result)
