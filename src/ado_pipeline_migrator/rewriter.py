"""Rewriting of collection-local ids inside definitions bound for the target.

A build or release definition listed from the source still points at source
service connections, task groups, variable groups, agent queues and
repositories. Before it is created in the target every such reference is
translated to the id of the corresponding target entity.

Unresolvable references are handled per field:

- task group and variable group ids are left as they are, with a warning, so
  the broken step is visible in the target instead of silently disappearing
- deployment phase queue ids are reset to 0 ("no queue"), which the target
  shows as a configuration gap to be filled in
- a repository's connected service id is dropped, as it can only point at a
  connection of the same collection
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .models import (
    NATIVE_REPOSITORY_TYPE,
    BuildDefinition,
    Definition,
    EntityKind,
    GitRepo,
    MigrationWarning,
    ReleaseDefinition,
    ServiceConnection,
    is_meta_task,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .mapping import MappingTable

logger: logging.Logger = logging.getLogger(__name__)

UNSET_QUEUE_ID = 0

AGENT_BASED_DEPLOYMENT = "agentBasedDeployment"
MACHINE_GROUP_BASED_DEPLOYMENT = "machineGroupBasedDeployment"


def _as_type_of(original: object, new_id: str) -> Any:  # noqa: ANN401 - ids are str or int in payloads
    """Return new_id as an int when the id it replaces was an int."""
    if isinstance(original, int) and not isinstance(original, bool) and new_id.lstrip("-").isdigit():
        return int(new_id)
    return new_id


@dataclass(frozen=True)
class RewriteContext:
    """Everything the rewriter may consult, read-only for the whole pass.

    A mapping table that is None means its kind was not migrated in this run.
    The service connection and repository lists serve as name-based fallback
    when no mapping table covers a reference.
    """

    source_service_connections: Sequence[ServiceConnection] = ()
    target_service_connections: Sequence[ServiceConnection] = ()
    target_repositories: Sequence[GitRepo] = ()
    service_connection_mapping: MappingTable | None = None
    task_group_mapping: MappingTable | None = None
    variable_group_mapping: MappingTable | None = None
    agent_pool_mapping: MappingTable | None = None
    deployment_group_mapping: MappingTable | None = None
    repository_mapping: MappingTable | None = None


class ReferenceRewriter:
    """Translates the reference fields of one definition at a time.

    The rewriter keeps no per-definition state, so a single instance can be
    shared by the workers of a pass as long as each definition is handled by
    only one of them.
    """

    _context: RewriteContext
    _source_connection_names: dict[str, str]
    _target_connection_ids: dict[str, str]
    _target_repos_by_id: dict[str, GitRepo]
    _target_repos_by_name: dict[str, GitRepo]

    def __init__(self, context: RewriteContext) -> None:
        self._context = context
        self._source_connection_names = {c.id.lower(): c.name for c in context.source_service_connections}
        if context.service_connection_mapping is not None:
            for mapping in context.service_connection_mapping:
                self._source_connection_names.setdefault(mapping.source_id.lower(), mapping.name)

        self._target_connection_ids = {}
        for connection in context.target_service_connections:
            self._target_connection_ids.setdefault(connection.name.lower(), connection.id)

        self._target_repos_by_id = {r.id.lower(): r for r in context.target_repositories}
        self._target_repos_by_name = {}
        for repo in context.target_repositories:
            self._target_repos_by_name.setdefault(repo.name.lower(), repo)

    def rewrite(self, definition: Definition) -> list[MigrationWarning]:
        """Rewrite every known reference field of definition in place.

        Returns:
            Warnings for references that could not be resolved
        """
        warnings: list[MigrationWarning] = []
        if isinstance(definition, BuildDefinition):
            self._rewrite_build(definition, warnings)
        elif isinstance(definition, ReleaseDefinition):
            self._rewrite_release(definition, warnings)
        return warnings

    def _warn(
        self,
        warnings: list[MigrationWarning],
        definition: Definition,
        message: str,
        dependency_kind: EntityKind,
    ) -> None:
        warning = MigrationWarning.for_definition(definition, "lookup_miss", message, dependency_kind=dependency_kind)
        logger.warning(str(warning))
        warnings.append(warning)

    # Build definitions

    def _rewrite_build(self, definition: BuildDefinition, warnings: list[MigrationWarning]) -> None:
        repository = definition.repository
        if repository is not None:
            self._rewrite_connected_service(definition, repository, warnings)
            self._rewrite_repository(definition, repository, warnings)

        for step in definition.steps():
            if step.get("inputs"):
                step["inputs"] = self._remap_connection_ids(step["inputs"], definition, warnings)

            task = step.get("task") or {}
            if is_meta_task(task.get("definitionType")):
                new_id = self._remap_task_group(task.get("id"), step.get("displayName"), definition, warnings)
                if new_id is not None:
                    task["id"] = new_id

        self._remap_variable_groups(definition.variable_groups, definition, warnings)

        # The source project reference is meaningless in the target collection
        definition.payload.pop("project", None)

    def _rewrite_connected_service(
        self,
        definition: BuildDefinition,
        repository: dict[str, Any],
        warnings: list[MigrationWarning],
    ) -> None:
        properties = repository.get("properties")
        if not isinstance(properties, dict) or not properties.get("connectedServiceId"):
            return

        source_id = str(properties["connectedServiceId"])
        target_id = self._resolve_service_connection(source_id)
        if target_id is None:
            self._warn(
                warnings,
                definition,
                f"Can't find service connection {source_id} of repository {repository.get('name')} in the target",
                EntityKind.SERVICE_CONNECTION,
            )
            del properties["connectedServiceId"]
        else:
            properties["connectedServiceId"] = target_id

    def _rewrite_repository(
        self,
        definition: BuildDefinition,
        repository: dict[str, Any],
        warnings: list[MigrationWarning],
    ) -> None:
        if repository.get("type") != NATIVE_REPOSITORY_TYPE:
            return

        target_repo: GitRepo | None = None
        if self._context.repository_mapping is not None:
            target_id = self._context.repository_mapping.target_for(repository.get("id"))
            if target_id is not None:
                target_repo = self._target_repos_by_id.get(target_id.lower())
        if target_repo is None:
            target_repo = self._target_repos_by_name.get(str(repository.get("name") or "").lower())

        if target_repo is None:
            self._warn(
                warnings,
                definition,
                f"Can't find repository {repository.get('name')} in the target",
                EntityKind.GIT_REPO,
            )
            return

        repository["id"] = target_repo.id
        repository["name"] = target_repo.name
        if target_repo.remote_url:
            repository["url"] = target_repo.remote_url

    # Release definitions

    def _rewrite_release(self, definition: ReleaseDefinition, warnings: list[MigrationWarning]) -> None:
        for phase in definition.deploy_phases():
            self._rewrite_queue(phase, definition, warnings)

        for workflow_task in definition.workflow_tasks():
            if workflow_task.get("inputs"):
                workflow_task["inputs"] = self._remap_connection_ids(workflow_task["inputs"], definition, warnings)

            if is_meta_task(workflow_task.get("definitionType")):
                new_id = self._remap_task_group(
                    workflow_task.get("taskId"), workflow_task.get("name"), definition, warnings
                )
                if new_id is not None:
                    workflow_task["taskId"] = new_id

        self._remap_variable_groups(definition.variable_groups, definition, warnings)
        for environment in definition.environments():
            self._remap_variable_groups(environment.get("variableGroups") or [], definition, warnings)

    def _rewrite_queue(
        self,
        phase: dict[str, Any],
        definition: ReleaseDefinition,
        warnings: list[MigrationWarning],
    ) -> None:
        phase_type = phase.get("phaseType")
        if phase_type == AGENT_BASED_DEPLOYMENT:
            table, dependency_kind = self._context.agent_pool_mapping, EntityKind.AGENT_POOL
        elif phase_type == MACHINE_GROUP_BASED_DEPLOYMENT:
            table, dependency_kind = self._context.deployment_group_mapping, EntityKind.DEPLOYMENT_GROUP
        else:
            return

        deployment_input = phase.get("deploymentInput")
        if not isinstance(deployment_input, dict):
            return

        queue_id = deployment_input.get("queueId")
        target_id = table.target_for(queue_id) if table is not None else None
        if target_id is not None:
            deployment_input["queueId"] = _as_type_of(queue_id, target_id)
            return

        if queue_id not in (None, UNSET_QUEUE_ID):
            self._warn(
                warnings,
                definition,
                f"Can't find queue {queue_id} of phase {phase.get('name')} in the target, resetting it",
                dependency_kind,
            )
        deployment_input["queueId"] = UNSET_QUEUE_ID

    # Shared reference kinds

    def _remap_task_group(
        self,
        source_id: object,
        step_name: object,
        definition: Definition,
        warnings: list[MigrationWarning],
    ) -> str | None:
        table = self._context.task_group_mapping
        if table is None:
            return None
        target_id = table.target_for(source_id)
        if target_id is None:
            self._warn(
                warnings,
                definition,
                f"Can't find task group {source_id} used by step {step_name} in the target",
                EntityKind.TASK_GROUP,
            )
        return target_id

    def _remap_variable_groups(
        self,
        groups: list[Any],
        definition: Definition,
        warnings: list[MigrationWarning],
    ) -> None:
        table = self._context.variable_group_mapping
        if table is None:
            return

        for index, group in enumerate(groups):
            if group is None:
                continue
            source_id = group.get("id") if isinstance(group, dict) else group
            target_id = table.target_for(source_id)
            if target_id is None:
                self._warn(
                    warnings,
                    definition,
                    f"Can't find variable group {source_id} in the target",
                    EntityKind.VARIABLE_GROUP,
                )
                continue

            new_id = _as_type_of(source_id, target_id)
            if isinstance(group, dict):
                group["id"] = new_id
            else:
                groups[index] = new_id

    def _resolve_service_connection(self, source_id: str) -> str | None:
        table = self._context.service_connection_mapping
        if table is not None:
            target_id = table.target_for(source_id)
            if target_id is not None:
                return target_id

        name = self._source_connection_names.get(source_id.lower())
        if name is None:
            return None
        return self._target_connection_ids.get(name.lower())

    def _remap_connection_ids(
        self,
        value: Any,  # noqa: ANN401 - step inputs are schema-less JSON
        definition: Definition,
        warnings: list[MigrationWarning],
    ) -> Any:  # noqa: ANN401
        """Replace every value equal to a source service connection id, at any depth.

        Which input keys hold connection ids depends on the task, so every
        value is checked rather than a fixed list of keys.
        """
        if isinstance(value, dict):
            for key, item in value.items():
                value[key] = self._remap_connection_ids(item, definition, warnings)
            return value

        if isinstance(value, list):
            for index, item in enumerate(value):
                value[index] = self._remap_connection_ids(item, definition, warnings)
            return value

        if not isinstance(value, str) or value.lower() not in self._source_connection_names:
            return value

        target_id = self._resolve_service_connection(value)
        if target_id is None:
            name = self._source_connection_names[value.lower()]
            self._warn(
                warnings,
                definition,
                f"Can't find service connection {name}({value}) in the target",
                EntityKind.SERVICE_CONNECTION,
            )
            return value
        return target_id
