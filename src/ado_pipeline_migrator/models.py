"""Data models for definitions exchanged with Azure DevOps collections.

Definitions are thin typed views over the JSON payloads returned by the
Azure DevOps REST API. The payload is kept whole so that fields this tool
does not know about survive the round trip from source to target; the view
classes only add accessors for the identifier-valued fields that must be
rewritten during migration.
"""

from __future__ import annotations

import copy
from collections.abc import Iterator
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar, Literal, Self

META_TASK_DEFINITION_TYPE = "metatask"
"""Lower-cased definitionType of a step that invokes a task group."""

NATIVE_REPOSITORY_TYPE = "TfsGit"
"""Repository type of git repositories hosted in the collection itself."""


class EntityKind(StrEnum):
    """The fixed set of migratable entity kinds."""

    SERVICE_CONNECTION = "ServiceConnection"
    VARIABLE_GROUP = "VariableGroup"
    TASK_GROUP = "TaskGroup"
    BUILD_DEFINITION = "BuildDefinition"
    RELEASE_DEFINITION = "ReleaseDefinition"
    AGENT_POOL = "AgentPool"
    DEPLOYMENT_GROUP = "DeploymentGroup"
    GIT_REPO = "GitRepo"


WarningCategory = Literal[
    "lookup_miss",
    "capability_absent",
    "malformed_input",
    "creation_failed",
    "listing_failed",
]


@dataclass(frozen=True)
class Mapping:
    """Correspondence between a source entity and its target counterpart."""

    source_id: str
    target_id: str
    name: str


@dataclass(frozen=True)
class MigrationWarning:
    """A non-fatal problem found during a pass, kept for post-run auditing."""

    category: WarningCategory
    kind: EntityKind
    entity_name: str
    entity_id: str
    message: str
    dependency_kind: EntityKind | None = None

    @classmethod
    def for_definition(
        cls,
        definition: Definition,
        category: WarningCategory,
        message: str,
        dependency_kind: EntityKind | None = None,
    ) -> MigrationWarning:
        return cls(
            category=category,
            kind=definition.kind,
            entity_name=definition.name,
            entity_id=definition.id,
            message=message,
            dependency_kind=dependency_kind,
        )

    def __str__(self) -> str:
        return f"[{self.kind} '{self.entity_name}' ({self.entity_id})] {self.message}"


def is_meta_task(definition_type: object) -> bool:
    """Return True if a step's definitionType denotes a task group invocation."""
    return isinstance(definition_type, str) and definition_type.lower() == META_TASK_DEFINITION_TYPE


@dataclass
class Definition:
    """A definition of some entity kind, backed by its REST payload."""

    kind: ClassVar[EntityKind]

    payload: dict[str, Any]

    @property
    def id(self) -> str:
        value = self.payload.get("id")
        return "" if value is None else str(value)

    @property
    def name(self) -> str:
        return self.payload.get("name") or ""

    def copy(self) -> Self:
        """Return a deep copy, so rewriting never touches the listed original."""
        return type(self)(copy.deepcopy(self.payload))

    def has_task_group_reference(self) -> bool:
        return False

    def has_variable_group_reference(self) -> bool:
        return False


@dataclass
class ServiceConnection(Definition):
    kind: ClassVar[EntityKind] = EntityKind.SERVICE_CONNECTION


@dataclass
class VariableGroup(Definition):
    kind: ClassVar[EntityKind] = EntityKind.VARIABLE_GROUP


@dataclass
class AgentPool(Definition):
    """A project-scoped agent queue; its id is what deployment phases reference."""

    kind: ClassVar[EntityKind] = EntityKind.AGENT_POOL


@dataclass
class DeploymentGroup(Definition):
    kind: ClassVar[EntityKind] = EntityKind.DEPLOYMENT_GROUP


@dataclass
class GitRepo(Definition):
    kind: ClassVar[EntityKind] = EntityKind.GIT_REPO

    @property
    def remote_url(self) -> str | None:
        return self.payload.get("remoteUrl")


@dataclass
class TaskGroup(Definition):
    """A versioned, reusable bundle of steps.

    Major version 1 is the root of a chain; higher majors are updates of the
    root that share its name.
    """

    kind: ClassVar[EntityKind] = EntityKind.TASK_GROUP

    @property
    def major_version(self) -> int | None:
        version = self.payload.get("version")
        if not isinstance(version, dict):
            return None
        major = version.get("major")
        return major if isinstance(major, int) else None


@dataclass
class BuildDefinition(Definition):
    kind: ClassVar[EntityKind] = EntityKind.BUILD_DEFINITION

    @property
    def repository(self) -> dict[str, Any] | None:
        return self.payload.get("repository")

    @property
    def variable_groups(self) -> list[Any]:
        return self.payload.get("variableGroups") or []

    def steps(self) -> Iterator[dict[str, Any]]:
        """Yield every step of every phase of the build process."""
        process = self.payload.get("process") or {}
        for phase in process.get("phases") or []:
            yield from phase.get("steps") or []

    def has_task_group_reference(self) -> bool:
        return any(is_meta_task((step.get("task") or {}).get("definitionType")) for step in self.steps())

    def has_variable_group_reference(self) -> bool:
        return any(group is not None for group in self.variable_groups)


@dataclass
class ReleaseDefinition(Definition):
    kind: ClassVar[EntityKind] = EntityKind.RELEASE_DEFINITION

    @property
    def variable_groups(self) -> list[Any]:
        return self.payload.get("variableGroups") or []

    def environments(self) -> Iterator[dict[str, Any]]:
        yield from self.payload.get("environments") or []

    def deploy_phases(self) -> Iterator[dict[str, Any]]:
        for environment in self.environments():
            yield from environment.get("deployPhases") or []

    def workflow_tasks(self) -> Iterator[dict[str, Any]]:
        for phase in self.deploy_phases():
            yield from phase.get("workflowTasks") or []

    def has_task_group_reference(self) -> bool:
        return any(is_meta_task(task.get("definitionType")) for task in self.workflow_tasks())

    def has_variable_group_reference(self) -> bool:
        if any(group is not None for group in self.variable_groups):
            return True
        return any(
            group is not None
            for environment in self.environments()
            for group in environment.get("variableGroups") or []
        )


DEFINITION_TYPES: dict[EntityKind, type[Definition]] = {
    cls.kind: cls
    for cls in (
        ServiceConnection,
        VariableGroup,
        TaskGroup,
        BuildDefinition,
        ReleaseDefinition,
        AgentPool,
        DeploymentGroup,
        GitRepo,
    )
}


def definition_from_payload(kind: EntityKind, payload: dict[str, Any]) -> Definition:
    """Wrap a REST payload in the view class for its kind."""
    return DEFINITION_TYPES[kind](payload)
