"""Protocol defining the contract for Azure DevOps collections.

The migration core never talks HTTP itself. It consumes a source and a
target that can list definitions of a kind, create a batch of definitions,
and apply task group version updates. This allows:

- Testing the migration passes in isolation with in-memory endpoints
- Keeping pagination, rate limiting and authentication out of the core
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .models import Definition, EntityKind, Mapping, TaskGroup


class DefinitionEndpoint(Protocol):
    """Protocol for one side (source or target) of a migration.

    Implementations:
        - AzureDevOpsEndpoint: REST API of an Azure DevOps collection/project
    """

    @property
    def name(self) -> str:
        """Identify the endpoint, e.g. "https://dev.azure.com/org/Project"."""
        ...

    @property
    def project(self) -> str:
        """Name of the project definitions are listed from and created in."""
        ...

    def list_definitions(self, kind: EntityKind) -> list[Definition]:
        """Return all definitions of a kind.

        Two calls within the same pass must observe a consistent snapshot.

        Raises:
            ListingError: If the definitions cannot be listed
        """
        ...

    def create_definitions(self, kind: EntityKind, definitions: Sequence[Definition]) -> list[Mapping]:
        """Create definitions and return one mapping per created definition.

        The definitions carry source ids; the endpoint assigns new ids and
        reports them as the mapping's target_id.

        Raises:
            CreationError: If any definition fails to be created. No partial
                success is reported.
        """
        ...

    def update_task_group_versions(
        self,
        targets: Sequence[TaskGroup],
        root_targets: Sequence[TaskGroup],
        updates: Sequence[TaskGroup],
    ) -> list[TaskGroup]:
        """Apply newer major versions onto root task groups already in this endpoint.

        Args:
            targets: All task groups currently in this endpoint
            root_targets: The major version 1 task groups among targets
            updates: Source task groups with major version > 1, in version order,
                each applied onto the root target with the same name

        Returns:
            The updates that had no root target to be applied onto

        Raises:
            CreationError: If an update is rejected
        """
        ...
