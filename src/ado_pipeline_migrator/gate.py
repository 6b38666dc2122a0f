"""Exclusion of pipelines whose dependencies were not migrated at all."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from .models import Definition, EntityKind, MigrationWarning

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .mapping import MappingTable

logger: logging.Logger = logging.getLogger(__name__)

D = TypeVar("D", bound=Definition)


def admit(
    candidates: Iterable[D],
    task_group_mapping: MappingTable | None,
    variable_group_mapping: MappingTable | None,
) -> tuple[list[D], list[MigrationWarning]]:
    """Drop candidates that reference a kind for which no mapping table exists.

    A table that is None means the kind was not migrated in this run, so none
    of its ids can be translated. An empty table is a different situation:
    the pass ran and found nothing, and lookups miss per field instead.

    Returns:
        The admitted candidates and one warning per excluded candidate
    """
    admitted: list[D] = []
    warnings: list[MigrationWarning] = []

    for candidate in candidates:
        missing: EntityKind | None = None
        if task_group_mapping is None and candidate.has_task_group_reference():
            missing = EntityKind.TASK_GROUP
        elif variable_group_mapping is None and candidate.has_variable_group_reference():
            missing = EntityKind.VARIABLE_GROUP

        if missing is None:
            admitted.append(candidate)
            continue

        warning = MigrationWarning.for_definition(
            candidate,
            "capability_absent",
            f"Uses {missing}s but {missing}s were not migrated in this run, skipping",
            dependency_kind=missing,
        )
        logger.warning(str(warning))
        warnings.append(warning)

    return admitted, warnings
