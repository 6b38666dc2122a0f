"""Splitting versioned task groups into root definitions and their updates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import MigrationWarning

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .models import TaskGroup

logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class VersionChains:
    """Task groups to migrate, split by position in their version chain."""

    root: list[TaskGroup] = field(default_factory=list)
    """Major version 1 definitions, created as new target task groups."""
    updates: list[TaskGroup] = field(default_factory=list)
    """Higher major versions, applied onto the created root with the same name."""
    orphans: list[TaskGroup] = field(default_factory=list)
    """Updates whose name has no root definition; these cannot be anchored."""
    warnings: list[MigrationWarning] = field(default_factory=list)


def partition_versions(task_groups: Iterable[TaskGroup]) -> VersionChains:
    """Partition task groups into a root generation and subsequent updates.

    Updates are ordered by major version so each one is applied on top of the
    previous. A chain without a major version 1 definition is reported and
    left out entirely rather than rooted on an arbitrary version.
    """
    chains = VersionChains()
    candidates: list[TaskGroup] = []

    for task_group in task_groups:
        major = task_group.major_version
        if major == 1:
            chains.root.append(task_group)
        elif major is not None and major > 1:
            candidates.append(task_group)
        else:
            warning = MigrationWarning.for_definition(
                task_group, "malformed_input", f"Task group has no usable major version ({major!r}), skipping"
            )
            logger.warning(str(warning))
            chains.warnings.append(warning)

    root_names = {task_group.name.lower() for task_group in chains.root}
    for task_group in sorted(candidates, key=lambda t: (t.major_version or 0, t.name.lower())):
        if task_group.name.lower() in root_names:
            chains.updates.append(task_group)
            continue
        chains.orphans.append(task_group)
        warning = MigrationWarning.for_definition(
            task_group,
            "malformed_input",
            f"Version {task_group.major_version} has no version 1 root to be applied to, skipping",
        )
        logger.warning(str(warning))
        chains.warnings.append(warning)

    logger.info(f"{len(chains.root)} root task group(s), {len(chains.updates)} update(s) to apply")
    return chains
