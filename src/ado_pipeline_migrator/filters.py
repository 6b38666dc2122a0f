"""Name-based matching of source definitions against target definitions.

Definitions are matched across collections by exact, case-insensitive name.
This is the only identity that survives a migration, since ids are assigned
by the target collection on creation.

Reconciling existing target definitions by name is not safe when the target
holds a definition with the same name but different content: it will be
mapped onto the source definition all the same. Keeping a durable mapping
file between runs (see the CLI's ``--mappings-out``) is the way around this.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING, TypeVar

from .models import Definition, Mapping, TaskGroup

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger: logging.Logger = logging.getLogger(__name__)

D = TypeVar("D", bound=Definition)


def _name_key(definition: Definition) -> str:
    return definition.name.lower()


def _major(definition: Definition) -> int | None:
    return definition.major_version if isinstance(definition, TaskGroup) else None


def filter_new(source: Sequence[D], target: Sequence[Definition]) -> list[D]:
    """Return the source definitions that have no same-named target definition."""
    target_names = {_name_key(d) for d in target}
    to_migrate = [d for d in source if _name_key(d) not in target_names]

    kind = source[0].kind if source else "definition"
    logger.info(f"{len(to_migrate)} of {len(source)} source {kind}(s) are going to be migrated")
    return to_migrate


def reconcile_existing(
    source: Sequence[Definition],
    target: Iterable[Definition],
    fresh: Iterable[Mapping],
) -> list[Mapping]:
    """Recover mappings for target definitions that were not created in this pass.

    Every target definition whose id is not the target of a fresh mapping is
    looked up by name in the source. A source definition is used at most once,
    and for task groups the major version 1 root of the chain is preferred
    over the first one with the same name, whatever version the target has
    reached, since updates are applied onto the target created for the root.

    Args:
        source: All source definitions of the kind
        target: All target definitions of the kind, listed after creation
        fresh: Mappings returned by the create call of this pass

    Returns:
        Mappings for the pre-existing target definitions
    """
    fresh = list(fresh)
    fresh_targets = {m.target_id.lower() for m in fresh}
    used_sources = {m.source_id.lower() for m in fresh}

    by_name: defaultdict[str, list[Definition]] = defaultdict(list)
    for definition in source:
        by_name[_name_key(definition)].append(definition)

    existing: list[Mapping] = []
    for target_definition in target:
        if target_definition.id.lower() in fresh_targets:
            continue

        same_name = by_name.get(_name_key(target_definition), [])
        if not same_name:
            logger.info(
                f"The {target_definition.kind} {target_definition.name}({target_definition.id}) "
                "doesn't exist in the source collection"
            )
            continue

        candidates = [d for d in same_name if d.id.lower() not in used_sources]
        if not candidates:
            logger.debug(
                f"All source {target_definition.kind}(s) named {target_definition.name} are already mapped, "
                f"skipping target id {target_definition.id}"
            )
            continue

        # Versions of a task group share the target created for their root
        match = next((d for d in candidates if _major(d) == 1), candidates[0])
        used_sources.add(match.id.lower())
        existing.append(Mapping(source_id=match.id, target_id=target_definition.id, name=target_definition.name))

    return existing


def map_by_name(source: Iterable[Definition], target: Sequence[Definition]) -> list[Mapping]:
    """Map every source definition onto the first target definition with the same name.

    Nothing is created; used for kinds that must already exist in the target,
    such as agent queues and deployment groups.
    """
    target_by_name: dict[str, Definition] = {}
    for definition in target:
        target_by_name.setdefault(_name_key(definition), definition)

    mappings: list[Mapping] = []
    for definition in source:
        match = target_by_name.get(_name_key(definition))
        if match is not None:
            mappings.append(Mapping(source_id=definition.id, target_id=match.id, name=match.name))
        else:
            logger.debug(f"No target {definition.kind} named {definition.name}")
    return mappings
