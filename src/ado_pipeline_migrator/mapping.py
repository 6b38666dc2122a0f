"""Per-kind table of source id to target id mappings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .models import EntityKind, Mapping

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger: logging.Logger = logging.getLogger(__name__)


def _key(entity_id: str) -> str:
    # GUIDs come back from the API in varying case
    return entity_id.lower()


class MappingTable:
    """Append-only mapping table for one entity kind.

    Both the source id and the target id are unique within a table: a source
    entity maps to at most one target entity, and no two source entities
    collapse onto the same target entity.
    """

    kind: EntityKind
    _by_source: dict[str, Mapping]
    _by_target: dict[str, Mapping]

    def __init__(self, kind: EntityKind, mappings: Iterable[Mapping] = ()) -> None:
        self.kind = kind
        self._by_source = {}
        self._by_target = {}
        self.extend(mappings)

    def add(self, mapping: Mapping) -> bool:
        """Add a mapping, returning False if it conflicts with an existing one.

        Adding a mapping that is already present is a no-op and returns True.
        """
        existing = self._by_source.get(_key(mapping.source_id))
        if existing is not None:
            if _key(existing.target_id) == _key(mapping.target_id):
                return True
            logger.warning(
                f"{self.kind} source id {mapping.source_id} is already mapped to {existing.target_id}, "
                f"ignoring mapping to {mapping.target_id}"
            )
            return False

        claimed = self._by_target.get(_key(mapping.target_id))
        if claimed is not None:
            logger.warning(
                f"{self.kind} target id {mapping.target_id} is already claimed by source id {claimed.source_id}, "
                f"ignoring mapping from {mapping.source_id}"
            )
            return False

        self._by_source[_key(mapping.source_id)] = mapping
        self._by_target[_key(mapping.target_id)] = mapping
        return True

    def extend(self, mappings: Iterable[Mapping]) -> None:
        for mapping in mappings:
            self.add(mapping)

    def target_for(self, source_id: object) -> str | None:
        """Return the target id mapped from source_id, or None."""
        if source_id is None:
            return None
        mapping = self._by_source.get(_key(str(source_id)))
        return mapping.target_id if mapping else None

    def source_for(self, target_id: object) -> str | None:
        """Return the source id mapped onto target_id, or None."""
        if target_id is None:
            return None
        mapping = self._by_target.get(_key(str(target_id)))
        return mapping.source_id if mapping else None

    def has_source(self, source_id: object) -> bool:
        return self.target_for(source_id) is not None

    def has_target(self, target_id: object) -> bool:
        return self.source_for(target_id) is not None

    def source_ids(self) -> set[str]:
        return {mapping.source_id for mapping in self._by_source.values()}

    def __iter__(self) -> Iterator[Mapping]:
        return iter(list(self._by_source.values()))

    def __len__(self) -> int:
        return len(self._by_source)

    def __repr__(self) -> str:
        return f"MappingTable({self.kind}, {len(self)} mappings)"

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-compatible representation of the table."""
        return {
            "kind": str(self.kind),
            "mappings": [
                {"sourceId": m.source_id, "targetId": m.target_id, "name": m.name} for m in self._by_source.values()
            ],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MappingTable:
        return cls(
            EntityKind(data["kind"]),
            (Mapping(m["sourceId"], m["targetId"], m.get("name", "")) for m in data.get("mappings", [])),
        )
