"""Matching of source git repositories onto target repositories.

Repository content is pushed by other tooling; this module only establishes
which target repository a source repository corresponds to, so that build
definitions can be pointed at it. A repository may be renamed on the way by
passing a name override.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .mapping import MappingTable
from .models import EntityKind, Mapping

if TYPE_CHECKING:
    from collections.abc import Mapping as MappingABC
    from collections.abc import Sequence

    from .models import GitRepo

logger: logging.Logger = logging.getLogger(__name__)

WILDCARD = "*"


@dataclass
class RepoMatch:
    """A selected source repository and the target repository it resolves to."""

    source: GitRepo
    target_name: str
    target: GitRepo | None = None

    @property
    def is_mapped(self) -> bool:
        return self.target is not None


def _target_name(repo: GitRepo, overrides: MappingABC[str, str]) -> str:
    for source_name, target_name in overrides.items():
        if source_name != WILDCARD and source_name.lower() == repo.name.lower():
            return target_name
    return repo.name


def resolve_repositories(
    source_repos: Sequence[GitRepo],
    target_repos: Sequence[GitRepo],
    overrides: MappingABC[str, str] | None = None,
) -> list[RepoMatch]:
    """Select source repositories and find their target counterparts.

    Args:
        source_repos: Repositories of the source project
        target_repos: Repositories of the target project
        overrides: Source repository name to target repository name. The key
            "*" selects every source repository; without it only the named
            repositories are selected. Empty or None selects everything.

    Returns:
        One RepoMatch per selected source repository
    """
    overrides = dict(overrides or {WILDCARD: WILDCARD})
    select_all = WILDCARD in overrides
    selected_names = {name.lower() for name in overrides}

    target_by_name: dict[str, GitRepo] = {}
    for repo in target_repos:
        target_by_name.setdefault(repo.name.lower(), repo)

    matches: list[RepoMatch] = []
    for repo in source_repos:
        if not select_all and repo.name.lower() not in selected_names:
            continue
        target_name = _target_name(repo, overrides)
        matches.append(RepoMatch(source=repo, target_name=target_name, target=target_by_name.get(target_name.lower())))

    unmapped = sum(1 for match in matches if not match.is_mapped)
    logger.info(f"Found {unmapped}/{len(matches)} source repositories without a target repository")
    for match in matches:
        status = "Already Mapped" if match.is_mapped else "Needs Mapping"
        logger.info(f"[{match.source.name}] ---> [{match.target.name if match.target else '??'}] = {status}")

    return matches


def repository_mapping(matches: Sequence[RepoMatch]) -> MappingTable:
    """Build the repository mapping table from resolved matches."""
    return MappingTable(
        EntityKind.GIT_REPO,
        (
            Mapping(source_id=match.source.id, target_id=match.target.id, name=match.target.name)
            for match in matches
            if match.target is not None
        ),
    )
