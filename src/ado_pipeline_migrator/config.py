"""
Configuration values for a migration run.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class EndpointConfig:
    """Location and credentials of one Azure DevOps project."""

    organization_url: str
    project: str
    token: str | None = field(default=None, repr=False)

    @property
    def name(self) -> str:
        return f"{self.organization_url.rstrip('/')}/{self.project}"

    def validate(self, role: str) -> None:
        if not self.organization_url.strip():
            msg = f"The {role} organization URL must not be empty"
            raise ConfigurationError(msg)
        if not self.organization_url.startswith(("https://", "http://")):
            msg = f"The {role} organization URL must be an http(s) URL, got '{self.organization_url}'"
            raise ConfigurationError(msg)
        if not self.project.strip():
            msg = f"The {role} project must not be empty"
            raise ConfigurationError(msg)


@dataclass(frozen=True)
class MigrationOptions:
    """Which passes run and how.

    Read once by the orchestrator at the start of a run.
    """

    migrate_service_connections: bool = True
    migrate_variable_groups: bool = True
    migrate_task_groups: bool = True
    migrate_build_pipelines: bool = True
    migrate_release_pipelines: bool = True
    release_pipelines: tuple[str, ...] | None = None
    """Only migrate release pipelines with these names. None migrates all."""
    repositories: dict[str, str] = field(default_factory=lambda: {"*": "*"})
    """Source repository name to target repository name; "*" selects all."""
    max_workers: int = 1
    """Number of definitions rewritten in parallel within a pass."""
    stop_on_error: bool = False
    """Abort the whole run when a pass fails to create its definitions."""

    def validate(self) -> None:
        if self.max_workers < 1:
            msg = f"max_workers must be at least 1, got {self.max_workers}"
            raise ConfigurationError(msg)
        if self.release_pipelines is not None and not self.migrate_release_pipelines:
            msg = "A release pipeline allow-list was given but release pipelines are not migrated"
            raise ConfigurationError(msg)
