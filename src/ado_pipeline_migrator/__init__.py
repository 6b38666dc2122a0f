"""
Azure DevOps Pipeline Migration Tool

Migrates service connections, variable groups, task groups, build pipelines
and release pipelines between Azure DevOps projects, rewriting every
collection-local id so migrated pipelines point at target-side entities.
"""

from __future__ import annotations

from .cli import main
from .config import EndpointConfig, MigrationOptions
from .exceptions import ConfigurationError, CreationError, ListingError, MigrationError
from .mapping import MappingTable
from .models import EntityKind, Mapping, MigrationWarning
from .orchestrator import MigrationResult, PassResult, PipelineMigrator
from .utils import setup_logging

# Package version
__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "CreationError",
    "ListingError",
    "EndpointConfig",
    "EntityKind",
    "Mapping",
    "MappingTable",
    "MigrationError",
    "MigrationOptions",
    "MigrationResult",
    "MigrationWarning",
    "PassResult",
    "PipelineMigrator",
    "main",
    "setup_logging",
]
