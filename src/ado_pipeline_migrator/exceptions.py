"""
Custom exception classes for the Azure DevOps pipeline migration tool.
"""

from __future__ import annotations


class MigrationError(Exception):
    """Base exception for migration errors."""


class ConfigurationError(MigrationError):
    """Raised before any pass runs when the migration is misconfigured."""


class CreationError(MigrationError):
    """Raised when the target rejects a batch create or update."""


class ListingError(MigrationError):
    """Raised when definitions cannot be read from a collection."""
