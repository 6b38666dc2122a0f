"""
Utility functions for the Azure DevOps pipeline migration tool.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

LOG_FILE = "pipeline-migration.log"


def setup_logging(*, verbose: bool = False) -> None:
    """Configure logging for the migration process."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler(LOG_FILE, mode="a")],
    )
    # Keep connection pool chatter out of verbose output
    logging.getLogger("urllib3").setLevel(logging.INFO)


def parse_name_pairs(pairs: Sequence[str] | None) -> dict[str, str]:
    """Parse "source:target" pairs into a dict.

    A bare "name" maps onto itself.
    """
    result: dict[str, str] = {}
    for pair in pairs or []:
        source, sep, target = pair.partition(":")
        source = source.strip()
        if not source or (sep and not target.strip()):
            msg = f"Invalid name pair format: {pair}"
            raise ValueError(msg)
        result[source] = target.strip() if sep else source
    return result
