"""
Lookup of Azure DevOps personal access tokens.

Tokens are taken, in order, from an explicit path in the ``pass`` password
store, from an environment variable, or from a default ``pass`` path.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from typing import Final

logger: logging.Logger = logging.getLogger(__name__)

SOURCE_TOKEN_ENV_VAR: Final[str] = "ADO_SOURCE_TOKEN"  # noqa: S105
TARGET_TOKEN_ENV_VAR: Final[str] = "ADO_TARGET_TOKEN"  # noqa: S105
DEFAULT_SOURCE_PASS_PATH: Final[str] = "azure-devops/source/pat"  # noqa: S105
DEFAULT_TARGET_PASS_PATH: Final[str] = "azure-devops/target/pat"  # noqa: S105


class PassError(Exception):
    """Base class for pass-related errors."""


class InvalidPassPathError(PassError):
    """Raised when the pass path does not exist in the password store."""


def _validate_pass_path(pass_path: str) -> None:
    if not re.fullmatch(r"(?:[A-Za-z0-9_.-]+)(?:/[A-Za-z0-9_.-]+)*", pass_path):
        msg = f"Invalid pass path: {pass_path}"
        raise ValueError(msg)


def get_pass_value(pass_path: str) -> str:
    """Get the first line stored in the pass utility at pass_path."""
    _validate_pass_path(pass_path)

    try:
        result = subprocess.run(  # noqa: S603
            ["pass", "show", pass_path], capture_output=True, text=True, check=True
        )
    except FileNotFoundError as e:
        msg = "The pass utility is not installed"
        raise PassError(msg) from e
    except subprocess.CalledProcessError as e:
        if "not in the password store" in e.stderr.lower():
            msg = f"Pass path '{pass_path}' not found."
            raise InvalidPassPathError(msg) from e
        msg = f"Failed to get value from pass at '{pass_path}' (return code {e.returncode}): {e.stderr.strip()}"
        raise PassError(msg) from e

    lines = result.stdout.splitlines()
    return lines[0].strip() if lines else ""


def get_token(pass_path: str | None, env_var: str, default_pass_path: str) -> str | None:
    """Get a token from pass_path, the env_var environment variable, or default_pass_path."""
    if pass_path:
        return get_pass_value(pass_path)

    token: str | None = os.environ.get(env_var)
    if token:
        return token

    try:
        return get_pass_value(default_pass_path)
    except (ValueError, PassError):
        logger.warning(f"No token specified nor found in ${env_var} or pass at {default_pass_path}")
        return None
