"""
Pytest configuration and fixtures.

- Integration tests (whole migrations against in-memory endpoints) fail on
  any WARNING logged by the code under test: a clean migration must not
  produce lookup misses or exclusions.
- Unit tests may log warnings; many of them exercise exactly those paths.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from typing_extensions import override

import pytest

if TYPE_CHECKING:
    from collections.abc import Generator

_logged_warnings = pytest.StashKey[list[logging.LogRecord]]()


class WarningCollector(logging.Handler):
    """Keeps WARNING and above records in a list owned by the running test."""

    records: list[logging.LogRecord]

    def __init__(self, records: list[logging.LogRecord]) -> None:
        super().__init__(level=logging.WARNING)
        self.records = records

    @override
    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


@pytest.fixture(autouse=True)
def collect_warnings_of_integration_tests(request: pytest.FixtureRequest) -> Generator[None]:
    """Attach a WarningCollector to the root logger while an integration test runs."""
    if request.node.get_closest_marker("integration") is None:
        yield
        return

    records: list[logging.LogRecord] = []
    request.node.stash[_logged_warnings] = records
    collector = WarningCollector(records)
    logging.getLogger().addHandler(collector)
    try:
        yield
    finally:
        logging.getLogger().removeHandler(collector)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item: pytest.Item, call: pytest.CallInfo[None]) -> Generator[None]:  # type: ignore[misc]
    """Turn a passing integration test into a failure when it logged warnings."""
    outcome = yield
    report = outcome.get_result()
    if call.when != "call" or report.outcome != "passed":
        return

    records = item.stash.get(_logged_warnings, [])
    if records:
        lines = "\n".join(f"  - {r.levelname} {r.name}: {r.getMessage()}" for r in records)
        report.outcome = "failed"
        report.longrepr = f"{len(records)} warning(s) logged during a clean migration:\n{lines}"
