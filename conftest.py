"""
Root pytest configuration.
"""

from __future__ import annotations

import logging
from collections.abc import Generator

import pytest

from eventbuffer.storage import MemoryStore
from tests.stubs import FakeClock, RecordingSink


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line(
        "markers",
        "critical: Tests that must never fail - core functionality",
    )
    config.addinivalue_line(
        "markers",
        "integration: Tests exercising several components together",
    )
    config.addinivalue_line(
        "markers",
        "slow: Tests that take >1 second",
    )
    config.addinivalue_line(
        "markers",
        "property: Property-based tests (may be slow)",
    )


@pytest.fixture(autouse=True)
def reset_package_logger() -> Generator[None, None, None]:
    """Drop handlers added by configure_logging so tests stay isolated."""
    logger = logging.getLogger("eventbuffer")
    before = list(logger.handlers)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
    logger.setLevel(level)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
