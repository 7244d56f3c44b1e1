"""Pytest configuration for testing module tests.

This conftest.py configures pytest for testing the testing infrastructure itself.
"""

from __future__ import annotations

import pytest

from floe_conformance.dialect import SqlDialect
from testing.fixtures.memory_table_system import InMemoryTableSystem

BUCKET = "floe-conformance"


@pytest.fixture
def dialect() -> SqlDialect:
    """Default SQL dialect."""
    return SqlDialect()


@pytest.fixture
def system(dialect: SqlDialect) -> InMemoryTableSystem:
    """Reference table system with schema ``sch`` already created."""
    table_system = InMemoryTableSystem()
    table_system.execute(dialect.create_schema("sch"))
    return table_system


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: Integration tests requiring a MinIO endpoint",
    )
