"""Shared test fixtures for floe-conformance package.

Unit tests drive the harness against InMemoryTableSystem, the in-process
reference implementation of both collaborator contracts, so no query engine
or object store is needed.

Note:
    No __init__.py files in test directories - pytest uses importlib mode
    which causes namespace collisions with __init__.py files.
"""

from __future__ import annotations

import pytest

from floe_conformance.dialect import SqlDialect
from floe_conformance.driver import LifecycleDriver
from floe_conformance.models import HarnessConfig, LocationPattern, Scenario
from floe_conformance.patterns import LocationPatternSet
from testing.fixtures.memory_table_system import InMemoryTableSystem

BUCKET = "floe-conformance"
SHARED_SCHEMA = "test_shared"


@pytest.fixture
def harness_config() -> HarnessConfig:
    """Configuration with a fixed bucket and shared schema."""
    return HarnessConfig(
        bucket_name=BUCKET,
        schema_name=SHARED_SCHEMA,
        scenario_timeout_seconds=10.0,
        max_workers=4,
    )


@pytest.fixture
def table_system() -> InMemoryTableSystem:
    """Well-behaved in-memory table system."""
    return InMemoryTableSystem()


@pytest.fixture
def dialect() -> SqlDialect:
    """Default command dialect."""
    return SqlDialect()


@pytest.fixture
def driver(
    table_system: InMemoryTableSystem,
    harness_config: HarnessConfig,
    dialect: SqlDialect,
) -> LifecycleDriver:
    """Driver over the in-memory system with the shared schema created."""
    table_system.execute(dialect.create_schema(harness_config.schema_name))
    return LifecycleDriver(table_system, table_system, harness_config, dialect)


@pytest.fixture
def patterns() -> dict[str, LocationPattern]:
    """Built-in location patterns keyed by name."""
    return {p.name: p for p in LocationPatternSet().patterns()}


@pytest.fixture
def trailing_slash_scenario(patterns: dict[str, LocationPattern]) -> Scenario:
    """Unpartitioned scenario with a trailing-slash table location."""
    return Scenario(pattern=patterns["trailing_slash"], partitioned=False)
