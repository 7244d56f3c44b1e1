"""Base test class for table-system storage conformance.

This module provides BaseTableStorageTests, an abstract test class that runs
the conformance harness against a concrete table system, one test per
scenario of the location-pattern matrix.

Table systems MUST pass all tests in this class to be considered safe to
point at arbitrary object-store locations.

Usage:
    1. Create a test class that inherits from BaseTableStorageTests
    2. Implement the command_executor and object_lister fixtures
    3. Optionally override harness_config, data_file_filter and
       partition_layout_check
    4. Run pytest - all base tests will be executed automatically

Example:
    >>> import pytest
    >>> from testing.base_classes import BaseTableStorageTests
    >>> from testing.fixtures.minio import MinIOObjectLister
    >>>
    >>> class TestMyEngine(BaseTableStorageTests):
    ...     @pytest.fixture
    ...     def command_executor(self) -> MyEngineExecutor:
    ...         return MyEngineExecutor(host="localhost")
    ...
    ...     @pytest.fixture
    ...     def object_lister(self, harness_config: HarnessConfig) -> MinIOObjectLister:
    ...         return MinIOObjectLister.from_config(scheme=harness_config.scheme)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Generator

import pytest

from floe_conformance.models import (
    HarnessConfig,
    LifecycleKind,
    LocationTarget,
    Scenario,
    ScenarioResult,
)
from floe_conformance.patterns import scenario_id, scenario_matrix
from floe_conformance.protocols import CommandExecutor, ObjectLister
from floe_conformance.runner import ConformanceSession, ScenarioRunner
from floe_conformance.validator import InvariantValidator


def _describe_failures(result: ScenarioResult) -> str:
    lines = [f"{result.scenario.scenario_id} ({result.lifecycle.value}):"]
    for verdict in result.failures:
        lines.append(f"  [{verdict.kind.value}] {verdict.check}: {verdict.message}")
        if verdict.symmetric_difference:
            lines.append(f"    symmetric difference: {list(verdict.symmetric_difference)}")
    return "\n".join(lines)


class BaseTableStorageTests(ABC):
    """Abstract base test class for table-system storage conformance.

    Subclasses must implement the command_executor and object_lister
    fixtures. The shared schema is created before each test and dropped
    afterwards, even when the test fails. Locations are rendered with
    harness_config.scheme, whatever scheme the parametrised patterns carry.

    Attributes:
        command_executor: Fixture returning the executor under test.
        object_lister: Fixture returning a lister for the backing store.
        harness_config: Fixture returning run configuration.
        data_file_filter: Fixture returning the data-file predicate.
        partition_layout_check: Fixture returning the partition-layout
            predicate, or None to skip the partition_layout check.
    """

    @pytest.fixture
    @abstractmethod
    def command_executor(self) -> CommandExecutor:
        """Return the CommandExecutor bound to the table system under test.

        Subclasses MUST implement this fixture.
        """
        ...

    @pytest.fixture
    @abstractmethod
    def object_lister(self) -> ObjectLister:
        """Return the ObjectLister bound to the table system's object store.

        Subclasses MUST implement this fixture.
        """
        ...

    @pytest.fixture
    def harness_config(self) -> HarnessConfig:
        """Return run configuration. Override to change bucket or keywords."""
        return HarnessConfig()

    @pytest.fixture
    def data_file_filter(self) -> Callable[[str], bool] | None:
        """Return a predicate selecting data files from a directory listing."""
        return None

    @pytest.fixture
    def partition_layout_check(self) -> Callable[[str, str], bool] | None:
        """Return a predicate checking data files against the partition column.

        Override with e.g. hive_partition_layout for formats that write
        ``<column>=<value>/`` directories.
        """
        return None

    @pytest.fixture
    def conformance_runner(
        self,
        command_executor: CommandExecutor,
        object_lister: ObjectLister,
        harness_config: HarnessConfig,
        data_file_filter: Callable[[str], bool] | None,
        partition_layout_check: Callable[[str, str], bool] | None,
    ) -> Generator[ScenarioRunner, None, None]:
        """Open a session over the fixtures and yield a runner."""
        with ConformanceSession(
            harness_config,
            executor_factory=lambda: command_executor,
            lister_factory=lambda: object_lister,
        ) as session:
            yield session.runner(
                validator=InvariantValidator(data_file_filter, partition_layout_check)
            )

    # =========================================================================
    # Explicit Table Location
    # =========================================================================

    @pytest.mark.parametrize("scenario", scenario_matrix(), ids=scenario_id)
    def test_basic_operations_with_table_location(
        self,
        conformance_runner: ScenarioRunner,
        scenario: Scenario,
    ) -> None:
        """Verify create, mutate, optimize and drop at an explicit table location."""
        result = conformance_runner.run(scenario, LifecycleKind.BASIC)
        assert result.passed, _describe_failures(result)

    # =========================================================================
    # Schema Location
    # =========================================================================

    @pytest.mark.parametrize(
        "scenario",
        scenario_matrix(targets=(LocationTarget.SCHEMA,)),
        ids=scenario_id,
    )
    def test_basic_operations_with_schema_location(
        self,
        conformance_runner: ScenarioRunner,
        scenario: Scenario,
    ) -> None:
        """Verify the lifecycle for a table placed inside a schema location.

        The table location is generated by the engine as the schema location
        joined with the table name plus a random suffix.
        """
        result = conformance_runner.run(scenario, LifecycleKind.BASIC)
        assert result.passed, _describe_failures(result)

    # =========================================================================
    # Compaction
    # =========================================================================

    @pytest.mark.parametrize("scenario", scenario_matrix(), ids=scenario_id)
    def test_optimize_retains_pre_and_post_compaction_files(
        self,
        conformance_runner: ScenarioRunner,
        scenario: Scenario,
    ) -> None:
        """Verify optimize over five single-row files keeps exactly I ∪ U."""
        result = conformance_runner.run(scenario, LifecycleKind.COMPACTION)
        assert result.passed, _describe_failures(result)
