"""Lifecycle driver: runs one scenario against the collaborators.

LifecycleDriver issues a fixed, strictly sequential series of commands
through a CommandExecutor and, at each checkpoint, takes a fresh listing of
the table's storage prefix through an ObjectLister. It records what it saw
in a LifecycleRecord and leaves judging to InvariantValidator, except for
read-back verification after each mutation: a wrong row set makes every
later step meaningless, so it aborts the scenario immediately.

Lifecycles:
    run(): CREATE TABLE AS (3 rows) -> insert -> update -> delete -> merge
        (update or insert) -> merge (delete) -> optimize -> drop, with
        read-back verification after every step.
    run_compaction(): CREATE TABLE (empty) -> five single-row inserts
        -> optimize -> aggregate read-back -> drop.

Any failure aborts the scenario without retry. Objects created so far are
dropped on a best-effort basis before the failure propagates.

Example:
    >>> driver = LifecycleDriver(executor, lister, HarnessConfig(bucket_name="lake"))
    >>> record = driver.run(scenario)
    >>> [c.name.value for c in record.checkpoints]
    ['after-create', 'after-mutations', 'after-optimize', 'after-drop', 'after-drop-relist']
"""

from __future__ import annotations

import threading
from collections import Counter
from collections.abc import Sequence
from typing import Any

import structlog

from floe_conformance.codec import extract_location, to_storage_key
from floe_conformance.dialect import SqlDialect
from floe_conformance.errors import InvariantViolation, RowMismatchError, ScenarioTimeout
from floe_conformance.models import (
    Checkpoint,
    CheckpointName,
    HarnessConfig,
    LifecycleKind,
    LifecycleRecord,
    LocationTarget,
    Scenario,
)
from floe_conformance.names import unique_name
from floe_conformance.protocols import Command, CommandExecutor, ObjectLister, Row
from floe_conformance.telemetry import traced

# =============================================================================
# Lifecycle Data
# =============================================================================

BASIC_COLUMNS: tuple[str, ...] = ("col_str", "col_int")
BASIC_PARTITION_COLUMN = "col_str"
INITIAL_ROWS: tuple[Row, ...] = (("str1", 1), ("str2", 2), ("str3", 3))
INSERTED_ROW: Row = ("str4", 4)
MERGE_SOURCE_ROWS: tuple[Row, ...] = (("merged", 4), ("str5", 5))
MERGE_DELETE_KEYS: tuple[int, ...] = (1,)

COMPACTION_COLUMNS: tuple[tuple[str, str], ...] = (("key", "integer"), ("value", "varchar"))
COMPACTION_PARTITION_COLUMN = "value"
# One INSERT per row: a multi-row INSERT would produce a single file when unpartitioned
COMPACTION_ROWS: tuple[Row, ...] = (
    (1, "one"),
    (2, "a//double_slash"),
    (3, "a%percent"),
    (4, "a//double_slash"),
    (11, "one"),
)


def expected_compaction_aggregate() -> list[Row]:
    """Aggregate row the compaction table must return after optimize."""
    total = sum(key for key, _ in COMPACTION_ROWS)
    values = " ".join(sorted(value for _, value in COMPACTION_ROWS))
    return [(total, values)]


# =============================================================================
# Driver
# =============================================================================


class LifecycleDriver:
    """Drives scenarios through a table lifecycle and records checkpoints.

    The driver holds no per-scenario state; one instance can drive many
    scenarios concurrently as long as the collaborators are thread-safe.

    Args:
        executor: CommandExecutor bound to the query system.
        lister: ObjectLister bound to the object store.
        config: Shared run configuration (bucket, shared schema, keywords).
        dialect: Command builder. Defaults to SqlDialect configured with the
            config's partition and location keywords.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        lister: ObjectLister,
        config: HarnessConfig,
        dialect: SqlDialect | None = None,
    ) -> None:
        self._executor = executor
        self._lister = lister
        self._config = config
        self._dialect = dialect or SqlDialect(
            partition_keyword=config.partition_keyword,
            location_keyword=config.location_keyword,
        )
        self._log = structlog.get_logger(__name__)

    @property
    def config(self) -> HarnessConfig:
        """Shared run configuration."""
        return self._config

    # =========================================================================
    # Basic Lifecycle
    # =========================================================================

    @traced(operation_name="conformance.lifecycle.basic")
    def run(
        self,
        scenario: Scenario,
        record: LifecycleRecord | None = None,
        cancel: threading.Event | None = None,
    ) -> LifecycleRecord:
        """Run create, mutations, optimize and drop for a scenario.

        Args:
            scenario: Scenario to drive.
            record: Record to append to. A new one is created when omitted;
                pass one in to keep partial checkpoints if the run aborts.
            cancel: Event that, once set, aborts the run at the next step.

        Returns:
            The record with all five checkpoints.

        Raises:
            CommandExecutionError: If the query system rejects a command.
            LocationError: If a location cannot be extracted or parsed.
            RowMismatchError: If read-back rows differ from the expected rows.
            InvariantViolation: If a command affects an unexpected row count.
            ScenarioTimeout: If cancel was set.
        """
        record = record or LifecycleRecord(scenario, LifecycleKind.BASIC)
        log = self._log.bind(scenario=scenario.scenario_id, lifecycle="basic")
        created: list[Command] = []
        try:
            table = self._create_basic_table(scenario, record, created, cancel)
            storage_location = self._storage_location(record)
            self._snapshot(record, CheckpointName.AFTER_CREATE, storage_location)
            log.info("driver.created", table=table, location=record.requested_location)

            self._run_mutations(record, table, cancel)
            self._snapshot(record, CheckpointName.AFTER_MUTATIONS, storage_location, table)

            self._step(record, cancel, "optimize")
            self._execute(record, self._dialect.optimize(table))
            # optimize must not change logical contents
            self._verify_rows(record, "optimize", table, _final_rows())
            self._snapshot(record, CheckpointName.AFTER_OPTIMIZE, storage_location, table)

            self._step(record, cancel, "drop")
            self._drop_all(record, created, storage_location)
        except Exception:
            self._release(created, scenario)
            raise
        log.info("driver.completed", checkpoints=list(record.names))
        return record

    def _create_basic_table(
        self,
        scenario: Scenario,
        record: LifecycleRecord,
        created: list[Command],
        cancel: threading.Event | None,
    ) -> str:
        self._step(record, cancel, "create")
        partition_columns = [BASIC_PARTITION_COLUMN] if scenario.partitioned else []
        record.partition_column = BASIC_PARTITION_COLUMN if scenario.partitioned else None

        if scenario.target is LocationTarget.SCHEMA:
            schema = unique_name("test_basic_operations_schema")
            location = self._render(scenario, schema, schema)
            record.requested_location = location
            record.schema_name = schema
            self._execute(record, self._dialect.create_schema(schema, location))
            created.append(self._dialect.drop_schema(schema))
            record.reported_schema_location = self._describe_location(schema)
            table_location = None
            table = f"{schema}.{unique_name('test_basic_operations_table')}"
        else:
            schema = self._config.schema_name
            leaf = unique_name("test_basic_operations")
            table_location = self._render(scenario, schema, leaf)
            record.requested_location = table_location
            table = f"{schema}.{leaf}"

        record.table_name = table
        self._execute(
            record,
            self._dialect.create_table_as(
                table,
                BASIC_COLUMNS,
                INITIAL_ROWS,
                location=table_location,
                partition_columns=partition_columns,
            ),
            expected_rows=len(INITIAL_ROWS),
        )
        created.append(self._dialect.drop_table(table))
        self._verify_rows(record, "create", table, list(INITIAL_ROWS))
        record.reported_location = self._describe_location(table)
        return table

    def _run_mutations(
        self,
        record: LifecycleRecord,
        table: str,
        cancel: threading.Event | None,
    ) -> None:
        rows = list(INITIAL_ROWS)

        self._step(record, cancel, "insert")
        self._execute(record, self._dialect.insert(table, [INSERTED_ROW]), expected_rows=1)
        rows.append(INSERTED_ROW)
        self._verify_rows(record, "insert", table, rows)

        self._step(record, cancel, "update")
        self._execute(
            record,
            self._dialect.update(table, "col_str", "other", "col_int", 2),
            expected_rows=1,
        )
        rows = [("other", i) if i == 2 else (s, i) for s, i in rows]
        self._verify_rows(record, "update", table, rows)

        self._step(record, cancel, "delete")
        self._execute(record, self._dialect.delete(table, "col_int", 3), expected_rows=1)
        rows = [(s, i) for s, i in rows if i != 3]
        self._verify_rows(record, "delete", table, rows)

        self._step(record, cancel, "merge")
        self._execute(
            record,
            self._dialect.merge_upsert(table, BASIC_COLUMNS, MERGE_SOURCE_ROWS, "col_int"),
            expected_rows=len(MERGE_SOURCE_ROWS),
        )
        merged = {i for _, i in MERGE_SOURCE_ROWS}
        rows = [(s, i) for s, i in rows if i not in merged]
        rows.extend(MERGE_SOURCE_ROWS)
        self._verify_rows(record, "merge", table, rows)

        self._step(record, cancel, "merge_delete")
        self._execute(
            record,
            self._dialect.merge_delete(table, "col_int", MERGE_DELETE_KEYS),
            expected_rows=len(MERGE_DELETE_KEYS),
        )
        self._verify_rows(record, "merge_delete", table, _final_rows())

    # =========================================================================
    # Compaction Lifecycle
    # =========================================================================

    @traced(operation_name="conformance.lifecycle.compaction")
    def run_compaction(
        self,
        scenario: Scenario,
        record: LifecycleRecord | None = None,
        cancel: threading.Event | None = None,
    ) -> LifecycleRecord:
        """Create an empty table, write five files, optimize, drop.

        Each row is inserted by its own command so that the table holds five
        data files before optimize, whether partitioned or not.

        Args:
            scenario: Scenario to drive. Its target must be TABLE.
            record: Record to append to (created when omitted).
            cancel: Event that, once set, aborts the run at the next step.

        Returns:
            The record with all five checkpoints.

        Raises:
            ValueError: If the scenario does not target a table location.
            CommandExecutionError: If the query system rejects a command.
            LocationError: If a location cannot be extracted or parsed.
            RowMismatchError: If the aggregate read-back is wrong.
            ScenarioTimeout: If cancel was set.
        """
        if scenario.target is not LocationTarget.TABLE:
            msg = f"compaction lifecycle requires a table location, got {scenario.target.value}"
            raise ValueError(msg)

        record = record or LifecycleRecord(scenario, LifecycleKind.COMPACTION)
        log = self._log.bind(scenario=scenario.scenario_id, lifecycle="compaction")
        created: list[Command] = []
        try:
            self._step(record, cancel, "create")
            schema = self._config.schema_name
            leaf = unique_name("test_optimize")
            location = self._render(scenario, schema, leaf)
            table = f"{schema}.{leaf}"
            record.requested_location = location
            record.table_name = table
            partition_columns = [COMPACTION_PARTITION_COLUMN] if scenario.partitioned else []
            record.partition_column = partition_columns[0] if partition_columns else None
            self._execute(
                record,
                self._dialect.create_table(
                    table, COMPACTION_COLUMNS, location, partition_columns
                ),
            )
            created.append(self._dialect.drop_table(table))
            record.reported_location = self._describe_location(table)
            self._snapshot(record, CheckpointName.AFTER_CREATE, location)

            for row in COMPACTION_ROWS:
                self._step(record, cancel, "insert")
                self._execute(record, self._dialect.insert(table, [row]), expected_rows=1)
            record.expected_initial_files = len(COMPACTION_ROWS)
            self._snapshot(record, CheckpointName.AFTER_MUTATIONS, location, table)

            self._step(record, cancel, "optimize")
            self._execute(record, self._dialect.optimize(table))
            self._verify(
                record,
                "optimize",
                self._dialect.sum_and_list(table, "key", "value"),
                expected_compaction_aggregate(),
            )
            self._snapshot(record, CheckpointName.AFTER_OPTIMIZE, location, table)

            self._step(record, cancel, "drop")
            self._drop_all(record, created, location)
        except Exception:
            self._release(created, scenario)
            raise
        log.info("driver.completed", checkpoints=list(record.names))
        return record

    # =========================================================================
    # Steps
    # =========================================================================

    def _step(
        self,
        record: LifecycleRecord,
        cancel: threading.Event | None,
        step: str,
    ) -> None:
        if cancel is not None and cancel.is_set():
            raise ScenarioTimeout(
                f"Scenario cancelled before step {step}",
                scenario_id=record.scenario.scenario_id,
            )
        self._log.debug("driver.step", scenario=record.scenario.scenario_id, step=step)

    def _execute(
        self,
        record: LifecycleRecord,
        command: Command,
        expected_rows: int | None = None,
    ) -> int:
        count = self._executor.execute(command)
        if expected_rows is not None and count != expected_rows:
            raise InvariantViolation(
                f"{command.kind.value} affected {count} rows, expected {expected_rows}",
                scenario_id=record.scenario.scenario_id,
                checkpoints=[command.kind.value],
                details={"command": command.text},
            )
        return count

    def _verify_rows(
        self,
        record: LifecycleRecord,
        step: str,
        table: str,
        expected: Sequence[Row],
    ) -> None:
        self._verify(record, step, self._dialect.select(table, BASIC_COLUMNS), expected)

    def _verify(
        self,
        record: LifecycleRecord,
        step: str,
        command: Command,
        expected: Sequence[Row],
    ) -> None:
        actual = [tuple(row) for row in self._executor.query(command)]
        missing = Counter(tuple(r) for r in expected) - Counter(actual)
        unexpected = Counter(actual) - Counter(tuple(r) for r in expected)
        if missing or unexpected:
            raise RowMismatchError(
                f"Rows after {step} differ from expected rows",
                missing_rows=sorted(missing.elements(), key=repr),
                unexpected_rows=sorted(unexpected.elements(), key=repr),
                scenario_id=record.scenario.scenario_id,
                checkpoints=[step],
            )

    def _render(self, scenario: Scenario, schema: str, leaf: str) -> str:
        pattern = scenario.pattern.with_scheme(self._config.scheme)
        return pattern.render(self._config.bucket_name, schema, leaf)

    def _describe_location(self, object_name: str) -> str:
        return extract_location(
            self._executor.describe(object_name),
            keyword=self._dialect.location_keyword,
        )

    def _storage_location(self, record: LifecycleRecord) -> str:
        # An explicit table location is listed as requested; a location
        # generated inside a schema is only known from describe().
        if record.scenario.target is LocationTarget.TABLE:
            return record.requested_location or ""
        return record.reported_location or ""

    def _snapshot(
        self,
        record: LifecycleRecord,
        name: CheckpointName,
        location: str,
        table: str | None = None,
    ) -> Checkpoint:
        key = to_storage_key(location)
        # listers qualify keys with their own scheme; compare under the location's
        files = frozenset(
            key.qualify(to_storage_key(listed).key_prefix)
            for listed in self._lister.list_objects(key.bucket, key.key_prefix)
        )
        active: frozenset[str] | None = None
        if table is not None:
            rows = self._executor.query(self._dialect.active_files(table))
            active = frozenset(str(row[0]) for row in rows)
        checkpoint = Checkpoint(name=name, files=files, active_files=active)
        record.record(checkpoint)
        self._log.info(
            "driver.checkpoint",
            scenario=record.scenario.scenario_id,
            checkpoint=name.value,
            file_count=len(files),
            active_file_count=None if active is None else len(active),
        )
        return checkpoint

    def _drop_all(
        self,
        record: LifecycleRecord,
        created: list[Command],
        storage_location: str,
    ) -> None:
        # created is [drop_schema?, drop_table]; tables go first
        self._execute(record, created.pop())
        self._snapshot(record, CheckpointName.AFTER_DROP, storage_location)
        while created:
            self._execute(record, created.pop())
        self._snapshot(record, CheckpointName.AFTER_DROP_RELIST, storage_location)

    def _release(self, created: list[Command], scenario: Scenario) -> None:
        """Drop whatever this run created; failures are logged, not raised."""
        while created:
            command = created.pop()
            try:
                self._executor.execute(command)
            except Exception as e:
                self._log.warning(
                    "driver.release_failed",
                    scenario=scenario.scenario_id,
                    command=command.text,
                    error=str(e),
                )
            else:
                self._log.info(
                    "driver.released",
                    scenario=scenario.scenario_id,
                    target=command.target,
                )


def _final_rows() -> list[Row]:
    rows: dict[Any, Row] = {}
    for s, i in INITIAL_ROWS + (INSERTED_ROW,):
        rows[i] = ("other", i) if i == 2 else (s, i)
    del rows[3]
    for s, i in MERGE_SOURCE_ROWS:
        rows[i] = (s, i)
    for key in MERGE_DELETE_KEYS:
        del rows[key]
    return list(rows.values())


__all__ = [
    "BASIC_COLUMNS",
    "COMPACTION_COLUMNS",
    "COMPACTION_ROWS",
    "INITIAL_ROWS",
    "INSERTED_ROW",
    "MERGE_DELETE_KEYS",
    "MERGE_SOURCE_ROWS",
    "LifecycleDriver",
    "expected_compaction_aggregate",
]
