"""Lifecycle and compaction invariant checks.

InvariantValidator turns a completed LifecycleRecord into one Verdict per
check. Checks never call a collaborator: they only read checkpoints that
were recorded as independent snapshots, so they can run in any order.

Checks:
    after_create_non_empty: CTAS left files under the table location
    non_empty_after_mutations: mutations left files under the table location
    optimize_retention: (basic lifecycle) optimize reduced the active file
        count and removed none of the pre- or post-optimize files
    compaction_retention: (compaction lifecycle) compaction reduced the
        active file count and the table directory holds exactly the pre-
        and post-compaction files
    partition_layout: (partitioned scenarios, opt-in) every active data
        file sits in a directory of the partition column
    drop_cleanup: nothing is left under the table location after drop,
        under the first and under a second listing
    location_fidelity: describe() reports the requested location verbatim

The basic lifecycle runs UPDATE, DELETE and MERGE before optimize, and
snapshot-based formats keep the files those commands supersede until
snapshot expiry, so only the compaction lifecycle can demand the exact
directory contents.

The compaction retention law is exposed separately as
check_compaction_retention(), a pure function over file sets.

Example:
    >>> outcome = check_compaction_retention(
    ...     initial={"s3://b/t/1", "s3://b/t/2"},
    ...     updated={"s3://b/t/3"},
    ...     all_files_seen={"s3://b/t/1", "s3://b/t/2", "s3://b/t/3"},
    ... )
    >>> outcome.holds
    True
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

from floe_conformance.codec import join_location
from floe_conformance.errors import InvariantViolation
from floe_conformance.models import (
    Checkpoint,
    CheckpointName,
    FileSet,
    LifecycleKind,
    LifecycleRecord,
    LocationTarget,
    Verdict,
)

logger = structlog.get_logger(__name__)

GENERATED_SUFFIX = "-[a-z0-9]+"
"""Suffix engines append to table directories created inside a schema location."""


# =============================================================================
# Compaction Retention Law
# =============================================================================


@dataclass(frozen=True)
class RetentionOutcome:
    """Outcome of the compaction retention law for one compaction.

    Attributes:
        initial: Active data files before compaction (I).
        updated: Active data files after compaction (U).
        all_files_seen: Data files present in the table directory right
            after compaction.
    """

    initial: FileSet
    updated: FileSet
    all_files_seen: FileSet

    @property
    def expected(self) -> FileSet:
        """I ∪ U, the only files allowed in the directory after compaction."""
        return self.initial | self.updated

    @property
    def file_count_reduced(self) -> bool:
        """|U| < |I|, required whenever there was more than one file."""
        if len(self.initial) <= 1:
            return True
        return len(self.updated) < len(self.initial)

    @property
    def missing(self) -> FileSet:
        """Files of I ∪ U absent from the directory (deleted prematurely)."""
        return self.expected - self.all_files_seen

    @property
    def unexpected(self) -> FileSet:
        """Files in the directory outside I ∪ U."""
        return self.all_files_seen - self.expected

    @property
    def holds(self) -> bool:
        """True when both parts of the law hold."""
        return self.file_count_reduced and not self.missing and not self.unexpected


def check_compaction_retention(
    initial: Iterable[str],
    updated: Iterable[str],
    all_files_seen: Iterable[str],
) -> RetentionOutcome:
    """Evaluate the compaction retention law over synthetic or observed sets.

    Compaction must write its new files before removing any old file, and
    nothing outside the pre- and post-compaction file sets may exist in the
    table directory immediately afterwards.

    Args:
        initial: Active data files before compaction.
        updated: Active data files after compaction.
        all_files_seen: Fresh listing of the table directory after compaction.

    Returns:
        RetentionOutcome describing which parts of the law held.
    """
    return RetentionOutcome(
        initial=frozenset(initial),
        updated=frozenset(updated),
        all_files_seen=frozenset(all_files_seen),
    )


def hive_partition_layout(location: str, column: str) -> bool:
    """Return True if a data file sits under a ``<column>=<value>/`` directory.

    Example:
        >>> hive_partition_layout("s3://b/t /data/col_str=str1/a.parquet", "col_str")
        True
    """
    return f"/{column}=" in location.rpartition("/")[0]


# =============================================================================
# Validator
# =============================================================================


class InvariantValidator:
    """Checks lifecycle invariants over a LifecycleRecord.

    The validator holds no per-record state; one instance can validate
    records from many scenarios concurrently.

    Args:
        data_file_filter: Predicate selecting data files from a directory
            listing for the compaction retention check. Table formats that
            keep metadata beside data (e.g., ``metadata/*.json`` in Iceberg)
            pass a predicate that rejects those objects. Accepts everything
            by default.
        partition_layout_check: Predicate called with each active data file
            of a partitioned scenario and its partition column, e.g.
            hive_partition_layout. The partition_layout check only runs
            when one is given, since layouts differ between table formats.
    """

    def __init__(
        self,
        data_file_filter: Callable[[str], bool] | None = None,
        partition_layout_check: Callable[[str, str], bool] | None = None,
    ) -> None:
        self._data_file_filter = data_file_filter
        self._partition_layout_check = partition_layout_check

    def data_files(self, files: Iterable[str]) -> FileSet:
        """Narrow a directory listing to data files."""
        if self._data_file_filter is None:
            return frozenset(files)
        return frozenset(f for f in files if self._data_file_filter(f))

    def validate(self, record: LifecycleRecord) -> tuple[Verdict, ...]:
        """Run every check applicable to the record's lifecycle.

        Args:
            record: Record of a scenario that ran to completion.

        Returns:
            One Verdict per check, passing or failing.
        """
        checks: list[tuple[str, Callable[[LifecycleRecord], Verdict]]] = [
            ("location_fidelity", self.check_location_fidelity),
        ]
        if record.lifecycle is LifecycleKind.BASIC:
            checks.append(("after_create_non_empty", self.check_after_create_non_empty))
            checks.append(("non_empty_after_mutations", self.check_non_empty))
            checks.append(("optimize_retention", self.check_optimize_retention))
        else:
            checks.append(("compaction_retention", self.check_compaction_retention))
        if record.scenario.partitioned and self._partition_layout_check is not None:
            checks.append(("partition_layout", self.check_partition_layout))
        checks.append(("drop_cleanup", self.check_drop_cleanup))

        verdicts = tuple(self._run(name, check, record) for name, check in checks)
        logger.info(
            "validator.completed",
            scenario=record.scenario.scenario_id,
            lifecycle=record.lifecycle.value,
            failed=[v.check for v in verdicts if not v.passed],
        )
        return verdicts

    def _run(
        self,
        name: str,
        check: Callable[[LifecycleRecord], Verdict],
        record: LifecycleRecord,
    ) -> Verdict:
        try:
            return check(record)
        except InvariantViolation as e:
            logger.warning(
                "validator.violation",
                scenario=record.scenario.scenario_id,
                check=name,
                error=str(e),
            )
            return Verdict.from_violation(name, e)

    # =========================================================================
    # Individual Checks
    # =========================================================================

    def check_after_create_non_empty(self, record: LifecycleRecord) -> Verdict:
        """The table location holds files right after CREATE TABLE AS."""
        return self._require_non_empty(
            record, CheckpointName.AFTER_CREATE, "after_create_non_empty"
        )

    def check_non_empty(self, record: LifecycleRecord) -> Verdict:
        """The table location holds files after the mutation sequence."""
        return self._require_non_empty(
            record, CheckpointName.AFTER_MUTATIONS, "non_empty_after_mutations"
        )

    def _require_non_empty(
        self, record: LifecycleRecord, name: CheckpointName, check: str
    ) -> Verdict:
        scenario_id = record.scenario.scenario_id
        checkpoint = _require(record, name)
        if not checkpoint.files:
            raise InvariantViolation(
                f"No files under {record.reported_location!r} at {name.value}",
                scenario_id=scenario_id,
                checkpoints=[name.value],
                expected=None,
                actual=checkpoint.files,
            )
        return Verdict.ok(
            scenario_id,
            check,
            [name.value],
            f"{len(checkpoint.files)} files at {name.value}",
        )

    def _active(self, checkpoint: Checkpoint) -> FileSet:
        if checkpoint.active_files is not None:
            return checkpoint.active_files
        return self.data_files(checkpoint.files)

    def _optimize_outcome(self, record: LifecycleRecord) -> tuple[RetentionOutcome, list[str]]:
        before = _require(record, CheckpointName.AFTER_MUTATIONS)
        after = _require(record, CheckpointName.AFTER_OPTIMIZE)
        outcome = check_compaction_retention(
            self._active(before), self._active(after), self.data_files(after.files)
        )
        return outcome, [before.name.value, after.name.value]

    def _require_reduced(
        self, record: LifecycleRecord, outcome: RetentionOutcome, names: list[str]
    ) -> None:
        if not outcome.file_count_reduced:
            raise InvariantViolation(
                "Optimize did not reduce active files: "
                f"{len(outcome.initial)} -> {len(outcome.updated)}",
                scenario_id=record.scenario.scenario_id,
                checkpoints=names,
                expected=outcome.initial,
                actual=outcome.updated,
            )

    def check_optimize_retention(self, record: LifecycleRecord) -> Verdict:
        """Optimize reduced the file count and removed no file of I ∪ U.

        Files superseded by earlier DML may still be listed; only missing
        files fail.
        """
        scenario_id = record.scenario.scenario_id
        outcome, names = self._optimize_outcome(record)
        self._require_reduced(record, outcome, names)
        if outcome.missing:
            raise InvariantViolation(
                "Files active before or after optimize are missing from the table "
                f"directory: {sorted(outcome.missing)}",
                scenario_id=scenario_id,
                checkpoints=names,
                expected=outcome.expected,
                actual=outcome.all_files_seen & outcome.expected,
            )
        return Verdict.ok(
            scenario_id,
            "optimize_retention",
            names,
            f"{len(outcome.initial)} -> {len(outcome.updated)} active files, "
            f"{len(outcome.unexpected)} superseded files still listed",
        )

    def check_compaction_retention(self, record: LifecycleRecord) -> Verdict:
        """Compaction reduced the file count and retained I ∪ U exactly."""
        scenario_id = record.scenario.scenario_id
        outcome, names = self._optimize_outcome(record)
        initial, updated = outcome.initial, outcome.updated

        expected_count = record.expected_initial_files
        if expected_count is not None and len(initial) != expected_count:
            raise InvariantViolation(
                f"Expected {expected_count} active files before optimize, "
                f"found {len(initial)}",
                scenario_id=scenario_id,
                checkpoints=names[:1],
            )

        self._require_reduced(record, outcome, names)
        if outcome.missing or outcome.unexpected:
            raise InvariantViolation(
                "Table directory after optimize is not the union of pre- and "
                f"post-optimize files: missing={sorted(outcome.missing)}, "
                f"unexpected={sorted(outcome.unexpected)}",
                scenario_id=scenario_id,
                checkpoints=names,
                expected=outcome.expected,
                actual=outcome.all_files_seen,
            )
        return Verdict.ok(
            scenario_id,
            "compaction_retention",
            names,
            f"{len(initial)} -> {len(updated)} active files, "
            f"{len(outcome.all_files_seen)} files retained",
        )

    def check_partition_layout(self, record: LifecycleRecord) -> Verdict:
        """Active data files of a partitioned table sit in partition directories."""
        scenario_id = record.scenario.scenario_id
        checkpoint = _require(record, CheckpointName.AFTER_MUTATIONS)
        names = [checkpoint.name.value]
        column = record.partition_column
        if column is None or self._partition_layout_check is None:
            raise InvariantViolation(
                "Partitioned scenario recorded no partition column",
                scenario_id=scenario_id,
                checkpoints=names,
            )
        active = self._active(checkpoint)
        misplaced = {f for f in active if not self._partition_layout_check(f, column)}
        if not active or misplaced:
            raise InvariantViolation(
                f"{len(misplaced)} of {len(active)} active data files are not "
                f"partitioned by {column!r}",
                scenario_id=scenario_id,
                checkpoints=names,
                expected=active - misplaced,
                actual=active,
            )
        return Verdict.ok(
            scenario_id,
            "partition_layout",
            names,
            f"{len(active)} files partitioned by {column}",
        )

    def check_drop_cleanup(self, record: LifecycleRecord) -> Verdict:
        """Nothing remains under the table location after drop."""
        scenario_id = record.scenario.scenario_id
        names: list[str] = []
        leftovers: set[str] = set()
        for name in (CheckpointName.AFTER_DROP, CheckpointName.AFTER_DROP_RELIST):
            checkpoint = _require(record, name)
            names.append(name.value)
            leftovers |= checkpoint.files
        if leftovers:
            raise InvariantViolation(
                f"{len(leftovers)} files left under the table location after drop",
                scenario_id=scenario_id,
                checkpoints=names,
                expected=frozenset(),
                actual=leftovers,
            )
        return Verdict.ok(scenario_id, "drop_cleanup", names)

    def check_location_fidelity(self, record: LifecycleRecord) -> Verdict:
        """describe() reports the requested location without normalisation."""
        scenario = record.scenario
        requested = record.requested_location
        checkpoints = [CheckpointName.AFTER_CREATE.value]

        if scenario.target is LocationTarget.SCHEMA:
            if record.reported_schema_location != requested:
                raise InvariantViolation(
                    f"Schema location {record.reported_schema_location!r} "
                    f"differs from requested {requested!r}",
                    scenario_id=scenario.scenario_id,
                    checkpoints=checkpoints,
                )
            leaf = (record.table_name or "").rsplit(".", 1)[-1]
            expected = re.escape(join_location(requested or "", leaf)) + GENERATED_SUFFIX
            reported = record.reported_location or ""
            if re.fullmatch(expected, reported, re.DOTALL) is None:
                raise InvariantViolation(
                    f"Table location {reported!r} does not match {expected!r}",
                    scenario_id=scenario.scenario_id,
                    checkpoints=checkpoints,
                )
        elif record.reported_location != requested:
            raise InvariantViolation(
                f"Table location {record.reported_location!r} "
                f"differs from requested {requested!r}",
                scenario_id=scenario.scenario_id,
                checkpoints=checkpoints,
            )
        return Verdict.ok(scenario.scenario_id, "location_fidelity", checkpoints)


def _require(record: LifecycleRecord, name: CheckpointName) -> Checkpoint:
    checkpoint = record.get(name)
    if checkpoint is None:
        raise InvariantViolation(
            f"Checkpoint {name.value} was not recorded",
            scenario_id=record.scenario.scenario_id,
            checkpoints=[name.value],
        )
    return checkpoint


__all__ = [
    "GENERATED_SUFFIX",
    "InvariantValidator",
    "RetentionOutcome",
    "check_compaction_retention",
    "hive_partition_layout",
]
