"""Pydantic models and enumerations for floe-conformance package.

All value models use Pydantic v2 syntax, are immutable (frozen=True) and
reject unknown fields (extra="forbid"). LifecycleRecord is the one mutable
object: the driver appends checkpoints to it, everything else only reads it.

Enumerations:
    LocationTarget: Which object receives the explicit location
    LifecycleKind: Which lifecycle the driver runs for a scenario
    CheckpointName: Named points in a lifecycle
    VerdictKind: Classification of a scenario verdict

Models:
    LocationPattern: Location template with bucket/schema/leaf slots
    Scenario: LocationPattern x partitioned flag (x location target)
    Checkpoint: File-set snapshot taken at a named lifecycle point
    LifecycleRecord: Ordered checkpoints for one scenario run
    Verdict: Pass/fail outcome of a single check
    ScenarioResult, ConformanceReport: Aggregated outcomes
    HarnessConfig: Shared run configuration

Example:
    >>> from floe_conformance.models import LocationPattern, Scenario
    >>> pattern = LocationPattern(template="s3://%s/%s/trailing_slash/%s/")
    >>> pattern.render("bkt", "sch", "orders")
    's3://bkt/sch/trailing_slash/orders/'
    >>> Scenario(pattern=pattern, partitioned=False).scenario_id
    'trailing_slash-unpartitioned'
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from floe_conformance.names import random_name_suffix

if TYPE_CHECKING:
    from floe_conformance.errors import InvariantViolation

FileSet = frozenset[str]
"""Set of fully-qualified object locations observed at one instant."""

SLOT_COUNT = 3
"""Number of ``%s`` slots in a location template (bucket, schema, leaf)."""


# =============================================================================
# Enumerations
# =============================================================================


class LocationTarget(str, Enum):
    """Object that is created with the pattern-derived location.

    Attributes:
        TABLE: CREATE TABLE ... WITH (location = '<pattern>')
        SCHEMA: CREATE SCHEMA ... WITH (location = '<pattern>'), table inside
    """

    TABLE = "table"
    SCHEMA = "schema"


class LifecycleKind(str, Enum):
    """Lifecycle variant driven for a scenario.

    Attributes:
        BASIC: create, insert/update/delete/merge, optimize, drop
        COMPACTION: create empty, five single-row inserts, optimize, drop
    """

    BASIC = "basic"
    COMPACTION = "compaction"


class CheckpointName(str, Enum):
    """Named points at which the table's file set is snapshotted."""

    AFTER_CREATE = "after-create"
    AFTER_MUTATIONS = "after-mutations"
    AFTER_OPTIMIZE = "after-optimize"
    AFTER_DROP = "after-drop"
    AFTER_DROP_RELIST = "after-drop-relist"


class VerdictKind(str, Enum):
    """Classification of a verdict.

    Attributes:
        PASSED: Check held
        INVARIANT_VIOLATION: Check failed; scenario itself completed
        INFRASTRUCTURE_FAILURE: A collaborator rejected a command
        LOCATION_FAILURE: Location could not be extracted or parsed
        TIMEOUT: Scenario exceeded its deadline
    """

    PASSED = "passed"
    INVARIANT_VIOLATION = "invariant_violation"
    INFRASTRUCTURE_FAILURE = "infrastructure_failure"
    LOCATION_FAILURE = "location_failure"
    TIMEOUT = "timeout"


# =============================================================================
# Location Patterns and Scenarios
# =============================================================================


class LocationPattern(BaseModel):
    """Location template with three substitution slots.

    Templates use ``%s`` for the bucket, schema and leaf slots and ``%%`` for
    a literal percent sign. Substitution is printf-style, so slot values are
    inserted verbatim and never parsed as path syntax.

    Attributes:
        template: Template text; identifies the pattern.
        name: Short identifier used in scenario ids and test names.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    template: str = Field(..., min_length=1, description="Template with three %s slots")
    name: str = Field(default="", description="Short pattern identifier")

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("name") and data.get("template"):
            return {**data, "name": _derive_pattern_name(str(data["template"]))}
        return data

    @field_validator("template")
    @classmethod
    def _validate_slots(cls, value: str) -> str:
        try:
            value % (("",) * SLOT_COUNT)
        except (TypeError, ValueError) as e:
            msg = f"template must contain exactly {SLOT_COUNT} %s slots: {value!r} ({e})"
            raise ValueError(msg) from e
        return value

    def render(self, bucket: str, schema: str, leaf: str) -> str:
        """Substitute bucket, schema and leaf into the template.

        Args:
            bucket: Bucket name.
            schema: Schema (namespace) name.
            leaf: Table or schema name for the last path segment.

        Returns:
            The concrete location string.
        """
        return self.template % (bucket, schema, leaf)

    def with_scheme(self, scheme: str) -> LocationPattern:
        """Return the pattern with its URI scheme replaced.

        Templates without a scheme are returned unchanged; the name is kept,
        so scenario ids do not depend on the scheme.

        Example:
            >>> LocationPattern(template="s3://%s/%s/regular/%s").with_scheme("gs").template
            'gs://%s/%s/regular/%s'
        """
        current, sep, rest = self.template.partition("://")
        if not sep or "%" in current or current == scheme:
            return self
        return self.model_copy(update={"template": f"{scheme}://{rest}"})


def _derive_pattern_name(template: str) -> str:
    # "s3://%s/%s//double_slash/%s" -> "double_slash"
    literal = template.split("://", 1)[-1].replace("%%", "%")
    segments = [s for s in literal.split("/") if s.strip() and s.strip() != "%s"]
    candidate = segments[-1] if segments else "pattern"
    slug = re.sub(r"[^a-z0-9]+", "_", candidate.lower()).strip("_")
    return slug or "pattern"


class Scenario(BaseModel):
    """One cell of the test matrix.

    Attributes:
        pattern: Location-encoding edge case under test.
        partitioned: Whether the table is partitioned.
        target: Object that receives the explicit location.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    pattern: LocationPattern
    partitioned: bool
    target: LocationTarget = LocationTarget.TABLE

    @property
    def scenario_id(self) -> str:
        """Deterministic identity used in logs, verdicts and test ids."""
        parts = [self.pattern.name, "partitioned" if self.partitioned else "unpartitioned"]
        if self.target is not LocationTarget.TABLE:
            parts.append(f"{self.target.value}-location")
        return "-".join(parts)


# =============================================================================
# Checkpoints and Records
# =============================================================================


class Checkpoint(BaseModel):
    """File-set snapshot taken at a named lifecycle point.

    Attributes:
        name: Lifecycle point.
        files: Objects listed under the table's storage prefix.
        active_files: Data files the engine reports as live, when queried.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: CheckpointName
    files: FileSet = Field(default_factory=frozenset)
    active_files: FileSet | None = None


class LifecycleRecord:
    """Ordered checkpoints recorded while driving one scenario.

    Created when a scenario starts, appended to by LifecycleDriver and read by
    InvariantValidator. Checkpoint names are unique within a record.

    Attributes:
        scenario: Scenario being driven.
        lifecycle: Lifecycle variant being driven.
        requested_location: Location the scenario asked for.
        reported_location: Table location extracted from describe().
        schema_name: Schema created for the scenario, if any.
        table_name: Qualified table name, once known.
        expected_initial_files: Active file count required before optimize.
        partition_column: Partition column of a partitioned scenario.
    """

    def __init__(
        self,
        scenario: Scenario,
        lifecycle: LifecycleKind = LifecycleKind.BASIC,
    ) -> None:
        self.scenario = scenario
        self.lifecycle = lifecycle
        self.requested_location: str | None = None
        self.reported_location: str | None = None
        self.reported_schema_location: str | None = None
        self.schema_name: str | None = None
        self.table_name: str | None = None
        self.expected_initial_files: int | None = None
        self.partition_column: str | None = None
        self._checkpoints: list[Checkpoint] = []

    def record(self, checkpoint: Checkpoint) -> None:
        """Append a checkpoint.

        Raises:
            ValueError: If a checkpoint with the same name was already recorded.
        """
        if self.get(checkpoint.name) is not None:
            msg = f"checkpoint {checkpoint.name.value} already recorded"
            raise ValueError(msg)
        self._checkpoints.append(checkpoint)

    def get(self, name: CheckpointName) -> Checkpoint | None:
        """Return the checkpoint with the given name, if recorded."""
        for checkpoint in self._checkpoints:
            if checkpoint.name is name:
                return checkpoint
        return None

    @property
    def checkpoints(self) -> tuple[Checkpoint, ...]:
        """Recorded checkpoints in recording order."""
        return tuple(self._checkpoints)

    @property
    def names(self) -> tuple[str, ...]:
        """Recorded checkpoint names in recording order."""
        return tuple(c.name.value for c in self._checkpoints)

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"LifecycleRecord(scenario={self.scenario.scenario_id!r}, "
            f"lifecycle={self.lifecycle.value!r}, checkpoints={list(self.names)})"
        )


# =============================================================================
# Verdicts and Reports
# =============================================================================


class Verdict(BaseModel):
    """Outcome of one check for one scenario.

    Attributes:
        scenario_id: Scenario identity.
        check: Name of the check (e.g., "compaction_retention").
        kind: Verdict classification.
        passed: Whether the check held.
        checkpoints_involved: Checkpoint or step names the check looked at.
        message: Human-readable explanation.
        symmetric_difference: Locations in exactly one of expected and actual.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    scenario_id: str
    check: str
    kind: VerdictKind
    passed: bool
    checkpoints_involved: tuple[str, ...] = ()
    message: str = ""
    symmetric_difference: tuple[str, ...] = ()

    @classmethod
    def ok(
        cls,
        scenario_id: str,
        check: str,
        checkpoints: Iterable[str] = (),
        message: str = "",
    ) -> Verdict:
        """Build a passing verdict."""
        return cls(
            scenario_id=scenario_id,
            check=check,
            kind=VerdictKind.PASSED,
            passed=True,
            checkpoints_involved=tuple(checkpoints),
            message=message or f"{check} held",
        )

    @classmethod
    def from_violation(cls, check: str, error: InvariantViolation) -> Verdict:
        """Build a failing verdict from an InvariantViolation."""
        return cls(
            scenario_id=error.scenario_id or "",
            check=check,
            kind=VerdictKind.INVARIANT_VIOLATION,
            passed=False,
            checkpoints_involved=error.checkpoints,
            message=str(error),
            symmetric_difference=tuple(sorted(error.symmetric_difference)),
        )

    @classmethod
    def from_error(
        cls,
        scenario_id: str,
        error: Exception,
        kind: VerdictKind,
        checkpoints: Iterable[str] = (),
    ) -> Verdict:
        """Build a failing verdict for an aborted scenario."""
        return cls(
            scenario_id=scenario_id,
            check="lifecycle",
            kind=kind,
            passed=False,
            checkpoints_involved=tuple(checkpoints),
            message=f"{type(error).__name__}: {error}",
        )


class ScenarioResult(BaseModel):
    """All verdicts and checkpoints produced for one scenario run.

    Checkpoints are kept even when the scenario aborted, so that a failure
    report shows how far the lifecycle got.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    scenario: Scenario
    lifecycle: LifecycleKind
    verdicts: tuple[Verdict, ...] = ()
    checkpoints: tuple[Checkpoint, ...] = ()
    duration_seconds: float = 0.0

    @property
    def passed(self) -> bool:
        """True when every verdict passed and at least one was produced."""
        return bool(self.verdicts) and all(v.passed for v in self.verdicts)

    @property
    def failures(self) -> tuple[Verdict, ...]:
        """Failing verdicts only."""
        return tuple(v for v in self.verdicts if not v.passed)


class ConformanceReport(BaseModel):
    """Aggregated outcome of a conformance run.

    Serialise with ``model_dump_json()`` for CI consumption.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    results: tuple[ScenarioResult, ...] = ()

    @property
    def passed(self) -> bool:
        """True when every scenario passed."""
        return all(r.passed for r in self.results)

    @property
    def verdicts(self) -> tuple[Verdict, ...]:
        """All verdicts across all scenarios."""
        return tuple(v for r in self.results for v in r.verdicts)

    def count_by_kind(self) -> dict[VerdictKind, int]:
        """Count verdicts per kind."""
        counts = dict.fromkeys(VerdictKind, 0)
        for verdict in self.verdicts:
            counts[verdict.kind] += 1
        return counts


# =============================================================================
# Configuration
# =============================================================================


class HarnessConfig(BaseModel):
    """Configuration shared by every scenario in a run.

    Threaded into LifecycleDriver and ScenarioRunner explicitly.

    Attributes:
        bucket_name: Bucket the location patterns point into.
        scheme: URI scheme used in location patterns (e.g., "s3").
        schema_name: Shared schema for explicit-table-location scenarios.
        partition_keyword: Table property naming partition columns.
        location_keyword: Table property naming the table location.
        scenario_timeout_seconds: Per-scenario deadline.
        max_workers: Scenarios run concurrently by ScenarioRunner.run_all().

    Example:
        >>> config = HarnessConfig(bucket_name="lake", partition_keyword="partitioned_by")
        >>> config.scheme
        's3'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    bucket_name: str = Field(
        default_factory=lambda: os.environ.get("FLOE_CONFORMANCE_BUCKET", "floe-conformance"),
        min_length=1,
    )
    scheme: str = Field(
        default_factory=lambda: os.environ.get("FLOE_CONFORMANCE_SCHEME", "s3"),
        pattern=r"^[a-z][a-z0-9+.-]*$",
    )
    schema_name: str = Field(
        default_factory=lambda: f"test_conformance_{random_name_suffix()}",
        min_length=1,
    )
    partition_keyword: str = Field(default="partitioning", min_length=1)
    location_keyword: str = Field(default="location", min_length=1)
    scenario_timeout_seconds: float = Field(
        default_factory=lambda: float(os.environ.get("FLOE_CONFORMANCE_TIMEOUT", "600")),
        gt=0.0,
    )
    max_workers: int = Field(default=4, ge=1)


__all__ = [
    "SLOT_COUNT",
    "Checkpoint",
    "CheckpointName",
    "ConformanceReport",
    "FileSet",
    "HarnessConfig",
    "LifecycleKind",
    "LifecycleRecord",
    "LocationPattern",
    "LocationTarget",
    "Scenario",
    "ScenarioResult",
    "Verdict",
    "VerdictKind",
]
