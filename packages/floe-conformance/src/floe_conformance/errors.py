"""Exception types for floe-conformance package.

This module defines the exception hierarchy raised while driving a table
lifecycle against external collaborators. All exceptions inherit from
ConformanceError to enable catch-all error handling.

Exception Hierarchy:
    ConformanceError (base)
    ├── CommandExecutionError - Collaborator rejected a command
    ├── LocationError - Location codec failures
    │   ├── LocationNotFoundError - No location assignment in description
    │   ├── AmbiguousLocationError - More than one location assignment
    │   └── MalformedLocationError - Location is not scheme://bucket/key
    ├── InvariantViolation - A lifecycle invariant check failed
    │   └── RowMismatchError - Read-back rows differ from expected rows
    └── ScenarioTimeout - Scenario exceeded its deadline

Example:
    >>> from floe_conformance.errors import CommandExecutionError, ConformanceError
    >>> try:
    ...     driver.run(scenario)
    ... except CommandExecutionError as e:
    ...     print(f"Engine rejected {e.command_kind}: {e}")
    ... except ConformanceError as e:
    ...     print(f"Scenario aborted: {e}")
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any


class ConformanceError(Exception):
    """Base exception for all floe-conformance errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize ConformanceError.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# =============================================================================
# Infrastructure Errors
# =============================================================================


class CommandExecutionError(ConformanceError):
    """The query system rejected a command.

    Raised by CommandExecutor implementations. Aborts the scenario and is
    reported as an infrastructure failure, never as an invariant violation.

    Attributes:
        command: Text of the rejected command (if known).
        command_kind: Lifecycle step the command belonged to (if known).

    Example:
        >>> raise CommandExecutionError(
        ...     "Table already exists",
        ...     command="CREATE TABLE t ...",
        ...     command_kind="create_table",
        ... )
    """

    def __init__(
        self,
        message: str,
        command: str | None = None,
        command_kind: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize CommandExecutionError.

        Args:
            message: Human-readable error description.
            command: Text of the rejected command.
            command_kind: Lifecycle step the command belonged to.
            details: Additional error context.
        """
        _details = details or {}
        if command_kind:
            _details["command_kind"] = command_kind
        if command:
            _details["command"] = command
        super().__init__(message, _details)
        self.command = command
        self.command_kind = command_kind


# =============================================================================
# Location Errors
# =============================================================================


class LocationError(ConformanceError):
    """Base class for location codec errors."""

    pass


class LocationNotFoundError(LocationError):
    """No location assignment was found in a description text.

    Example:
        >>> raise LocationNotFoundError(
        ...     "Location not found in description",
        ...     details={"object_name": "sales.orders"},
        ... )
    """

    pass


class AmbiguousLocationError(LocationError):
    """More than one location assignment was found in a description text.

    Any second occurrence is an error, even when it repeats the first
    value verbatim.

    Attributes:
        matches: All location values found, in order of appearance.
    """

    def __init__(
        self,
        message: str,
        matches: Iterable[str] = (),
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize AmbiguousLocationError.

        Args:
            message: Human-readable error description.
            matches: All location values found.
            details: Additional error context.
        """
        self.matches = tuple(matches)
        _details = details or {}
        _details["match_count"] = len(self.matches)
        super().__init__(message, _details)


class MalformedLocationError(LocationError):
    """Location does not have the ``scheme://bucket/key`` shape.

    Attributes:
        location: The offending location string.
    """

    def __init__(
        self,
        message: str,
        location: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize MalformedLocationError.

        Args:
            message: Human-readable error description.
            location: The offending location string.
            details: Additional error context.
        """
        _details = details or {}
        if location is not None:
            # repr keeps trailing whitespace visible in logs
            _details["location"] = repr(location)
        super().__init__(message, _details)
        self.location = location


# =============================================================================
# Invariant Errors
# =============================================================================


class InvariantViolation(ConformanceError):
    """A lifecycle invariant did not hold.

    Attributes:
        scenario_id: Identity of the scenario the check ran for.
        checkpoints: Names of the checkpoints involved in the check.
        expected: Expected file set (if the check compares file sets).
        actual: Observed file set (if the check compares file sets).
    """

    def __init__(
        self,
        message: str,
        scenario_id: str | None = None,
        checkpoints: Iterable[str] = (),
        expected: Iterable[str] | None = None,
        actual: Iterable[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize InvariantViolation.

        Args:
            message: Human-readable error description.
            scenario_id: Identity of the scenario.
            checkpoints: Names of the checkpoints involved.
            expected: Expected file set.
            actual: Observed file set.
            details: Additional error context.
        """
        self.scenario_id = scenario_id
        self.checkpoints = tuple(checkpoints)
        self.expected = frozenset(expected) if expected is not None else None
        self.actual = frozenset(actual) if actual is not None else None
        _details = details or {}
        if scenario_id:
            _details["scenario"] = scenario_id
        if self.checkpoints:
            _details["checkpoints"] = ",".join(self.checkpoints)
        super().__init__(message, _details)

    @property
    def symmetric_difference(self) -> frozenset[str]:
        """Locations present in exactly one of expected and actual."""
        if self.expected is None or self.actual is None:
            return frozenset()
        return self.expected ^ self.actual


class RowMismatchError(InvariantViolation):
    """Rows read back after a mutation differ from the expected rows.

    Attributes:
        missing_rows: Expected rows that were not returned.
        unexpected_rows: Returned rows that were not expected.
    """

    def __init__(
        self,
        message: str,
        missing_rows: Iterable[tuple[Any, ...]] = (),
        unexpected_rows: Iterable[tuple[Any, ...]] = (),
        scenario_id: str | None = None,
        checkpoints: Iterable[str] = (),
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize RowMismatchError.

        Args:
            message: Human-readable error description.
            missing_rows: Expected rows that were not returned.
            unexpected_rows: Returned rows that were not expected.
            scenario_id: Identity of the scenario.
            checkpoints: Step names involved.
            details: Additional error context.
        """
        self.missing_rows = tuple(missing_rows)
        self.unexpected_rows = tuple(unexpected_rows)
        _details = details or {}
        _details["missing"] = list(self.missing_rows)
        _details["unexpected"] = list(self.unexpected_rows)
        super().__init__(
            message,
            scenario_id=scenario_id,
            checkpoints=checkpoints,
            details=_details,
        )


# =============================================================================
# Timeout
# =============================================================================


class ScenarioTimeout(ConformanceError):
    """Scenario exceeded its configured deadline.

    Attributes:
        scenario_id: Identity of the scenario that timed out.
        timeout: Deadline in seconds.
    """

    def __init__(
        self,
        message: str,
        scenario_id: str | None = None,
        timeout: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize ScenarioTimeout.

        Args:
            message: Human-readable error description.
            scenario_id: Identity of the scenario.
            timeout: Deadline in seconds.
        """
        _details = details or {}
        if scenario_id:
            _details["scenario"] = scenario_id
        if timeout is not None:
            _details["timeout"] = timeout
        super().__init__(message, _details)
        self.scenario_id = scenario_id
        self.timeout = timeout


__all__ = [
    "AmbiguousLocationError",
    "CommandExecutionError",
    "ConformanceError",
    "InvariantViolation",
    "LocationError",
    "LocationNotFoundError",
    "MalformedLocationError",
    "RowMismatchError",
    "ScenarioTimeout",
]
