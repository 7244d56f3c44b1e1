"""Contracts required from the external query system and object store.

The harness depends on these protocols only. Bindings to an actual query
engine and object store are supplied by the embedding application (see
``testing.fixtures.minio`` for an S3/MinIO ObjectLister and
``testing.fixtures.memory_table_system`` for an in-process reference).

Example:
    >>> class MyExecutor:
    ...     def execute(self, command: Command) -> int: ...
    ...     def query(self, command: Command) -> ResultSet: ...
    ...     def describe(self, object_name: str) -> str: ...
    >>> isinstance(MyExecutor(), CommandExecutor)
    True
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

Row = tuple[Any, ...]
ResultSet = list[Row]


class CommandKind(str, Enum):
    """Lifecycle step a command belongs to."""

    CREATE_SCHEMA = "create_schema"
    CREATE_TABLE = "create_table"
    CREATE_TABLE_AS = "create_table_as"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    MERGE = "merge"
    OPTIMIZE = "optimize"
    DROP_TABLE = "drop_table"
    DROP_SCHEMA = "drop_schema"
    SELECT = "select"
    ACTIVE_FILES = "active_files"


class Command(BaseModel):
    """A command issued to the query system.

    Engine bindings only need ``text``. ``target`` and ``arguments`` carry the
    same intent in structured form for in-process doubles that do not parse
    a query language.

    Attributes:
        kind: Lifecycle step.
        text: Command text in the engine's dialect.
        target: Schema or qualified table name the command acts on.
        arguments: Structured parameters of the command.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: CommandKind
    text: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        """Return the command text."""
        return self.text


@runtime_checkable
class CommandExecutor(Protocol):
    """Executes lifecycle commands against the table system."""

    def execute(self, command: Command) -> int:
        """Run a mutating command.

        Args:
            command: Create, insert, update, delete, merge, optimize or drop.

        Returns:
            Number of rows affected (0 when not applicable).

        Raises:
            CommandExecutionError: If the system rejects the command.
        """
        ...

    def query(self, command: Command) -> ResultSet:
        """Run a read-only command.

        Raises:
            CommandExecutionError: On syntax or semantic rejection.
        """
        ...

    def describe(self, object_name: str) -> str:
        """Return a textual description of a table or schema.

        The description must contain the object's configured location as a
        ``location = '<value>'`` assignment.

        Raises:
            CommandExecutionError: If the object cannot be described.
        """
        ...


@runtime_checkable
class ObjectLister(Protocol):
    """Lists objects stored under a key prefix."""

    def list_objects(self, bucket: str, key_prefix: str) -> set[str]:
        """Return every object whose key starts with key_prefix.

        Each key is re-qualified as a full location using the scheme and
        bucket the caller addressed. Returns an empty set when nothing
        matches. Pagination must be exhausted before returning.
        """
        ...


__all__ = [
    "Command",
    "CommandExecutor",
    "CommandKind",
    "ObjectLister",
    "ResultSet",
    "Row",
]
