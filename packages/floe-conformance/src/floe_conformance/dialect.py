"""Command construction for lifecycle steps.

SqlDialect renders every command the lifecycle driver issues. The default
rendering targets Trino-style SQL with table properties in a ``WITH (...)``
clause; engines whose grammar differs subclass SqlDialect and override the
affected methods. The harness itself never looks at command text beyond
building it here.

Example:
    >>> dialect = SqlDialect(partition_keyword="partitioned_by")
    >>> command = dialect.delete("sch.orders", "col_int", 3)
    >>> command.text
    'DELETE FROM sch.orders WHERE col_int = 3'
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from floe_conformance.codec import DEFAULT_LOCATION_KEYWORD
from floe_conformance.protocols import Command, CommandKind, Row


def literal(value: Any) -> str:
    """Render a Python value as a SQL literal.

    Strings are single-quoted with embedded quotes doubled; everything else
    is rendered with str().
    """
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return "'" + value.replace("'", "''") + "'"
    return str(value)


def values_clause(rows: Sequence[Row]) -> str:
    """Render rows as ``VALUES (..), (..)``."""
    rendered = ", ".join("(" + ", ".join(literal(v) for v in row) + ")" for row in rows)
    return f"VALUES {rendered}"


class SqlDialect:
    """Builds lifecycle commands for a SQL engine.

    Args:
        partition_keyword: Table property naming partition columns
            (e.g., "partitioning" for Iceberg, "partitioned_by" for Hive/Delta).
        location_keyword: Table property naming the table location
            (e.g., "location", or "external_location" for Hive).
    """

    def __init__(
        self,
        partition_keyword: str = "partitioning",
        location_keyword: str = DEFAULT_LOCATION_KEYWORD,
    ) -> None:
        self.partition_keyword = partition_keyword
        self.location_keyword = location_keyword

    # =========================================================================
    # DDL
    # =========================================================================

    def _with_clause(self, location: str | None, partition_columns: Sequence[str]) -> str:
        properties = []
        if location is not None:
            properties.append(f"{self.location_keyword} = {literal(location)}")
        if partition_columns:
            columns = ", ".join(literal(c) for c in partition_columns)
            properties.append(f"{self.partition_keyword} = ARRAY[{columns}]")
        return f" WITH ({', '.join(properties)})" if properties else ""

    def create_schema(self, schema: str, location: str | None = None) -> Command:
        """CREATE SCHEMA, optionally at an explicit location."""
        text = f"CREATE SCHEMA {schema}"
        if location is not None:
            text += f" WITH (location = {literal(location)})"
        return Command(
            kind=CommandKind.CREATE_SCHEMA,
            text=text,
            target=schema,
            arguments={"location": location},
        )

    def create_table(
        self,
        table: str,
        columns: Sequence[tuple[str, str]],
        location: str | None = None,
        partition_columns: Sequence[str] = (),
    ) -> Command:
        """CREATE TABLE with typed columns and no rows."""
        column_list = ", ".join(f"{name} {type_}" for name, type_ in columns)
        return Command(
            kind=CommandKind.CREATE_TABLE,
            text=f"CREATE TABLE {table} ({column_list})"
            + self._with_clause(location, partition_columns),
            target=table,
            arguments={
                "columns": [name for name, _ in columns],
                "location": location,
                "partition_columns": list(partition_columns),
            },
        )

    def create_table_as(
        self,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Row],
        location: str | None = None,
        partition_columns: Sequence[str] = (),
    ) -> Command:
        """CREATE TABLE ... AS VALUES."""
        return Command(
            kind=CommandKind.CREATE_TABLE_AS,
            text=f"CREATE TABLE {table}({', '.join(columns)})"
            + self._with_clause(location, partition_columns)
            + f" AS {values_clause(rows)}",
            target=table,
            arguments={
                "columns": list(columns),
                "rows": [tuple(r) for r in rows],
                "location": location,
                "partition_columns": list(partition_columns),
            },
        )

    def drop_table(self, table: str) -> Command:
        """DROP TABLE."""
        return Command(kind=CommandKind.DROP_TABLE, text=f"DROP TABLE {table}", target=table)

    def drop_schema(self, schema: str, cascade: bool = False) -> Command:
        """DROP SCHEMA, optionally dropping contained tables as well."""
        return Command(
            kind=CommandKind.DROP_SCHEMA,
            text=f"DROP SCHEMA {schema}" + (" CASCADE" if cascade else ""),
            target=schema,
            arguments={"cascade": cascade},
        )

    # =========================================================================
    # DML
    # =========================================================================

    def insert(
        self,
        table: str,
        rows: Sequence[Row],
        columns: Sequence[str] | None = None,
    ) -> Command:
        """INSERT INTO ... VALUES."""
        column_list = f" ({', '.join(columns)})" if columns else ""
        return Command(
            kind=CommandKind.INSERT,
            text=f"INSERT INTO {table}{column_list} {values_clause(rows)}",
            target=table,
            arguments={
                "rows": [tuple(r) for r in rows],
                "columns": list(columns) if columns else None,
            },
        )

    def update(
        self,
        table: str,
        set_column: str,
        set_value: Any,
        where_column: str,
        where_value: Any,
    ) -> Command:
        """UPDATE a single column where another column equals a value."""
        return Command(
            kind=CommandKind.UPDATE,
            text=f"UPDATE {table} SET {set_column} = {literal(set_value)}"
            f" WHERE {where_column} = {literal(where_value)}",
            target=table,
            arguments={
                "set_column": set_column,
                "set_value": set_value,
                "where_column": where_column,
                "where_value": where_value,
            },
        )

    def delete(self, table: str, where_column: str, where_value: Any) -> Command:
        """DELETE rows where a column equals a value."""
        return Command(
            kind=CommandKind.DELETE,
            text=f"DELETE FROM {table} WHERE {where_column} = {literal(where_value)}",
            target=table,
            arguments={"where_column": where_column, "where_value": where_value},
        )

    def merge_upsert(
        self,
        table: str,
        columns: Sequence[str],
        source_rows: Sequence[Row],
        key_column: str,
    ) -> Command:
        """MERGE source rows into the table on a key column.

        Matched rows are updated from the source; unmatched source rows are
        inserted.
        """
        source_columns = ", ".join(columns)
        updates = ", ".join(f"{c} = s.{c}" for c in columns if c != key_column)
        inserted = ", ".join(f"s.{c}" for c in columns)
        return Command(
            kind=CommandKind.MERGE,
            text=(
                f"MERGE INTO {table} t USING ({values_clause(source_rows)})"
                f" s({source_columns}) ON (t.{key_column} = s.{key_column})"
                f" WHEN MATCHED THEN UPDATE SET {updates}"
                f" WHEN NOT MATCHED THEN INSERT ({source_columns}) VALUES ({inserted})"
            ),
            target=table,
            arguments={
                "columns": list(columns),
                "rows": [tuple(r) for r in source_rows],
                "key_column": key_column,
            },
        )

    def merge_delete(self, table: str, key_column: str, keys: Sequence[Any]) -> Command:
        """MERGE that deletes every row whose key matches one of the keys."""
        return Command(
            kind=CommandKind.MERGE,
            text=(
                f"MERGE INTO {table} t USING ({values_clause([(k,) for k in keys])})"
                f" s({key_column}) ON (t.{key_column} = s.{key_column})"
                " WHEN MATCHED THEN DELETE"
            ),
            target=table,
            arguments={"key_column": key_column, "keys": list(keys), "action": "delete"},
        )

    def optimize(self, table: str) -> Command:
        """Compact the table's data files."""
        return Command(
            kind=CommandKind.OPTIMIZE,
            text=f"ALTER TABLE {table} EXECUTE OPTIMIZE",
            target=table,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def select(self, table: str, columns: Sequence[str]) -> Command:
        """SELECT the given columns of every row."""
        return Command(
            kind=CommandKind.SELECT,
            text=f"SELECT {', '.join(columns)} FROM {table}",
            target=table,
            arguments={"columns": list(columns)},
        )

    def sum_and_list(self, table: str, sum_column: str, list_column: str) -> Command:
        """Aggregate: sum of one column and space-joined sorted values of another."""
        return Command(
            kind=CommandKind.SELECT,
            text=(
                f"SELECT sum({sum_column}), listagg({list_column}, ' ')"
                f" WITHIN GROUP (ORDER BY {list_column}) FROM {table}"
            ),
            target=table,
            arguments={
                "aggregate": "sum_and_list",
                "sum_column": sum_column,
                "list_column": list_column,
            },
        )

    def active_files(self, table: str) -> Command:
        """List the data files backing the table's current rows."""
        return Command(
            kind=CommandKind.ACTIVE_FILES,
            text=f'SELECT DISTINCT "$path" FROM {table}',
            target=table,
        )


__all__ = ["SqlDialect", "literal", "values_clause"]
