"""DuckDB database introspector."""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import EntityNotFoundError
from .aggregator import aggregate
from .base import (
    TABLE_KIND,
    VIEW_KIND,
    IntrospectionFailure,
    IntrospectionResult,
    build_schema,
    gather_or_cancel,
    key_routines,
)
from .models import (
    ColumnMetadata,
    EnumMetadata,
    ForeignKeyReference,
    FunctionMetadata,
    ParameterMetadata,
    RoutineKind,
    SchemaMetadata,
    TableMetadata,
    ViewMetadata,
)
from .providers import QueryProvider, Row
from .type_mappers import DuckDBTypeMapper

logger = logging.getLogger(__name__)

LIST_SCHEMAS = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE catalog_name = current_database()
    ORDER BY schema_name
"""

LIST_ENTITIES = """
    SELECT table_name, table_type
    FROM information_schema.tables
    WHERE table_schema = ?
      AND table_catalog = current_database()
      AND table_type IN ('BASE TABLE', 'VIEW')
    ORDER BY table_type, table_name
"""

COLUMNS = """
    SELECT
        c.column_name,
        c.column_index AS ordinal_position,
        c.data_type,
        c.is_nullable,
        c.column_default,
        c.comment AS column_comment,
        EXISTS (
            SELECT 1 FROM duckdb_constraints() k
            WHERE k.database_name = c.database_name
              AND k.schema_name = c.schema_name
              AND k.table_name = c.table_name
              AND k.constraint_type = 'PRIMARY KEY'
              AND list_contains(k.constraint_column_names, c.column_name)
        ) AS is_primary_key
    FROM duckdb_columns() c
    WHERE c.database_name = current_database()
      AND c.schema_name = ?
      AND c.table_name = ?
    ORDER BY c.column_index
"""

FOREIGN_KEYS = """
    SELECT constraint_column_names, referenced_table, referenced_column_names
    FROM duckdb_constraints()
    WHERE database_name = current_database()
      AND schema_name = ?
      AND table_name = ?
      AND constraint_type = 'FOREIGN KEY'
"""

TABLE_COMMENT = """
    SELECT comment
    FROM duckdb_tables()
    WHERE database_name = current_database() AND schema_name = ? AND table_name = ?
"""

VIEW_DEFINITION = """
    SELECT sql AS view_definition, comment
    FROM duckdb_views()
    WHERE database_name = current_database() AND schema_name = ? AND view_name = ?
"""

ENUM_TYPES = """
    SELECT type_name
    FROM duckdb_types()
    WHERE database_name = current_database()
      AND schema_name = ?
      AND logical_type = 'ENUM'
      AND NOT internal
    ORDER BY type_name
"""

# Columns report enums by their expanded labels, so types are matched on labels.
ENUM_LABELS = """
    SELECT schema_name, type_name, labels
    FROM duckdb_types()
    WHERE database_name = current_database()
      AND logical_type = 'ENUM'
      AND NOT internal
    ORDER BY schema_name, type_name
"""

MACROS = """
    SELECT function_name, function_type, parameters, parameter_types,
           return_type, macro_definition, description
    FROM duckdb_functions()
    WHERE database_name = current_database()
      AND schema_name = ?
      AND NOT internal
      AND function_type IN ('macro', 'table_macro')
    ORDER BY function_name
"""

_ENTITY_KINDS = {"BASE TABLE": TABLE_KIND, "VIEW": VIEW_KIND}


_ENUM_LABEL = re.compile(r"'((?:[^']|'')*)'")
_LIST_SUFFIXES = re.compile(r"(\[\d*\])+$")


def quote_ident(name: str) -> str:
    """Quote an identifier for interpolation into DuckDB SQL."""
    return '"' + name.replace('"', '""') + '"'


class DuckDBIntrospector:
    """Introspects a DuckDB database through a query provider."""

    dialect = "duckdb"

    EXCLUDED_SCHEMAS = {'information_schema', 'pg_catalog'}

    def __init__(
        self,
        provider: QueryProvider,
        type_mapper: Optional[DuckDBTypeMapper] = None,
        include_system_schemas: bool = False,
        max_concurrency: int = 1,
    ):
        self.provider = provider
        self.type_mapper = type_mapper or DuckDBTypeMapper()
        self.include_system_schemas = include_system_schemas
        self.max_concurrency = max_concurrency

    async def list_user_schemas(self) -> List[str]:
        """Get all user schemas in the database."""
        rows = await self.provider.fetch_all(LIST_SCHEMAS)
        schemas = [row["schema_name"] for row in rows]
        if self.include_system_schemas:
            return schemas
        return [s for s in schemas if s.lower() not in self.EXCLUDED_SCHEMAS]

    async def introspect(self, schemas: Optional[Sequence[str]] = None) -> IntrospectionResult:
        return await aggregate(self, schemas, max_concurrency=self.max_concurrency)

    async def introspect_schema(
        self, schema_name: str, failures: Optional[List[IntrospectionFailure]] = None
    ) -> SchemaMetadata:
        entities, enums, functions = await gather_or_cancel(
            self._list_entities(schema_name),
            self.introspect_enums_for_schema(schema_name),
            self._routines_or_error(schema_name),
        )
        return await build_schema(self, schema_name, entities, enums, functions, failures)

    async def _list_entities(self, schema_name: str) -> List[Tuple[str, str]]:
        rows = await self.provider.fetch_all(LIST_ENTITIES, (schema_name,))
        return [(row["table_name"], _ENTITY_KINDS[row["table_type"]]) for row in rows]

    async def _routines_or_error(self, schema_name: str):
        try:
            return await self.introspect_functions_for_schema(schema_name)
        except Exception as e:
            return e

    async def introspect_table(self, schema_name: str, table_name: str) -> TableMetadata:
        """Introspect one table: columns, primary key and foreign keys."""
        column_rows, fk_rows, comment_row, enum_rows = await gather_or_cancel(
            self.provider.fetch_all(COLUMNS, (schema_name, table_name)),
            self.provider.fetch_all(FOREIGN_KEYS, (schema_name, table_name)),
            self.provider.fetch_optional(TABLE_COMMENT, (schema_name, table_name)),
            self.provider.fetch_all(ENUM_LABELS),
        )

        if not column_rows:
            raise EntityNotFoundError(schema_name, table_name, TABLE_KIND)

        foreign_keys = _foreign_key_map(schema_name, fk_rows)
        columns = []
        primary_key_columns = []
        for position, row in enumerate(column_rows, start=1):
            if row["is_primary_key"]:
                primary_key_columns.append(row["column_name"])
            columns.append(self._column(
                schema_name,
                row,
                position,
                enum_rows,
                is_primary_key=bool(row["is_primary_key"]),
                foreign_key=foreign_keys.get(row["column_name"]),
            ))

        return TableMetadata(
            schema=schema_name,
            name=table_name,
            columns=columns,
            primary_key_columns=primary_key_columns,
            comment=comment_row["comment"] if comment_row else None,
        )

    async def introspect_view(self, schema_name: str, view_name: str) -> ViewMetadata:
        """Introspect one view: columns and definition text."""
        column_rows, view_row, enum_rows = await gather_or_cancel(
            self.provider.fetch_all(COLUMNS, (schema_name, view_name)),
            self.provider.fetch_optional(VIEW_DEFINITION, (schema_name, view_name)),
            self.provider.fetch_all(ENUM_LABELS),
        )

        if not column_rows:
            raise EntityNotFoundError(schema_name, view_name, VIEW_KIND)

        return ViewMetadata(
            schema=schema_name,
            name=view_name,
            columns=[
                self._column(schema_name, row, position, enum_rows)
                for position, row in enumerate(column_rows, start=1)
            ],
            definition=view_row["view_definition"] if view_row else None,
            comment=view_row.get("comment") if view_row else None,
        )

    async def introspect_enums_for_schema(self, schema_name: str) -> Dict[str, EnumMetadata]:
        """Get every enum of a schema with values in declared order.

        ``enum_range`` needs the type itself, so values are fetched with one
        query per enum type.
        """
        type_rows = await self.provider.fetch_all(ENUM_TYPES, (schema_name,))

        async def values_of(type_name: str) -> List[str]:
            sql = (
                f"SELECT enum_range(NULL::{quote_ident(schema_name)}.{quote_ident(type_name)})"
                f"::VARCHAR[] AS enum_values"
            )
            row = await self.provider.fetch_optional(sql)
            return list(row["enum_values"]) if row and row["enum_values"] is not None else []

        values = await gather_or_cancel(*(values_of(row["type_name"]) for row in type_rows))
        return {
            row["type_name"]: EnumMetadata(
                schema=schema_name,
                name=row["type_name"],
                values=enum_values,
            )
            for row, enum_values in zip(type_rows, values)
        }

    async def introspect_functions_for_schema(self, schema_name: str) -> Dict[str, FunctionMetadata]:
        """Get the user-defined macros of a schema."""
        rows = await self.provider.fetch_all(MACROS, (schema_name,))
        return key_routines([self._macro(schema_name, row) for row in rows])

    def _macro(self, schema_name: str, row: Row) -> FunctionMetadata:
        names = row.get("parameters") or []
        types = row.get("parameter_types") or []
        parameters = []
        for position, name in enumerate(names, start=1):
            sql_type = types[position - 1] if position <= len(types) and types[position - 1] else ""
            parameters.append(ParameterMetadata(
                name=name,
                ordinal_position=position,
                sql_type_name=sql_type,
                data_type=self.type_mapper.map(sql_type),
            ))

        return_type = None
        if row.get("function_type") == "macro" and row.get("return_type"):
            return_type = self.type_mapper.map(row["return_type"])

        return FunctionMetadata(
            schema=schema_name,
            name=row["function_name"],
            kind=RoutineKind.FUNCTION,
            parameters=parameters,
            return_type=return_type,
            language="sql",
            definition=row.get("macro_definition"),
            comment=row.get("description"),
        )

    def _column(
        self,
        schema_name: str,
        row: Row,
        position: int,
        enum_rows: List[Row],
        is_primary_key: bool = False,
        foreign_key: Optional[ForeignKeyReference] = None,
    ) -> ColumnMetadata:
        data_type = row["data_type"]
        enum_name = enum_type_name(schema_name, data_type, enum_rows)
        return ColumnMetadata(
            name=row["column_name"],
            ordinal_position=position,
            sql_type_name=data_type,
            udt_name=enum_name,
            data_type=self.type_mapper.map(data_type, enum_name),
            is_nullable=bool(row.get("is_nullable", True)),
            is_primary_key=is_primary_key,
            default_value=row.get("column_default"),
            comment=row.get("column_comment"),
            foreign_key=foreign_key,
        )


def enum_labels(spelling: str) -> Tuple[str, ...]:
    """Labels of an expanded ``ENUM('a', 'b')`` type spelling."""
    return tuple(label.replace("''", "'") for label in _ENUM_LABEL.findall(spelling))


def enum_type_name(schema_name: str, data_type: str, enum_rows: List[Row]) -> Optional[str]:
    """Name of the enum type behind a column type, looking through list suffixes.

    Expanded ``ENUM(...)`` spellings are matched on their labels, plain type
    names on the name. Types in ``schema_name`` win over same-labelled types
    elsewhere. Returns None for anything that is not a named enum.
    """
    base = _LIST_SUFFIXES.sub("", (data_type or "").strip())
    if base.upper().startswith("ENUM("):
        labels = enum_labels(base)
        matches = [row for row in enum_rows if tuple(row.get("labels") or ()) == labels]
    else:
        matches = [row for row in enum_rows if row["type_name"] == base]
    if not matches:
        return None
    local = [row for row in matches if row["schema_name"] == schema_name]
    return (local or matches)[0]["type_name"]


def _foreign_key_map(schema_name: str, rows: List[Row]) -> Dict[str, ForeignKeyReference]:
    """DuckDB foreign keys reference tables in the same schema."""
    references = {}
    for row in rows:
        local: List[Any] = row.get("constraint_column_names") or []
        remote: List[Any] = row.get("referenced_column_names") or []
        for column, target in zip(local, remote):
            references[column] = ForeignKeyReference(
                schema=schema_name,
                table=row["referenced_table"],
                column=target,
            )
    return references
