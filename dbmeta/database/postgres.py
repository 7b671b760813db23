"""PostgreSQL database introspector."""

import logging
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
    ParameterMode,
    RoutineKind,
    SchemaMetadata,
    TableMetadata,
    ViewMetadata,
)
from .providers import QueryProvider, Row
from .type_mappers import PostgresTypeMapper

logger = logging.getLogger(__name__)

LIST_SCHEMAS = """
    SELECT nspname::TEXT AS schema_name
    FROM pg_catalog.pg_namespace
    WHERE nspname NOT IN ('information_schema', 'pg_catalog', 'pg_toast')
      AND nspname !~ '^pg_temp_'
      AND nspname !~ '^pg_toast_temp_'
    ORDER BY schema_name
"""

LIST_ALL_SCHEMAS = """
    SELECT nspname::TEXT AS schema_name
    FROM pg_catalog.pg_namespace
    ORDER BY schema_name
"""

LIST_ENTITIES = """
    SELECT
        table_name::TEXT,
        table_type::TEXT
    FROM information_schema.tables
    WHERE table_schema = %s
    ORDER BY table_type, table_name
"""

COLUMNS = """
    SELECT
        c.column_name::TEXT,
        c.ordinal_position::INT,
        c.data_type::TEXT,
        c.udt_name::TEXT,
        c.is_nullable::TEXT,
        c.column_default::TEXT,
        pg_catalog.col_description(
            (quote_ident(c.table_schema) || '.' || quote_ident(c.table_name))::regclass::oid,
            c.ordinal_position
        ) AS column_comment,
        EXISTS (
            SELECT 1 FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.constraint_schema = kcu.constraint_schema
            WHERE tc.table_schema = c.table_schema
              AND tc.table_name = c.table_name
              AND kcu.column_name = c.column_name
              AND tc.constraint_type = 'PRIMARY KEY'
        ) AS is_primary_key
    FROM information_schema.columns c
    WHERE c.table_schema = %s AND c.table_name = %s
    ORDER BY c.ordinal_position
"""

# conkey/confkey are unnested pairwise so composite keys map column to column.
FOREIGN_KEYS = """
    SELECT
        a.attname::TEXT AS column_name,
        fn.nspname::TEXT AS foreign_table_schema,
        fc.relname::TEXT AS foreign_table_name,
        fa.attname::TEXT AS foreign_column_name
    FROM pg_catalog.pg_constraint con
    JOIN pg_catalog.pg_class c ON c.oid = con.conrelid
    JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace
    JOIN pg_catalog.pg_class fc ON fc.oid = con.confrelid
    JOIN pg_catalog.pg_namespace fn ON fn.oid = fc.relnamespace
    CROSS JOIN LATERAL unnest(con.conkey, con.confkey) AS k(attnum, fattnum)
    JOIN pg_catalog.pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
    JOIN pg_catalog.pg_attribute fa ON fa.attrelid = con.confrelid AND fa.attnum = k.fattnum
    WHERE con.contype = 'f'
      AND n.nspname = %s
      AND c.relname = %s
    ORDER BY con.conname
"""

VIEW_DEFINITION = """
    SELECT view_definition::TEXT
    FROM information_schema.views
    WHERE table_schema = %s AND table_name = %s
"""

RELATION_COMMENT = """
    SELECT pg_catalog.obj_description(cls.oid, 'pg_class') AS comment
    FROM pg_catalog.pg_class cls
    JOIN pg_catalog.pg_namespace n ON n.oid = cls.relnamespace
    WHERE n.nspname = %s AND cls.relname = %s
"""

ENUMS = """
    SELECT
        t.typname::TEXT AS enum_name,
        e.enumlabel::TEXT AS enum_value,
        pg_catalog.obj_description(t.oid, 'pg_type') AS enum_comment
    FROM pg_catalog.pg_type t
    JOIN pg_catalog.pg_namespace n ON n.oid = t.typnamespace
    JOIN pg_catalog.pg_enum e ON t.oid = e.enumtypid
    WHERE n.nspname = %s AND t.typtype = 'e'
    ORDER BY enum_name, e.enumsortorder
"""

ROUTINES = """
    SELECT
        p.proname::TEXT AS routine_name,
        (p.proname || '_' || p.oid)::TEXT AS specific_name,
        p.prokind::TEXT AS prokind,
        CASE
            WHEN rt.typcategory = 'A' THEN 'ARRAY'
            WHEN rt.typtype = 'e' THEN 'USER-DEFINED'
            ELSE pg_catalog.format_type(p.prorettype, NULL)
        END AS return_data_type,
        rt.typname::TEXT AS return_udt_name,
        p.proretset AS returns_set,
        l.lanname::TEXT AS language,
        p.provolatile::TEXT AS volatility,
        p.proisstrict AS is_strict,
        pg_catalog.obj_description(p.oid, 'pg_proc') AS comment
    FROM pg_catalog.pg_proc p
    JOIN pg_catalog.pg_namespace n ON n.oid = p.pronamespace
    LEFT JOIN pg_catalog.pg_type rt ON rt.oid = p.prorettype
    LEFT JOIN pg_catalog.pg_language l ON l.oid = p.prolang
    WHERE n.nspname = %s
      AND NOT EXISTS (
          SELECT 1 FROM pg_catalog.pg_depend d
          WHERE d.objid = p.oid AND d.deptype = 'e'
      )
    ORDER BY p.proname, p.oid
"""

ROUTINE_PARAMETERS = """
    SELECT
        specific_name::TEXT,
        parameter_name::TEXT,
        ordinal_position::INT,
        parameter_mode::TEXT,
        data_type::TEXT,
        udt_name::TEXT,
        parameter_default::TEXT
    FROM information_schema.parameters
    WHERE specific_schema = %s
    ORDER BY specific_name, ordinal_position
"""

_ROUTINE_KINDS = {
    "f": RoutineKind.FUNCTION,
    "p": RoutineKind.PROCEDURE,
    "a": RoutineKind.AGGREGATE,
    "w": RoutineKind.WINDOW,
}

_VOLATILITY = {"i": "IMMUTABLE", "s": "STABLE", "v": "VOLATILE"}

_ENTITY_KINDS = {"BASE TABLE": TABLE_KIND, "VIEW": VIEW_KIND}


class PostgresIntrospector:
    """Introspects PostgreSQL catalogs through a query provider."""

    dialect = "postgres"

    def __init__(
        self,
        provider: QueryProvider,
        type_mapper: Optional[PostgresTypeMapper] = None,
        include_system_schemas: bool = False,
        max_concurrency: int = 1,
    ):
        self.provider = provider
        self.type_mapper = type_mapper or PostgresTypeMapper()
        self.include_system_schemas = include_system_schemas
        self.max_concurrency = max_concurrency

    async def list_user_schemas(self) -> List[str]:
        """Get all schemas, excluding system schemas unless configured otherwise."""
        query = LIST_ALL_SCHEMAS if self.include_system_schemas else LIST_SCHEMAS
        rows = await self.provider.fetch_all(query)
        return [row["schema_name"] for row in rows]

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
        return [
            (row["table_name"], _ENTITY_KINDS.get(row["table_type"], row["table_type"].lower()))
            for row in rows
        ]

    async def _routines_or_error(self, schema_name: str):
        try:
            return await self.introspect_functions_for_schema(schema_name)
        except Exception as e:
            return e

    async def _relation_comment(self, schema_name: str, name: str) -> Optional[str]:
        row = await self.provider.fetch_optional(RELATION_COMMENT, (schema_name, name))
        return row["comment"] if row else None

    async def introspect_table(self, schema_name: str, table_name: str) -> TableMetadata:
        """Introspect one table: columns, primary key and foreign keys."""
        column_rows, foreign_keys, comment = await gather_or_cancel(
            self.provider.fetch_all(COLUMNS, (schema_name, table_name)),
            self._get_foreign_keys(schema_name, table_name),
            self._relation_comment(schema_name, table_name),
        )

        if not column_rows:
            raise EntityNotFoundError(schema_name, table_name, TABLE_KIND)

        columns = []
        primary_key_columns = []
        for position, row in enumerate(_by_ordinal(column_rows), start=1):
            if row["is_primary_key"]:
                primary_key_columns.append(row["column_name"])
            columns.append(self._column(
                row,
                position,
                is_primary_key=bool(row["is_primary_key"]),
                foreign_key=foreign_keys.get(row["column_name"]),
            ))

        return TableMetadata(
            schema=schema_name,
            name=table_name,
            columns=columns,
            primary_key_columns=primary_key_columns,
            comment=comment,
        )

    async def _get_foreign_keys(self, schema_name: str, table_name: str) -> Dict[str, ForeignKeyReference]:
        rows = await self.provider.fetch_all(FOREIGN_KEYS, (schema_name, table_name))
        return {
            row["column_name"]: ForeignKeyReference(
                schema=row["foreign_table_schema"],
                table=row["foreign_table_name"],
                column=row["foreign_column_name"],
            )
            for row in rows
        }

    async def introspect_view(self, schema_name: str, view_name: str) -> ViewMetadata:
        """Introspect one view: columns and definition text."""
        column_rows, definition_row, comment = await gather_or_cancel(
            self.provider.fetch_all(COLUMNS, (schema_name, view_name)),
            self.provider.fetch_optional(VIEW_DEFINITION, (schema_name, view_name)),
            self._relation_comment(schema_name, view_name),
        )

        if not column_rows:
            raise EntityNotFoundError(schema_name, view_name, VIEW_KIND)

        columns = [
            self._column(row, position)
            for position, row in enumerate(_by_ordinal(column_rows), start=1)
        ]
        return ViewMetadata(
            schema=schema_name,
            name=view_name,
            columns=columns,
            definition=definition_row["view_definition"] if definition_row else None,
            comment=comment,
        )

    async def introspect_enums_for_schema(self, schema_name: str) -> Dict[str, EnumMetadata]:
        """Get every enum of a schema with labels in declared sort order."""
        rows = await self.provider.fetch_all(ENUMS, (schema_name,))

        labels: Dict[str, List[str]] = {}
        comments: Dict[str, Optional[str]] = {}
        for row in rows:
            labels.setdefault(row["enum_name"], []).append(row["enum_value"])
            comments.setdefault(row["enum_name"], row.get("enum_comment"))

        return {
            name: EnumMetadata(schema=schema_name, name=name, values=values, comment=comments[name])
            for name, values in labels.items()
        }

    async def introspect_functions_for_schema(self, schema_name: str) -> Dict[str, FunctionMetadata]:
        """Get the functions, procedures, aggregates and triggers of a schema."""
        routine_rows, parameter_rows = await gather_or_cancel(
            self.provider.fetch_all(ROUTINES, (schema_name,)),
            self.provider.fetch_all(ROUTINE_PARAMETERS, (schema_name,)),
        )

        parameters: Dict[str, List[Row]] = {}
        for row in parameter_rows:
            parameters.setdefault(row["specific_name"], []).append(row)

        routines = [
            self._routine(schema_name, row, parameters.get(row["specific_name"], []))
            for row in routine_rows
        ]
        return key_routines(routines)

    def _routine(self, schema_name: str, row: Row, parameter_rows: List[Row]) -> FunctionMetadata:
        return_udt = row.get("return_udt_name")
        if return_udt == "trigger":
            kind = RoutineKind.TRIGGER
        else:
            kind = _ROUTINE_KINDS.get(row.get("prokind"), RoutineKind.FUNCTION)

        inputs = []
        outputs = []
        for param in parameter_rows:
            mode = _parameter_mode(param.get("parameter_mode"))
            target = outputs if mode in (ParameterMode.OUT, ParameterMode.TABLE) else inputs
            target.append(ParameterMetadata(
                name=param.get("parameter_name") or None,
                ordinal_position=param["ordinal_position"],
                mode=mode,
                sql_type_name=param["data_type"],
                udt_name=param.get("udt_name"),
                data_type=self.type_mapper.map(param["data_type"], param.get("udt_name")),
                default_value=param.get("parameter_default"),
            ))

        return_type = None
        if kind != RoutineKind.PROCEDURE and row.get("return_data_type"):
            return_type = self.type_mapper.map(row["return_data_type"], return_udt)

        return FunctionMetadata(
            schema=schema_name,
            name=row["routine_name"],
            kind=kind,
            parameters=inputs,
            return_type=return_type,
            return_columns=outputs,
            language=row.get("language"),
            volatility=_VOLATILITY.get(row.get("volatility")),
            is_strict=row.get("is_strict"),
            comment=row.get("comment"),
        )

    def _column(
        self,
        row: Row,
        position: int,
        is_primary_key: bool = False,
        foreign_key: Optional[ForeignKeyReference] = None,
    ) -> ColumnMetadata:
        return ColumnMetadata(
            name=row["column_name"],
            ordinal_position=position,
            sql_type_name=row["data_type"],
            udt_name=row.get("udt_name"),
            data_type=self.type_mapper.map(row["data_type"], row.get("udt_name")),
            is_nullable=str(row.get("is_nullable", "YES")).lower() == "yes",
            is_primary_key=is_primary_key,
            default_value=row.get("column_default"),
            comment=row.get("column_comment"),
            foreign_key=foreign_key,
        )


def _by_ordinal(rows: List[Row]) -> List[Row]:
    """Sort column rows by catalog ordinal. Dropped columns leave gaps there."""
    return sorted(rows, key=lambda row: row.get("ordinal_position") or 0)


def _parameter_mode(value: Any) -> ParameterMode:
    try:
        return ParameterMode((value or "in").lower())
    except ValueError:
        return ParameterMode.IN
