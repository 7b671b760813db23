"""Database introspection module for dbmeta.

This module provides dialect-independent introspection with specific
implementations for PostgreSQL and DuckDB.
"""

from .models import (
    NormalizedType,
    ColumnMetadata,
    ForeignKeyReference,
    TableMetadata,
    ViewMetadata,
    EnumMetadata,
    FunctionMetadata,
    ParameterMetadata,
    SchemaMetadata,
    DatabaseMetadata,
)
from .base import Introspector, IntrospectionFailure, IntrospectionResult
from .aggregator import aggregate
from .type_mappers import TypeMapper, PostgresTypeMapper, DuckDBTypeMapper
from .providers import QueryProvider, PostgresProvider, DuckDBProvider
from .postgres import PostgresIntrospector
from .duckdb import DuckDBIntrospector
from .factory import DatabaseType, new_introspector, open_introspector

__all__ = [
    # Data models
    "NormalizedType",
    "ColumnMetadata",
    "ForeignKeyReference",
    "TableMetadata",
    "ViewMetadata",
    "EnumMetadata",
    "FunctionMetadata",
    "ParameterMetadata",
    "SchemaMetadata",
    "DatabaseMetadata",
    # Capability interface and aggregation
    "Introspector",
    "IntrospectionFailure",
    "IntrospectionResult",
    "aggregate",
    # Type mappers
    "TypeMapper",
    "PostgresTypeMapper",
    "DuckDBTypeMapper",
    # Providers
    "QueryProvider",
    "PostgresProvider",
    "DuckDBProvider",
    # Introspectors
    "PostgresIntrospector",
    "DuckDBIntrospector",
    # Dispatch
    "DatabaseType",
    "new_introspector",
    "open_introspector",
]
