"""Dialect dispatch: pick the introspector implementation for a dialect tag."""

import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..config import Settings, settings
from ..errors import UnsupportedDialectError
from .base import Introspector
from .duckdb import DuckDBIntrospector
from .postgres import PostgresIntrospector
from .providers import DuckDBProvider, PostgresProvider, QueryProvider
from .type_mappers import DuckDBTypeMapper, PostgresTypeMapper

logger = logging.getLogger(__name__)


class DatabaseType(str, Enum):
    """Known database dialects. Not every one has an introspector."""
    POSTGRES = "postgres"
    DUCKDB = "duckdb"
    MYSQL = "mysql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: Any) -> "DatabaseType":
        if isinstance(value, cls):
            return value
        tag = str(value).strip().lower()
        tag = _ALIASES.get(tag, tag)
        try:
            return cls(tag)
        except ValueError:
            raise UnsupportedDialectError(str(value))


_ALIASES = {
    "postgresql": "postgres",
    "pg": "postgres",
    "mariadb": "mysql",
}


def _postgres(provider: QueryProvider, options: Dict[str, Any]) -> Introspector:
    return PostgresIntrospector(
        provider,
        type_mapper=PostgresTypeMapper(hstore_as_json=options.get("hstore_as_json", False)),
        include_system_schemas=options.get("include_system_schemas", False),
        max_concurrency=options.get("max_concurrency", 1),
    )


def _duckdb(provider: QueryProvider, options: Dict[str, Any]) -> Introspector:
    return DuckDBIntrospector(
        provider,
        type_mapper=DuckDBTypeMapper(),
        include_system_schemas=options.get("include_system_schemas", False),
        max_concurrency=options.get("max_concurrency", 1),
    )


_REGISTRY: Dict[DatabaseType, Callable[[QueryProvider, Dict[str, Any]], Introspector]] = {
    DatabaseType.POSTGRES: _postgres,
    DatabaseType.DUCKDB: _duckdb,
}


def supported_dialects():
    return [db_type.value for db_type in _REGISTRY]


def new_introspector(dialect: Any, provider: QueryProvider, **options) -> Introspector:
    """Create the introspector for ``dialect`` or raise UnsupportedDialectError.

    Options: ``hstore_as_json``, ``include_system_schemas``, ``max_concurrency``.
    """
    db_type = DatabaseType.parse(dialect)
    build = _REGISTRY.get(db_type)
    if build is None:
        raise UnsupportedDialectError(db_type.value)
    logger.debug("Creating %s introspector", db_type.value)
    return build(provider, options)


def open_provider(config: Settings, db_type: DatabaseType) -> QueryProvider:
    """Open the query provider for a dialect from configuration."""
    if db_type == DatabaseType.POSTGRES:
        timeout = config.query_timeout_seconds
        return PostgresProvider(
            config.build_connection_string(),
            min_size=config.pool_min_size,
            max_size=config.pool_max_size,
            statement_timeout_ms=int(timeout * 1000) if timeout else None,
        )
    if db_type == DatabaseType.DUCKDB:
        return DuckDBProvider(
            config.duckdb_path or config.db_url,
            read_only=config.duckdb_read_only,
            max_in_flight=config.pool_max_size,
        )
    raise UnsupportedDialectError(db_type.value)


@asynccontextmanager
async def open_introspector(config: Optional[Settings] = None, dialect: Optional[str] = None):
    """Build provider and introspector from configuration; close the provider on exit.

    Usage:
        async with open_introspector() as introspector:
            result = await introspector.introspect()
    """
    config = config or settings
    config.validate_pool()
    db_type = DatabaseType.parse(dialect or config.db_type)
    if db_type not in _REGISTRY:
        raise UnsupportedDialectError(db_type.value)

    provider = open_provider(config, db_type)
    try:
        yield new_introspector(
            db_type,
            provider,
            hstore_as_json=config.hstore_as_json,
            include_system_schemas=config.include_system_schemas,
            max_concurrency=config.schema_concurrency,
        )
    finally:
        provider.close()
