"""Introspector capability protocol and the shared schema fan-out."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from ..errors import DbMetaError, is_fatal
from .models import (
    DatabaseMetadata,
    EnumMetadata,
    FunctionMetadata,
    SchemaMetadata,
    TableMetadata,
    ViewMetadata,
)

logger = logging.getLogger(__name__)

TABLE_KIND = "table"
VIEW_KIND = "view"


@dataclass(frozen=True)
class IntrospectionFailure:
    """An entity or schema that was skipped, and why."""
    entity: str
    kind: str
    error: Exception

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.error, DbMetaError):
            error = self.error.to_dict()
        else:
            error = {"code": type(self.error).__name__, "message": str(self.error), "details": {}}
        return {"entity": self.entity, "kind": self.kind, "error": error}


@dataclass(frozen=True)
class IntrospectionResult:
    """Metadata tree plus the failures accumulated while building it."""
    metadata: DatabaseMetadata
    failures: Tuple[IntrospectionFailure, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failures


@runtime_checkable
class Introspector(Protocol):
    """Capabilities every dialect-specific introspector provides."""

    dialect: str

    async def list_user_schemas(self) -> List[str]:
        ...

    async def introspect(self, schemas: Optional[Sequence[str]] = None) -> IntrospectionResult:
        ...

    async def introspect_schema(
        self, schema_name: str, failures: Optional[List[IntrospectionFailure]] = None
    ) -> SchemaMetadata:
        ...

    async def introspect_table(self, schema_name: str, table_name: str) -> TableMetadata:
        ...

    async def introspect_view(self, schema_name: str, view_name: str) -> ViewMetadata:
        ...

    async def introspect_enums_for_schema(self, schema_name: str) -> Dict[str, EnumMetadata]:
        ...

    async def introspect_functions_for_schema(self, schema_name: str) -> Dict[str, FunctionMetadata]:
        ...


async def gather_or_cancel(*aws):
    """Run awaitables concurrently and return their results in order.

    On the first error the remaining tasks are cancelled and awaited before
    the error propagates, so no task outlives the call.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


def _record(failures: Optional[List[IntrospectionFailure]], entity: str, kind: str, error: Exception):
    logger.warning("Skipping %s %s: %s", kind, entity, error)
    if failures is not None:
        failures.append(IntrospectionFailure(entity=entity, kind=kind, error=error))


async def build_schema(
    introspector: Introspector,
    schema_name: str,
    entities: Sequence[Tuple[str, str]],
    enums: Dict[str, EnumMetadata],
    functions: Any = None,
    failures: Optional[List[IntrospectionFailure]] = None,
) -> SchemaMetadata:
    """Introspect every listed entity of a schema and assemble the result.

    ``entities`` are ``(name, kind)`` pairs with kind ``table`` or ``view``.
    ``functions`` is either the routine map or the exception raised while
    fetching it. Per-entity failures are recorded and the entity omitted;
    fatal errors propagate.
    """
    tables: Dict[str, TableMetadata] = {}
    views: Dict[str, ViewMetadata] = {}

    for name, kind in entities:
        qualified = f"{schema_name}.{name}"
        try:
            if kind == TABLE_KIND:
                tables[name] = await introspector.introspect_table(schema_name, name)
            elif kind == VIEW_KIND:
                views[name] = await introspector.introspect_view(schema_name, name)
            else:
                logger.debug("Ignoring %s of kind %s", qualified, kind)
        except Exception as e:
            if is_fatal(e):
                raise
            _record(failures, qualified, kind, e)

    if isinstance(functions, BaseException):
        if is_fatal(functions):
            raise functions
        _record(failures, f"{schema_name}.*", "routines", functions)
        functions = None

    logger.debug(
        "Schema %s: %d tables, %d views, %d enums",
        schema_name, len(tables), len(views), len(enums),
    )
    return SchemaMetadata(
        name=schema_name,
        tables=tables,
        views=views,
        enums=enums,
        functions=functions or {},
    )


def key_routines(routines: Sequence[FunctionMetadata]) -> Dict[str, FunctionMetadata]:
    """Key routines by name, using ``name(types)`` for overloaded names."""
    counts: Dict[str, int] = {}
    for routine in routines:
        counts[routine.name] = counts.get(routine.name, 0) + 1

    keyed: Dict[str, FunctionMetadata] = {}
    for routine in routines:
        key = routine.name if counts[routine.name] == 1 else routine.signature()
        keyed[key] = routine
    return keyed
