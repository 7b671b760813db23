"""Drives an introspector across schemas and merges the results."""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from ..errors import is_fatal
from .base import Introspector, IntrospectionFailure, IntrospectionResult, gather_or_cancel
from .models import DatabaseMetadata, SchemaMetadata

logger = logging.getLogger(__name__)


async def aggregate(
    introspector: Introspector,
    schemas: Optional[Sequence[str]] = None,
    max_concurrency: int = 1,
) -> IntrospectionResult:
    """Introspect ``schemas`` (all user schemas when None) into one tree.

    Schemas run sequentially when ``max_concurrency`` is 1, otherwise at most
    ``max_concurrency`` at a time. The tree keeps the requested schema order.
    A schema that fails with a non-fatal error is logged, recorded and left
    out; fatal errors abort the run. Nothing is retried.
    """
    if schemas is None:
        logger.info("Discovering user schemas...")
        schemas = await introspector.list_user_schemas()

    # Duplicates would only overwrite each other.
    requested = list(dict.fromkeys(schemas))
    logger.info("Starting introspection of %d schemas: %s", len(requested), requested)

    failures: List[IntrospectionFailure] = []
    failures_by_schema: Dict[str, List[IntrospectionFailure]] = {}
    results: Dict[str, SchemaMetadata] = {}
    slots = asyncio.Semaphore(max(1, max_concurrency))

    async def run(schema_name: str) -> None:
        schema_failures: List[IntrospectionFailure] = []
        async with slots:
            try:
                results[schema_name] = await introspector.introspect_schema(
                    schema_name, failures=schema_failures
                )
            except Exception as e:
                if is_fatal(e):
                    raise
                logger.warning("Could not introspect schema '%s': %s", schema_name, e)
                schema_failures.append(
                    IntrospectionFailure(entity=schema_name, kind="schema", error=e)
                )
        failures_by_schema[schema_name] = schema_failures

    if max_concurrency <= 1:
        for schema_name in requested:
            await run(schema_name)
    else:
        await gather_or_cancel(*(run(name) for name in requested))

    for schema_name in requested:
        failures.extend(failures_by_schema.get(schema_name, ()))

    metadata = DatabaseMetadata(
        schemas={name: results[name] for name in requested if name in results}
    )
    logger.info(
        "Introspection complete. Found %d schemas, %d failures.",
        len(metadata.schemas), len(failures),
    )
    return IntrospectionResult(metadata=metadata, failures=tuple(failures))
