"""Query providers: the connection layer introspectors run catalog queries on.

A provider exposes "execute a parameterized query, return rows as dicts" as
coroutines. The drivers are blocking, so each query runs in the default
executor; a semaphore sized to the pool bounds how many are in flight.
"""

import asyncio
import logging
import threading
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

from ..errors import ConnectivityError, ProviderQueryError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


@runtime_checkable
class QueryProvider(Protocol):
    """What introspectors need from the connection layer."""

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Row]:
        ...

    async def fetch_optional(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Row]:
        ...

    async def ping(self) -> None:
        ...

    def close(self) -> None:
        ...


class _ExecutorProvider:
    """Shared plumbing for providers wrapping blocking DB-API drivers."""

    def __init__(self, max_in_flight: int):
        self._slots = asyncio.Semaphore(max(1, max_in_flight))

    def _execute(self, sql: str, params: Optional[Sequence[Any]]) -> List[Row]:
        raise NotImplementedError

    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Row]:
        async with self._slots:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, lambda: self._execute(sql, params))

    async def fetch_optional(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Row]:
        rows = await self.fetch_all(sql, params)
        return rows[0] if rows else None

    async def ping(self) -> None:
        await self.fetch_all("SELECT 1 AS ok")

    def close(self) -> None:
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()


class PostgresProvider(_ExecutorProvider):
    """PostgreSQL provider backed by a psycopg2 thread-safe connection pool."""

    def __init__(
        self,
        dsn: str,
        min_size: int = 1,
        max_size: int = 5,
        statement_timeout_ms: Optional[int] = None,
    ):
        super().__init__(max_size)
        try:
            import psycopg2
            from psycopg2 import pool
        except ImportError:
            raise ImportError(
                "psycopg2 is required for PostgreSQL introspection. "
                "Install it with: pip install psycopg2-binary"
            )

        self._psycopg2 = psycopg2
        connect_kwargs = {}
        if statement_timeout_ms:
            connect_kwargs["options"] = f"-c statement_timeout={int(statement_timeout_ms)}"

        logger.debug("Opening PostgreSQL pool (min=%d, max=%d)", min_size, max_size)
        try:
            self._pool = pool.ThreadedConnectionPool(min_size, max_size, dsn, **connect_kwargs)
        except psycopg2.OperationalError as e:
            raise ConnectivityError(f"Cannot connect to PostgreSQL: {e}") from e

    def _execute(self, sql: str, params: Optional[Sequence[Any]]) -> List[Row]:
        psycopg2 = self._psycopg2
        from psycopg2.extras import RealDictCursor

        try:
            conn = self._pool.getconn()
        except psycopg2.OperationalError as e:
            raise ConnectivityError(f"Cannot acquire PostgreSQL connection: {e}") from e
        except psycopg2.pool.PoolError as e:
            raise ConnectivityError(f"PostgreSQL pool unavailable: {e}") from e

        broken = False
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cursor:
                cursor.execute(sql, tuple(params) if params is not None else None)
                rows = [dict(row) for row in cursor.fetchall()]
            conn.rollback()
            return rows
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            broken = True
            raise ConnectivityError(f"PostgreSQL connection failed: {e}") from e
        except psycopg2.Error as e:
            conn.rollback()
            raise ProviderQueryError(
                f"Catalog query failed: {e}",
                details={"pgcode": getattr(e, "pgcode", None)},
            ) from e
        finally:
            self._pool.putconn(conn, close=broken)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None


class DuckDBProvider(_ExecutorProvider):
    """DuckDB provider. Each query runs on its own cursor of one connection."""

    def __init__(self, database_path: Optional[str] = None, read_only: bool = True, max_in_flight: int = 4):
        super().__init__(max_in_flight)
        try:
            import duckdb
        except ImportError:
            raise ImportError(
                "duckdb is required. "
                "Install it with: pip install duckdb"
            )

        self._cursor_lock = threading.Lock()
        self._duckdb = duckdb
        path = database_path or ":memory:"
        if path.startswith("duckdb:///"):
            path = path[10:]
        elif path.startswith("duckdb://"):
            path = path[9:]
        if "?" in path:
            path = path.split("?")[0]

        try:
            if path == ":memory:":
                self._connection = duckdb.connect(path)
            else:
                self._connection = duckdb.connect(path, read_only=read_only)
        except duckdb.Error as e:
            raise ConnectivityError(f"Cannot open DuckDB database '{path}': {e}") from e

    @classmethod
    def from_connection(cls, connection, max_in_flight: int = 4) -> "DuckDBProvider":
        """Wrap an already open duckdb connection."""
        provider = cls.__new__(cls)
        _ExecutorProvider.__init__(provider, max_in_flight)
        import duckdb
        provider._cursor_lock = threading.Lock()
        provider._duckdb = duckdb
        provider._connection = connection
        return provider

    def _execute(self, sql: str, params: Optional[Sequence[Any]]) -> List[Row]:
        duckdb = self._duckdb
        if self._connection is None:
            raise ConnectivityError("DuckDB connection is closed")
        with self._cursor_lock:
            cursor = self._connection.cursor()
        try:
            if params is not None:
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            names = [d[0] for d in cursor.description] if cursor.description else []
            return [dict(zip(names, row)) for row in cursor.fetchall()]
        except (duckdb.ConnectionException, duckdb.IOException) as e:
            raise ConnectivityError(f"DuckDB connection failed: {e}") from e
        except duckdb.Error as e:
            raise ProviderQueryError(f"Catalog query failed: {e}") from e
        finally:
            cursor.close()

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
