import json
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Sequence

import psycopg
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from .config import Settings
from .errors import DatabaseExecutionError, DatabaseOperationFailure
from .models import QueryResult, Row, Scalar
from .validate import ensure_identifier

logger = logging.getLogger(__name__)

_DB_ERRORS = (psycopg.Error, PoolTimeout)


def to_scalar(value: Any) -> Scalar:
    """Narrows a driver value to the scalar types a QueryResult row may hold."""
    if value is None or isinstance(value, (bool, int, float, str, datetime, date, time)):
        return value
    if isinstance(value, Decimal):
        # numeric values a float cannot carry exactly stay as text
        if not value.is_finite():
            return str(value)
        as_float = float(value)
        return as_float if Decimal(repr(as_float)) == value else str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, separators=(",", ":"))
    return str(value)


async def configure_session(conn: psycopg.AsyncConnection) -> None:
    # psycopg opens every transaction on this connection with BEGIN READ ONLY
    await conn.set_read_only(True)


async def reset_session(conn: psycopg.AsyncConnection) -> None:
    """Drops session settings a statement changed, e.g. through set_config()."""
    await conn.execute("RESET ALL")
    await conn.commit()


class Database:
    """
    Thin wrapper over a psycopg async pool: runs validated SQL and
    answers the catalog questions the API and the schema builder ask.
    """

    def __init__(self, pool: AsyncConnectionPool, schema: str = "public"):
        self.pool = pool
        self.schema = schema

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        # Every pooled session is read-only and time-limited
        options = (
            f"-c statement_timeout={settings.statement_timeout_ms} "
            "-c default_transaction_read_only=on"
        )
        pool = AsyncConnectionPool(
            settings.conninfo,
            min_size=settings.db_pool_min,
            max_size=settings.db_pool_max,
            kwargs={"options": options},
            configure=configure_session,
            reset=reset_session,
            open=False,
        )
        return cls(pool, schema=settings.db_schema)

    async def open(self) -> None:
        await self.pool.open()

    async def close(self) -> None:
        await self.pool.close()

    async def run_sql(self, sql: str) -> QueryResult:
        """
        Runs an already validated statement and materializes every row.
        Any failure raises DatabaseExecutionError; no partial result is returned.
        """
        logger.info("Executing validated SQL query: %s", sql)
        try:
            async with self.pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(sql)
                    names = [d.name for d in cur.description] if cur.description else []
                    records = await cur.fetchall() if cur.description else []
        except _DB_ERRORS as e:
            logger.error("Error executing SQL query: %s", sql, exc_info=True)
            raise DatabaseExecutionError(f"Failed to execute SQL query: {e}", sql=sql) from e

        # A repeated column name keeps its first position, as row dicts do.
        columns = list(dict.fromkeys(names))
        data: List[Row] = []
        for record in records:
            row: Row = {}
            for name, value in zip(names, record):
                row[name] = to_scalar(value)
            data.append(row)

        return QueryResult(
            success=True,
            columns=columns,
            data=data,
            row_count=len(data),
            executed_sql=sql,
        )

    async def fetch_all(self, sql: str, params: Sequence[Any] | None = None) -> List[tuple]:
        async with self.pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(sql, params)
                return await cur.fetchall()

    async def test_connection(self) -> bool:
        try:
            await self.fetch_all("SELECT 1")
            return True
        except _DB_ERRORS:
            logger.error("Database connection test failed", exc_info=True)
            return False

    async def list_table_names(self) -> List[str]:
        try:
            rows = await self.fetch_all(
                "SELECT table_name FROM information_schema.tables "
                "WHERE table_schema = %s ORDER BY table_name",
                (self.schema,),
            )
        except _DB_ERRORS as e:
            logger.error("Error fetching table names", exc_info=True)
            raise DatabaseOperationFailure("Could not fetch table names.") from e
        return [r[0] for r in rows]

    async def get_table_detail(self, table_name: str) -> Dict[str, Any]:
        ensure_identifier(table_name)
        try:
            rows = await self.fetch_all(
                "SELECT column_name, data_type, is_nullable, column_default "
                "FROM information_schema.columns "
                "WHERE table_name = %s AND table_schema = %s ORDER BY ordinal_position",
                (table_name, self.schema),
            )
        except _DB_ERRORS as e:
            logger.error("Error fetching table info for table: %s", table_name, exc_info=True)
            raise DatabaseOperationFailure(f"Could not fetch table info for {table_name}") from e
        columns = [
            {
                "column_name": name,
                "data_type": data_type,
                "is_nullable": is_nullable,
                "column_default": default,
            }
            for name, data_type, is_nullable, default in rows
        ]
        return {"table_name": table_name, "columns": columns}
