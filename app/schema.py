import logging

import psycopg
from psycopg_pool import PoolTimeout

from .db import Database
from .errors import SchemaUnavailable
from .models import ColumnInfo, SchemaContext, TableInfo
from .validate import ensure_identifier

logger = logging.getLogger(__name__)

TABLES_SQL = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = %s AND table_type = 'BASE TABLE'
    ORDER BY table_name;
"""

COLUMNS_SQL = """
    SELECT column_name, data_type
    FROM information_schema.columns
    WHERE table_name = %s AND table_schema = %s
    ORDER BY ordinal_position;
"""


async def get_schema_context(db: Database) -> SchemaContext:
    """
    Describes every base table (views excluded) and its columns, in name
    and ordinal order, so the rendered text is stable between calls.
    A malformed table name raises InvalidInput before its column lookup.
    """
    logger.info("Fetching detailed schema context for the AI prompt.")
    try:
        table_rows = await db.fetch_all(TABLES_SQL, (db.schema,))
        tables = []
        for (table_name,) in table_rows:
            ensure_identifier(table_name)
            column_rows = await db.fetch_all(COLUMNS_SQL, (table_name, db.schema))
            columns = tuple(ColumnInfo(name=c, data_type=t) for c, t in column_rows)
            tables.append(TableInfo(name=table_name, columns=columns))
    except (psycopg.Error, PoolTimeout) as e:
        logger.error("Failed to generate detailed schema context.", exc_info=True)
        raise SchemaUnavailable("Could not generate schema context for AI.") from e

    context = SchemaContext(tables=tuple(tables))
    logger.debug("Generated schema context:\n%s", context.render())
    return context
