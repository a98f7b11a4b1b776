import logging
from typing import Any, Dict, List

from .db import Database
from .errors import AppError, EmptyModelReply, GenerationFailed, ModelServiceFailure
from .models import GenerationRequest, QueryResponse, QueryResult, TaskKind
from .nl2sql import OllamaClient
from .prompt import build_prompt
from .schema import get_schema_context
from .validate import ensure_safe_sql

logger = logging.getLogger(__name__)

TASK_LABELS = {
    TaskKind.GENERATE: "SQL Generation",
    TaskKind.REFINE: "SQL Refinement",
    TaskKind.EXPLAIN: "SQL Explanation",
}

EMPTY_REPLY_MSGS = {
    TaskKind.GENERATE: "AI failed to generate a valid SQL query. The response was empty.",
    TaskKind.REFINE: "AI failed to generate a refined SQL query.",
    TaskKind.EXPLAIN: "AI failed to generate an explanation.",
}


class Pipeline:
    """schema -> prompt -> model -> validate -> execute, one request at a time."""

    def __init__(self, db: Database, llm: OllamaClient):
        self.db = db
        self.llm = llm

    async def _ask_model(self, kind: TaskKind, text: str, previous_sql: str | None = None) -> str:
        try:
            schema_context = await get_schema_context(self.db)
            req = GenerationRequest(
                kind=kind, text=text, previous_sql=previous_sql, schema_context=schema_context
            )
            reply = await self.llm.chat(build_prompt(req), task=TASK_LABELS[kind])
        except EmptyModelReply as e:
            raise GenerationFailed(EMPTY_REPLY_MSGS[kind]) from e
        except AppError:
            logger.error("AI pipeline failed for %s: %r", TASK_LABELS[kind], text)
            raise
        except Exception as e:
            logger.exception("Unexpected error during %s for: %r", TASK_LABELS[kind], text)
            raise ModelServiceFailure(
                "An unexpected error occurred while preparing the AI request."
            ) from e

        if not reply.strip():
            raise GenerationFailed(EMPTY_REPLY_MSGS[kind])
        return reply

    async def execute(self, sql: str) -> QueryResult:
        ensure_safe_sql(sql)
        return await self.db.run_sql(sql)

    async def generate(self, natural_query: str) -> QueryResponse:
        logger.info("Processing natural language query: %s", natural_query)
        sql = await self._ask_model(TaskKind.GENERATE, natural_query)
        logger.info("Generated SQL: %s", sql)
        result = await self.execute(sql)
        return QueryResponse(original_query=natural_query, generated_sql=sql, execution_result=result)

    async def refine(self, previous_sql: str, refinement_request: str) -> QueryResponse:
        logger.info("Refining SQL query with request: %s", refinement_request)
        sql = await self._ask_model(TaskKind.REFINE, refinement_request, previous_sql=previous_sql)
        logger.info("Refined SQL: %s", sql)
        result = await self.execute(sql)
        return QueryResponse(
            original_query=refinement_request,
            generated_sql=sql,
            previous_sql=previous_sql,
            execution_result=result,
        )

    async def explain(self, sql: str) -> str:
        # Never validated or executed: the statement only goes into the prompt.
        return await self._ask_model(TaskKind.EXPLAIN, sql)

    async def list_tables(self) -> List[str]:
        return await self.db.list_table_names()

    async def describe_table(self, table_name: str) -> Dict[str, Any]:
        return await self.db.get_table_detail(table_name)

    async def health(self) -> Dict[str, Any]:
        db_ok = await self.db.test_connection()
        ai_ok = await self.llm.health_check()
        return {
            "status": "HEALTHY" if db_ok and ai_ok else "UNHEALTHY",
            "database_connection": db_ok,
            "ai_service_connection": ai_ok,
        }

    async def is_healthy(self) -> bool:
        return (await self.health())["status"] == "HEALTHY"
