import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request

from .models import QueryIn, QueryResponse, QueryResult, RefineIn, SqlIn
from .pipeline import Pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sql", tags=["SQL"])


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


pipeline_dep = Annotated[Pipeline, Depends(get_pipeline)]


@router.post("/generate", response_model=QueryResponse)
async def generate(body: QueryIn, pipeline: pipeline_dep):
    """Natural language -> SQL -> rows."""
    logger.info("Received natural language query: %s", body.query)
    return await pipeline.generate(body.query)


@router.post("/refine", response_model=QueryResponse)
async def refine(body: RefineIn, pipeline: pipeline_dep):
    logger.info("Refining SQL query with request: %s", body.refinement_request)
    return await pipeline.refine(body.original_sql, body.refinement_request)


@router.post("/execute", response_model=QueryResult)
async def execute(body: SqlIn, pipeline: pipeline_dep):
    """Runs caller-supplied SQL through the same read-only gate as generated SQL."""
    logger.info("Executing SQL query: %s", body.sql)
    return await pipeline.execute(body.sql)


@router.post("/explain")
async def explain(body: SqlIn, pipeline: pipeline_dep):
    logger.info("Explaining SQL query: %s", body.sql)
    return {"explanation": await pipeline.explain(body.sql)}


@router.get("/health")
async def health(pipeline: pipeline_dep):
    return await pipeline.health()


@router.get("/tables")
async def tables(pipeline: pipeline_dep):
    return {"tables": await pipeline.list_tables()}


@router.get("/tables/{table_name}")
async def table_detail(table_name: str, pipeline: pipeline_dep):
    details = await pipeline.describe_table(table_name)
    return {"table_name": table_name, "details": details}
